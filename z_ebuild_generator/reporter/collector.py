"""Report collection: run ``zig build`` with a custom build runner.

The build runner connects back over loopback TCP and sends one JSON
:class:`BuildReport`. The listener is bound before ``zig build`` starts and
its port is passed in ``ZIG_EBUILDER_REPORT_LISTEN_PORT``.
"""

from __future__ import annotations

import asyncio
import hashlib
import shutil
import socket
from pathlib import Path

import structlog
from pydantic import ValidationError

from z_ebuild_generator.build_tool import BuildResult, BuildToolClient, ToolVersion, VersionKind
from z_ebuild_generator.exceptions import (
    BuildRunnerNotFoundError,
    InvalidReportError,
    ReportTimeoutError,
)
from z_ebuild_generator.models.report import (
    CRITICAL_OPTIONS,
    BuildReport,
    OptimizeMode,
    ProcessedReport,
)
from z_ebuild_generator.workspace import ProjectLocation

log = structlog.get_logger("z_ebuild_generator.reporter")

REPORT_LISTEN_PORT_ENV = "ZIG_EBUILDER_REPORT_LISTEN_PORT"
REPORT_LISTEN_HOST_ENV = "ZIG_EBUILDER_REPORT_LISTEN_HOST"
MAX_REPORT_SIZE = 1024 * 1024
# Counted from the moment `zig build` exits
REPORT_TIMEOUT = 5.0

AVAILABLE_BUILD_RUNNERS = ("live", "0.13")
# Schema module the runners `@import`, shipped next to them
REPORT_SCHEMA = "Report.zig"

DEFAULT_BUILD_RUNNERS_DIR = Path(__file__).resolve().parent.parent / "share" / "build_runners"


def build_runner_family(version: ToolVersion) -> str:
    """Name of the build runner matching *version*."""
    if version.kind is VersionKind.LIVE:
        return "live"
    if version.semver.major == 0 and version.semver.minor == 13:
        return "0.13"
    raise BuildRunnerNotFoundError(
        f"No build runner found for Zig {version.raw}, please report to upstream. "
        f"Available build runners: {', '.join(AVAILABLE_BUILD_RUNNERS)}."
    )


class ReportListener:
    """Loopback listener that accepts exactly one report.

    :meth:`open` binds synchronously so the port exists before the child is
    spawned; :meth:`start` launches the receiving task; :meth:`stop` cancels
    it if it is still waiting.
    """

    def __init__(
        self,
        max_size: int = MAX_REPORT_SIZE,
        log: structlog.stdlib.BoundLogger = log,
    ) -> None:
        self.max_size = max_size
        self.received = asyncio.Event()
        self.report: BuildReport | None = None
        self._sock: socket.socket | None = None
        self._task: asyncio.Task[None] | None = None
        self._log = log

    @property
    def host(self) -> str:
        assert self._sock is not None
        return self._sock.getsockname()[0]

    @property
    def port(self) -> int:
        assert self._sock is not None
        return self._sock.getsockname()[1]

    def open(self) -> int:
        """Bind to an ephemeral loopback port and return it."""
        try:
            sock = socket.create_server(("::1", 0), family=socket.AF_INET6)
        except OSError:
            sock = socket.create_server(("127.0.0.1", 0))
        sock.setblocking(False)
        self._sock = sock
        self._log.info("report.listening", host=self.host, port=self.port)
        return self.port

    def start(self) -> None:
        if self._sock is None:
            self.open()
        self._task = asyncio.create_task(self._receive(), name="report-listener")

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._task is not None:
            (outcome,) = await asyncio.gather(self._task, return_exceptions=True)
            # CancelledError is not an Exception subclass
            if isinstance(outcome, Exception):
                self._log.error("report.listener_failed", error=repr(outcome))
        self._close_listener()

    def _close_listener(self) -> None:
        if self._sock is not None:
            self._sock.close()

    async def _receive(self) -> None:
        assert self._sock is not None
        loop = asyncio.get_running_loop()
        conn, _ = await loop.sock_accept(self._sock)
        # One report per run
        self._close_listener()

        reader, writer = await asyncio.open_connection(sock=conn)
        try:
            body = await self._read_body(reader)
        finally:
            writer.close()
        if body is None:
            return

        try:
            report = BuildReport.model_validate_json(body)
        except ValidationError as e:
            self._log.error("report.invalid", error=str(e))
            return
        self.report = report
        self.received.set()

    async def _read_body(self, reader: asyncio.StreamReader) -> bytes | None:
        chunks: list[bytes] = []
        size = 0
        while True:
            chunk = await reader.read(64 * 1024)
            if not chunk:
                return b"".join(chunks)
            size += len(chunk)
            if size > self.max_size:
                self._log.error("report.too_large", limit=self.max_size)
                return None
            chunks.append(chunk)


def process_options(
    report: BuildReport, log: structlog.stdlib.BoundLogger = log
) -> ProcessedReport:
    """Split eclass-handled options out of *report*.

    ``target``, ``dynamic-linker`` and ``cpu`` are removed and checked for
    presence; ``optimize`` (enum) or ``release`` (bool) decide the optimize
    mode; everything else is kept in order.
    """
    missing = list(CRITICAL_OPTIONS)
    optimize = OptimizeMode.NONE
    kept = []

    for option in report.user_options:
        if option.name in CRITICAL_OPTIONS:
            if option.name in missing:
                missing.remove(option.name)
            continue
        if option.name == "optimize":
            if option.type != "enum":
                raise InvalidReportError(f'"optimize" option must be an enum, found {option.type!r}')
            if optimize is not OptimizeMode.NONE:
                raise InvalidReportError('both "optimize" and "release" options are present')
            optimize = OptimizeMode.ALL
            continue
        if option.name == "release":
            if option.type != "bool":
                raise InvalidReportError(f'"release" option must be a bool, found {option.type!r}')
            if optimize is not OptimizeMode.NONE:
                raise InvalidReportError('both "optimize" and "release" options are present')
            optimize = OptimizeMode.EXPLICIT
            continue
        kept.append(option)

    if missing:
        log.error(
            "report.missing_options",
            missing=missing,
            count=f"{len(missing)}/{len(CRITICAL_OPTIONS)}",
            hint="These options are critical for zig-ebuild.eclass, patch them in and re-run",
        )
    if optimize is OptimizeMode.NONE:
        log.warning(
            "report.no_optimize_option",
            hint='Package has neither "optimize" enum nor "release" boolean, "--release=" is ignored. '
            "If it has compilable artifacts, patch it and re-run, otherwise ignore this warning.",
        )
    elif optimize is OptimizeMode.EXPLICIT:
        log.warning(
            "report.release_option",
            hint='Package has "release" boolean instead of "optimize" enum, '
            '"--release=(anything except off)" means "-Drelease=true". '
            "Fine for end user executables, otherwise patch it and re-run.",
        )

    return ProcessedReport(
        report=report.model_copy(update={"user_options": kept}),
        missing_options=missing,
        optimize=optimize,
    )


class ReportCollector:
    """Run ``zig build`` with a build runner and wait for its report."""

    def __init__(
        self,
        client: BuildToolClient,
        packages_dir: Path,
        runner_cache_dir: Path,
        build_runners_dir: Path = DEFAULT_BUILD_RUNNERS_DIR,
        timeout: float = REPORT_TIMEOUT,
        log: structlog.stdlib.BoundLogger = log,
    ) -> None:
        self._client = client
        self._packages_dir = packages_dir
        self._runner_cache_dir = runner_cache_dir
        self._build_runners_dir = build_runners_dir
        self._timeout = timeout
        self._log = log

    def prepare_build_runner(self, version: ToolVersion) -> Path:
        """Copy the matching build runner into the cache under a content-hashed name."""
        family = build_runner_family(version)
        source = self._build_runners_dir / f"{family}.zig"
        try:
            text = source.read_bytes()
        except OSError as e:
            raise BuildRunnerNotFoundError(f"Can't open build runner {source}: {e}") from e

        digest = hashlib.sha256(text).hexdigest()[:32]
        self._runner_cache_dir.mkdir(parents=True, exist_ok=True)
        target = self._runner_cache_dir / f"{family}_{digest}.zig"
        if not target.exists():
            shutil.copyfile(source, target)

        schema = self._build_runners_dir / REPORT_SCHEMA
        if schema.is_file():
            # The cached runner imports it from its own directory
            shutil.copyfile(schema, self._runner_cache_dir / REPORT_SCHEMA)
        return target

    async def collect(
        self,
        version: ToolVersion,
        project: ProjectLocation,
        extra_args: list[str] | tuple[str, ...] = (),
    ) -> ProcessedReport:
        build_runner = self.prepare_build_runner(version)

        listener = ReportListener(log=self._log)
        port = listener.open()
        env = dict(self._client.env)
        env[REPORT_LISTEN_PORT_ENV] = str(port)
        env[REPORT_LISTEN_HOST_ENV] = listener.host

        listener.start()
        try:
            self._log.info("report.running_build", hint="Arguments are in DEBUG")
            result = await asyncio.to_thread(
                self._client.build,
                project.root,
                project.build_zig,
                build_runner,
                self._packages_dir,
                list(extra_args),
                env,
            )
            self._log_build_result(result)

            try:
                await asyncio.wait_for(listener.received.wait(), timeout=self._timeout)
            except asyncio.TimeoutError:
                self._log.error("report.timeout", seconds=self._timeout)
                raise ReportTimeoutError(
                    f'Timeout: no report from "zig build" for {self._timeout:g} seconds'
                ) from None
        finally:
            await listener.stop()

        assert listener.report is not None
        self._log.debug("report.received", report=listener.report.model_dump())
        return process_options(listener.report, self._log)

    def _log_build_result(self, result: BuildResult) -> None:
        if not result.ok:
            # The runner may have sent its report before failing
            self._log.error(
                "report.build_failed",
                returncode=result.returncode,
                hint="Possible reasons: crash in build.zig logic, invalid arguments. "
                "Try passing additional arguments to zig build and re-run.",
            )
        self._log.info("report.build_output", stderr=result.stderr, stdout=result.stdout)
