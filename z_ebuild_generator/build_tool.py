"""Thin synchronous wrapper around the ``zig`` executable."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from z_ebuild_generator.exceptions import BuildToolError
from z_ebuild_generator.models.manifest import Dependency, RemoteStorage, SemanticVersion

log = structlog.get_logger("z_ebuild_generator.build_tool")

# Max bytes kept per output stream
_MAX_VERSION_OUTPUT = 1024
_MAX_FETCH_OUTPUT = 1024
_MAX_BUILD_OUTPUT = 1024 * 1024


class FetchMode(str, Enum):
    SKIP = "skip"  # don't fetch at all
    PLAIN = "plain"  # regular `zig fetch`
    HASHED = "hashed"  # `zig fetch <url> <hash>`, needs a patched zig


class VersionKind(str, Enum):
    LIVE = "live"  # development build, e.g. 0.14.0-dev.2+abcdef
    RELEASE = "release"


@dataclass(frozen=True)
class ToolVersion:
    raw: str
    semver: SemanticVersion

    @classmethod
    def parse(cls, raw: str) -> ToolVersion:
        return cls(raw=raw, semver=SemanticVersion.parse(raw))

    @property
    def kind(self) -> VersionKind:
        return VersionKind.LIVE if self.semver.pre else VersionKind.RELEASE

    @property
    def slot(self) -> str:
        """Gentoo SLOT of dev-lang/zig matching this version."""
        if self.kind is VersionKind.LIVE:
            return "9999"
        return f"{self.semver.major}.{self.semver.minor}"


@dataclass
class FetchResult:
    stdout: str
    stderr: str

    @property
    def hash(self) -> str:
        return self.stdout.strip()


@dataclass
class BuildResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


class BuildToolClient:
    """Run ``zig version``, ``zig fetch`` and ``zig build``.

    Stateless apart from the executable path and the environment every child
    process inherits. Each call blocks until the child exits.
    """

    def __init__(
        self,
        executable: str = "zig",
        env: dict[str, str] | None = None,
        log: structlog.stdlib.BoundLogger = log,
    ) -> None:
        self.executable = executable
        self.env = dict(os.environ if env is None else env)
        # Stable, parseable output from the child
        self.env.setdefault("LC_ALL", "en_US.UTF-8")
        self._log = log

    def _run(
        self, argv: list[str], cwd: Path, env: dict[str, str] | None = None
    ) -> subprocess.CompletedProcess[str]:
        self._log.debug("build_tool.run", cwd=str(cwd), command=shlex.join(argv))
        try:
            return subprocess.run(
                argv,
                cwd=cwd,
                env=self.env if env is None else env,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            raise BuildToolError(f"zig executable not found: {self.executable}") from e

    def version(self, cwd: Path) -> ToolVersion:
        """Return the parsed output of ``zig version``."""
        result = self._run([self.executable, "version"], cwd)
        if result.stderr:
            raise BuildToolError(
                f'"zig version" failed: {_truncate(result.stderr, _MAX_VERSION_OUTPUT).strip()}'
            )
        version = ToolVersion.parse(_truncate(result.stdout, _MAX_VERSION_OUTPUT).strip())
        self._log.info("build_tool.version", version=version.raw, kind=version.kind.value)
        return version

    def fetch(
        self,
        cwd: Path,
        storage_dir: Path,
        dependency: Dependency,
        mode: FetchMode,
    ) -> FetchResult:
        """Fetch one dependency into *storage_dir*.

        The content hash is the trimmed stdout; anything on stderr means the
        fetch failed and is left for the caller to judge.
        """
        if mode is FetchMode.SKIP:
            raise ValueError("fetch() called with FetchMode.SKIP")

        argv = [
            self.executable,
            "fetch",
            "--global-cache-dir",
            str(storage_dir),
            dependency.location,
        ]
        if mode is FetchMode.HASHED and isinstance(dependency.storage, RemoteStorage):
            argv.append(dependency.storage.hash)

        result = self._run(argv, cwd)
        return FetchResult(
            stdout=_truncate(result.stdout, _MAX_FETCH_OUTPUT),
            stderr=_truncate(result.stderr, _MAX_FETCH_OUTPUT),
        )

    def build(
        self,
        cwd: Path,
        build_file: Path,
        build_runner: Path,
        system_dir: Path,
        extra_args: list[str] | tuple[str, ...] = (),
        env: dict[str, str] | None = None,
    ) -> BuildResult:
        """Run ``zig build`` with *build_runner* replacing the stock one."""
        argv = [
            self.executable,
            "build",
            "--build-file",
            str(build_file),
            "--build-runner",
            str(build_runner),
            "--system",
            str(system_dir),
            *extra_args,
        ]
        result = self._run(argv, cwd, env)
        return BuildResult(
            returncode=result.returncode,
            stdout=_truncate(result.stdout, _MAX_BUILD_OUTPUT),
            stderr=_truncate(result.stderr, _MAX_BUILD_OUTPUT),
        )
