"""Tests for the report collector and option post-processing."""

from __future__ import annotations

import asyncio
import json
import socket
import time
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from z_ebuild_generator.build_tool import BuildResult, ToolVersion
from z_ebuild_generator.exceptions import (
    BuildRunnerNotFoundError,
    InvalidReportError,
    ReportTimeoutError,
)
from z_ebuild_generator.models.report import BuildReport, OptimizeMode, UserOption
from z_ebuild_generator.reporter.collector import (
    REPORT_LISTEN_HOST_ENV,
    REPORT_LISTEN_PORT_ENV,
    DEFAULT_BUILD_RUNNERS_DIR,
    REPORT_SCHEMA,
    ReportCollector,
    ReportListener,
    build_runner_family,
    process_options,
)
from z_ebuild_generator.workspace import ProjectLocation


def _option(name: str, type_: str = "bool") -> dict:
    return {"name": name, "description": f"{name} option", "type": type_, "values": None}


FULL_REPORT = {
    "system_libraries": [{"name": "z", "used_by": ["exe"]}],
    "system_integrations": [],
    "user_options": [
        _option("target", "string"),
        _option("dynamic-linker", "string"),
        _option("cpu", "string"),
        {**_option("optimize", "enum"), "values": ["Debug", "ReleaseFast"]},
        _option("extraFlag"),
    ],
}


class FakeClient:
    """Stands in for BuildToolClient; ``build`` plays the build runner."""

    def __init__(self, payload: bytes | None = None, returncode: int = 0) -> None:
        self.env = {"LC_ALL": "en_US.UTF-8"}
        self.payload = payload
        self.returncode = returncode
        self.calls: list[tuple] = []

    def build(self, cwd, build_file, build_runner, system_dir, extra_args=(), env=None):
        self.calls.append((cwd, build_file, build_runner, system_dir, list(extra_args), env))
        if self.payload is not None:
            address = (env[REPORT_LISTEN_HOST_ENV], int(env[REPORT_LISTEN_PORT_ENV]))
            with socket.create_connection(address, timeout=5) as sock:
                sock.sendall(self.payload)
        return BuildResult(returncode=self.returncode, stdout="", stderr="")


@pytest.fixture
def runners(tmp_path: Path) -> Path:
    path = tmp_path / "runners"
    path.mkdir()
    (path / "live.zig").write_text("// live runner\n")
    (path / "0.13.zig").write_text("// 0.13 runner\n")
    return path


@pytest.fixture
def project(tmp_path: Path) -> ProjectLocation:
    (tmp_path / "build.zig").write_text("")
    return ProjectLocation(root=tmp_path, build_zig=tmp_path / "build.zig", build_zig_zon=None)


def _collector(client, tmp_path: Path, runners: Path, log, timeout: float = 5.0) -> ReportCollector:
    return ReportCollector(
        client,
        packages_dir=tmp_path / "p",
        runner_cache_dir=tmp_path / "cache" / "build_runners",
        build_runners_dir=runners,
        timeout=timeout,
        log=log,
    )


RELEASE = ToolVersion.parse("0.13.0")
LIVE = ToolVersion.parse("0.14.0-dev.100+abcdef")

# ── collect ──


@pytest.mark.asyncio
async def test_collect_strips_eclass_options(tmp_path, runners, project, log):
    client = FakeClient(json.dumps(FULL_REPORT).encode())

    with capture_logs() as logs:
        processed = await _collector(client, tmp_path, runners, log).collect(RELEASE, project)

    assert [o.name for o in processed.report.user_options] == ["extraFlag"]
    assert processed.missing_options == []
    assert processed.optimize is OptimizeMode.ALL
    assert processed.report.system_libraries[0].name == "z"
    assert not any(e["event"] == "report.missing_options" for e in logs)


@pytest.mark.asyncio
async def test_collect_passes_runner_and_port(tmp_path, runners, project, log):
    client = FakeClient(json.dumps(FULL_REPORT).encode())

    await _collector(client, tmp_path, runners, log).collect(LIVE, project, ["-Dfoo=bar"])

    cwd, build_file, runner, system_dir, extra_args, env = client.calls[0]
    assert cwd == project.root
    assert build_file == project.build_zig
    assert system_dir == tmp_path / "p"
    assert extra_args == ["-Dfoo=bar"]
    assert runner.parent == tmp_path / "cache" / "build_runners"
    assert runner.name.startswith("live_")
    assert runner.read_text() == "// live runner\n"
    assert int(env[REPORT_LISTEN_PORT_ENV]) > 0
    assert env["LC_ALL"] == "en_US.UTF-8"
    # the client's own environment is left alone
    assert REPORT_LISTEN_PORT_ENV not in client.env


@pytest.mark.asyncio
async def test_collect_nonzero_exit_is_not_fatal(tmp_path, runners, project, log):
    client = FakeClient(json.dumps(FULL_REPORT).encode(), returncode=1)

    with capture_logs() as logs:
        processed = await _collector(client, tmp_path, runners, log).collect(RELEASE, project)

    assert processed.optimize is OptimizeMode.ALL
    failed = [e for e in logs if e["event"] == "report.build_failed"]
    assert failed and failed[0]["returncode"] == 1


@pytest.mark.asyncio
async def test_collect_timeout_after_child_exit(tmp_path, runners, project, log):
    client = FakeClient(payload=None)
    collector = _collector(client, tmp_path, runners, log, timeout=0.3)

    start = time.monotonic()
    with pytest.raises(ReportTimeoutError):
        await collector.collect(RELEASE, project)
    elapsed = time.monotonic() - start

    assert 0.25 <= elapsed < 3.0
    # listener is gone once collect returns
    port = int(client.calls[0][5][REPORT_LISTEN_PORT_ENV])
    host = client.calls[0][5][REPORT_LISTEN_HOST_ENV]
    with pytest.raises(OSError):
        socket.create_connection((host, port), timeout=1).close()


@pytest.mark.asyncio
async def test_collect_malformed_report_times_out(tmp_path, runners, project, log):
    client = FakeClient(b'{"system_libraries": "nope"}')

    with capture_logs() as logs:
        with pytest.raises(ReportTimeoutError):
            await _collector(client, tmp_path, runners, log, timeout=0.3).collect(RELEASE, project)

    assert any(e["event"] == "report.invalid" for e in logs)


@pytest.mark.asyncio
async def test_collect_unsupported_version(tmp_path, runners, project, log):
    client = FakeClient()
    with pytest.raises(BuildRunnerNotFoundError, match="live, 0.13"):
        await _collector(client, tmp_path, runners, log).collect(ToolVersion.parse("0.12.1"), project)
    assert client.calls == []


@pytest.mark.asyncio
async def test_collect_missing_runner_file(tmp_path, project, log):
    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(BuildRunnerNotFoundError):
        await _collector(FakeClient(), tmp_path, empty, log).collect(RELEASE, project)


# ── build runner selection ──


class TestBuildRunner:
    def test_family(self):
        assert build_runner_family(LIVE) == "live"
        assert build_runner_family(RELEASE) == "0.13"
        assert build_runner_family(ToolVersion.parse("0.13.5")) == "0.13"

    def test_unknown_family(self):
        with pytest.raises(BuildRunnerNotFoundError):
            build_runner_family(ToolVersion.parse("0.11.0"))

    def test_cached_name_follows_content(self, tmp_path, runners, log):
        collector = _collector(FakeClient(), tmp_path, runners, log)
        first = collector.prepare_build_runner(RELEASE)
        assert collector.prepare_build_runner(RELEASE) == first

        (runners / "0.13.zig").write_text("// changed\n")
        second = collector.prepare_build_runner(RELEASE)
        assert second != first
        assert second.name.startswith("0.13_")
        assert len(second.stem) == len("0.13_") + 32

    def test_schema_copied_next_to_runner(self, tmp_path, runners, log):
        (runners / "Report.zig").write_text("const Report = @This();\n")
        collector = _collector(FakeClient(), tmp_path, runners, log)

        runner = collector.prepare_build_runner(LIVE)

        assert (runner.parent / "Report.zig").read_text() == "const Report = @This();\n"

    def test_runner_without_schema(self, tmp_path, runners, log):
        collector = _collector(FakeClient(), tmp_path, runners, log)
        runner = collector.prepare_build_runner(LIVE)
        assert sorted(p.name for p in runner.parent.iterdir()) == [runner.name]

    def test_shipped_schema_matches_report_model(self):
        text = (DEFAULT_BUILD_RUNNERS_DIR / REPORT_SCHEMA).read_text()
        for field in BuildReport.model_fields:
            assert f"\n{field}: " in text


# ── listener ──


@pytest.mark.asyncio
async def test_listener_rejects_oversized_report(log):
    listener = ReportListener(max_size=16, log=log)
    listener.open()
    listener.start()
    try:
        _, writer = await asyncio.open_connection(listener.host, listener.port)
        writer.write(json.dumps(FULL_REPORT).encode())
        await writer.drain()
        writer.close()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(listener.received.wait(), timeout=0.3)
        assert listener.report is None
    finally:
        await listener.stop()


@pytest.mark.asyncio
async def test_listener_accepts_one_report(log):
    listener = ReportListener(log=log)
    listener.start()
    try:
        _, writer = await asyncio.open_connection(listener.host, listener.port)
        writer.write(json.dumps(FULL_REPORT).encode())
        await writer.drain()
        writer.close()
        await asyncio.wait_for(listener.received.wait(), timeout=2)
        assert isinstance(listener.report, BuildReport)
        assert len(listener.report.user_options) == 5
    finally:
        await listener.stop()


@pytest.mark.asyncio
async def test_listener_stop_cancels_pending_accept(log):
    listener = ReportListener(log=log)
    listener.start()
    host, port = listener.host, listener.port

    await listener.stop()

    assert not listener.received.is_set()
    with pytest.raises(OSError):
        socket.create_connection((host, port), timeout=1).close()


# ── process_options ──


def _report(*options: dict) -> BuildReport:
    return BuildReport(system_libraries=[], system_integrations=[], user_options=list(options))


class TestProcessOptions:
    def test_release_bool_is_explicit(self, log):
        with capture_logs() as logs:
            processed = process_options(_report(_option("release", "bool")), log)
        assert processed.optimize is OptimizeMode.EXPLICIT
        assert any(e["event"] == "report.release_option" for e in logs)

    def test_no_optimize_option(self, log):
        with capture_logs() as logs:
            processed = process_options(_report(_option("strip")), log)
        assert processed.optimize is OptimizeMode.NONE
        assert [o.name for o in processed.report.user_options] == ["strip"]
        assert any(e["event"] == "report.no_optimize_option" for e in logs)

    def test_missing_critical_options_reported(self, log):
        with capture_logs() as logs:
            processed = process_options(_report(_option("cpu", "string")), log)
        assert processed.missing_options == ["target", "dynamic-linker"]
        missing = [e for e in logs if e["event"] == "report.missing_options"]
        assert missing[0]["log_level"] == "error"

    def test_order_preserved(self, log):
        processed = process_options(
            _report(_option("b"), _option("target", "string"), _option("a"), _option("c")), log
        )
        assert [o.name for o in processed.report.user_options] == ["b", "a", "c"]

    def test_input_report_untouched(self, log):
        report = _report(_option("target", "string"), _option("a"))
        process_options(report, log)
        assert [o.name for o in report.user_options] == ["target", "a"]

    @pytest.mark.parametrize(
        "option",
        [_option("optimize", "bool"), _option("release", "enum")],
    )
    def test_wrong_type(self, option, log):
        with pytest.raises(InvalidReportError):
            process_options(_report(option), log)

    def test_optimize_and_release_both_present(self, log):
        with pytest.raises(InvalidReportError, match="both"):
            process_options(_report(_option("optimize", "enum"), _option("release", "bool")), log)

    def test_values_kept(self, log):
        option = {**_option("mode", "enum"), "values": ["fast", "small"]}
        processed = process_options(_report(option), log)
        assert processed.report.user_options == [
            UserOption(name="mode", description="mode option", type="enum", values=["fast", "small"])
        ]
