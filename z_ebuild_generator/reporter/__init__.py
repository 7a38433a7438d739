"""Instrumented ``zig build`` report collection."""

from z_ebuild_generator.reporter.collector import (
    REPORT_LISTEN_PORT_ENV,
    ReportCollector,
    ReportListener,
    process_options,
)

__all__ = ["REPORT_LISTEN_PORT_ENV", "ReportCollector", "ReportListener", "process_options"]
