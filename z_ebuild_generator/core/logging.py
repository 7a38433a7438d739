"""Logging setup for the generator: structlog events rendered through stdlib logging.

Events go to stderr, never stdout, which carries the generated ebuild. Every
presentation knob comes from a ``setup_logging`` argument or, failing that,
from the matching ``Z_EBUILD_LOG_*`` environment variable:

=========  ======================  ==============================
argument   variable                values
=========  ======================  ==============================
level      Z_EBUILD_LOG_LEVEL      error, warning, info, debug
fmt        Z_EBUILD_LOG_FORMAT     console, json
color      Z_EBUILD_LOG_COLOR      on, off, auto
time       Z_EBUILD_LOG_TIME       none, time, day_time
src_loc    Z_EBUILD_LOG_SRC_LOC    on, off
=========  ======================  ==============================
"""

from __future__ import annotations

import logging
import logging.config
import os
import sys
from typing import Any

import structlog

LOG_LEVELS = ("error", "warning", "info", "debug")
LOG_FORMATS = ("console", "json")
LOG_COLORS = ("on", "off", "auto")
LOG_TIMES = ("none", "time", "day_time")
LOG_SRC_LOCS = ("on", "off")

_ROOT_LOGGER = "z_ebuild_generator"

_TIME_FORMATS = {"time": "%H:%M:%S", "day_time": "iso"}


def _setting(value: str | None, env_name: str, default: str) -> str:
    return (value or os.environ.get(env_name) or default).lower()


def _pre_chain(time: str, src_loc: str) -> list[structlog.types.Processor]:
    # Shared by structlog events and foreign stdlib records
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if time != "none":
        chain.append(structlog.processors.TimeStamper(fmt=_TIME_FORMATS[time], utc=False))
    if src_loc == "on":
        chain.append(
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )
    chain += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    return chain


def _renderer(fmt: str, color: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    if color == "auto":
        colors = sys.stderr.isatty()
    else:
        colors = color == "on"
    return structlog.dev.ConsoleRenderer(colors=colors)


def _stdlib_config(
    level: str, pre_chain: list, renderer: structlog.types.Processor
) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "events": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": pre_chain,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
            },
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "events",
            },
        },
        "root": {"handlers": ["stderr"], "level": "WARNING"},
        "loggers": {
            _ROOT_LOGGER: {"level": level},
        },
    }


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    color: str | None = None,
    time: str | None = None,
    src_loc: str | None = None,
) -> None:
    """Configure structlog and stdlib logging for one CLI run.

    ``None`` falls back to the environment, then to ``info`` / ``console`` /
    ``auto`` / ``time`` / ``off``. ``auto`` color means "only when stderr is a
    terminal"; *color* has no effect on JSON output.
    """
    level = _setting(level, "Z_EBUILD_LOG_LEVEL", "info").upper()
    fmt = _setting(fmt, "Z_EBUILD_LOG_FORMAT", "console")
    color = _setting(color, "Z_EBUILD_LOG_COLOR", "auto")
    time = _setting(time, "Z_EBUILD_LOG_TIME", "time")
    src_loc = _setting(src_loc, "Z_EBUILD_LOG_SRC_LOC", "off")

    pre_chain = _pre_chain(time, src_loc)
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.config.dictConfig(_stdlib_config(level, pre_chain, _renderer(fmt, color)))


def get_logger(scope: str) -> structlog.stdlib.BoundLogger:
    """Logger bound to *scope*; callers hand it down as ``log=``."""
    return structlog.get_logger(_ROOT_LOGGER).bind(scope=scope)
