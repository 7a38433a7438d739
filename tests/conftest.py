"""Shared pytest fixtures for z-ebuild-generator tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import structlog


@pytest.fixture
def log():
    return structlog.get_logger("tests")


@pytest.fixture
def write_zon():
    """Write a build.zig.zon into a directory and return its path."""

    def _write(directory: Path, text: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "build.zig.zon"
        path.write_text(text)
        return path

    return _write
