"""Reproducible archive of dependencies that have no stable tarball URL.

The result is a ``.tar.gz`` holding one ``<name>-<hash>.tar.gz`` per Git
commit dependency. Timestamps, owners and gzip headers are pinned so the
same inputs always give the same bytes, and the CRC-32 of those bytes names
the output file.
"""

from __future__ import annotations

import gzip
import io
import os
import tarfile
import zlib
from pathlib import Path
from typing import BinaryIO

import structlog

from z_ebuild_generator.models.dependencies import GitCommitEntry

log = structlog.get_logger("z_ebuild_generator.dependencies")

# Not wall-clock time; any constant works as long as it never changes
FIXED_MTIME = 1


class Crc32Writer:
    """Forward writes to *sink* while accumulating a CRC-32 of the bytes."""

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink
        self.crc = 0

    def write(self, data: bytes) -> int:
        self.crc = zlib.crc32(data, self.crc)
        return self._sink.write(data)

    def flush(self) -> None:
        self._sink.flush()


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.mtime = FIXED_MTIME
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _gzip(data: bytes) -> bytes:
    # mtime=0 and no file name keep the gzip header constant
    return gzip.compress(data, compresslevel=6, mtime=0)


def _tar_directory(root: Path) -> bytes:
    """Uncompressed tar of everything under *root*, in sorted order."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            base = Path(dirpath)
            rel_dir = base.relative_to(root)
            for name in dirnames:
                path = base / name
                tar.add(path, arcname=(rel_dir / name).as_posix(), recursive=False, filter=_normalize)
            for name in sorted(filenames):
                path = base / name
                tar.add(path, arcname=(rel_dir / name).as_posix(), recursive=False, filter=_normalize)
    return buf.getvalue()


def pack_git_commit_dependencies(
    entries: list[GitCommitEntry],
    packages_dir: Path,
    writer: BinaryIO,
) -> int:
    """Write the nested archive for *entries* to *writer*.

    Returns the CRC-32 of everything written.
    """
    outer = io.BytesIO()
    with tarfile.open(fileobj=outer, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for entry in entries:
            content = _gzip(_tar_directory(packages_dir / entry.hash))
            info = _normalize(tarfile.TarInfo(name=entry.name))
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
            log.debug("packager.member", name=entry.name, size=info.size)

    hashed = Crc32Writer(writer)
    hashed.write(_gzip(outer.getvalue()))
    hashed.flush()
    return hashed.crc


def write_git_commit_archive(
    entries: list[GitCommitEntry],
    packages_dir: Path,
    output_dir: Path,
    project_name: str,
) -> Path:
    """Pack *entries* into ``output_dir/<project_name>-<crc32>.tar.gz``."""
    buf = io.BytesIO()
    crc = pack_git_commit_dependencies(entries, packages_dir, buf)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"{project_name}-{crc}.tar.gz"
    path.write_bytes(buf.getvalue())
    log.info("packager.written", path=str(path), members=len(entries))
    return path
