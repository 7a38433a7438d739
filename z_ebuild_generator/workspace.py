"""Cache directory layout and project location lookup."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from z_ebuild_generator.exceptions import CacheNotFoundError
from z_ebuild_generator.manifest.parser import MANIFEST_FILE_NAME

log = structlog.get_logger("z_ebuild_generator.workspace")

CACHE_DIR_NAME = "zig-ebuilder"
BUILD_FILE_NAME = "build.zig"


def cache_root(env: Mapping[str, str], log: structlog.stdlib.BoundLogger = log) -> Path:
    """Pick the generator's cache directory from *env*.

    ``$XDG_CACHE_HOME`` is used only when non-empty and absolute, otherwise
    ``$HOME/.cache`` is used.
    """
    xdg_cache_home = env.get("XDG_CACHE_HOME")
    if xdg_cache_home is not None:
        if not xdg_cache_home:
            log.error("workspace.xdg_cache_home_empty", hint="ignoring")
        elif not os.path.isabs(xdg_cache_home):
            log.error("workspace.xdg_cache_home_relative", value=xdg_cache_home, hint="ignoring")
        else:
            return Path(xdg_cache_home) / CACHE_DIR_NAME

    home = env.get("HOME")
    if home is None:
        raise CacheNotFoundError("Neither XDG_CACHE_HOME nor HOME is set")
    if not home:
        raise CacheNotFoundError("XDG_CACHE_HOME is not set, HOME is set but empty")
    if not os.path.isabs(home):
        raise CacheNotFoundError("XDG_CACHE_HOME is not set, HOME is not an absolute path")
    return Path(home) / ".cache" / CACHE_DIR_NAME


@dataclass
class GeneratorDirs:
    """Directories owned by the generator, all absolute."""

    cache: Path
    # `zig fetch --global-cache-dir` target
    dependencies_storage: Path
    # Unpacked packages, `<storage>/p/<hash>`
    packages: Path

    @property
    def build_runners(self) -> Path:
        return self.cache / "build_runners"

    @property
    def git_commit_tarballs(self) -> Path:
        return self.cache / "git_commit_tarballs"

    @classmethod
    def make(
        cls,
        env: Mapping[str, str] | None = None,
        log: structlog.stdlib.BoundLogger = log,
    ) -> GeneratorDirs:
        env = os.environ if env is None else env
        cache = cache_root(env, log)
        log.info("workspace.cache", path=str(cache))
        dirs = cls(
            cache=cache,
            dependencies_storage=cache / "deps",
            packages=cache / "deps" / "p",
        )
        dirs.packages.mkdir(parents=True, exist_ok=True)
        return dirs


@dataclass
class ProjectLocation:
    root: Path
    build_zig: Path
    build_zig_zon: Path | None

    @classmethod
    def open(cls, path: Path, log: structlog.stdlib.BoundLogger = log) -> ProjectLocation:
        """Locate build.zig from a file or directory path.

        Raises ``FileNotFoundError`` when there is no build.zig.
        """
        if not path.exists():
            raise FileNotFoundError(f'File or directory "{path}" not found')
        resolved = path.resolve()
        if resolved.is_dir():
            log.info("workspace.project_dir", path=str(path))
            build_zig = resolved / BUILD_FILE_NAME
        elif resolved.is_file():
            log.info("workspace.project_file", path=str(path))
            build_zig = resolved
        else:
            raise FileNotFoundError(f'"{path}" is not a file or directory')

        if not build_zig.is_file():
            raise FileNotFoundError(f'"{build_zig}" not found')

        root = build_zig.parent
        zon = root / MANIFEST_FILE_NAME
        if not zon.is_file():
            log.error("workspace.no_manifest", path=str(zon), hint="ignoring")
            return cls(root=root, build_zig=build_zig, build_zig_zon=None)
        return cls(root=root, build_zig=build_zig, build_zig_zon=zon)
