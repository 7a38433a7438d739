"""Data models for build.zig.zon manifests."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Union

from z_ebuild_generator.exceptions import ManifestParseError

# MAJOR.MINOR.PATCH[-pre][+build], no leading zeroes in numeric parts
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z.-]+))?"
    r"(?:\+([0-9A-Za-z.-]+))?$"
)


@dataclass(frozen=True)
class SemanticVersion:
    major: int
    minor: int
    patch: int
    pre: str | None = None
    build: str | None = None

    @classmethod
    def parse(cls, text: str) -> SemanticVersion:
        m = _SEMVER_RE.match(text)
        if not m:
            raise ManifestParseError(f"Invalid semantic version: {text!r}")
        return cls(
            major=int(m.group(1)),
            minor=int(m.group(2)),
            patch=int(m.group(3)),
            pre=m.group(4),
            build=m.group(5),
        )

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += f"-{self.pre}"
        if self.build:
            text += f"+{self.build}"
        return text


@dataclass(frozen=True)
class LocalStorage:
    """Dependency stored next to the project (``.path = "..."``)."""

    path: str


@dataclass(frozen=True)
class RemoteStorage:
    """Dependency fetched from ``url`` and identified by ``hash``."""

    url: str
    hash: str


Storage = Union[LocalStorage, RemoteStorage]


@dataclass
class Dependency:
    storage: Storage
    lazy: bool | None = None

    @property
    def is_remote(self) -> bool:
        return isinstance(self.storage, RemoteStorage)

    @property
    def location(self) -> str:
        """URL for remote dependencies, path for local ones."""
        if isinstance(self.storage, RemoteStorage):
            return self.storage.url
        return self.storage.path


@dataclass
class Manifest:
    """Contents of one build.zig.zon file."""

    name: str
    version: SemanticVersion
    minimum_zig_version: SemanticVersion | None = None
    # Insertion order is declaration order.
    dependencies: dict[str, Dependency] | None = None
    paths: list[str] = field(default_factory=list)

    @classmethod
    def placeholder(cls, name: str) -> Manifest:
        """Leaf manifest for a fetched package that ships no build.zig.zon."""
        return cls(
            name=name,
            version=SemanticVersion(0, 0, 0),
            minimum_zig_version=None,
            dependencies=None,
            paths=[""],
        )
