"""Data models for resolved dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class VendorEntry:
    """A dependency with a directly downloadable archive URL."""

    name: str  # file name, e.g. "foo-<hash>.tar.gz" once translated
    url: str


@dataclass
class GitCommitEntry:
    """A Git dependency that must be archived by the packager author."""

    name: str  # "<dep>-<hash>.tar.gz"
    hash: str


@dataclass
class ResolvedDependencies:
    """Result of a full manifest graph traversal."""

    root_package_name: str
    tarball: list[VendorEntry] = field(default_factory=list)
    git_commit: list[GitCommitEntry] = field(default_factory=list)

    @classmethod
    def empty(cls, root_package_name: str = "") -> ResolvedDependencies:
        return cls(root_package_name=root_package_name)

    @property
    def has_dependencies(self) -> bool:
        return bool(self.tarball or self.git_commit)
