"""Data models shared across the generator."""

from z_ebuild_generator.models.dependencies import (
    GitCommitEntry,
    ResolvedDependencies,
    VendorEntry,
)
from z_ebuild_generator.models.manifest import (
    Dependency,
    LocalStorage,
    Manifest,
    RemoteStorage,
    SemanticVersion,
)
from z_ebuild_generator.models.report import (
    BuildReport,
    OptimizeMode,
    ProcessedReport,
    SystemLibrary,
    UserOption,
)

__all__ = [
    "BuildReport",
    "Dependency",
    "GitCommitEntry",
    "LocalStorage",
    "Manifest",
    "OptimizeMode",
    "ProcessedReport",
    "RemoteStorage",
    "ResolvedDependencies",
    "SemanticVersion",
    "SystemLibrary",
    "UserOption",
    "VendorEntry",
]
