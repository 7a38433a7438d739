"""Dependency graph resolution, URL translation and vendoring archives."""

from z_ebuild_generator.dependencies.packager import (
    pack_git_commit_dependencies,
    write_git_commit_archive,
)
from z_ebuild_generator.dependencies.resolver import DependencyResolver, TraversalNode
from z_ebuild_generator.dependencies.translator import resolve_conflict, translate

__all__ = [
    "DependencyResolver",
    "TraversalNode",
    "pack_git_commit_dependencies",
    "resolve_conflict",
    "translate",
    "write_git_commit_archive",
]
