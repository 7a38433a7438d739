"""Breadth-first resolution of the build.zig.zon dependency graph."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from pathlib import Path

import structlog

from z_ebuild_generator.build_tool import BuildToolClient, FetchMode
from z_ebuild_generator.dependencies.translator import resolve_conflict, translate
from z_ebuild_generator.exceptions import FetchFailedError
from z_ebuild_generator.manifest.parser import MANIFEST_FILE_NAME, read_manifest
from z_ebuild_generator.models.dependencies import (
    GitCommitEntry,
    ResolvedDependencies,
    VendorEntry,
)
from z_ebuild_generator.models.manifest import Manifest, RemoteStorage, Storage

log = structlog.get_logger("z_ebuild_generator.dependencies")


@dataclass
class TraversalNode:
    location: Path  # directory holding the package's build.zig.zon
    manifest: Manifest


@dataclass
class _Fetched:
    hash: str
    name: str
    storage: Storage


class DependencyResolver:
    """Fetch every reachable dependency and normalize its source.

    Each dependency is fetched with ``zig fetch`` into the global cache, its
    own build.zig.zon (if any) is read from ``packages_dir/<hash>`` and queued
    for the next round. Remote sources are deduplicated by hash.
    """

    def __init__(
        self,
        client: BuildToolClient,
        storage_dir: Path,
        packages_dir: Path,
        fetch_mode: FetchMode = FetchMode.PLAIN,
        log: structlog.stdlib.BoundLogger = log,
    ) -> None:
        if fetch_mode is FetchMode.SKIP:
            raise ValueError("DependencyResolver can't be used with FetchMode.SKIP")
        self._client = client
        self._storage_dir = storage_dir
        self._packages_dir = packages_dir
        self._fetch_mode = fetch_mode
        self._log = log

    def resolve(self, root_manifest: Manifest, root_location: Path) -> ResolvedDependencies:
        """Walk the graph starting at the project's own manifest.

        Raises :class:`FetchFailedError` on the first failing fetch; nothing
        is returned in that case.
        """
        # Keyed by package hash, insertion order = discovery order
        vendor: dict[str, VendorEntry] = {}

        queue: deque[TraversalNode] = deque([TraversalNode(root_location, root_manifest)])
        while queue:
            node = queue.popleft()
            self._log.debug(
                "resolver.visit",
                package=node.manifest.name,
                location=str(node.location),
            )
            if not node.manifest.dependencies:
                continue

            # Fetch all first, in declaration order, then descend.
            fetched = self._fetch_all(node)

            for item in fetched:
                package_dir = self._packages_dir / item.hash
                self._log.debug("resolver.searching", location=str(package_dir))
                manifest = self._read_package_manifest(package_dir, item.name)
                queue.append(TraversalNode(package_dir, manifest))

                if not isinstance(item.storage, RemoteStorage):
                    continue

                new = VendorEntry(name=manifest.name, url=item.storage.url)
                old = vendor.get(item.hash)
                vendor[item.hash] = (
                    new if old is None else resolve_conflict(item.hash, old, new, self._log)
                )

        self._log.info("resolver.vendor_urls", count=len(vendor))
        return self._finish(root_manifest.name, vendor)

    def _fetch_all(self, node: TraversalNode) -> list[_Fetched]:
        assert node.manifest.dependencies is not None
        total = len(node.manifest.dependencies)
        fetched: list[_Fetched] = []
        for i, (name, dependency) in enumerate(node.manifest.dependencies.items(), start=1):
            self._log.info("resolver.fetching", dependency=name, index=i, total=total)
            result = self._client.fetch(
                node.location, self._storage_dir, dependency, self._fetch_mode
            )
            if result.stderr:
                self._log.error("resolver.fetch_failed", dependency=name)
                self._log.debug("resolver.fetch_failed_details", stderr=result.stderr)
                raise FetchFailedError(name, result.stderr)
            fetched.append(_Fetched(hash=result.hash, name=name, storage=dependency.storage))
        return fetched

    def _read_package_manifest(self, package_dir: Path, declared_name: str) -> Manifest:
        manifest_path = package_dir / MANIFEST_FILE_NAME
        if not manifest_path.is_file():
            # Plain package without build.zig.zon: a leaf
            return Manifest.placeholder(declared_name)
        manifest = read_manifest(manifest_path, log=self._log)
        if not manifest.name:
            manifest.name = declared_name
        return manifest

    def _finish(self, root_name: str, vendor: dict[str, VendorEntry]) -> ResolvedDependencies:
        tarball: list[VendorEntry] = []
        git_commit: list[GitCommitEntry] = []
        # sorted() is stable: equal names keep discovery order
        for hash_, entry in sorted(vendor.items(), key=lambda kv: kv[1].name):
            translated = translate(entry.name, hash_, entry.url)
            if isinstance(translated, GitCommitEntry):
                git_commit.append(translated)
            else:
                tarball.append(translated)
        return ResolvedDependencies(
            root_package_name=root_name,
            tarball=tarball,
            git_commit=git_commit,
        )
