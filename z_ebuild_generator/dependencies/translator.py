"""URL translation: Git references to stable archive URLs.

Also holds the conflict rule used when two manifests point at the same
package hash with different URLs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

import structlog

from z_ebuild_generator.exceptions import (
    ManifestParseError,
    MissingCommitError,
    UnknownArchiveTypeError,
    UnresolvedConflictError,
)
from z_ebuild_generator.models.dependencies import GitCommitEntry, VendorEntry

log = structlog.get_logger("z_ebuild_generator.dependencies")

GIT_SCHEMES = frozenset({"git+https", "git+http"})
TARBALL_SCHEMES = frozenset({"https", "http"})


class Service(str, Enum):
    """Hosting services with stable links to commit archives."""

    CODEBERG = "codeberg"
    GITHUB = "github"
    GITLAB = "gitlab"
    SOURCEHUT = "sourcehut"


@dataclass(frozen=True)
class ServiceInfo:
    base_url: str  # no trailing slash, "https" preferred
    archive_template: str  # formatted with repository and commit


SERVICES: dict[Service, ServiceInfo] = {
    Service.CODEBERG: ServiceInfo("https://codeberg.org", "{repository}/archive/{commit}.tar.gz"),
    Service.GITHUB: ServiceInfo("https://github.com", "{repository}/archive/{commit}.tar.gz"),
    # TODO: switch to .tar.bz2 once `zig fetch` can unpack it
    Service.GITLAB: ServiceInfo("https://gitlab.com", "{repository}/-/archive/{commit}.tar.gz"),
    Service.SOURCEHUT: ServiceInfo("https://git.sr.ht", "{repository}/archive/{commit}.tar.gz"),
}

SERVICE_BY_HOST: dict[str, Service] = {
    "codeberg.org": Service.CODEBERG,
    "www.codeberg.org": Service.CODEBERG,
    "github.com": Service.GITHUB,
    "www.github.com": Service.GITHUB,
    "gitlab.com": Service.GITLAB,
    "www.gitlab.com": Service.GITLAB,
    # no "www." variant as of 2024
    "git.sr.ht": Service.SOURCEHUT,
}

# Suffix -> extension, checked in order (case-insensitive).
# Same set `zig fetch` accepts.
ARCHIVE_SUFFIXES: tuple[tuple[str, str], ...] = (
    (".tar", "tar"),
    (".tgz", "tar.gz"),
    (".tar.gz", "tar.gz"),
    (".txz", "tar.xz"),
    (".tar.xz", "tar.xz"),
    (".tzst", "tar.zst"),
    (".tar.zst", "tar.zst"),
    (".zip", "zip"),
)


def url_scheme(url: str) -> str:
    try:
        scheme = urlsplit(url).scheme
    except ValueError as e:
        raise ManifestParseError(f"Invalid URI {url!r}: {e}") from e
    if not scheme:
        raise ManifestParseError(f"Invalid URI {url!r}: missing scheme")
    return scheme.lower()


def is_git_url(url: str) -> bool:
    return url_scheme(url) in GIT_SCHEMES


def archive_extension(url: str) -> str | None:
    """Return the archive extension for a tarball URL, or None if unknown."""
    lowered = url.lower()
    for suffix, ext in ARCHIVE_SUFFIXES:
        if lowered.endswith(suffix):
            return ext
    return None


def archive_url(host: str, repository: str, commit: str) -> str | None:
    """Stable archive URL for a commit on a known host, None for unknown hosts."""
    service = SERVICE_BY_HOST.get(host.lower())
    if service is None:
        return None
    if repository.endswith(".git"):
        repository = repository[: -len(".git")]
    info = SERVICES[service]
    return info.base_url + info.archive_template.format(repository=repository, commit=commit)


def translate(name: str, hash_: str, url: str) -> VendorEntry | GitCommitEntry:
    """Turn a resolved remote dependency into its final form.

    Git URLs on known hosts become archive URLs, Git URLs elsewhere become
    :class:`GitCommitEntry` for manual packaging, plain tarball URLs are kept
    as-is. File names are ``<name>-<hash>.<ext>``.
    """
    if is_git_url(url):
        parts = urlsplit(url)
        # `zig fetch --save` rewrites refs to "?ref=<tag>#<commit>";
        # `--save-exact` keeps the mutable ref and has no fragment.
        commit = parts.fragment
        if not commit:
            raise MissingCommitError(
                f"Git URL {url!r} of {name!r} does not point to a commit "
                "(expected '#<commit>'); tags and branches are mutable, "
                'ask upstream to use "zig fetch --save"'
            )
        translated = archive_url(parts.hostname or "", parts.path, commit)
        if translated is None:
            return GitCommitEntry(name=f"{name}-{hash_}.tar.gz", hash=hash_)
        return VendorEntry(name=f"{name}-{hash_}.tar.gz", url=translated)

    ext = archive_extension(url)
    if ext is None:
        raise UnknownArchiveTypeError(f"Unknown tarball extension for: {url}")
    return VendorEntry(name=f"{name}-{hash_}.{ext}", url=url)


def resolve_conflict(
    hash_: str,
    old: VendorEntry,
    new: VendorEntry,
    log: structlog.stdlib.BoundLogger = log,
) -> VendorEntry:
    """Pick the surviving entry when *old* and *new* share *hash_*."""
    if old.url == new.url:
        log.info(
            "resolver.identical_urls",
            hint="Ignoring names, leaving old",
            old_name=old.name,
            new_name=new.name,
            url=old.url,
        )
        return old

    old_scheme = url_scheme(old.url)
    new_scheme = url_scheme(new.url)

    if old_scheme in TARBALL_SCHEMES and new_scheme in GIT_SCHEMES:
        log.warning(
            "resolver.tarball_and_git_commit",
            hint="Leaving tarball",
            tarball=old.url,
            git_commit=new.url,
        )
        return old
    if old_scheme in GIT_SCHEMES and new_scheme in TARBALL_SCHEMES:
        log.warning(
            "resolver.git_commit_and_tarball",
            hint="Changing to tarball",
            git_commit=old.url,
            tarball=new.url,
        )
        return new

    raise UnresolvedConflictError(hash_, old.url, new.url)
