"""Tests for URL translation and same-hash conflict resolution."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from z_ebuild_generator.dependencies.translator import (
    archive_extension,
    archive_url,
    is_git_url,
    resolve_conflict,
    translate,
)
from z_ebuild_generator.exceptions import (
    ManifestParseError,
    MissingCommitError,
    UnknownArchiveTypeError,
    UnresolvedConflictError,
)
from z_ebuild_generator.models.dependencies import GitCommitEntry, VendorEntry

# ── translate ──


class TestTranslateGit:
    def test_github(self):
        entry = translate("bar", "h1", "git+https://github.com/org/repo#deadbeef")
        assert entry == VendorEntry(
            name="bar-h1.tar.gz",
            url="https://github.com/org/repo/archive/deadbeef.tar.gz",
        )

    @pytest.mark.parametrize(
        "url,expected",
        [
            (
                "git+https://codeberg.org/org/repo.git#c0ffee",
                "https://codeberg.org/org/repo/archive/c0ffee.tar.gz",
            ),
            (
                "git+https://www.github.com/org/repo.git?ref=v1.0#c0ffee",
                "https://github.com/org/repo/archive/c0ffee.tar.gz",
            ),
            (
                "git+https://gitlab.com/group/repo#c0ffee",
                "https://gitlab.com/group/repo/-/archive/c0ffee.tar.gz",
            ),
            (
                "git+https://git.sr.ht/~user/repo#c0ffee",
                "https://git.sr.ht/~user/repo/archive/c0ffee.tar.gz",
            ),
            (
                "git+http://github.com/org/repo#c0ffee",
                "https://github.com/org/repo/archive/c0ffee.tar.gz",
            ),
        ],
    )
    def test_known_hosts(self, url, expected):
        entry = translate("dep", "h", url)
        assert isinstance(entry, VendorEntry)
        assert entry.url == expected
        assert entry.name == "dep-h.tar.gz"

    def test_unknown_host_needs_vendoring(self):
        entry = translate("bar", "h2", "git+https://example.net/x#deadbeef")
        assert entry == GitCommitEntry(name="bar-h2.tar.gz", hash="h2")

    def test_missing_commit_is_fatal(self):
        with pytest.raises(MissingCommitError):
            translate("bar", "h", "git+https://github.com/org/repo?ref=main")

    def test_distinct_inputs_give_distinct_urls(self):
        urls = {
            archive_url(host, path, commit)
            for host in ("github.com", "codeberg.org", "gitlab.com", "git.sr.ht")
            for path in ("/a/b", "/a/c")
            for commit in ("1", "2")
        }
        assert len(urls) == 16


class TestTranslateTarball:
    def test_kept_as_is(self):
        entry = translate("foo", "abc123", "https://example.com/foo-1.0.tar.gz")
        assert entry == VendorEntry(name="foo-abc123.tar.gz", url="https://example.com/foo-1.0.tar.gz")

    @pytest.mark.parametrize(
        "url,ext",
        [
            ("https://x/a.tar", "tar"),
            ("https://x/a.tgz", "tar.gz"),
            ("https://x/a.TAR.GZ", "tar.gz"),
            ("https://x/a.txz", "tar.xz"),
            ("https://x/a.tar.xz", "tar.xz"),
            ("https://x/a.tzst", "tar.zst"),
            ("https://x/a.tar.zst", "tar.zst"),
            ("https://x/a.zip", "zip"),
        ],
    )
    def test_extensions(self, url, ext):
        assert archive_extension(url) == ext
        assert translate("n", "h", url).name == f"n-h.{ext}"

    def test_unknown_extension(self):
        with pytest.raises(UnknownArchiveTypeError):
            translate("n", "h", "https://x/a.rar")


class TestHelpers:
    def test_is_git_url(self):
        assert is_git_url("git+https://github.com/a/b#c")
        assert is_git_url("GIT+HTTPS://github.com/a/b#c")
        assert not is_git_url("https://github.com/a/b.tar.gz")

    def test_missing_scheme(self):
        with pytest.raises(ManifestParseError):
            is_git_url("github.com/a/b")

    def test_archive_url_unknown_host(self):
        assert archive_url("example.net", "/x", "c") is None


# ── resolve_conflict ──

TARBALL = VendorEntry(name="foo", url="https://example.com/foo.tar.gz")
GIT = VendorEntry(name="foo", url="git+https://github.com/org/foo#abc")


class TestResolveConflict:
    def test_identical_urls_keep_old(self, log):
        old = VendorEntry(name="a", url="https://example.com/x.tar.gz")
        new = VendorEntry(name="b", url="https://example.com/x.tar.gz")
        assert resolve_conflict("H", old, new, log) is old

    def test_tarball_wins_in_both_orders(self, log):
        assert resolve_conflict("H", TARBALL, GIT, log) is TARBALL
        assert resolve_conflict("H", GIT, TARBALL, log) is TARBALL

    def test_tarball_wins_logs_warning(self):
        with capture_logs() as logs:
            resolve_conflict("H", GIT, TARBALL)
        assert [e["log_level"] for e in logs] == ["warning"]

    def test_two_different_tarballs(self, log):
        other = VendorEntry(name="foo", url="https://mirror.example.com/foo.tar.gz")
        with pytest.raises(UnresolvedConflictError, match="report this to upstream"):
            resolve_conflict("H", TARBALL, other, log)

    def test_two_different_git_urls(self, log):
        other = VendorEntry(name="foo", url="git+https://codeberg.org/org/foo#abc")
        with pytest.raises(UnresolvedConflictError) as exc_info:
            resolve_conflict("H", GIT, other, log)
        assert exc_info.value.hash == "H"
