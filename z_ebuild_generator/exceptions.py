"""Custom exceptions for z-ebuild-generator."""


class GeneratorError(Exception):
    """Base exception for all generator errors."""


class ManifestParseError(GeneratorError):
    """Raised when a build.zig.zon document is malformed."""


class BuildToolError(GeneratorError):
    """Raised when the zig executable reports an error."""


class FetchFailedError(BuildToolError):
    """Raised when ``zig fetch`` writes anything to stderr."""

    def __init__(self, name: str, details: str):
        self.name = name
        self.details = details
        super().__init__(f'Error when fetching dependency "{name}": {details.strip()}')


class UnresolvedConflictError(GeneratorError):
    """Raised when two sources share a hash and no rule picks one of them."""

    def __init__(self, hash_: str, old_url: str, new_url: str):
        self.hash = hash_
        self.old_url = old_url
        self.new_url = new_url
        super().__init__(
            f"Can't resolve conflict for package {hash_}: existing {old_url!r}, "
            f"new {new_url!r}. Please report this to upstream of z-ebuild-generator."
        )


class TranslationError(GeneratorError):
    """Raised when a dependency URL can't be turned into a vendor entry."""


class MissingCommitError(TranslationError):
    """Raised for Git URLs without a ``#<commit>`` fragment."""


class UnknownArchiveTypeError(TranslationError):
    """Raised when a tarball URL has an unsupported file extension."""


class BuildRunnerNotFoundError(GeneratorError):
    """Raised when no build runner exists for the detected Zig version."""


class ReportTimeoutError(GeneratorError):
    """Raised when ``zig build`` exited but never sent its report."""


class InvalidReportError(GeneratorError):
    """Raised when a received report violates the expected option types."""


class CacheNotFoundError(GeneratorError):
    """Raised when neither XDG_CACHE_HOME nor HOME gives a usable cache root."""


class TemplateError(GeneratorError):
    """Raised when a custom Mustache template can't be parsed."""
