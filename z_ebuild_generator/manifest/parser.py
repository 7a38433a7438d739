"""build.zig.zon parser: turns ZON text into a :class:`Manifest`."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit

import structlog

from z_ebuild_generator.exceptions import ManifestParseError
from z_ebuild_generator.manifest import zon
from z_ebuild_generator.models.manifest import (
    Dependency,
    LocalStorage,
    Manifest,
    RemoteStorage,
    SemanticVersion,
    Storage,
)

MANIFEST_FILE_NAME = "build.zig.zon"

log = structlog.get_logger("z_ebuild_generator.manifest")

# Fields Zig understands but the generator has no use for
_IGNORED_FIELDS = frozenset({"fingerprint"})


def read_manifest(path: Path, log: structlog.stdlib.BoundLogger = log) -> Manifest:
    """Read and parse a build.zig.zon file."""
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ManifestParseError(f"{path}: not valid UTF-8: {e}") from e
    try:
        return parse_manifest(text, log=log.bind(file=str(path)))
    except ManifestParseError as e:
        raise ManifestParseError(f"{path}: {e}") from e


def parse_manifest(text: str, log: structlog.stdlib.BoundLogger = log) -> Manifest:
    """Parse build.zig.zon *text*.

    Raises :class:`ManifestParseError` on any structural or type violation;
    unknown fields are logged and skipped.
    """
    root = zon.loads(text)
    if not isinstance(root, dict):
        raise ManifestParseError("top-level value must be a struct")
    log.debug("manifest.fields", count=len(root))

    name: str | None = None
    version: SemanticVersion | None = None
    minimum_zig_version: SemanticVersion | None = None
    dependencies: dict[str, Dependency] | None = None
    paths: list[str] = []

    for field_name, value in root.items():
        if field_name == "name":
            name = _name_value(value)
        elif field_name == "version":
            version = SemanticVersion.parse(_expect_str(field_name, value))
        elif field_name == "minimum_zig_version":
            minimum_zig_version = SemanticVersion.parse(_expect_str(field_name, value))
        elif field_name == "dependencies":
            dependencies = _parse_dependencies(value, log)
        elif field_name == "paths":
            if not isinstance(value, (list, dict)) or (isinstance(value, dict) and value):
                raise ManifestParseError('"paths" must be a list of strings')
            paths = [_expect_str("paths", item) for item in value]
        elif field_name in _IGNORED_FIELDS:
            continue
        else:
            log.warning("manifest.unknown_field", field=field_name)

    if name is None:
        raise ManifestParseError('missing required field "name"')
    if version is None:
        raise ManifestParseError('missing required field "version"')

    return Manifest(
        name=name,
        version=version,
        minimum_zig_version=minimum_zig_version,
        dependencies=dependencies,
        paths=paths,
    )


def _expect_str(field_name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ManifestParseError(f'"{field_name}" must be a string, found {value!r}')
    return value


def _name_value(value: Any) -> str:
    # Zig 0.14+ writes names as enum literals: .name = .foo
    if isinstance(value, zon.EnumLiteral):
        return value.name
    return _expect_str("name", value)


def _parse_dependencies(
    value: Any, log: structlog.stdlib.BoundLogger
) -> dict[str, Dependency]:
    if not isinstance(value, dict):
        raise ManifestParseError('"dependencies" must be a struct')
    log.debug("manifest.dependencies", count=len(value))

    deps: dict[str, Dependency] = {}
    for dep_name, fields in value.items():
        if not isinstance(fields, dict):
            raise ManifestParseError(f'dependency "{dep_name}" must be a struct')
        deps[dep_name] = _parse_dependency(dep_name, fields, log)
    return deps


def _parse_dependency(
    dep_name: str, fields: dict[str, Any], log: structlog.stdlib.BoundLogger
) -> Dependency:
    url: str | None = None
    hash_: str | None = None
    path: str | None = None
    lazy: bool | None = None

    for key, value in fields.items():
        if key == "url":
            url = _expect_str(f"{dep_name}.url", value)
        elif key == "hash":
            hash_ = _expect_str(f"{dep_name}.hash", value)
        elif key == "path":
            path = _expect_str(f"{dep_name}.path", value)
        elif key == "lazy":
            if not isinstance(value, bool):
                raise ManifestParseError(f'"{dep_name}.lazy" must be a boolean, found {value!r}')
            lazy = value
        else:
            log.warning("manifest.unknown_dependency_field", dependency=dep_name, field=key)

    if url is not None and path is not None:
        raise ManifestParseError(f'dependency "{dep_name}": can\'t have both "url" and "path"')
    if url is not None and hash_ is None:
        raise ManifestParseError(f'dependency "{dep_name}": missing "hash" for "url"-based dependency')
    if path is not None and hash_ is not None:
        raise ManifestParseError(
            f'dependency "{dep_name}": can\'t have both "path" and "hash", '
            'only "url"-based dependencies can have "hash"'
        )

    storage: Storage
    if url is not None:
        assert hash_ is not None
        storage = _remote_storage(dep_name, url, hash_)
    elif path is not None:
        storage = LocalStorage(path=path)
    else:
        raise ManifestParseError(f'dependency "{dep_name}" has neither "url" nor "path"')

    return Dependency(storage=storage, lazy=lazy)


def _remote_storage(dep_name: str, url: str, hash_: str) -> Storage:
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ManifestParseError(f'dependency "{dep_name}": invalid URL {url!r}: {e}') from e
    if not parts.scheme:
        raise ManifestParseError(f'dependency "{dep_name}": URL {url!r} has no scheme')
    # '.url = "file://foo"' is the same as '.path = "foo"'
    if parts.scheme.lower() == "file":
        return LocalStorage(path=unquote(parts.netloc + parts.path))
    return RemoteStorage(url=url, hash=hash_)
