"""build.zig.zon reading."""

from z_ebuild_generator.manifest.parser import MANIFEST_FILE_NAME, parse_manifest, read_manifest

__all__ = ["MANIFEST_FILE_NAME", "parse_manifest", "read_manifest"]
