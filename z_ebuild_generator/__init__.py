"""z-ebuild-generator: Gentoo ebuild generator for Zig projects."""

__version__ = "0.1.0"
