"""Gentoo ebuild rendering from the collected project data."""

from __future__ import annotations

import dataclasses
import datetime
from pathlib import Path
from typing import Any

import chevron
from chevron.tokenizer import ChevronError

from z_ebuild_generator.build_tool import ToolVersion
from z_ebuild_generator.exceptions import TemplateError
from z_ebuild_generator.models.dependencies import ResolvedDependencies
from z_ebuild_generator.models.report import BuildReport, OptimizeMode, ProcessedReport


def build_context(
    generator_version: str,
    tool_version: ToolVersion,
    dependencies: ResolvedDependencies,
    tarball_tarball: Path | None,
    processed: ProcessedReport,
    year: int | None = None,
) -> dict[str, Any]:
    """Collect everything the ebuild needs into one mapping."""
    report = processed.report
    return {
        "generator_version": generator_version,
        "year": year if year is not None else datetime.date.today().year,
        "zbs": {
            "slot": tool_version.slot,
            "has_dependencies": dependencies.has_dependencies,
            "has_system_dependencies": report.has_system_dependencies,
            "has_system_integrations": bool(report.system_integrations),
            "has_user_options": bool(report.user_options),
            "dependencies": dependencies,
            "tarball_tarball": str(tarball_tarball) if tarball_tarball is not None else None,
            "report": report,
            "optimize": processed.optimize,
        },
    }


def template_data(context: dict[str, Any]) -> dict[str, Any]:
    """Plain-data copy of *context* for Mustache: dicts, lists, strings and bools.

    Dependency lists become lists of ``{name, url}``; the report becomes its
    JSON shape; ``optimize`` becomes its value (``all``, ``explicit``, ``none``).
    """
    zbs = context["zbs"]
    return {
        **context,
        "zbs": {
            **zbs,
            "dependencies": dataclasses.asdict(zbs["dependencies"]),
            "report": zbs["report"].model_dump(),
            "optimize": zbs["optimize"].value,
        },
    }


def render_template(template_text: str, context: dict[str, Any]) -> str:
    """Render a user-supplied Mustache template against *context*."""
    try:
        return chevron.render(template_text, template_data(context))
    except ChevronError as e:
        raise TemplateError(f"Invalid custom template: {e}") from e


def render_ebuild(context: dict[str, Any]) -> str:
    """Return ebuild text for *context* as built by :func:`build_context`."""
    zbs = context["zbs"]
    dependencies: ResolvedDependencies = zbs["dependencies"]
    report: BuildReport = zbs["report"]

    sections = [
        f"""\
# Copyright {context["year"]} Gentoo Authors
# Distributed under the terms of the GNU General Public License v2

# Autogenerated by z-ebuild {context["generator_version"]}

EAPI=8

DESCRIPTION=""
HOMEPAGE=""
""",
    ]

    if zbs["has_dependencies"]:
        sections.append(_format_dependencies(dependencies, zbs["tarball_tarball"]))

    sections.append(
        f"""\
ZIG_SLOT="{zbs["slot"]}"
inherit zig

SRC_URI="
	https://example.com/${{P}}.tar.gz
{_format_src_uri(dependencies, zbs["tarball_tarball"])}"

# Add licenses of dependencies too
LICENSE=""
SLOT="0"
KEYWORDS="~amd64"
"""
    )

    if zbs["has_system_dependencies"]:
        sections.append(_format_system_dependencies(report))

    if zbs["has_user_options"]:
        sections.append(_format_user_options(report))

    sections.append(_format_src_configure(zbs["optimize"]))
    return "\n".join(sections)


def _format_dependencies(dependencies: ResolvedDependencies, tarball_tarball: str | None) -> str:
    lines = ["declare -r -A ZBS_DEPENDENCIES=("]
    for entry in dependencies.tarball:
        lines.append(f"\t[{entry.name}]='{entry.url}'")
    lines.append(")")
    if dependencies.git_commit:
        lines.append("")
        lines.append("# Packed into one archive, host it somewhere:")
        lines.append(f"# {tarball_tarball}")
        for entry in dependencies.git_commit:
            lines.append(f"#   {entry.name}")
    return "\n".join(lines) + "\n"


def _format_src_uri(dependencies: ResolvedDependencies, tarball_tarball: str | None) -> str:
    lines = []
    if dependencies.tarball:
        lines.append("\t${ZIG_EBUILD_DEPENDENCIES_SRC_URI}")
    if tarball_tarball is not None:
        lines.append(f"\thttps://example.com/{Path(tarball_tarball).name}")
    return "".join(line + "\n" for line in lines)


def _format_system_dependencies(report: BuildReport) -> str:
    lines = ["# System libraries, find matching packages:"]
    for library in report.system_libraries:
        lines.append(f"# - {library.name} (used by: {', '.join(library.used_by)})")
    if report.system_integrations:
        lines.append("# System integrations, list them in ZBS_ARGS_EXTRA:")
        for name in report.system_integrations:
            lines.append(f"# - -fsys={name}")
    lines.append('DEPEND=""')
    lines.append('RDEPEND="${DEPEND}"')
    return "\n".join(lines) + "\n"


def _format_user_options(report: BuildReport) -> str:
    lines = ["# Project options:"]
    for option in report.user_options:
        lines.append(f"# -D{option.name}=[{option.type}] {option.description}")
        if option.values:
            lines.append(f"#   values: {', '.join(option.values)}")
    return "\n".join(lines) + "\n"


def _format_src_configure(optimize: OptimizeMode) -> str:
    note = {
        OptimizeMode.ALL: "",
        OptimizeMode.EXPLICIT: '\t# Project has "release" bool instead of "optimize" enum\n',
        OptimizeMode.NONE: '\t# Project has no "optimize" option, "--release=" is ignored\n',
    }[optimize]
    return f"""\
src_configure() {{
{note}\tlocal my_zbs_args=(
	)

	zig_src_configure
}}
"""
