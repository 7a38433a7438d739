"""CLI entry point: z-ebuild.

Usage:
    z-ebuild [OPTIONS] [PATH] [-- ZIG_BUILD_ARGS...]

PATH is a build.zig file or the directory holding it. The generated ebuild
goes to stdout (or --output), logs go to stderr.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import click
import structlog

from z_ebuild_generator import __version__
from z_ebuild_generator.build_tool import BuildToolClient, FetchMode, ToolVersion
from z_ebuild_generator.core.logging import (
    LOG_COLORS,
    LOG_FORMATS,
    LOG_LEVELS,
    LOG_SRC_LOCS,
    LOG_TIMES,
    get_logger,
    setup_logging,
)
from z_ebuild_generator.dependencies.packager import write_git_commit_archive
from z_ebuild_generator.dependencies.resolver import DependencyResolver
from z_ebuild_generator.exceptions import GeneratorError
from z_ebuild_generator.manifest.parser import read_manifest
from z_ebuild_generator.models.dependencies import ResolvedDependencies
from z_ebuild_generator.render import build_context, render_ebuild, render_template
from z_ebuild_generator.reporter.collector import DEFAULT_BUILD_RUNNERS_DIR, ReportCollector
from z_ebuild_generator.workspace import GeneratorDirs, ProjectLocation


def _resolve_dependencies(
    client: BuildToolClient,
    dirs: GeneratorDirs,
    project: ProjectLocation,
    fetch_mode: FetchMode,
    log: structlog.stdlib.BoundLogger,
) -> ResolvedDependencies:
    if fetch_mode is FetchMode.SKIP:
        log.info("main.fetch_skipped")
        return ResolvedDependencies.empty(project.root.name)
    if project.build_zig_zon is None:
        log.error("main.fetch_skipped", reason="build.zig.zon was not found")
        return ResolvedDependencies.empty(project.root.name)

    log.info("main.fetching", manifest=str(project.build_zig_zon))
    manifest = read_manifest(project.build_zig_zon, log=get_logger("manifest"))
    resolver = DependencyResolver(
        client,
        storage_dir=dirs.dependencies_storage,
        packages_dir=dirs.packages,
        fetch_mode=fetch_mode,
        log=get_logger("resolver"),
    )
    return resolver.resolve(manifest, project.root)


def generate(
    path: Path,
    zig: str = "zig",
    fetch_mode: FetchMode = FetchMode.PLAIN,
    build_runners_dir: Path = DEFAULT_BUILD_RUNNERS_DIR,
    zig_build_args: list[str] | tuple[str, ...] = (),
    env: dict[str, str] | None = None,
    custom_template: Path | None = None,
) -> str:
    """Run the whole pipeline for the project at *path* and return the ebuild.

    With *custom_template* the ebuild comes from that Mustache file instead of
    the built-in layout.
    """
    log = get_logger("main")
    env = dict(os.environ if env is None else env)

    dirs = GeneratorDirs.make(env, log=get_logger("workspace"))
    project = ProjectLocation.open(path, log=get_logger("workspace"))
    client = BuildToolClient(zig, env=env, log=get_logger("build_tool"))
    version: ToolVersion = client.version(project.root)

    dependencies = _resolve_dependencies(client, dirs, project, fetch_mode, log)

    tarball_tarball = None
    if dependencies.git_commit:
        log.warning(
            "main.git_commit_dependencies",
            count=len(dependencies.git_commit),
            hint="Packing them into one archive",
        )
        tarball_tarball = write_git_commit_archive(
            dependencies.git_commit,
            dirs.packages,
            dirs.git_commit_tarballs,
            dependencies.root_package_name,
        )

    collector = ReportCollector(
        client,
        packages_dir=dirs.packages,
        runner_cache_dir=dirs.build_runners,
        build_runners_dir=build_runners_dir,
        log=get_logger("reporter"),
    )
    processed = asyncio.run(collector.collect(version, project, zig_build_args))

    context = build_context(__version__, version, dependencies, tarball_tarball, processed)
    if custom_template is None:
        text = render_ebuild(context)
    else:
        log.info("main.custom_template", path=str(custom_template))
        text = render_template(custom_template.read_text(), context)

    if tarball_tarball is not None:
        log.warning(
            "main.host_tarball",
            path=str(tarball_tarball),
            hint="Host this archive somewhere and add it to SRC_URI",
        )
    return text


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("path", default=".", type=click.Path(path_type=Path))
@click.argument("trailing_args", nargs=-1, type=click.UNPROCESSED)
@click.option("--zig", default="zig", envvar="ZIG", show_default=True, help="zig executable")
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMATS),
    envvar="Z_EBUILD_LOG_FORMAT",
    default="console",
    show_default=True,
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    envvar="Z_EBUILD_LOG_LEVEL",
    default="info",
    show_default=True,
)
@click.option(
    "--log-color",
    type=click.Choice(LOG_COLORS),
    envvar="Z_EBUILD_LOG_COLOR",
    default="auto",
    show_default=True,
    help="Colored console logs; auto means only on a terminal",
)
@click.option(
    "--log-time",
    type=click.Choice(LOG_TIMES),
    envvar="Z_EBUILD_LOG_TIME",
    default="time",
    show_default=True,
)
@click.option(
    "--log-src-loc",
    type=click.Choice(LOG_SRC_LOCS),
    envvar="Z_EBUILD_LOG_SRC_LOC",
    default="off",
    show_default=True,
    help="Add file, function and line of the logging call",
)
@click.option(
    "--fetch",
    "fetch_mode",
    type=click.Choice([m.value for m in FetchMode]),
    default=FetchMode.PLAIN.value,
    show_default=True,
    help="skip: don't fetch; plain: zig fetch <url>; hashed: zig fetch <url> <hash>",
)
@click.option(
    "--build-runners",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="Z_EBUILD_BUILD_RUNNERS",
    default=DEFAULT_BUILD_RUNNERS_DIR,
    help="Directory with live.zig / 0.13.zig build runners",
)
@click.option(
    "--custom-template",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Mustache template to render instead of the built-in ebuild",
)
@click.option("--zig-build-arg", multiple=True, help="Extra argument for zig build (repeatable)")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the ebuild here instead of stdout",
)
@click.version_option(__version__, prog_name="z-ebuild")
def main(
    path: Path,
    trailing_args: tuple[str, ...],
    zig: str,
    log_format: str,
    log_level: str,
    log_color: str,
    log_time: str,
    log_src_loc: str,
    fetch_mode: str,
    build_runners: Path,
    custom_template: Path | None,
    zig_build_arg: tuple[str, ...],
    output: Path | None,
) -> None:
    """Generate a Gentoo ebuild for the Zig project at PATH."""
    setup_logging(log_level, log_format, color=log_color, time=log_time, src_loc=log_src_loc)

    try:
        text = generate(
            path,
            zig=zig,
            fetch_mode=FetchMode(fetch_mode),
            build_runners_dir=build_runners,
            zig_build_args=[*zig_build_arg, *trailing_args],
            custom_template=custom_template,
        )
    except (FileNotFoundError, GeneratorError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output is None:
        click.echo(text, nl=False)
    else:
        output.write_text(text)
        click.echo(f"Ebuild written to {output}", err=True)


if __name__ == "__main__":
    main()
