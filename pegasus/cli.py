"""Command-line interface for Pegasus.

This module defines the CLI commands using Click framework.
It provides commands for publishing build outputs as releases, switching the
live release, pruning old releases and rolling back.

Commands:
- list: Show releases, newest first, marking the live one.
- current: Print the live release.
- publish: Register a build output directory as a new release.
- activate: Make a release live.
- rollback: Make an earlier release live.
- prune: Delete old releases beyond the retention count.
- deploy: Build (optionally), publish, activate and prune in one go.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from pathlib import Path

import click
import questionary

from . import __version__
from .builder import CommandBuilder
from .config import Settings, load_config, resolve_settings
from .errors import BuildCommandError, ConfigError, PruneError, ReleaseError
from .manager import PruneResult, ReleaseManager
from .utils import format_size


@click.group()
@click.version_option(version=__version__, prog_name="pegasus")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Deploy root holding pegasus.yaml (defaults to the current directory)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the config file (defaults to <root>/pegasus.yaml)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output")
@click.pass_context
def cli(ctx: click.Context, root: Path | None, config_path: Path | None, verbose: bool):
    """Pegasus: atomic releases for static sites."""
    _configure_logging(verbose)
    project_root = root or Path.cwd()
    try:
        config = load_config(project_root, config_path)
        ctx.obj = resolve_settings(project_root, config)
    except ConfigError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from None


@cli.command(name="list")
@click.option("--sizes", is_flag=True, help="Show the size of each release")
@click.pass_obj
def list_releases(settings: Settings, sizes: bool):
    """Show releases, newest first."""
    manager = settings.manager()
    live_release = manager.current()
    live = live_release.id if live_release else None
    found = False
    for release in manager.list():
        found = True
        marker = "*" if release.id == live else " "
        line = f"{marker} {release.id}  {release.created_at:%Y-%m-%d %H:%M:%S} UTC"
        if sizes:
            line += f"  {format_size(release.size())}"
        if release.id == live:
            line = click.style(line, fg="green", bold=True)
        click.echo(line)
    if not found:
        click.echo(f"No releases in {settings.releases_dir}")


@cli.command()
@click.pass_obj
def current(settings: Settings):
    """Print the live release."""
    release = settings.manager().current()
    if release is None:
        raise click.ClickException("No release is live")
    click.echo(release.id)


@cli.command()
@click.argument("build_dir", type=click.Path(path_type=Path))
@click.option("--activate", "make_live", is_flag=True, help="Activate the release after publishing")
@click.pass_obj
def publish(settings: Settings, build_dir: Path, make_live: bool):
    """Register BUILD_DIR as a new release."""
    manager = settings.manager()
    with _handle_errors("Publish"):
        release = manager.publish(build_dir)
    click.echo(f"Published release {release.id}")
    if make_live:
        with _handle_errors("Activate"):
            manager.activate(release.id)
        click.echo(f"Release {release.id} is live")


@cli.command()
@click.argument("release_id")
@click.pass_obj
def activate(settings: Settings, release_id: str):
    """Make RELEASE_ID live."""
    with _handle_errors("Activate"):
        release = settings.manager().activate(release_id)
    click.echo(f"Release {release.id} is live")


@cli.command()
@click.argument("release_id", required=False)
@click.option("--pick", is_flag=True, help="Choose the target release interactively")
@click.pass_obj
def rollback(settings: Settings, release_id: str | None, pick: bool):
    """Make an earlier release live (the previous one by default)."""
    manager = settings.manager()
    if pick:
        if release_id is not None:
            raise click.UsageError("Pass either RELEASE_ID or --pick, not both")
        release_id = _pick_release(manager)
    with _handle_errors("Rollback"):
        release = manager.rollback(release_id)
    click.echo(f"Rolled back: release {release.id} is live")


@cli.command()
@click.option(
    "--retain",
    type=click.IntRange(min=1),
    default=None,
    help="Number of newest releases to keep (overrides pegasus.yaml)",
)
@click.option("--dry-run", is_flag=True, help="Only show what would be deleted")
@click.pass_obj
def prune(settings: Settings, retain: int | None, dry_run: bool):
    """Delete releases beyond the retention count."""
    with _handle_errors("Prune"):
        result = settings.manager().prune(retain or settings.retain, dry_run=dry_run)
    _echo_prune(result)


@cli.command()
@click.argument("build_dir", required=False, type=click.Path(path_type=Path))
@click.option("--skip-build", is_flag=True, help="Do not run build_command first")
@click.option("--no-prune", is_flag=True, help="Keep all old releases")
@click.option(
    "--retain",
    type=click.IntRange(min=1),
    default=None,
    help="Number of newest releases to keep (overrides pegasus.yaml)",
)
@click.pass_obj
def deploy(
    settings: Settings,
    build_dir: Path | None,
    skip_build: bool,
    no_prune: bool,
    retain: int | None,
):
    """Build, publish, activate and prune.

    BUILD_DIR defaults to the configured build_output. The configured
    build_command runs first unless BUILD_DIR is given or --skip-build is set.
    """
    if build_dir is None:
        build_dir = settings.build_output
        if settings.build_command and not skip_build:
            builder = CommandBuilder(
                settings.project_root, settings.build_command, settings.build_output
            )
            with _handle_errors("Build"):
                build_dir = builder.build()
            click.echo(f"Built site into {build_dir}")

    manager = settings.manager()
    with _handle_errors("Publish"):
        release = manager.publish(build_dir)
    click.echo(f"Published release {release.id}")
    with _handle_errors("Activate"):
        manager.activate(release.id)
    click.echo(f"Release {release.id} is live")
    if not no_prune:
        with _handle_errors("Prune"):
            result = manager.prune(retain or settings.retain)
        _echo_prune(result)


def main():
    """Entry point for the CLI application."""
    cli()


def _configure_logging(verbose: bool) -> None:
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@contextlib.contextmanager
def _handle_errors(operation: str) -> Iterator[None]:
    """Turn Pegasus errors into a styled message and exit status 1."""
    try:
        yield
    except PruneError as exc:
        click.echo(click.style(f"{operation} failed:", fg="red", bold=True), err=True)
        for release_id, cause in exc.failures.items():
            click.echo(click.style(f"  {release_id}: {cause}", fg="yellow"), err=True)
        if exc.deleted:
            click.echo(f"  Deleted: {', '.join(exc.deleted)}", err=True)
        raise SystemExit(1) from None
    except ReleaseError as exc:
        click.echo(click.style(f"{operation} failed:", fg="red", bold=True), err=True)
        if exc.release_id:
            click.echo(click.style(f"  Release: {exc.release_id}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        if exc.cause is not None:
            click.echo(f"  Cause: {type(exc.cause).__name__}: {exc.cause}", err=True)
        raise SystemExit(1) from None
    except BuildCommandError as exc:
        click.echo(click.style(f"{operation} failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Command: {' '.join(exc.command)}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        if exc.output:
            click.echo(exc.output, err=True)
        raise SystemExit(1) from None


def _echo_prune(result: PruneResult) -> None:
    verb = "Would delete" if result.dry_run else "Deleted"
    if not result.deleted:
        click.echo("Nothing to prune")
        return
    click.echo(f"{verb} {result.count} release(s): {', '.join(result.deleted)}")


def _pick_release(manager: ReleaseManager) -> str:
    """Ask the operator which release to roll back to."""
    live = manager.pointer.read()
    choices = [release.id for release in manager.list() if release.id != live]
    if not choices:
        raise click.ClickException("No other release to roll back to")
    choice = questionary.select(
        "Roll back to:",
        choices=choices,
        style=_questionary_style(),
    ).ask()
    if choice is None:
        raise click.Abort()
    return choice


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )
