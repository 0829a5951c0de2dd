"""CLI entrypoint for brew-change."""

import logging
from collections.abc import Callable

import rich_click as click

from brew_change import __version__
from brew_change.controllers import BrewChangeCliController, ChangelogCommand
from brew_change.http.errors import CacheError
from brew_change.inventory import InventoryError
from brew_change.scheduler import EXIT_CODE_INTERRUPTED, BatchCancelledError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = BrewChangeCliController()


@click.group()
@click.version_option(version=__version__, prog_name="brew-change")
@click.option("--debug", is_flag=True, default=False, help="Log resolution and fetch details.")
def brew_change(debug: bool) -> None:
    """Upstream changelogs for outdated Homebrew packages."""

    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@brew_change.command("outdated")
def outdated() -> None:
    """List outdated formulae and casks."""

    _emit_lines(_guarded(CONTROLLER.outdated))


@brew_change.command("changelog")
@click.argument("packages", nargs=-1)
@click.option(
    "--all",
    "all_outdated",
    is_flag=True,
    default=False,
    help="Show changelogs for every outdated package.",
)
@click.option(
    "--jobs",
    "-j",
    type=int,
    default=None,
    help="Parallel jobs. Defaults to a value derived from CPU count and memory.",
)
def changelog(packages: tuple[str, ...], all_outdated: bool, jobs: int | None) -> None:
    """Show release notes for the next version of outdated packages."""

    command = ChangelogCommand(packages=packages, all_outdated=all_outdated, jobs=jobs)
    try:
        lines = _guarded(
            lambda: CONTROLLER.changelog(
                command,
                emit=click.echo,
                progress=lambda line: click.echo(line, err=True),
            ),
        )
    except BatchCancelledError as error:
        click.echo(f"\n{error} ({error.flushed} package(s) shown).", err=True)
        raise SystemExit(EXIT_CODE_INTERRUPTED) from error
    _emit_lines(lines)


@brew_change.group()
def cache() -> None:
    """Response cache maintenance."""


@cache.command("sweep")
def cache_sweep() -> None:
    """Delete temp files left behind by interrupted runs."""

    _emit_lines(_guarded(CONTROLLER.cache_sweep))


@cache.command("clear")
def cache_clear() -> None:
    """Delete every cached response."""

    _emit_lines(_guarded(CONTROLLER.cache_clear))


def _guarded(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except ValueError as error:
        raise click.UsageError(str(error)) from error
    except (InventoryError, CacheError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    brew_change()
