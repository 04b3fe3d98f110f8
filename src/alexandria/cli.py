"""Command line interface for Alexandria."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from alexandria.config import AppConfig, default_config_path
from alexandria.errors import FatalRenderError, IndexUnavailableError, LibraryError
from alexandria.library import Library
from alexandria.render.pipeline import Outcome


console = Console()
app = typer.Typer(help="Alexandria - a personal knowledge base of LaTeX scrolls")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to a TOML configuration file")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose logging")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(config_path: Optional[Path]) -> AppConfig:
    path = config_path if config_path is not None else default_config_path()
    if config_path is None and not path.exists():
        return AppConfig()
    try:
        return AppConfig.from_toml(path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Cannot load configuration {path}: {exc}") from exc


def _open_library(config_path: Optional[Path], verbose: bool) -> Library:
    _setup_logging(verbose)
    config = _load_config(config_path)
    config.ensure_directories()
    return Library(config)


def _abort(message: str) -> NoReturn:
    console.print(f"[bold red]{message}[/bold red]")
    raise typer.Exit(code=1)


@app.command()
def render(
    ids: List[str] = typer.Argument(..., help="Ids of the scrolls to render."),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Render individual scrolls to PNG."""
    library = _open_library(config, verbose)
    for scroll_id in ids:
        result = library.render(scroll_id)
        if result.outcome is Outcome.NOT_FOUND:
            console.print(f"[yellow]No such scroll: {scroll_id}[/yellow]")
        elif result.outcome is Outcome.FAILED:
            _abort(f"An error occurred when processing scroll {scroll_id}: {result.error}")
        elif result.rendered:
            console.print(f"Rendered {library.config.png_path(scroll_id)}")
        else:
            console.print(f"{scroll_id} is up to date")


@app.command("render-all")
def render_all(
    keep_going: bool = typer.Option(
        False, "--keep-going", "-k", help="Log failures and continue instead of aborting"
    ),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Render every scroll in the library ahead of time."""
    library = _open_library(config, verbose)
    try:
        report = library.render_all(keep_going=keep_going)
    except (FatalRenderError, LibraryError) as exc:
        _abort(str(exc))
    console.print(
        f"Rendered: {report.rendered}, skipped: {report.skipped}, failed: {len(report.failed)}"
    )
    if report.failed:
        raise typer.Exit(code=1)


@app.command("update-index")
def update_index(
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Index scrolls created or modified since the last update."""
    library = _open_library(config, verbose)
    try:
        stats = library.update_index()
    except (IndexUnavailableError, LibraryError) as exc:
        _abort(str(exc))
    if stats.new_index:
        console.print("Created a new index.")
    console.print(
        f"Indexed: {stats.indexed}, unchanged: {stats.unchanged}, failed: {stats.failed}"
    )


@app.command()
def remove(
    ids: List[str] = typer.Argument(..., help="Ids of the scrolls to remove from the index."),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Remove scrolls from the index."""
    library = _open_library(config, verbose)
    for scroll_id in ids:
        try:
            removed = library.remove_from_index(scroll_id)
        except IndexUnavailableError as exc:
            _abort(str(exc))
        if removed:
            console.print(f"Removed {scroll_id}.")
        else:
            console.print(f"[yellow]{scroll_id} is not in the index.[/yellow]")


@app.command()
def find(
    query: str = typer.Argument(..., help="Query, e.g. 'group -abelian ~finite'"),
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Search the library and render the matching scrolls."""
    library = _open_library(config, verbose)
    try:
        results = library.find(query)
    except IndexUnavailableError as exc:
        _abort(f"{exc}. Run 'alexandria update-index' first.")
    except FatalRenderError as exc:
        _abort(str(exc))

    if not results.scrolls:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Scroll")
    table.add_column("Type")
    table.add_column("Tags")
    table.add_column("Image")

    for scroll in results.scrolls:
        table.add_row(scroll.id, scroll.type, scroll.tags, str(library.config.png_path(scroll.id)))

    console.print(table)
    console.print(f"{results.total} matching scrolls")


@app.command()
def stats(
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show the number of scrolls and the size of the library."""
    library = _open_library(config, verbose)
    statistics = library.statistics()
    console.print(
        f"The library contains {statistics.num_scrolls} scrolls "
        f"with a total size of {statistics.total_size} bytes."
    )


if __name__ == "__main__":  # pragma: no cover
    app()
