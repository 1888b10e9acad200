"""CLI entry point for hackdex.

Provides commands:
  - browse: One catalog page with the persisted filters and sort
  - suggest: Autocomplete suggestions over the bulk search window
  - options: Available difficulties and hack types
  - filters: Show, set or clear the persisted filter slot
  - sort: Show or set the persisted sort order
  - view-mode: Show or set the persisted cards/list layout
  - sync: Import a JSON feed into the catalog with live progress
  - status: Catalog size and time since the last sync
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hackdex.config import DiscoveryConfig, load_config
from hackdex.database import CatalogDatabase
from hackdex.gateway import BulkWindow, CatalogQueryGateway, PageRequest
from hackdex.models import CatalogRow, FilterOptions, SortDirection, SortKey, ViewMode
from hackdex.pagination import ELLIPSIS, PageLink, Paginator
from hackdex.search import AutocompleteEngine, build_documents
from hackdex.services import CatalogService
from hackdex.state import FilterState, SortState, ViewModeState
from hackdex.storage import (
    LAST_SYNC_TIME_KEY,
    SafeStore,
    SqliteStore,
    filters_key,
    sorting_key,
    view_mode_key,
)
from hackdex.sync import CatalogImportJob, SyncOrchestrator, format_relative_time
from hackdex.sync.progress import SyncProgressDisplay
from hackdex.telemetry import configure_file_logging

logger = logging.getLogger(__name__)

DEFAULT_VIEW = "discover"

app = typer.Typer(
    help="hackdex - Browse, search and sync a local ROM hack catalog",
    rich_markup_mode="rich",
)
console = Console()

filters_app = typer.Typer(help="Inspect and change the persisted filters of a view")
app.add_typer(filters_app, name="filters")

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", "-d", help="Path to the catalog SQLite database"),
]
ViewOption = Annotated[
    str,
    typer.Option("--view", help="View whose persisted state is used"),
]


@app.callback()
def app_callback(
    log_dir: Annotated[
        Optional[Path],
        typer.Option("--log-dir", help="Write JSON-lines logs to this directory"),
    ] = None,
) -> None:
    """Configure logging shared by every command."""
    if log_dir is not None:
        configure_file_logging(log_dir)


def _config_and_db(db_path: Path | None) -> tuple[DiscoveryConfig, Path]:
    config = load_config()
    return config, db_path if db_path is not None else Path(config.db_path)


def _require_db(db_path: Path) -> None:
    if not db_path.exists():
        console.print(
            f"[yellow]Database not found:[/yellow] {db_path}\n"
            "Run [bold]hackdex sync FEED[/bold] first."
        )
        raise typer.Exit(code=1)


def _render_window(links: list[PageLink], current: int) -> str:
    parts = []
    for link in links:
        if link == ELLIPSIS:
            parts.append("[dim]...[/dim]")
        elif link == current:
            parts.append(f"[bold reverse] {link} [/bold reverse]")
        else:
            parts.append(str(link))
    return " ".join(parts)


def _rows_table(rows: list[CatalogRow], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Name", style="bold")
    table.add_column("Authors")
    table.add_column("Difficulty")
    table.add_column("Type")
    table.add_column("Rating", justify="right")
    table.add_column("Downloads", justify="right")
    for row, doc in zip(rows, build_documents(rows)):
        table.add_row(
            row.name,
            doc.author_display(),
            row.difficulty or "",
            row.hack_type or "",
            "" if row.rating is None else f"{row.rating:.1f}",
            "" if row.downloads is None else str(row.downloads),
        )
    return table


async def _load_options(gateway: CatalogQueryGateway, filter_state: FilterState) -> FilterOptions:
    options = await gateway.get_filter_options()
    filter_state.apply_options(options)
    return options


@app.command()
def browse(
    page: Annotated[int, typer.Option("--page", "-p", min=1, help="1-based page number")] = 1,
    db_path: DbOption = None,
    view: ViewOption = DEFAULT_VIEW,
) -> None:
    """Show one page of the catalog with the view's persisted filters and sort."""
    config, db_path = _config_and_db(db_path)
    _require_db(db_path)

    async def _browse() -> None:
        with CatalogDatabase(db_path) as db:
            store = SqliteStore(db)
            filter_state = FilterState(store, filters_key(view))
            sort_state = SortState(store, sorting_key(view))
            async with CatalogService(str(db_path)) as service:
                gateway = CatalogQueryGateway(service)
                await _load_options(gateway, filter_state)
                paginator = Paginator(config.page_size, config.page_window_radius)
                paginator.go_to(page)
                result = await gateway.query(
                    PageRequest(paginator.current_page, config.page_size),
                    sort_state.spec,
                    filter_state.filters,
                )
        if not result.ok:
            console.print(f"[red]Query failed:[/red] {result.error}")
            raise typer.Exit(code=1)

        state = paginator.update(len(result.rows))
        sort = sort_state.spec
        console.print(
            _rows_table(
                result.rows,
                f"Page {state.current_page} - sorted by {sort.key.value} {sort.direction.value}",
            )
        )
        if not result.rows:
            console.print("[dim]No hacks match the current filters.[/dim]")
        console.print(_render_window(paginator.window(), state.current_page))

    asyncio.run(_browse())


@app.command()
def suggest(
    query: Annotated[str, typer.Argument(help="Search text as typed")],
    results: Annotated[
        bool, typer.Option("--results", help="Also list every ranked matching hack")
    ] = False,
    db_path: DbOption = None,
    view: ViewOption = DEFAULT_VIEW,
) -> None:
    """Print autocomplete suggestions for QUERY over the bulk search window."""
    config, db_path = _config_and_db(db_path)
    _require_db(db_path)

    async def _suggest() -> None:
        with CatalogDatabase(db_path) as db:
            store = SqliteStore(db)
            filter_state = FilterState(store, filters_key(view))
            sort_state = SortState(store, sorting_key(view))
            async with CatalogService(str(db_path)) as service:
                gateway = CatalogQueryGateway(service)
                bulk = await gateway.query(
                    BulkWindow(config.bulk_limit), sort_state.spec, filter_state.filters
                )

        engine = AutocompleteEngine(config)
        engine.set_rows(bulk.rows)
        suggestions = engine.suggest(query)
        if not suggestions:
            console.print("[dim]No suggestions.[/dim]")
        else:
            table = Table(title=f"Suggestions for {query!r}")
            table.add_column("Kind", style="dim")
            table.add_column("Text", style="bold")
            table.add_column("Detail")
            for s in suggestions:
                table.add_row(s.kind, s.text, s.detail)
            console.print(table)

        if results:
            matches = engine.filter_rows(query)
            console.print(_rows_table(matches, f"{len(matches)} matching hacks"))

    asyncio.run(_suggest())


@app.command()
def options(db_path: DbOption = None) -> None:
    """List the difficulties and hack types present in the catalog."""
    _, db_path = _config_and_db(db_path)
    _require_db(db_path)

    async def _options() -> FilterOptions:
        async with CatalogService(str(db_path)) as service:
            return await CatalogQueryGateway(service).get_filter_options()

    opts = asyncio.run(_options())
    console.print("[bold]Difficulties:[/bold] " + (", ".join(opts.difficulties) or "-"))
    console.print("[bold]Hack types:[/bold] " + (", ".join(opts.hack_types) or "-"))


# ---------------------------------------------------------------------------
# filters
# ---------------------------------------------------------------------------


def _print_filters(filter_state: FilterState, view: str) -> None:
    f = filter_state.filters
    table = Table(title=f"Filters: {view}")
    table.add_column("Facet", style="bold")
    table.add_column("Value")
    table.add_row("Difficulties", ", ".join(f.selected_difficulties()) or "any")
    table.add_row("Hack types", ", ".join(f.selected_hack_types()) or "any")
    table.add_row("Author", f.author or "any")
    table.add_row("Min rating", f.min_rating or "any")
    table.add_row("Status", f.status or "any")
    console.print(table)


@filters_app.command("show")
def filters_show(db_path: DbOption = None, view: ViewOption = DEFAULT_VIEW) -> None:
    """Show the persisted filters of a view."""
    _, db_path = _config_and_db(db_path)
    _require_db(db_path)
    with CatalogDatabase(db_path) as db:
        _print_filters(FilterState(SqliteStore(db), filters_key(view)), view)


@filters_app.command("set")
def filters_set(
    difficulty: Annotated[
        Optional[list[str]],
        typer.Option("--difficulty", help="Select only these difficulties (repeatable)"),
    ] = None,
    hack_type: Annotated[
        Optional[list[str]],
        typer.Option("--type", help="Require these hack types (repeatable)"),
    ] = None,
    author: Annotated[Optional[str], typer.Option("--author", help="Author name")] = None,
    rating: Annotated[
        Optional[float], typer.Option("--rating", min=0, max=5, help="Minimum rating")
    ] = None,
    status: Annotated[
        Optional[str], typer.Option("--status", help="patched, unpatched, or empty for any")
    ] = None,
    db_path: DbOption = None,
    view: ViewOption = DEFAULT_VIEW,
) -> None:
    """Change individual facets; anything not given keeps its current value."""
    _, db_path = _config_and_db(db_path)
    _require_db(db_path)

    async def _set() -> None:
        with CatalogDatabase(db_path) as db:
            filter_state = FilterState(SqliteStore(db), filters_key(view))
            async with CatalogService(str(db_path)) as service:
                opts = await _load_options(CatalogQueryGateway(service), filter_state)

            if difficulty is not None:
                chosen = set(difficulty)
                filter_state.set_difficulty_filters(
                    {d: d in chosen for d in dict.fromkeys([*opts.difficulties, *difficulty])}
                )
            if hack_type is not None:
                chosen = set(hack_type)
                filter_state.set_hack_type_filters(
                    {t: t in chosen for t in dict.fromkeys([*opts.hack_types, *hack_type])}
                )
            if author is not None:
                filter_state.set_author(author)
            if rating is not None:
                filter_state.set_rating_value(rating)
            if status is not None:
                filter_state.set_status(status)
            filter_state.sync_single_select()
            _print_filters(filter_state, view)

    asyncio.run(_set())


@filters_app.command("clear")
def filters_clear(db_path: DbOption = None, view: ViewOption = DEFAULT_VIEW) -> None:
    """Reset every facet of a view to unrestricted."""
    _, db_path = _config_and_db(db_path)
    _require_db(db_path)

    async def _clear() -> None:
        with CatalogDatabase(db_path) as db:
            filter_state = FilterState(SqliteStore(db), filters_key(view))
            async with CatalogService(str(db_path)) as service:
                filter_state.available = await CatalogQueryGateway(service).get_filter_options()
            filter_state.clear()
            console.print(f"[green]Filters cleared for {view}.[/green]")

    asyncio.run(_clear())


# ---------------------------------------------------------------------------
# sort / view mode
# ---------------------------------------------------------------------------


@app.command()
def sort(
    key: Annotated[Optional[SortKey], typer.Argument(help="Column to sort by")] = None,
    direction: Annotated[
        Optional[SortDirection], typer.Option("--direction", help="asc or desc")
    ] = None,
    db_path: DbOption = None,
    view: ViewOption = DEFAULT_VIEW,
) -> None:
    """Show or set the persisted sort order of a view."""
    _, db_path = _config_and_db(db_path)
    with CatalogDatabase(db_path) as db:
        sort_state = SortState(SqliteStore(db), sorting_key(view))
        if key is not None:
            sort_state.set_key(key)
        if direction is not None:
            sort_state.set_direction(direction)
        console.print(
            f"[bold]{view}[/bold] sorted by {sort_state.key.value} {sort_state.direction.value}"
        )


@app.command("view-mode")
def view_mode(
    mode: Annotated[Optional[ViewMode], typer.Argument(help="cards or list")] = None,
    db_path: DbOption = None,
    view: ViewOption = DEFAULT_VIEW,
) -> None:
    """Show or set the persisted cards/list layout of a view."""
    _, db_path = _config_and_db(db_path)
    with CatalogDatabase(db_path) as db:
        state = ViewModeState(SqliteStore(db), view_mode_key(view))
        if mode is not None:
            state.set_mode(mode)
        console.print(f"[bold]{view}[/bold] layout: {state.mode.value}")


# ---------------------------------------------------------------------------
# sync / status
# ---------------------------------------------------------------------------


@app.command()
def sync(
    feed: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="JSON feed of hack records"),
    ],
    db_path: DbOption = None,
) -> None:
    """Import FEED into the catalog with a live progress bar."""
    config, db_path = _config_and_db(db_path)

    async def _sync() -> SyncOrchestrator:
        with CatalogDatabase(db_path) as db:
            job = CatalogImportJob(db, feed, page_size=config.page_size)
            async with SyncOrchestrator(job, SqliteStore(db), config=config) as orchestrator:
                with SyncProgressDisplay(orchestrator, console=console) as display:
                    ok = await orchestrator.trigger()
                    if ok:
                        await orchestrator.wait_settled()
                final = display.last_rendered
            if ok and final is not None:
                console.print(f"[green]{final.message}[/green]")
            return orchestrator

    orchestrator = asyncio.run(_sync())
    if orchestrator.last_error is not None:
        console.print(f"[red]Sync failed:[/red] {orchestrator.last_error}")
        raise typer.Exit(code=1)
    console.print(f"[bold]Last sync:[/bold] {orchestrator.last_sync_text}")


@app.command()
def status(db_path: DbOption = None) -> None:
    """Show catalog size and the time since the last sync."""
    _, db_path = _config_and_db(db_path)
    _require_db(db_path)
    with CatalogDatabase(db_path) as db:
        raw = SafeStore(SqliteStore(db)).get(LAST_SYNC_TIME_KEY)
        try:
            last_sync_ms = int(raw) if raw else None
        except ValueError:
            logger.warning("Ignoring unparsable last sync timestamp %r", raw)
            last_sync_ms = None
        console.print(Panel(f"Database: [bold]{db_path}[/bold]", title="hackdex Status"))
        console.print(f"[bold]Hacks:[/bold] {db.get_hack_count()}")
        console.print(
            f"[bold]Last sync:[/bold] {format_relative_time(last_sync_ms, int(time.time() * 1000))}"
        )
