"""CLI interface for the Tune Out station library."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from tuneout.config import ensure_dirs, get_base_dir, load_config, save_config
from tuneout.library import Library
from tuneout.logging import setup_logging
from tuneout.storage.errors import LibraryError, SchemaError
from tuneout.storage.models import FAVORITES_COLLECTION_NAME, RECENTS_COLLECTION_NAME, Collection, Station

T = TypeVar("T")

app = typer.Typer(
    name="tuneout",
    help="Manage a local internet-radio station library.",
    add_completion=False,
)
console = Console()

_ALIASES = {
    "favorites": FAVORITES_COLLECTION_NAME,
    "recents": RECENTS_COLLECTION_NAME,
}


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


# ---------------------------------------------------------------------------
# Library helpers
# ---------------------------------------------------------------------------


def _run(coro: Awaitable[T]) -> T:
    return asyncio.run(coro)  # type: ignore[arg-type]


@asynccontextmanager
async def _open_library() -> AsyncIterator[Library]:
    """Open the configured library, turning startup failures into a clean exit."""
    cfg = load_config()
    ensure_dirs()
    setup_logging(cfg.logging.level, cfg.log_dir, sql_trace=cfg.library.log_sql)

    library = Library.from_config(cfg)
    try:
        await library.open()
    except SchemaError as exc:
        console.print(f"[red]Cannot open library:[/red] {exc}")
        raise typer.Exit(1) from exc
    try:
        yield library
    finally:
        await library.close()


def _fail(exc: LibraryError) -> typer.Exit:
    console.print(f"[red]Error:[/red] {exc}")
    return typer.Exit(1)


async def _resolve_collection(library: Library, name: str) -> Collection:
    """Find a collection by exact name, then by the favorites/recents alias."""
    collection = await library.collections.fetch_collection_named(name)
    if collection is None and name.lower() in _ALIASES:
        collection = await library.collections.fetch_collection_named(_ALIASES[name.lower()])
    if collection is None:
        console.print(f"[red]No such collection:[/red] {name}")
        raise typer.Exit(1)
    return collection


async def _resolve_station(library: Library, station_id: int) -> Station:
    station = await library.stations.find(station_id)
    if station is None:
        console.print(f"[red]No such station:[/red] {station_id}")
        raise typer.Exit(1)
    return station


def _stations_table(title: str, rows: list[tuple[int, Station, float | None]]) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Tags")
    table.add_column("Country")
    table.add_column("Sort key", justify="right", style="dim")
    for position, station, sort_order in rows:
        table.add_row(
            str(position),
            str(station.id),
            station.name,
            station.tags or "",
            station.country_code or "",
            "" if sort_order is None else f"{sort_order:g}",
        )
    return table


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


collection_app = typer.Typer(name="collection", help="Create, list and reorder collections.", add_completion=False)
app.add_typer(collection_app)


@collection_app.command(name="list")
def collection_list(
    custom: bool = typer.Option(False, "--custom", help="Only user-created collections"),
    standard: bool = typer.Option(False, "--standard", help="Only favorites and recents"),
) -> None:
    """List collections with their station counts, most recent first."""
    which: bool | None = None
    if custom != standard:
        which = standard

    async def _inner() -> list[tuple[Collection, int]]:
        async with _open_library() as library:
            return await library.collections.fetch_collection_counts(standard=which)

    counts = _run(_inner())
    if not counts:
        console.print("[dim]No collections.[/dim]")
        return

    table = Table(title="Collections")
    table.add_column("Name", style="bold")
    table.add_column("Stations", justify="right")
    table.add_column("Sort key", justify="right", style="dim")
    for collection, count in counts:
        style = "cyan" if collection.is_standard else None
        table.add_row(collection.display_name, str(count), f"{collection.sort_order:g}", style=style)
    console.print(table)


@collection_app.command(name="create")
def collection_create(
    name: str = typer.Argument(help="Collection name"),
    sort_order: float | None = typer.Option(None, "--sort-order", help="Explicit sort key"),
) -> None:
    """Create a new custom collection."""

    async def _inner() -> Collection:
        async with _open_library() as library:
            try:
                return await library.collections.create_collection(name, sort_order)
            except LibraryError as exc:
                raise _fail(exc) from exc

    collection = _run(_inner())
    console.print(f"[green]Created collection[/green] {collection.name} (id {collection.id}).")


@collection_app.command(name="rename")
def collection_rename(
    name: str = typer.Argument(help="Current collection name"),
    new_name: str = typer.Argument(help="New collection name"),
) -> None:
    """Rename a custom collection."""

    async def _inner() -> None:
        async with _open_library() as library:
            collection = await _resolve_collection(library, name)
            try:
                await library.collections.rename_collection(collection, new_name)
            except LibraryError as exc:
                raise _fail(exc) from exc

    _run(_inner())
    console.print(f"[green]Renamed[/green] {name} → {new_name}.")


@collection_app.command(name="remove")
def collection_remove(name: str = typer.Argument(help="Collection name")) -> None:
    """Delete a custom collection (its stations stay in the library)."""

    async def _inner() -> None:
        async with _open_library() as library:
            collection = await _resolve_collection(library, name)
            try:
                await library.collections.remove_collection(collection)
            except LibraryError as exc:
                raise _fail(exc) from exc

    _run(_inner())
    console.print(f"[green]Removed collection[/green] {name}.")


@collection_app.command(name="show")
def collection_show(name: str = typer.Argument(help="Collection name (or favorites / recents)")) -> None:
    """Show the stations in a collection in display order."""

    async def _inner() -> tuple[Collection, list]:
        async with _open_library() as library:
            collection = await _resolve_collection(library, name)
            return collection, await library.collections.fetch_members(collection)

    collection, members = _run(_inner())
    if not members:
        console.print(f"[dim]{collection.display_name} is empty.[/dim]")
        return
    rows = [(i, station, membership.sort_order) for i, (station, membership) in enumerate(members)]
    console.print(_stations_table(collection.display_name, rows))


@collection_app.command(name="move")
def collection_move(
    name: str = typer.Argument(help="Collection name"),
    station_id: int = typer.Argument(help="Station id"),
    position: int = typer.Argument(help="New zero-based position (0 = top)"),
) -> None:
    """Move a station to a new position within a collection."""

    async def _inner() -> float:
        async with _open_library() as library:
            collection = await _resolve_collection(library, name)
            station = await _resolve_station(library, station_id)
            try:
                return await library.collections.move_station(station, collection, position)
            except (LibraryError, ValueError) as exc:
                console.print(f"[red]Error:[/red] {exc}")
                raise typer.Exit(1) from exc

    key = _run(_inner())
    console.print(f"[green]Moved[/green] station {station_id} to position {position} (sort key {key:g}).")


@collection_app.command(name="reorder")
def collection_reorder(
    name: str = typer.Argument(help="Custom collection name"),
    position: int = typer.Argument(help="New zero-based position among custom collections"),
) -> None:
    """Move a custom collection to a new position in the collection list."""

    async def _inner() -> None:
        async with _open_library() as library:
            collection = await _resolve_collection(library, name)
            try:
                await library.collections.move_collection(collection, position)
            except (LibraryError, ValueError) as exc:
                console.print(f"[red]Error:[/red] {exc}")
                raise typer.Exit(1) from exc

    _run(_inner())
    console.print(f"[green]Moved collection[/green] {name} to position {position}.")


@collection_app.command(name="shuffle")
def collection_shuffle(name: str = typer.Argument(help="Collection name")) -> None:
    """Shuffle the order of the stations in a collection."""

    async def _inner() -> None:
        async with _open_library() as library:
            collection = await _resolve_collection(library, name)
            await library.collections.shuffle_members(collection)

    _run(_inner())
    console.print(f"[green]Shuffled[/green] {name}.")


# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------


station_app = typer.Typer(name="station", help="Add, remove and organise stations.", add_completion=False)
app.add_typer(station_app)


@station_app.command(name="list")
def station_list() -> None:
    """List every station stored in the library."""

    async def _inner() -> list[Station]:
        async with _open_library() as library:
            return await library.stations.list_stations()

    stations = _run(_inner())
    if not stations:
        console.print("[dim]No stations.[/dim]")
        return
    console.print(_stations_table("Stations", [(i, s, None) for i, s in enumerate(stations)]))


@station_app.command(name="add")
def station_add(
    name: str = typer.Argument(help="Station name"),
    url: str = typer.Argument(help="Stream URL"),
    collection: str = typer.Option("favorites", "--collection", "-c", help="Collection to add the station to"),
    tags: str | None = typer.Option(None, "--tags", help="Comma-separated tags"),
    homepage: str | None = typer.Option(None, "--homepage", help="Station homepage"),
    country_code: str | None = typer.Option(None, "--country", help="Two-letter country code"),
) -> None:
    """Add a custom station and put it in a collection."""

    async def _inner() -> Station:
        async with _open_library() as library:
            target = await _resolve_collection(library, collection)
            station = await library.stations.save(
                Station(name=name, url=url, tags=tags, homepage=homepage, country_code=country_code)
            )
            try:
                await library.collections.add_station(station, target)
            except LibraryError as exc:
                raise _fail(exc) from exc
            return station

    station = _run(_inner())
    console.print(f"[green]Added[/green] {station.name} (id {station.id}) to {collection}.")


@station_app.command(name="favorite")
def station_favorite(station_id: int = typer.Argument(help="Station id")) -> None:
    """Add a station to favorites (or move it to the top if already there)."""

    async def _inner() -> Station:
        async with _open_library() as library:
            station = await _resolve_station(library, station_id)
            favorites = await library.collections.favorites()
            await library.collections.add_station(station, favorites)
            return station

    station = _run(_inner())
    console.print(f"[green]Favorited[/green] {station.name}.")


@station_app.command(name="remove")
def station_remove(
    station_id: int = typer.Argument(help="Station id"),
    collection: str = typer.Argument(help="Collection to remove the station from"),
) -> None:
    """Remove a station from one collection."""

    async def _inner() -> bool:
        async with _open_library() as library:
            station = await _resolve_station(library, station_id)
            target = await _resolve_collection(library, collection)
            return await library.collections.remove_station(station, target)

    if _run(_inner()):
        console.print(f"[green]Removed[/green] station {station_id} from {collection}.")
    else:
        console.print(f"[yellow]Station {station_id} is not in {collection}.[/yellow]")


@station_app.command(name="delete")
def station_delete(station_id: int = typer.Argument(help="Station id")) -> None:
    """Delete a station from the library and from every collection."""

    async def _inner() -> None:
        async with _open_library() as library:
            station = await _resolve_station(library, station_id)
            await library.stations.delete(station)

    _run(_inner())
    console.print(f"[green]Deleted[/green] station {station_id}.")


# ---------------------------------------------------------------------------
# Remote directory
# ---------------------------------------------------------------------------


directory_app = typer.Typer(name="directory", help="Browse the remote station directory.", add_completion=False)
app.add_typer(directory_app)


@directory_app.command(name="search")
def directory_search(
    name: str | None = typer.Option(None, "--name", help="Station name contains"),
    tag: str | None = typer.Option(None, "--tag", help="Station tag"),
    country_code: str | None = typer.Option(None, "--country", help="Two-letter country code"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of results"),
    save_to: str | None = typer.Option(None, "--save-to", help="Store the results in this collection"),
) -> None:
    """Search the directory and optionally save the results into a collection."""
    from tuneout.directory import DirectoryClient, DirectoryError, QueryParams, StationQuery, station_from_remote

    cfg = load_config()
    query = StationQuery(name=name, tag=tag, countrycode=country_code)

    async def _inner() -> list[Station]:
        async with DirectoryClient(cfg.directory) as client:
            try:
                remote = await client.search_stations(query, QueryParams(order="clickcount", reverse=True, limit=limit))
            except DirectoryError as exc:
                console.print(f"[red]Directory error:[/red] {exc}")
                raise typer.Exit(1) from exc
        stations = [station_from_remote(r) for r in remote]
        if save_to is None:
            return stations
        async with _open_library() as library:
            target = await _resolve_collection(library, save_to)
            saved = []
            for station in reversed(stations):
                stored = await library.stations.save(station)
                await library.collections.add_station(stored, target)
                saved.append(stored)
            return list(reversed(saved))

    stations = _run(_inner())
    if not stations:
        console.print("[dim]No stations found.[/dim]")
        return
    console.print(_stations_table("Search results", [(i, s, None) for i, s in enumerate(stations)]))
    if save_to:
        console.print(f"[green]Saved {len(stations)} stations to[/green] {save_to}.")


@directory_app.command(name="tags")
def directory_tags(
    filter_: str | None = typer.Argument(None, metavar="FILTER", help="Only tags containing this text"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum number of tags"),
) -> None:
    """List tags known to the directory with their station counts."""
    from tuneout.directory import DirectoryClient, DirectoryError, QueryParams

    cfg = load_config()

    async def _inner() -> list:
        async with DirectoryClient(cfg.directory) as client:
            try:
                return await client.fetch_tags(
                    filter_, QueryParams(order="stationcount", reverse=True, limit=limit)
                )
            except DirectoryError as exc:
                console.print(f"[red]Directory error:[/red] {exc}")
                raise typer.Exit(1) from exc

    for tag in _run(_inner()):
        console.print(f"  {tag.name:30s} {tag.stationcount:>7}")


@directory_app.command(name="countries")
def directory_countries(
    filter_: str | None = typer.Argument(None, metavar="FILTER", help="Only country codes containing this text"),
) -> None:
    """List country codes known to the directory with their station counts."""
    from tuneout.directory import DirectoryClient, DirectoryError

    cfg = load_config()

    async def _inner() -> list:
        async with DirectoryClient(cfg.directory) as client:
            try:
                return await client.fetch_countries(filter_)
            except DirectoryError as exc:
                console.print(f"[red]Directory error:[/red] {exc}")
                raise typer.Exit(1) from exc

    for country in _run(_inner()):
        console.print(f"  {country.name:6s} {country.stationcount:>7}")


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


config_app = typer.Typer(name="config", help="View and modify configuration.", add_completion=False)
app.add_typer(config_app)


@config_app.command(name="show")
def config_show() -> None:
    """Show current configuration."""
    cfg = load_config()

    console.print("\n[bold]Current Configuration[/bold]\n")

    console.print("[bold cyan]\\[library][/bold cyan]")
    console.print(f"  database_file     = {cfg.library.database_file}")
    console.print(f"  rebalance_epsilon = {cfg.library.rebalance_epsilon:g}")
    console.print(f"  log_sql           = {cfg.library.log_sql}")

    console.print("\n[bold cyan]\\[logging][/bold cyan]")
    console.print(f"  level = {cfg.logging.level}")

    console.print("\n[bold cyan]\\[directory][/bold cyan]")
    console.print(f"  base_url        = {cfg.directory.base_url}")
    console.print(f"  user_agent      = {cfg.directory.user_agent}")
    console.print(f"  timeout_seconds = {cfg.directory.timeout_seconds}")
    console.print(f"  hide_broken     = {cfg.directory.hide_broken}")
    console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. logging.level"),
    value: str = typer.Argument(help="New value"),
) -> None:
    """Set a configuration value (e.g. tuneout config set directory.timeout_seconds 10)."""

    parts = key.split(".", maxsplit=1)
    if len(parts) != 2:
        console.print("[red]Key must be in section.field format (e.g. logging.level).[/red]")
        raise typer.Exit(1)

    section_name, field_name = parts

    cfg = load_config()
    section_map = {
        "library": cfg.library,
        "logging": cfg.logging,
        "directory": cfg.directory,
    }

    if section_name not in section_map:
        console.print(f"[red]Unknown section:[/red] {section_name}")
        console.print(f"[dim]Valid sections: {', '.join(section_map)}[/dim]")
        raise typer.Exit(1)

    section_model = section_map[section_name]
    fields = type(section_model).model_fields
    if field_name not in fields:
        console.print(f"[red]Unknown field:[/red] {section_name}.{field_name}")
        console.print(f"[dim]Valid fields: {', '.join(fields)}[/dim]")
        raise typer.Exit(1)

    field_type = fields[field_name].annotation

    try:
        coerced = _coerce_value(value, field_type)
        section_data = section_model.model_dump(mode="python")
        section_data[field_name] = coerced
        new_section = type(section_model)(**section_data)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise typer.Exit(1) from exc

    setattr(cfg, section_name, new_section)
    save_config(cfg)
    console.print(f"[green]Set[/green] {key} = {coerced}")


def _coerce_value(raw: str, field_type: type | None) -> object:
    """Coerce a string value to the expected field type."""
    if field_type is bool:
        if raw.lower() in ("true", "1", "yes"):
            return True
        if raw.lower() in ("false", "0", "no"):
            return False
        msg = f"Cannot convert '{raw}' to bool (use true/false)"
        raise ValueError(msg)

    if field_type is int:
        return int(raw)

    if field_type is float:
        return float(raw)

    return raw


# ---------------------------------------------------------------------------
# Database inspection
# ---------------------------------------------------------------------------


db_app = typer.Typer(name="db", help="Database inspection commands.", add_completion=False)
app.add_typer(db_app)


@db_app.command(name="status")
def db_status() -> None:
    """Show database status and table statistics."""
    import sqlite3

    cfg = load_config()
    db_path = get_base_dir() / cfg.library.database_file
    if not db_path.exists():
        console.print("[yellow]Database not found.[/yellow] Add a station or collection to create it.")
        raise typer.Exit(1)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        console.print(f"\n[bold]Database[/bold]  {db_path}")
        size_kb = db_path.stat().st_size / 1024
        console.print(f"[dim]Size: {size_kb:.1f} KB[/dim]")
        version = conn.execute("SELECT version FROM schema_version WHERE id = 0").fetchone()
        console.print(f"[dim]Schema version: {version['version'] if version else 0}[/dim]\n")

        tables = [
            ("station", "Stations"),
            ("collection", "Collections (including favorites / recents)"),
            ("station_collection", "Stations in collections"),
        ]
        for table, description in tables:
            count = conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}").fetchone()["cnt"]  # noqa: S608
            style = "green" if count > 0 else "dim"
            console.print(f"  [{style}]{table:20s}[/{style}]  {count:>6}  [dim]{description}[/dim]")
    except sqlite3.DatabaseError as exc:
        console.print(f"[red]Cannot read database:[/red] {exc}")
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    console.print()
