from __future__ import annotations

import logging
import sys
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Annotated

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.spinner import Spinner
from rich.text import Text
from result import Err

from tally.config.defaults import default_config
from tally.config.loader import load_config, sample_config_json
from tally.config.schema import AppConfig
from tally.models.errors import PersistenceFailure, RefreshError, RefreshErrorCode, TallyError
from tally.scan import FileSystemSource, JsonLinesSource, MetadataSource, default_scanner
from tally.services.engine import RefreshResult, SuggestionsEngine
from tally.services.scheduler import RefreshScheduler
from tally.services.summary import render_issues, render_suggestions
from tally.store.cache import CacheStore, MemoryCacheStore, SqliteCacheStore
from tally.store.history import SqliteHistoryWriter

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(help="Derived storage statistics and cleanup suggestions.", no_args_is_help=True)
watch_app = typer.Typer(help="Manage directories that get exact aggregates.", no_args_is_help=True)
app.add_typer(watch_app, name="watch")


@dataclass(slots=True)
class _RefreshProgress:
    current_path: str
    files: int
    directories: int
    start_time: float


def _truncate_path(path: str, max_width: int = 110) -> str:
    if len(path) <= max_width:
        return path
    keep = max_width - 3
    return f"...{path[-keep:]}"


def _render_refresh_panel(progress: _RefreshProgress, phase: str) -> Panel:
    elapsed = time.perf_counter() - progress.start_time
    body = Group(
        Spinner("dots", text=phase, style="bold #8abeb7"),
        Text.from_markup(f"[#81a2be]Path:[/] {escape(_truncate_path(progress.current_path))}"),
        Text.from_markup(
            f"[#b5bd68]Scanned:[/] {progress.directories:,} dirs, {progress.files:,} files"
            + f"    [#de935f]Elapsed:[/] {elapsed:.1f}s"
        ),
    )
    return Panel(
        body,
        title="[bold #81a2be]tally - Refreshing...[/]",
        border_style="#373b41",
    )


def _config(ctx: typer.Context) -> AppConfig:
    config = ctx.obj
    return config if isinstance(config, AppConfig) else default_config()


def _store(config: AppConfig) -> CacheStore:
    if config.cache_path is None:
        return MemoryCacheStore()
    return SqliteCacheStore(config.cache_path)


@contextmanager
def _open_engine(ctx: typer.Context) -> Iterator[SuggestionsEngine]:
    config = _config(ctx)
    try:
        history = SqliteHistoryWriter(config.history_path) if config.history_path else None
        engine = SuggestionsEngine(config, _store(config), history)
        engine.start()
    except PersistenceFailure as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(1) from exc
    try:
        yield engine
    except TallyError as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(1) from exc
    finally:
        engine.stop()


def _make_source(
    path: str,
    *,
    listing: bool,
    logins: str | None,
    capacity: int | None,
    workers: int,
    progress: _RefreshProgress | None = None,
    lock: threading.Lock | None = None,
) -> MetadataSource:
    if listing:
        return JsonLinesSource(path, capacity=capacity, logins_path=logins)

    def on_progress(current_path: str, files: int, directories: int) -> None:
        if progress is None or lock is None:
            return
        with lock:
            progress.current_path = current_path
            progress.files = files
            progress.directories = directories

    return FileSystemSource(path, scanner=default_scanner(workers=workers), progress_callback=on_progress)


def _refresh_with_progress(engine: SuggestionsEngine, source: MetadataSource, progress: _RefreshProgress, lock: threading.Lock) -> RefreshResult:
    done = threading.Event()
    result: RefreshResult | None = None

    def refresh_worker() -> None:
        nonlocal result
        try:
            result = engine.refresh(source)
        finally:
            done.set()

    thread = threading.Thread(target=refresh_worker, daemon=True)
    thread.start()

    with Live(
        _render_refresh_panel(progress, "Refreshing suggestions..."),
        console=err_console,
        refresh_per_second=12,
        transient=True,
    ) as live:
        while not done.is_set():
            with lock:
                snapshot = replace(progress)
            live.update(_render_refresh_panel(snapshot, "Refreshing suggestions..."))
            time.sleep(0.08)

    thread.join()
    if result is None:
        return Err(RefreshError(RefreshErrorCode.INTERNAL, "Refresh did not complete"))
    return result


def _print_json(data: object) -> None:
    console.print_json(data=data)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
    config_path: Annotated[str | None, typer.Option("--config", help="Path to config JSON.")] = None,
    cache_path: Annotated[str | None, typer.Option("--cache", help="Cache store database path.")] = None,
    history_path: Annotated[str | None, typer.Option("--history", help="History database path.")] = None,
) -> None:
    if sys.platform == "win32":
        console.print("[red]Windows support is not implemented yet.[/]")
        raise typer.Exit(1)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )

    config_result = load_config(path=config_path)
    if isinstance(config_result, Err):
        console.print(f"[yellow]{config_result.unwrap_err()} Using defaults.[/]")
        config = default_config()
    else:
        config = config_result.unwrap()

    overrides: dict[str, object] = {}
    if cache_path is not None:
        overrides["cache_path"] = cache_path
    if history_path is not None:
        overrides["history_path"] = history_path
    if overrides:
        config = replace(config, **overrides)
    ctx.obj = config


@app.command("sample-config")
def sample_config() -> None:
    """Print a sample config JSON."""
    console.print_json(sample_config_json())


@app.command()
def refresh(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Directory to scan, or a JSON-lines listing with --listing.")] = ".",
    listing: Annotated[bool, typer.Option("--listing", "-l", help="Read entries from a JSON-lines listing.")] = False,
    logins: Annotated[str | None, typer.Option("--logins", help="JSON file of user last-login times.")] = None,
    capacity: Annotated[int | None, typer.Option("--capacity", help="Total capacity in bytes for listings.")] = None,
    workers: Annotated[int | None, typer.Option("--workers", "-w", help="Number of scan workers.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON instead of tables.")] = False,
) -> None:
    """Run one refresh pass and publish the result."""
    with _open_engine(ctx) as engine:
        lock = threading.Lock()
        progress = _RefreshProgress(current_path=path, files=0, directories=0, start_time=time.perf_counter())
        source = _make_source(
            path,
            listing=listing,
            logins=logins,
            capacity=capacity,
            workers=max(1, workers or engine.config.scan_workers),
            progress=progress,
            lock=lock,
        )
        result = _refresh_with_progress(engine, source, progress, lock)
        if isinstance(result, Err):
            error = result.unwrap_err()
            console.print(f"[red]Refresh failed: {escape(error.message)}[/]")
            raise typer.Exit(1)
        values = engine.facade.suggestions()
        if json_output:
            _print_json(values)
        else:
            render_suggestions(console, values)


@app.command()
def serve(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Directory to scan, or a JSON-lines listing with --listing.")] = ".",
    interval: Annotated[float | None, typer.Option("--interval", help="Seconds between refreshes.")] = None,
    count: Annotated[int | None, typer.Option("--count", help="Stop after this many refreshes.")] = None,
    listing: Annotated[bool, typer.Option("--listing", "-l", help="Read entries from a JSON-lines listing.")] = False,
    logins: Annotated[str | None, typer.Option("--logins", help="JSON file of user last-login times.")] = None,
    capacity: Annotated[int | None, typer.Option("--capacity", help="Total capacity in bytes for listings.")] = None,
    workers: Annotated[int | None, typer.Option("--workers", "-w", help="Number of scan workers.")] = None,
) -> None:
    """Refresh periodically until interrupted."""
    with _open_engine(ctx) as engine:
        config = engine.config
        scheduler = RefreshScheduler(
            engine,
            lambda: _make_source(
                path,
                listing=listing,
                logins=logins,
                capacity=capacity,
                workers=max(1, workers or config.scan_workers),
            ),
            interval=interval if interval is not None else config.refresh_interval,
            max_runs=count,
        )
        scheduler.start()
        try:
            while scheduler.running:
                scheduler.join(0.5)
        except KeyboardInterrupt:
            scheduler.stop()
        console.print(f"[#b5bd68]Completed {scheduler.runs:,} refresh passes.[/]")


@app.command()
def suggestions(
    ctx: typer.Context,
    user: Annotated[str | None, typer.Option("--user", "-u", help="Narrow metrics to one user.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON instead of tables.")] = False,
) -> None:
    """Show scalar metrics, optionally for one user."""
    with _open_engine(ctx) as engine:
        values = engine.facade.suggestions(user)
        if json_output:
            _print_json(values)
        else:
            render_suggestions(console, values, user)


@app.command()
def quotas(
    ctx: typer.Context,
    metric: Annotated[str, typer.Argument(help="nsQuotaRatioUsed or dsQuotaRatioUsed.")],
    user: Annotated[str | None, typer.Option("--user", "-u", help="Only this user's directories.")] = None,
) -> None:
    """Show quota ratios per directory."""
    with _open_engine(ctx) as engine:
        _print_json(engine.facade.quota_ratios(metric, user))


@app.command("file-ages")
def file_ages(
    ctx: typer.Context,
    metric: Annotated[str, typer.Argument(help="count or diskspaceConsumed.")],
) -> None:
    """Show the monthly modification-time histogram."""
    with _open_engine(ctx) as engine:
        _print_json(engine.facade.file_ages(metric))


@app.command()
def users(
    ctx: typer.Context,
    suggestion: Annotated[str | None, typer.Option("--suggestion", "-s", help="Grouped metric to show.")] = None,
) -> None:
    """List known users, or one grouped metric."""
    with _open_engine(ctx) as engine:
        _print_json(engine.facade.users(suggestion))


@app.command()
def dirs(
    ctx: typer.Context,
    metric: Annotated[str, typer.Argument(help="count or diskspaceConsumed.")],
    directory: Annotated[str | None, typer.Option("--dir", "-d", help="Only this directory.")] = None,
) -> None:
    """Show per-directory aggregates."""
    with _open_engine(ctx) as engine:
        _print_json(engine.facade.directories(metric, directory))


@app.command()
def issues(
    ctx: typer.Context,
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Entries per metric.")] = None,
    ascending: Annotated[bool, typer.Option("--ascending", help="Rank from the bottom.")] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON instead of tables.")] = False,
) -> None:
    """Show the top offenders for each problem metric."""
    with _open_engine(ctx) as engine:
        ranked = engine.facade.issues(limit if limit is not None else engine.config.top_count, ascending)
        if json_output:
            _print_json(ranked)
        else:
            render_issues(console, ranked)


@app.command()
def logins(ctx: typer.Context) -> None:
    """Show last-login times, most recent first."""
    with _open_engine(ctx) as engine:
        _print_json(engine.facade.last_logins())


@watch_app.command("add")
def watch_add(ctx: typer.Context, directory: Annotated[str, typer.Argument(help="Directory to watch.")]) -> None:
    with _open_engine(ctx) as engine:
        added = engine.add_watch(directory)
        console.print(f"[#b5bd68]Watching {escape(added)}.[/]")


@watch_app.command("remove")
def watch_remove(ctx: typer.Context, directory: Annotated[str, typer.Argument(help="Directory to stop watching.")]) -> None:
    with _open_engine(ctx) as engine:
        removed = engine.remove_watch(directory)
        console.print(f"[#b5bd68]No longer watching {escape(removed)}.[/]")


@watch_app.command("list")
def watch_list(ctx: typer.Context) -> None:
    with _open_engine(ctx) as engine:
        _print_json(engine.facade.watched_directories())


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
