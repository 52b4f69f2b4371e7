from __future__ import annotations

from collections.abc import Mapping

from rich.console import Console
from rich.table import Table

from tally.services.formatting import format_bytes, format_millis, relative_bar, share

_SIZE_ROWS: tuple[tuple[str, str, str | None], ...] = (
    ("Empty", "emptyFiles", None),
    ("Tiny (<= 1 KB)", "tinyFiles", "tinyFilesDs"),
    ("Small (<= 1 MB)", "smallFiles", "smallFilesDs"),
    ("Medium (<= 128 MB)", "mediumFiles", "mediumFilesDs"),
    ("Large", "largeFiles", "largeFilesDs"),
)

_AGE_ROWS: tuple[tuple[str, str, str | None], ...] = (
    ("Modified in last 24h", "numFiles24h", "diskspace24h"),
    ("Not accessed for 1 year", "oldFiles1yr", "oldFiles1yrDs"),
    ("Not accessed for 2 years", "oldFiles2yr", "oldFiles2yrDs"),
    ("Empty dirs", "emptyDirs", None),
    ("Empty dirs, last 24h", "emptyDirs24h", None),
)


def _size_table(values: Mapping[str, int]) -> Table:
    total = values.get("numFiles", 0)
    table = Table(title="Files by Size", header_style="bold cyan")
    table.add_column("Bucket")
    table.add_column("Files", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("")
    table.add_column("Disk", justify="right")
    for label, count_key, disk_key in _SIZE_ROWS:
        count = values.get(count_key, 0)
        disk = format_bytes(values.get(disk_key, 0)) if disk_key else "-"
        table.add_row(label, f"{count:,}", share(count, total), relative_bar(count, total), disk)
    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        f"[bold]{total:,}[/bold]",
        "",
        "",
        f"[bold]{format_bytes(values.get('diskspace', 0))}[/bold]",
    )
    return table


def _age_table(values: Mapping[str, int]) -> Table:
    table = Table(title="Age", header_style="bold yellow")
    table.add_column("Window")
    table.add_column("Count", justify="right")
    table.add_column("Disk", justify="right")
    for label, count_key, disk_key in _AGE_ROWS:
        disk = format_bytes(values.get(disk_key, 0)) if disk_key else "-"
        table.add_row(label, f"{values.get(count_key, 0):,}", disk)
    return table


def _overview_table(values: Mapping[str, int], user: str | None) -> Table:
    title = f"Suggestions for {user}" if user else "Suggestions"
    table = Table(title=title, header_style="bold cyan")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Files", f"{values.get('numFiles', 0):,}")
    table.add_row("Directories", f"{values.get('numDirs', 0):,}")
    table.add_row("Disk used", format_bytes(values.get("diskspace", 0)))
    if not user:
        table.add_row("Capacity", format_bytes(values.get("capacity", 0)))
    table.add_row("Namespace quotas", f"{values.get('nsQuotaCount', 0):,}")
    table.add_row("  over threshold", f"{values.get('nsQuotaThreshCount', 0):,}")
    table.add_row("Diskspace quotas", f"{values.get('dsQuotaCount', 0):,}")
    table.add_row("  over threshold", f"{values.get('dsQuotaThreshCount', 0):,}")
    table.add_section()
    table.add_row("Report time", format_millis(values.get("reportTime", 0)))
    if user:
        table.add_row("Last login", format_millis(values.get("lastLogin", 0)))
    else:
        table.add_row("Time taken", f"{values.get('timeTaken', 0):,} ms")
    return table


def render_suggestions(console: Console, values: Mapping[str, int], user: str | None = None) -> None:
    if not values:
        console.print("[yellow]No suggestions yet; run a refresh first.[/]")
        return
    console.print(_overview_table(values, user))
    console.print(_size_table(values))
    console.print(_age_table(values))


def render_issues(console: Console, issues: Mapping[str, Mapping[str, int]]) -> None:
    if not issues:
        console.print("[yellow]No suggestions yet; run a refresh first.[/]")
        return
    for name, ranked in issues.items():
        is_disk = "Diskspace" in name
        table = Table(title=name, header_style="bold yellow")
        table.add_column("Key")
        table.add_column("Value", justify="right")
        for key, value in ranked.items():
            table.add_row(key, format_bytes(value) if is_disk else f"{value:,}")
        console.print(table)
