"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tfm_sync.models.config import ClientConfig
from tfm_sync.models.entities import Channel, Entry, Folder
from tfm_sync.models.stats import MaterializeStats
from tfm_sync.utils.formatting import format_duration, format_size, format_timestamp


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `tfm-sync init <SERVER_URL>` to create a configuration.",
            "• Check the values shown by `tfm-sync --show-config`.",
        ],
        "TransportError": [
            "• The TFM server could not be reached.",
            "• Check that the server is running and the URL is correct.",
            "• Large tracks may need a longer `download_timeout`.",
        ],
        "ProtocolError": [
            "• The server answered with an unexpected status or content type.",
            "• Check the `api_prefix` setting against your server version.",
        ],
        "DecodeError": [
            "• The server did not answer with JSON.",
            "• The URL may point at a web page instead of the TFM API.",
        ],
        "ApiLogicalError": [
            "• The TFM server rejected the request.",
            "• The channel or folder may no longer exist.",
        ],
        "IntegrityError": [
            "• The download was incomplete and has been discarded.",
            "• Try again; nothing was written to the cache.",
        ],
        "MaterializeError": [
            "• The track has neither a local path nor a remote URL.",
            "• Refresh the listing it came from.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: ClientConfig, cache_dir: Path):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Server:", f"[green]{config.server_url}[/green]")
    table.add_row("API Prefix:", config.api_prefix or "[dim](none)[/dim]")
    table.add_row("Local Folder:", config.local_folder or "[dim](not set)[/dim]")
    table.add_row("Page Size:", str(config.page_size))
    table.add_row("Request Timeout:", format_duration(config.request_timeout))
    table.add_row("Download Timeout:", format_duration(config.download_timeout))
    table.add_row("Cache Directory:", f"[dim]{cache_dir}[/dim]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_channels_table(channels: list[Channel], title: str = "Channels"):
    """Displays a list of channels."""
    console = Console()
    if not channels:
        console.print(f"[dim]No {title.lower()} found.[/dim]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Files", justify="right", style="green")
    table.add_column("Flags")
    for channel in channels:
        flags = []
        if channel.is_favorite:
            flags.append("★")
        if channel.is_owner:
            flags.append("owner")
        if channel.can_post:
            flags.append("post")
        table.add_row(
            str(channel.id),
            escape(channel.name),
            channel.type,
            str(channel.file_count),
            " ".join(flags),
        )
    console.print(table)


def print_entries_table(entries: list[Entry], title: str):
    """Displays a listing of files and folders."""
    console = Console()
    if not entries:
        console.print(f"[dim]{escape(title)}: empty.[/dim]")
        return

    table = Table(title=escape(title), box=box.ROUNDED)
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Category")
    table.add_column("Modified", style="dim")
    for entry in entries:
        is_folder = entry.is_folder or (entry.has_children and not entry.is_file)
        name = f"📁 {escape(entry.name)}" if is_folder else escape(entry.name)
        table.add_row(
            entry.id,
            name,
            "" if is_folder else format_size(entry.size),
            entry.category,
            format_timestamp(entry.date_modified or entry.date_created),
        )
    console.print(table)
    console.print(f"[dim]{len(entries)} item(s)[/dim]")


def print_folders_table(folders: list[Folder]):
    """Displays the local-storage folder hierarchy root."""
    console = Console()
    if not folders:
        console.print("[dim]No local folders found.[/dim]")
        return

    table = Table(title="Local Folders", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="dim")
    table.add_column("Subfolders", justify="center")
    for folder in folders:
        table.add_row(
            escape(folder.name), escape(folder.path), "✓" if folder.has_children else ""
        )
    console.print(table)


def print_cache_info(cache_dir: Path, file_count: int, total_size: int):
    """Displays track cache usage."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Directory:", f"[dim]{cache_dir}[/dim]")
    table.add_row("Tracks:", f"[green]{file_count}[/green]")
    table.add_row("Size:", f"[cyan]{format_size(total_size)}[/cyan]")
    console.print(Panel(table, title="[bold]Track Cache[/bold]", border_style="cyan"))


def print_summary_panel(stats: MaterializeStats, duration_s: float):
    """Displays a summary of how tracks were resolved."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("✓ Resolved:", f"[bold green]{stats.resolved}[/bold green]")
    if stats.stored_path_hits > 0:
        stats_table.add_row(
            "○ Stored Path:", f"[yellow]{stats.stored_path_hits}[/yellow]"
        )
    if stats.cache_hits > 0:
        stats_table.add_row("○ Cache Hits:", f"[yellow]{stats.cache_hits}[/yellow]")
    if stats.downloads > 0:
        stats_table.add_row("↓ Downloaded:", f"[green]{stats.downloads}[/green]")
    if stats.failures > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.failures}[/bold red]")

    stats_table.add_row("", "")  # Spacer
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.bytes_downloaded)}[/cyan]"
    )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    border_color = "red" if stats.failures else "green"
    console.print()
    console.print(
        Panel(
            stats_table,
            title="🎵 [bold]Track Ready[/bold]" if not stats.failures else "[bold]Failed[/bold]",
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
