"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler

from tfm_sync import __version__
from tfm_sync.api.client import ClientHooks, TFMApiClient
from tfm_sync.api.routing import ChannelContext, FolderContext, LocalContext
from tfm_sync.core.materializer import TrackMaterializer, TrackSource
from tfm_sync.exceptions import TfmSyncError
from tfm_sync.media.downloader import CacheValidatingDownloader
from tfm_sync.media.integrity import FileIntegrityChecker
from tfm_sync.models.config import ClientConfig
from tfm_sync.storage.cache import TrackCache
from tfm_sync.storage.config_manager import ConfigManager

from .formatters import (
    format_error_with_suggestions,
    print_cache_info,
    print_channels_table,
    print_config,
    print_entries_table,
    print_folders_table,
    print_summary_panel,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("tfm_sync")

app = typer.Typer(
    name="tfm-sync",
    help=(
        "Browse a TFM server's audio library and cache tracks locally. Use"
        " 'tfm-sync <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

T = TypeVar("T")


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "tfm-sync"


def get_cache_dir(config: ClientConfig) -> Path:
    if config.cache_dir:
        return Path(config.cache_dir).expanduser()
    if os.name == "nt":
        base_dir = Path(os.getenv("LOCALAPPDATA", "~\\AppData\\Local"))
    else:
        base_dir = Path(os.getenv("XDG_CACHE_HOME", "~/.cache"))
    return base_dir.expanduser() / "tfm-sync" / "tracks"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(
    cli_options: dict[str, Any] | None = None, require_file: bool = True
) -> ClientConfig:
    options = {k: v for k, v in (cli_options or {}).items() if v is not None}
    try:
        return ConfigManager(CONFIG_FILE).load_config(options, require_file=require_file)
    except TfmSyncError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _make_client(config: ClientConfig) -> TFMApiClient:
    hooks = ClientHooks(
        on_error=lambda e: log.debug(f"Client reported {type(e).__name__}: {e}")
    )
    return TFMApiClient(
        server_url=config.server_url,
        local_folder=config.local_folder,
        api_prefix=config.api_prefix,
        timeout=config.request_timeout,
        hooks=hooks,
    )


def _run_with_client(
    config: ClientConfig, operation: Callable[[TFMApiClient], Awaitable[T]]
) -> T:
    """Runs `operation` against a fresh client and maps failures to exit code 1."""

    async def _runner() -> T:
        async with _make_client(config) as client:
            with console.status("[cyan]Talking to the TFM server...[/cyan]"):
                return await operation(client)

    try:
        return asyncio.run(_runner())
    except TfmSyncError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """TFM Sync CLI"""
    if version:
        console.print(f"[bold]tfm-sync[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("tfm_sync").setLevel(log_level)

    if show_config:
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    server_url: str = typer.Argument(..., help="Base URL of the TFM server."),
    local_folder: str = typer.Option(
        "", "--local-folder", help="The server's local library root."
    ),
    cache_dir: str = typer.Option(
        "", "--cache-dir", help="Where downloaded tracks are cached."
    ),
    page_size: int = typer.Option(100, "--page-size", help="Items per listing page."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Create the configuration file for a TFM server."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "server_url": server_url,
        "local_folder": local_folder,
        "cache_dir": cache_dir,
        "page_size": page_size,
    }
    try:
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except TfmSyncError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Try: [cyan]tfm-sync channels[/cyan]")


@app.command()
def channels(
    favorites: bool = typer.Option(
        False, "--favorites", help="List favorite channels only."
    ),
):
    """List the server's channels."""
    config = _load_config()
    if favorites:
        result = _run_with_client(config, lambda c: c.fetch_favorites())
        print_channels_table(result, title="Favorite Channels")
    else:
        result = _run_with_client(config, lambda c: c.fetch_channels())
        print_channels_table(result)


@app.command()
def favorites():
    """List favorite channels."""
    channels(favorites=True)


@app.command(name="ls")
def list_entries(
    channel_id: str = typer.Argument(..., help="Channel ID."),
    folder_id: str | None = typer.Option(
        None, "--folder", help="List a folder within the channel."
    ),
    page_size: int | None = typer.Option(
        None, "--page-size", help="Items per page (override default in config)."
    ),
):
    """List every file and folder in a channel or channel folder."""
    config = _load_config({"page_size": page_size})
    if folder_id:
        context = FolderContext(channel_id, folder_id)
    else:
        context = ChannelContext(channel_id)
    entries = _run_with_client(
        config, lambda c: c.fetch_entries(context, config.page_size)
    )
    print_entries_table(entries, title=str(context))


@app.command()
def local(
    path: str = typer.Argument("", help="Path within the server's local storage."),
    folders: bool = typer.Option(
        False, "--folders", help="Only list the folders at the local root."
    ),
):
    """Browse the server's local storage."""
    config = _load_config()
    if folders:
        result = _run_with_client(config, lambda c: c.fetch_local_folders())
        print_folders_table(result)
        return
    context = LocalContext(path)
    entries = _run_with_client(
        config, lambda c: c.fetch_entries(context, config.page_size)
    )
    print_entries_table(entries, title=str(context))


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to search for."),
    offset: int = typer.Option(0, "--offset", help="Skip this many results."),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum results."),
):
    """Search files across all channels."""
    config = _load_config()
    entries = _run_with_client(config, lambda c: c.search(query, offset, limit))
    print_entries_table(entries, title=f"Search: {query}")


@app.command()
def url(
    kind: str = typer.Argument(..., help="One of: stream, download, local."),
    first: str = typer.Argument(..., help="Channel ID, or the file path for 'local'."),
    file_id: str = typer.Argument("", help="File ID (stream and download only)."),
):
    """Print a stream or download URL without contacting the server."""
    config = _load_config()
    client = _make_client(config)
    if kind == "local":
        console.print(client.local_stream_url(first), soft_wrap=True)
    elif kind in ("stream", "download") and file_id:
        builder = client.stream_url if kind == "stream" else client.download_url
        console.print(builder(first, file_id), soft_wrap=True)
    else:
        console.print(
            "[red]✗ Use 'url stream|download <CHANNEL> <FILE>' or 'url local <PATH>'.[/red]"
        )
        raise typer.Exit(code=1)


@app.command()
def fetch(
    source_url: str = typer.Argument(..., help="Download or stream URL of the track."),
    track_id: str = typer.Option("", "--id", help="Remote file ID, names the cache file."),
    name: str = typer.Option("", "--name", help="Track file name, used for the extension."),
    size: int = typer.Option(0, "--size", help="Expected size in bytes, if known."),
    local_path: str = typer.Option(
        "", "--local-path", help="A stored local copy to prefer over the network."
    ),
    verify: bool = typer.Option(
        False, "--verify", help="Decode-check the resulting file with mutagen."
    ),
):
    """Resolve a track to a validated local file and print its path."""
    config = _load_config(require_file=False)
    cache = TrackCache(get_cache_dir(config))
    materializer = TrackMaterializer(
        cache, CacheValidatingDownloader(timeout=config.download_timeout)
    )
    source = TrackSource(
        external_id=track_id,
        name=name,
        file_url=source_url,
        local_path=local_path,
        expected_size=size,
    )

    start_time = time.monotonic()
    try:
        with console.status("[cyan]Fetching track...[/cyan]"):
            path = materializer.materialize(source)
    except TfmSyncError as e:
        print_summary_panel(materializer.stats, time.monotonic() - start_time)
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    print_summary_panel(materializer.stats, time.monotonic() - start_time)
    if verify and not FileIntegrityChecker.check_audio(str(path)):
        console.print(f"[yellow]⚠️  {path} did not pass the decode check.[/yellow]")
    console.print(str(path), soft_wrap=True)


@app.command()
def cache(
    clear: bool = typer.Option(False, "--clear", help="Delete every cached track."),
):
    """Show or clear the track cache."""
    config = _load_config(require_file=False)
    track_cache = TrackCache(get_cache_dir(config))
    if clear:
        files_count = len(track_cache.entries())
        if track_cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({files_count} tracks removed"
                ").[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
            raise typer.Exit(code=1)
        return
    print_cache_info(
        track_cache.cache_dir, len(track_cache.entries()), track_cache.total_size()
    )


@app.command()
def validate():
    """Validate the current configuration."""
    config = _load_config()
    if not config.is_configured:
        console.print("[red]✗ Configuration is invalid: server_url is not set.[/red]")
        raise typer.Exit(code=1)
    print_validation_table(config, get_cache_dir(config))


@app.command()
def diagnose():
    """Diagnose common configuration and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print("[red]✗ Config file not found.[/] Run [cyan]tfm-sync init[/cyan].")
        raise typer.Exit(code=1)

    config = _load_config()
    console.print("[green]✓[/] Configuration file is valid and can be loaded.")
    console.print(f"\n[dim]Testing connectivity to {config.server_url}...[/dim]")
    _run_with_client(config, lambda c: c.check_connection())
    console.print("[green]✓[/] Successfully connected to the TFM server.")
    console.print("\n[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n")
