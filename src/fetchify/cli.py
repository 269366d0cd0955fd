"""CLI module for fetchify."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from fetchify import __version__
from fetchify.browser.browser import Browser
from fetchify.browser.profile import BrowserConfig
from fetchify.config import CONFIG
from fetchify.exceptions import FetchifyError
from fetchify.fetchers.playlist import fetch_playlist
from fetchify.fetchers.track import fetch_track
from fetchify.fetchers.views import PlaylistStats

console = Console()
err_console = Console(stderr=True)

TRACK_URL_MARKER = "open.spotify.com/track/"
PLAYLIST_URL_MARKER = "open.spotify.com/playlist/"

FEATURES = [
    "Fetch track information from playlists",
    "Fetch track information from tracks",
    "Export to JSON format",
    "Configurable track limits",
    "Fetch track cover",
    "Fetch track metadata",
    "Capture page screenshots",
]


def _setup_logging(verbose: bool) -> None:
    """Configure root logging from the environment and the verbose flag."""
    level_name = "debug" if verbose else CONFIG.LOGGING_LEVEL
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    cdp_level = getattr(logging, CONFIG.CDP_LOGGING_LEVEL, logging.WARNING)
    for name in ("fetchify.browser.transport", "fetchify.browser.session", "websockets", "httpx"):
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else cdp_level)


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_amount(amount: str) -> Optional[int]:
    """Parse the ``--amount`` option; ``auto`` means no limit.

    Raises:
        click.BadParameter: Not a positive integer or ``auto``.
    """
    if amount == "auto":
        return None
    try:
        value = int(amount)
    except ValueError:
        value = 0
    if value <= 0:
        raise click.BadParameter('Amount must be a positive number or "auto"')
    return value


def _emit(payload: dict[str, Any], output: Optional[str], label: str) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        console.print(f"[green]{label} data saved to: {path}[/green]")
    else:
        click.echo(text)


def _run(coro_factory, description: str):
    """Run a coroutine under a spinner, turning library errors into exit code 1."""

    async def execute():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=err_console,
            transient=True,
        ) as progress:
            progress.add_task(description=description, total=None)
            return await coro_factory()

    try:
        return asyncio.run(execute())
    except FetchifyError as e:
        _fail(str(e))


@click.group()
@click.version_option(version=__version__, prog_name="fetchify")
def cli():
    """Fetchify - fetch playlist and track data without the official API."""
    pass


@cli.command()
@click.argument("url")
@click.option("--output", "-o", default=None, help="Output file (JSON format)")
@click.option("--metadata", "-m", is_flag=True, help="Fetch album and release date")
@click.option("--cover", "-c", is_flag=True, help="Fetch cover image URL")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def track(url: str, output: Optional[str], metadata: bool, cover: bool, headless: bool, verbose: bool):
    """Fetch a single track.

    Example:
        >>> fetchify track https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC -m -c
    """
    _setup_logging(verbose)

    if TRACK_URL_MARKER not in url:
        _fail("Please provide a valid Spotify track URL")

    if verbose:
        console.print(Panel.fit(f"[bold blue]fetchify[/bold blue]\nURL: {url}", title="Starting track fetch"))

    config = BrowserConfig.from_env(headless=headless)
    result = _run(lambda: fetch_track(url, metadata=metadata, cover=cover, config=config), "Fetching track...")

    if verbose:
        console.print(f"[green]Successfully fetched track: {result.title} by {result.artist}[/green]")
        if result.album:
            console.print(f"Album: {result.album}")
        if result.release_date:
            console.print(f"Released: {result.release_date}")

    payload = {
        "track": result.model_dump(exclude_none=True),
        "fetchedAt": _now_iso(),
        "options": {"metadata": metadata, "cover": cover},
    }
    _emit(payload, output, "Track")


@cli.command()
@click.argument("url")
@click.option("--output", "-o", default=None, help="Output file (JSON format)")
@click.option("--amount", "-a", default="auto", help='Amount of tracks to fetch (default: "auto")')
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def playlist(url: str, output: Optional[str], amount: str, headless: bool, verbose: bool):
    """Fetch the tracks of a playlist.

    In auto mode the page is scrolled until every row has loaded.
    """
    _setup_logging(verbose)

    if PLAYLIST_URL_MARKER not in url:
        _fail("Please provide a valid Spotify playlist URL")

    try:
        limit = _parse_amount(amount)
    except click.BadParameter as e:
        _fail(e.message)

    if verbose:
        console.print(Panel.fit(
            f"[bold blue]fetchify[/bold blue]\nURL: {url}\nAmount: {amount}",
            title="Starting playlist fetch",
        ))

    config = BrowserConfig.from_env(headless=headless)
    tracks = _run(lambda: fetch_playlist(url, limit, config=config), "Fetching playlist...")

    if verbose:
        console.print(f"[green]Successfully fetched {len(tracks)} tracks[/green]")

    payload = {
        "tracks": [t.model_dump(exclude_none=True) for t in tracks],
        "fetchedAt": _now_iso(),
        "stats": PlaylistStats.from_tracks(tracks).model_dump(by_alias=True),
    }
    _emit(payload, output, "Playlist")


@cli.command()
@click.argument("url")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--wait-until", type=click.Choice(["load", "domcontentloaded", "networkidle"]), default="load")
@click.option("--timeout", type=int, default=None, help="Navigation timeout in milliseconds")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def screenshot(url: str, path: str, wait_until: str, timeout: Optional[int], headless: bool, verbose: bool):
    """Load URL and save a PNG screenshot to PATH."""
    _setup_logging(verbose)

    async def capture():
        async with Browser(BrowserConfig.from_env(headless=headless)) as browser:
            await browser.goto(url, wait_until=wait_until, timeout=timeout)
            await browser.screenshot(path)

    _run(capture, "Capturing screenshot...")
    console.print(f"[green]Screenshot saved to: {path}[/green]")


@cli.command()
def info():
    """Show information about fetchify."""
    console.print(Panel.fit(
        "Fetch playlist and track data without using the official API\n\n"
        + "\n".join(f"- {feature}" for feature in FEATURES),
        title=f"fetchify {__version__}",
    ))


def main():
    """Main entry point for CLI.

    Example:
        >>> # From command line:
        >>> fetchify playlist https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M -a 20
        >>> fetchify info
    """
    cli()


if __name__ == "__main__":
    main()
