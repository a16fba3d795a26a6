"""
ctfboard CLI Main Entry Point

Typer application for following the live leaderboard from a terminal and
managing the stored auth token.
"""

import asyncio
from typing import Annotated, Any

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ctfboard import __version__
from ctfboard.config import settings
from ctfboard.realtime import (
    LeaderboardSocketManager,
    LeaderboardUpdate,
    SocketHandle,
    TokenStore,
)

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)
console = Console()

app = typer.Typer(
    name="ctfboard",
    help="ctfboard - live CTF leaderboard client",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

token_app = typer.Typer(
    name="token",
    help="Manage the stored auth token",
    no_args_is_help=True,
)
app.add_typer(token_app, name="token")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(
            Panel(
                Text.from_markup(f"[bold cyan]ctfboard[/bold cyan] v{__version__}"),
                title="Version",
                border_style="cyan",
            )
        )
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
) -> None:
    """
    ctfboard - follow a CTF leaderboard in real time.
    """
    import logging

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


def _token_store() -> TokenStore:
    return TokenStore(settings.token_store_path)


def render_leaderboard(update: LeaderboardUpdate) -> Table:
    """Build a rich table for a leaderboard update."""
    title = f"Leaderboard ({update.difficulty or 'all'})"
    if update.updated_user is not None:
        title += f" - updated by {update.updated_user}"

    table = Table(title=title, border_style="cyan")
    entries = update.data

    if entries and all(isinstance(entry, dict) for entry in entries):
        # Column order follows first appearance across entries
        columns: list[str] = []
        for entry in entries:
            for key in entry:
                if key not in columns:
                    columns.append(key)
        for column in columns:
            table.add_column(column, style="white")
        for entry in entries:
            table.add_row(*(str(entry.get(column, "")) for column in columns))
    else:
        table.add_column("#", style="cyan")
        table.add_column("Entry", style="white")
        for position, entry in enumerate(entries, start=1):
            table.add_row(str(position), str(entry))

    if update.timestamp is not None:
        table.caption = f"at {update.timestamp}"
    return table


async def _listen(options: dict[str, Any], duration: float | None) -> None:
    manager = LeaderboardSocketManager()

    def _on_connect(handle: SocketHandle) -> None:
        console.print(f"[green]Connected[/green] [dim]({handle.sid})[/dim]")

    def _on_leaderboard(update: LeaderboardUpdate) -> None:
        console.print(render_leaderboard(update))

    def _on_rank_change(payload: Any) -> None:
        console.print(f"[blue]Rank change:[/blue] {payload}")

    def _on_solve(payload: Any) -> None:
        console.print(f"[magenta]New solve:[/magenta] {payload}")

    manager.on_leaderboard_update(_on_leaderboard)
    manager.on_user_rank_change(_on_rank_change)
    manager.on_new_solve(_on_solve)

    console.print(
        Panel(
            f"[cyan]Backend:[/cyan] {manager.settings.backend_url}\n"
            f"[dim]Press Ctrl+C to stop[/dim]",
            title="ctfboard",
            border_style="green",
        )
    )
    manager.connect(_on_connect, **options)

    try:
        if duration is None:
            while True:
                await asyncio.sleep(1)
        else:
            await asyncio.sleep(duration)
    finally:
        task = manager.disconnect()
        if task is not None:
            await task
        console.print("[yellow]Disconnected[/yellow]")


@app.command()
def listen(
    token: Annotated[
        str | None,
        typer.Option("--token", "-t", help="Auth token (defaults to the stored token)"),
    ] = None,
    transport: Annotated[
        list[str] | None,
        typer.Option("--transport", help="Transport to use, in order of preference: websocket, polling"),
    ] = None,
    duration: Annotated[
        float | None,
        typer.Option("--duration", "-d", help="Stop after this many seconds"),
    ] = None,
) -> None:
    """
    Follow leaderboard updates, rank changes and new solves.

    Example:
        ctfboard listen
        ctfboard listen --transport polling --duration 60
    """
    options: dict[str, Any] = {}
    if token:
        options["auth"] = {"token": token}
    if transport:
        options["transports"] = transport

    try:
        asyncio.run(_listen(options, duration))
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")


@token_app.command("set")
def set_token(
    value: Annotated[str, typer.Argument(help="Token to store")],
) -> None:
    """Store the auth token used when connecting."""
    store = _token_store()
    if not store.set(settings.token_key, value):
        console.print(f"[red]Could not write token store:[/red] {store.path}")
        raise typer.Exit(1)
    console.print(f"[green]Token stored[/green] [dim]({store.path})[/dim]")


@token_app.command("show")
def show_token() -> None:
    """Show the stored auth token."""
    value = _token_store().get(settings.token_key)
    if value is None:
        console.print("[yellow]No token stored[/yellow]")
        raise typer.Exit(1)
    console.print(value)


@token_app.command("clear")
def clear_token() -> None:
    """Remove the stored auth token."""
    if _token_store().remove(settings.token_key):
        console.print("[green]Token removed[/green]")
    else:
        console.print("[yellow]No token stored[/yellow]")


@app.command()
def info() -> None:
    """Show version and connection settings."""
    table = Table(title="ctfboard Information", show_header=False, border_style="cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Version", __version__)
    table.add_row("Backend", settings.backend_url)
    table.add_row("Socket.IO path", settings.socketio_path)
    table.add_row("Transports", ", ".join(settings.transports))
    attempts = settings.reconnection_attempts
    table.add_row("Reconnection attempts", str(attempts) if attempts else "unlimited")
    table.add_row("Reconnection delay", f"{settings.reconnection_delay}s")
    table.add_row("Connect timeout", f"{settings.connect_timeout}s")
    table.add_row("Token store", str(settings.token_store_path))

    console.print(table)


if __name__ == "__main__":
    app()
