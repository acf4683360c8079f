"""
Shared CLI state: Typer apps, console, options, and utilities.
"""

from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.console import Console

from ..session_store import JsonSessionStore, SessionRecord

# Main app
app = typer.Typer(
    name="ccremote",
    help="Keep Claude Code sessions running through usage limits and approval prompts",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Daemons subcommand group
daemons_app = typer.Typer(
    name="daemons",
    help="Inspect and stop monitor workers.",
    no_args_is_help=False,
    invoke_without_command=True,
)
app.add_typer(daemons_app, name="daemons")

# Console for rich output
console = Console()

ChannelOption = Annotated[
    Optional[str],
    typer.Option("--channel", "-c", help="Discord channel id for this session's notifications"),
]

NameOption = Annotated[
    Optional[str],
    typer.Option("--name", "-n", help="Display name (default: session-N)"),
]


def _get_store() -> JsonSessionStore:
    return JsonSessionStore()


def _get_supervisor():
    from ..daemon_supervisor import DaemonSupervisor
    return DaemonSupervisor()


def _get_terminal():
    from ..implementations import RealTmux
    return RealTmux()


def _resolve_session(store: JsonSessionStore, session: str) -> SessionRecord:
    """Find a session by id or name, or exit with an error."""
    record = store.resolve(session)
    if record is None:
        rprint(f"[red]Session not found:[/red] {session}")
        raise typer.Exit(1)
    return record
