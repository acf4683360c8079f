"""
Daemon commands: list and stop monitor workers.
"""

import typer
from rich import print as rprint
from rich.table import Table

from ._shared import console, daemons_app, _get_supervisor


@daemons_app.callback(invoke_without_command=True)
def daemons_default(ctx: typer.Context):
    """List running monitor workers (default when no subcommand given)."""
    if ctx.invoked_subcommand is None:
        _list_daemons()


@daemons_app.command("list")
def daemons_list():
    """List running monitor workers."""
    _list_daemons()


def _list_daemons():
    daemons = _get_supervisor().list_daemons()
    if not daemons:
        rprint("[dim]No monitor workers running[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Session")
    table.add_column("PID", justify="right")
    table.add_column("Started")
    table.add_column("Log file", style="dim")
    for daemon in daemons:
        table.add_row(
            daemon.session_id,
            str(daemon.pid),
            daemon.start_time.strftime("%Y-%m-%d %H:%M:%S"),
            str(daemon.log_file),
        )
    console.print(table)


@daemons_app.command("stop-all")
def daemons_stop_all():
    """Stop every monitor worker (tmux sessions keep running)."""
    stopped = _get_supervisor().stop_all()
    if stopped:
        rprint(f"[green]✓[/green] Stopped {stopped} monitor worker(s)")
    else:
        rprint("[dim]No monitor workers running[/dim]")
