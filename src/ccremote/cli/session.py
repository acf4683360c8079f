"""
Session commands: start, schedule, resume, stop, list, status, worker.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.table import Table

from ._shared import (
    ChannelOption,
    NameOption,
    app,
    console,
    _get_store,
    _get_supervisor,
    _get_terminal,
    _resolve_session,
)
from ..config import get_discord_config, load_env_files
from ..continuation_scheduler import first_quota_execution, generate_quota_message
from ..errors import ConfigError, DaemonSpawnError, StoreError, TerminalError
from ..session_store import QuotaSchedule, SessionRecord
from ..status_constants import (
    STATUS_ACTIVE,
    STATUS_ENDED,
    STATUS_WAITING,
    STATUS_WAITING_APPROVAL,
    get_status_color,
    get_status_emoji,
)

# A session can be picked up again only while it was still being worked on
RESUMABLE_STATUSES = (STATUS_ACTIVE, STATUS_WAITING, STATUS_WAITING_APPROVAL)


def _check_discord() -> None:
    try:
        discord = get_discord_config()
    except ConfigError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    if discord is None:
        rprint("[yellow]Discord is not configured; running without notifications[/yellow]")


def _attach(record: SessionRecord, attach: bool) -> None:
    if attach:
        os.execlp("tmux", "tmux", "attach-session", "-t", record.tmux_session)
    else:
        rprint(f"[dim]Attach with: tmux attach -t {record.tmux_session}[/dim]")


def _launch_session(
    name: Optional[str],
    channel: Optional[str],
    quota: Optional[QuotaSchedule],
    attach: bool,
) -> SessionRecord:
    """Create the record and tmux session, then start its monitor worker."""
    load_env_files()
    terminal = _get_terminal()
    if not terminal.is_available():
        rprint("[red]tmux is not installed or not on PATH[/red]")
        raise typer.Exit(1)

    _check_discord()

    store = _get_store()
    if name and store.get_by_name(name):
        rprint(f"[red]A session named '{name}' already exists[/red]")
        raise typer.Exit(1)

    cwd = Path.cwd()
    record = store.create(name=name, channel_id=channel or "", working_directory=str(cwd), quota_schedule=quota)
    try:
        terminal.create_session(record.tmux_session, cwd=str(cwd))
    except TerminalError as e:
        store.delete(record.id)
        rprint(f"[red]Failed to create tmux session:[/red] {e}")
        raise typer.Exit(1)

    try:
        daemon = _get_supervisor().spawn(record.id)
    except DaemonSpawnError as e:
        rprint(f"[red]{e}[/red]")
        try:
            terminal.kill_session(record.tmux_session)
        except TerminalError as kill_error:
            rprint(f"[yellow]Could not kill tmux session:[/yellow] {kill_error}")
        store.delete(record.id)
        raise typer.Exit(1)

    rprint(f"[green]✓[/green] Started [bold]{record.name}[/bold] ({record.id})")
    rprint(f"  tmux session: {record.tmux_session}")
    rprint(f"  monitor PID:  {daemon.pid}")
    rprint(f"  log file:     [dim]{daemon.log_file}[/dim]")

    _attach(record, attach)
    return record


@app.command()
def start(
    name: NameOption = None,
    channel: ChannelOption = None,
    no_attach: Annotated[
        bool, typer.Option("--no-attach", help="Don't attach to the tmux session")
    ] = False,
):
    """Start Claude Code in a new tmux session and monitor it."""
    _launch_session(name, channel, quota=None, attach=not no_attach)


@app.command()
def schedule(
    time: Annotated[str, typer.Option("--time", "-t", help="Daily time to open the usage window, e.g. 5:00 or 6am")],
    name: NameOption = None,
    channel: ChannelOption = None,
    no_attach: Annotated[
        bool, typer.Option("--no-attach", help="Don't attach to the tmux session")
    ] = False,
):
    """Start a session that opens the usage window at a fixed time each day."""
    next_at = first_quota_execution(time, datetime.now())
    if next_at is None:
        rprint(f"[red]Invalid time:[/red] {time} (expected e.g. 5:00, 17:30 or 6am)")
        raise typer.Exit(1)
    quota = QuotaSchedule(time=time, command=generate_quota_message(next_at), next_execution=next_at)
    _launch_session(name, channel, quota=quota, attach=not no_attach)
    rprint(f"[dim]First quota window: {next_at.strftime('%Y-%m-%d %H:%M')}[/dim]")


def _find_resumable(store, terminal, session: Optional[str]) -> Optional[SessionRecord]:
    """Pick the session to resume, or None when there is nothing to do."""
    try:
        records = store.list()
        live = set(terminal.list_sessions())
    except (StoreError, TerminalError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    resumable = [r for r in records if r.tmux_session in live and r.status in RESUMABLE_STATUSES]

    if session:
        record = _resolve_session(store, session)
        if record.id not in {r.id for r in resumable}:
            rprint(f"[red]Session {record.id} exists but cannot be resumed[/red] (tmux session not found or ended)")
            raise typer.Exit(1)
        return record

    if not resumable:
        rprint("[dim]No sessions to resume[/dim]")
        gone = [r for r in records if r.status != STATUS_ENDED and r.tmux_session not in live]
        for record in gone:
            rprint(f"[dim]  {record.id}: {record.name} (tmux session {record.tmux_session} not found)[/dim]")
        return None
    if len(resumable) > 1:
        rprint("Multiple sessions can be resumed:")
        for record in resumable:
            rprint(f"  {record.id}: {record.name} ({record.status})")
        rprint("[dim]Run 'ccremote resume <session>' to pick one[/dim]")
        return None
    return resumable[0]


@app.command()
def resume(
    session: Annotated[
        Optional[str], typer.Argument(help="Session id or name (required when several can be resumed)")
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show what would be resumed without starting a monitor")
    ] = False,
    no_attach: Annotated[
        bool, typer.Option("--no-attach", help="Don't attach to the tmux session")
    ] = False,
):
    """Restart monitoring for a session whose tmux session is still running.

    Useful after a reboot of the monitor, 'ccremote daemons stop-all', or a
    worker that gave up after repeated failures. Any monitor still running
    for the session is replaced.
    """
    load_env_files()
    terminal = _get_terminal()
    store = _get_store()
    record = _find_resumable(store, terminal, session)
    if record is None:
        return

    if dry_run:
        rprint(f"Would resume {record.id}: {record.name} ({record.status}) in tmux session {record.tmux_session}")
        return

    _check_discord()
    supervisor = _get_supervisor()
    if supervisor.stop(record.id):
        rprint(f"[dim]Stopped the running monitor for {record.name}[/dim]")
    record = store.update(record.id, status=STATUS_ACTIVE)
    try:
        daemon = supervisor.spawn(record.id)
    except DaemonSpawnError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]✓[/green] Resumed [bold]{record.name}[/bold] ({record.id})")
    rprint(f"  monitor PID:  {daemon.pid}")
    rprint(f"  log file:     [dim]{daemon.log_file}[/dim]")
    _attach(record, not no_attach)


@app.command()
def stop(
    session: Annotated[str, typer.Argument(help="Session id or name")],
    keep_tmux: Annotated[
        bool, typer.Option("--keep-tmux", help="Stop monitoring but leave the tmux session running")
    ] = False,
):
    """Stop monitoring a session (and kill its tmux session)."""
    store = _get_store()
    record = _resolve_session(store, session)

    if _get_supervisor().stop(record.id):
        rprint(f"[green]✓[/green] Monitor stopped for {record.name}")
    else:
        rprint(f"[dim]No monitor running for {record.name}[/dim]")

    if not keep_tmux:
        try:
            _get_terminal().kill_session(record.tmux_session)
        except TerminalError as e:
            rprint(f"[yellow]Could not kill tmux session:[/yellow] {e}")
        store.update(record.id, status=STATUS_ENDED)
        rprint(f"[green]✓[/green] Session {record.name} ended")


def _format_age(moment: datetime) -> str:
    seconds = int((datetime.now() - moment).total_seconds())
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


@app.command("list")
def list_sessions(
    all_sessions: Annotated[
        bool, typer.Option("--all", "-a", help="Include ended sessions")
    ] = False,
):
    """List sessions and their monitors."""
    try:
        records = _get_store().list()
    except StoreError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    if not all_sessions:
        records = [r for r in records if r.status != STATUS_ENDED]
    if not records:
        rprint("[dim]No sessions[/dim]")
        return

    supervisor = _get_supervisor()
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Monitor")
    table.add_column("Last activity", style="dim")
    for record in records:
        color = get_status_color(record.status)
        daemon = supervisor.get(record.id)
        monitor = f"[green]PID {daemon.pid}[/green]" if daemon else "[dim]stopped[/dim]"
        table.add_row(
            record.id,
            record.name,
            f"{get_status_emoji(record.status)} [{color}]{record.status}[/{color}]",
            monitor,
            _format_age(record.last_activity),
        )
    console.print(table)


@app.command()
def status(session: Annotated[str, typer.Argument(help="Session id or name")]):
    """Show details for one session."""
    store = _get_store()
    record = _resolve_session(store, session)
    daemon = _get_supervisor().get(record.id)
    color = get_status_color(record.status)

    rprint(f"[bold]{record.name}[/bold] ({record.id})")
    rprint(f"  Status:       {get_status_emoji(record.status)} [{color}]{record.status}[/{color}]")
    rprint(f"  tmux session: {record.tmux_session}")
    rprint(f"  Directory:    {record.working_directory}")
    rprint(f"  Channel:      {record.channel_id or '[dim]default[/dim]'}")
    rprint(f"  Created:      {record.created.strftime('%Y-%m-%d %H:%M:%S')}")
    rprint(f"  Last active:  {_format_age(record.last_activity)}")
    if record.quota_schedule:
        quota = record.quota_schedule
        rprint(f"  Quota window: {quota.time} (next {quota.next_execution.strftime('%Y-%m-%d %H:%M')})")
    if daemon:
        rprint(f"  Monitor:      [green]running[/green] (PID {daemon.pid}, since {daemon.start_time.strftime('%H:%M:%S')})")
        rprint(f"  Log file:     [dim]{daemon.log_file}[/dim]")
    else:
        rprint("  Monitor:      [dim]not running[/dim]")


@app.command(hidden=True)
def worker(session: Annotated[str, typer.Argument(help="Session id")]):
    """Run a monitor worker in the foreground (for debugging)."""
    from ..monitor_worker import MonitorWorker

    load_env_files()
    try:
        code = MonitorWorker(session).run()
    except ConfigError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    raise typer.Exit(code)
