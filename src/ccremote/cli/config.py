"""
Config commands: init.
"""

from typing import Annotated

import typer
from rich import print as rprint

from ._shared import app
from ..config import (
    config_file_path,
    get_monitor_config,
    load_env_files,
    save_config,
    validate_discord_config,
)
from ..errors import ConfigError
from ..settings import MONITOR


def _default_config() -> dict:
    return {
        "monitoring": {
            "interval_ms": int(MONITOR.poll_interval * 1000),
            "max_retries": MONITOR.max_retries,
            "cooldown_seconds": int(MONITOR.cooldown_seconds),
        },
    }


def _check_config() -> None:
    load_env_files()
    try:
        monitor = get_monitor_config()
        discord = validate_discord_config()
    except ConfigError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    for warning in monitor.warnings:
        rprint(f"[yellow]Warning:[/yellow] {warning}")
    rprint("[green]✓[/green] Configuration is valid")
    rprint(f"  Poll interval:   {int(monitor.poll_interval * 1000)}ms")
    rprint(f"  Max retries:     {monitor.max_retries}")
    rprint(f"  Discord owner:   {discord.owner_id}")
    rprint(f"  Default channel: {discord.channel_id or '[dim]none[/dim]'}")


@app.command()
def init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite an existing config file")
    ] = False,
    check: Annotated[
        bool, typer.Option("--check", help="Validate the current configuration instead of writing one")
    ] = False,
):
    """Create ~/.ccremote/config.yaml with the default monitoring settings.

    Discord credentials stay in the environment or an env file
    (./ccremote.env, ./.env, ~/.ccremote.env). Use --check to verify
    that both are usable.
    """
    if check:
        _check_config()
        return

    path = config_file_path()
    if path.exists() and not force:
        rprint(f"[yellow]Config file already exists:[/yellow] {path}")
        rprint("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    save_config(_default_config())
    rprint(f"[green]✓[/green] Created config file: [bold]{path}[/bold]")
    rprint("[dim]Put CCREMOTE_DISCORD_BOT_TOKEN and CCREMOTE_DISCORD_OWNER_ID in ccremote.env, "
           "then run 'ccremote init --check'[/dim]")
