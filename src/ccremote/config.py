"""
User configuration for ccremote.

Two sources are merged: a YAML file (~/.ccremote/config.yaml) and
CCREMOTE_* environment variables. Environment wins. Env files
(./ccremote.env, ./.env, ~/.ccremote.env) are loaded first without
overriding variables that are already set.

Example config.yaml:

    monitoring:
      interval_ms: 2000
      max_retries: 3
      cooldown_seconds: 300
    discord:
      bot_token: "..."
      owner_id: "1234"
      authorized_users: ["5678"]
      channel_id: "9012"
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .settings import MONITOR, get_config_path

# Overridable for tests; None means settings.get_config_path()
CONFIG_PATH: Optional[Path] = None

ENV_FILES = ("ccremote.env", ".env")
HOME_ENV_FILE = Path.home() / ".ccremote.env"

MIN_RECOMMENDED_INTERVAL_MS = 1000


@dataclass
class MonitorConfig:
    """Timings for one session monitor (seconds)."""

    poll_interval: float = MONITOR.poll_interval
    max_retries: int = MONITOR.max_retries
    continuation_settle_seconds: float = MONITOR.continuation_settle_seconds
    continuation_ready_delay: float = MONITOR.continuation_ready_delay
    cooldown_seconds: float = MONITOR.cooldown_seconds
    max_reset_hours: float = MONITOR.max_reset_hours
    quota_staging_delay: float = MONITOR.quota_staging_delay
    approval_tail_lines: int = MONITOR.approval_tail_lines
    initial_scan_lines: int = MONITOR.initial_scan_lines
    warnings: List[str] = field(default_factory=list)


@dataclass
class DiscordConfig:
    """Discord bot credentials and the users allowed to answer prompts."""

    bot_token: str
    owner_id: str
    authorized_users: List[str] = field(default_factory=list)
    channel_id: Optional[str] = None

    def allowed_user_ids(self) -> List[str]:
        users = [self.owner_id]
        for user in self.authorized_users:
            if user not in users:
                users.append(user)
        return users


def config_file_path() -> Path:
    """The YAML file load_config and save_config use."""
    return CONFIG_PATH if CONFIG_PATH is not None else get_config_path()


def load_config() -> Dict[str, Any]:
    """Load the YAML config file.

    Returns:
        Parsed config dict, or {} if the file is missing, unreadable,
        invalid YAML, or not a mapping.
    """
    path = config_file_path()
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: Dict[str, Any]) -> None:
    """Write the config dict to the YAML file, creating parent dirs."""
    path = config_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def load_env_files(cwd: Path = None) -> List[Path]:
    """Load env files in priority order without overriding existing vars.

    Returns:
        The env files that were found and loaded.
    """
    base = cwd or Path.cwd()
    candidates = [base / name for name in ENV_FILES] + [HOME_ENV_FILE]
    loaded = []
    for path in candidates:
        if path.is_file():
            load_dotenv(path, override=False)
            loaded.append(path)
    return loaded


def _section(name: str) -> Dict[str, Any]:
    value = load_config().get(name)
    return value if isinstance(value, dict) else {}


def _parse_number(raw: Any, name: str, cast=float):
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {name}: {raw!r}")


def _parse_user_list(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        items = str(raw).split(",")
    return [item.strip() for item in items if item.strip()]


def get_monitor_config() -> MonitorConfig:
    """Resolve monitor timings from config.yaml and CCREMOTE_* env vars.

    The polling interval is given in milliseconds in both sources. Intervals
    under one second are accepted but produce a warning.

    Raises:
        ConfigError: if a value cannot be parsed as a number.
    """
    section = _section("monitoring")
    result = MonitorConfig()

    interval_ms = os.environ.get("CCREMOTE_MONITORING_INTERVAL", section.get("interval_ms"))
    if interval_ms is not None:
        ms = _parse_number(interval_ms, "monitoring interval", int)
        if ms <= 0:
            raise ConfigError(f"Monitoring interval must be positive: {ms}")
        if ms < MIN_RECOMMENDED_INTERVAL_MS:
            result.warnings.append(
                f"Monitoring interval {ms}ms is very short; {MIN_RECOMMENDED_INTERVAL_MS}ms or more is recommended"
            )
        result.poll_interval = ms / 1000.0

    max_retries = os.environ.get("CCREMOTE_MAX_RETRIES", section.get("max_retries"))
    if max_retries is not None:
        result.max_retries = max(1, _parse_number(max_retries, "max retries", int))

    for attr, env_name in (
        ("continuation_settle_seconds", "CCREMOTE_CONTINUATION_SETTLE_SECONDS"),
        ("cooldown_seconds", "CCREMOTE_COOLDOWN_SECONDS"),
        ("quota_staging_delay", "CCREMOTE_QUOTA_STAGING_DELAY"),
    ):
        raw = os.environ.get(env_name, section.get(attr))
        if raw is not None:
            setattr(result, attr, _parse_number(raw, attr))

    return result


def get_discord_config() -> Optional[DiscordConfig]:
    """Resolve Discord settings, or None if no bot token is configured.

    Raises:
        ConfigError: if a token is present but the owner id is missing.
    """
    section = _section("discord")
    token = os.environ.get("CCREMOTE_DISCORD_BOT_TOKEN") or section.get("bot_token")
    if not token:
        return None
    owner = os.environ.get("CCREMOTE_DISCORD_OWNER_ID") or section.get("owner_id")
    if not owner:
        raise ConfigError("Missing required environment variable: CCREMOTE_DISCORD_OWNER_ID")
    authorized = os.environ.get("CCREMOTE_DISCORD_AUTHORIZED_USERS")
    if authorized is None:
        authorized = section.get("authorized_users")
    channel = os.environ.get("CCREMOTE_DISCORD_CHANNEL_ID") or section.get("channel_id")
    return DiscordConfig(
        bot_token=str(token),
        owner_id=str(owner),
        authorized_users=_parse_user_list(authorized),
        channel_id=str(channel) if channel else None,
    )


def validate_discord_config() -> DiscordConfig:
    """Like get_discord_config but a missing token is an error."""
    discord = get_discord_config()
    if discord is None:
        raise ConfigError("Missing required environment variable: CCREMOTE_DISCORD_BOT_TOKEN")
    return discord
