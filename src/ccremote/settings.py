"""
Paths and default timings for ccremote.

All state lives under a single directory, ~/.ccremote by default. Set
CCREMOTE_STATE_DIR to relocate it (tests use this for isolation).
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path


def get_state_dir() -> Path:
    """Return the ccremote state directory (respects CCREMOTE_STATE_DIR)."""
    override = os.environ.get("CCREMOTE_STATE_DIR")
    if override:
        return Path(override)
    return Path.home() / ".ccremote"


def get_sessions_path() -> Path:
    return get_state_dir() / "sessions.json"


def get_registry_path() -> Path:
    """Path of the daemon registry mirrored by DaemonSupervisor."""
    return get_state_dir() / "daemon-pids.json"


def get_logs_dir() -> Path:
    return get_state_dir() / "logs"


def get_config_path() -> Path:
    return get_state_dir() / "config.yaml"


def get_tmux_conf_path() -> Path:
    """Optional user tmux config sourced into new sessions."""
    return get_state_dir() / "tmux.conf"


def get_worker_pid_path(session_id: str) -> Path:
    """PID lock file held by the worker that owns a session."""
    return get_state_dir() / "run" / f"{session_id}.pid"


def get_project_name(cwd: Path = None) -> str:
    """Filesystem-safe name of the project directory."""
    name = (cwd or Path.cwd()).name or "root"
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name)


def get_session_log_path(session_id: str, cwd: Path = None) -> Path:
    """Per-session worker log: <state>/logs/<project>-<session_id>.log"""
    return get_logs_dir() / f"{get_project_name(cwd)}-{session_id}.log"


@dataclass(frozen=True)
class MonitorDefaults:
    """Default timings for the session monitor (seconds unless noted)."""

    poll_interval: float = 2.0
    max_retries: int = 3
    continuation_settle_seconds: float = 3.0
    continuation_ready_delay: float = 2.0
    cooldown_seconds: float = 300.0
    max_reset_hours: float = 5.0
    quota_staging_delay: float = 10.0
    # Lines kept from the bottom of a capture when looking for a live dialog
    approval_tail_lines: int = 30
    # Lines of an existing pane scanned for a live limit when monitoring starts
    initial_scan_lines: int = 20


@dataclass(frozen=True)
class SupervisorDefaults:
    """Default timings for the daemon supervisor."""

    spawn_grace_seconds: float = 0.5
    stop_timeout: float = 5.0


MONITOR = MonitorDefaults()
SUPERVISOR = SupervisorDefaults()
