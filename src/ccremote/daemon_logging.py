"""
Logging for monitor workers.

Rich console output for humans running a worker in the foreground, plus a
plain timestamped log file that survives detached runs.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from rich.console import Console
from rich.theme import Theme

from .status_constants import get_event_style, get_event_symbol

if TYPE_CHECKING:
    from .session_monitor import MonitorEvent


DAEMON_THEME = Theme({
    "info": "cyan",
    "warn": "yellow",
    "error": "bold red",
    "success": "bold green",
    "event": "magenta",
    "dim": "dim white",
    "highlight": "bold white",
})


class BaseDaemonLogger:
    """Rich-based logger with pretty console output and file logging."""

    def __init__(self, log_file: Path, theme: Optional[Theme] = None):
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        self.console = Console(theme=theme or DAEMON_THEME)

    def _write_to_file(self, message: str, level: str) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        try:
            with open(self.log_file, "a") as f:
                f.write(f"[{timestamp}] [{level}] {message}\n")
        except OSError:
            pass

    def _log(self, style: str, symbol: str, message: str, level: str) -> None:
        self._write_to_file(message, level)
        now = datetime.now().strftime("%H:%M:%S")
        self.console.print(f"[dim]{now}[/dim] [{style}]{symbol}[/{style}] {message}")

    def info(self, message: str) -> None:
        self._log("info", "●", message, "INFO")

    def warn(self, message: str) -> None:
        self._log("warn", "▲", message, "WARN")

    def error(self, message: str) -> None:
        self._log("error", "✗", message, "ERROR")

    def success(self, message: str) -> None:
        self._log("success", "✓", message, "INFO")

    def debug(self, message: str) -> None:
        """File only; debug lines never reach the console."""
        self._write_to_file(message, "DEBUG")

    def section(self, title: str) -> None:
        self._write_to_file(f"=== {title} ===", "INFO")
        self.console.print()
        self.console.rule(f"[bold]{title}[/bold]", style="dim")


class MonitorLogger(BaseDaemonLogger):
    """Logger for a session monitor worker; also renders monitor events."""

    def event(self, event: "MonitorEvent") -> None:
        details = ", ".join(f"{k}={v}" for k, v in event.data.items() if v is not None)
        message = f"{event.type}: {details}" if details else event.type
        level = "ERROR" if event.type == "error" else "INFO"
        self._log(get_event_style(event.type), get_event_symbol(event.type), message, level)
