#!/usr/bin/env python3
"""
Monitor worker: the process that supervises one session.

Started detached by DaemonSupervisor as

    python -m ccremote.monitor_worker --session ccremote-3

It owns the session's PID lock, builds a SessionMonitor wired to tmux,
Discord (when configured) and the session file, and polls until the tmux
session ends, monitoring fails for good, or a signal asks it to stop.
"""

import os
import signal
import sys
import time
from pathlib import Path
from typing import Optional

from .config import MonitorConfig, get_discord_config, get_monitor_config, load_env_files
from .daemon_logging import MonitorLogger
from .errors import ConfigError
from .pid_utils import acquire_daemon_lock, remove_pid_file
from .protocols import NotificationSink, SessionStore, TerminalBridge
from .session_monitor import SessionMonitor
from .settings import get_session_log_path, get_worker_pid_path

SESSION_ENV_VAR = "CCREMOTE_SESSION_ID"


class MonitorWorker:
    """Hosts one SessionMonitor in a signal-aware poll loop."""

    def __init__(
        self,
        session_id: str,
        config: Optional[MonitorConfig] = None,
        store: Optional[SessionStore] = None,
        terminal: Optional[TerminalBridge] = None,
        notifier: Optional[NotificationSink] = None,
        log=None,
        pid_path: Optional[Path] = None,
    ):
        self.session_id = session_id
        self.config = config or get_monitor_config()
        self.log = log or MonitorLogger(get_session_log_path(session_id))
        if store is None:
            from .session_store import JsonSessionStore
            store = JsonSessionStore()
        if terminal is None:
            from .implementations import RealTmux
            terminal = RealTmux()
        self.store = store
        self.terminal = terminal
        self.notifier = notifier if notifier is not None else self._create_notifier()
        self.pid_path = pid_path or get_worker_pid_path(session_id)
        self.monitor = SessionMonitor(
            session_id,
            terminal=self.terminal,
            store=self.store,
            notifier=self.notifier,
            config=self.config,
            log=self.log,
        )
        self._shutdown = False

    def _create_notifier(self) -> Optional[NotificationSink]:
        try:
            discord = get_discord_config()
        except ConfigError as e:
            self.log.warn(f"Discord disabled: {e}")
            return None
        if discord is None:
            self.log.info("Discord not configured; notifications disabled")
            return None
        from .discord_notifier import DiscordNotifier
        return DiscordNotifier(discord, store=self.store, log=self.log)

    def request_shutdown(self, signum=None, frame=None) -> None:
        self.log.info("Shutdown signal received")
        self._shutdown = True

    def _install_signal_handlers(self) -> None:
        for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP):
            signal.signal(sig, self.request_shutdown)

    def _interruptible_sleep(self, total_seconds: float) -> None:
        """Sleep in short chunks so a shutdown request is noticed quickly."""
        chunk = 0.25
        elapsed = 0.0
        while elapsed < total_seconds and not self._shutdown:
            step = min(chunk, total_seconds - elapsed)
            time.sleep(step)
            elapsed += step

    def _on_option_selected(self, session_id: str, option: int) -> None:
        event = self.monitor.handle_option_selected(session_id, option)
        if event is not None:
            self.log.event(event)

    def run_once(self) -> None:
        """One loop iteration: tick the monitor, then relay replies."""
        for event in self.monitor.poll_once():
            self.log.event(event)
        if self.notifier is not None and self.monitor.running:
            try:
                self.notifier.poll_replies()
            except Exception as e:
                self.log.warn(f"Reply polling failed: {e}")

    def run(self) -> int:
        """Main worker loop.

        Returns:
            Process exit code: 0 when the session ended or shutdown was
            requested, 1 on a fatal monitoring error or missing session
        """
        acquired, existing_pid = acquire_daemon_lock(self.pid_path)
        if not acquired:
            if existing_pid:
                self.log.error(f"Session {self.session_id} already monitored (PID {existing_pid})")
            else:
                self.log.error("Could not acquire worker lock (another worker may be starting)")
            return 1

        self.log.section(f"Monitor {self.session_id}")
        self.log.info(f"PID: {os.getpid()}")
        self.log.info(f"Poll interval: {self.config.poll_interval}s")
        for warning in self.config.warnings:
            self.log.warn(warning)

        self._install_signal_handlers()

        try:
            session = self.store.get(self.session_id)
            if session is None:
                self.log.error(f"Session {self.session_id} not found")
                return 1
            self.log.info(f"Watching tmux session {session.tmux_session} ({session.name})")
            if self.notifier is not None:
                self.notifier.on_option_selected(self._on_option_selected)
                if not self.notifier.watch_session(self.session_id):
                    self.log.warn("No notification channel for this session; replies disabled")

            while not self._shutdown and self.monitor.running:
                self.run_once()
                if self.monitor.running:
                    self._interruptible_sleep(self.config.poll_interval)

            if self.monitor.fatal_error:
                self.log.error(f"Monitoring stopped for session {self.session_id}: {self.monitor.fatal_error}")
                return 1
            return 0
        except Exception as e:
            self.log.error(f"Monitor worker error: {e}")
            raise
        finally:
            self.log.info(f"Final status: {self.monitor.status_summary()}")
            self.log.info("Monitor worker shutting down")
            if self.notifier is not None:
                self.notifier.close()
            remove_pid_file(self.pid_path)


def main() -> int:
    """CLI entrypoint for the monitor worker."""
    import argparse

    parser = argparse.ArgumentParser(description="ccremote session monitor worker")
    parser.add_argument(
        "--session", "-s",
        default=os.environ.get(SESSION_ENV_VAR),
        help=f"Session id to monitor (default: ${SESSION_ENV_VAR})",
    )
    parser.add_argument(
        "--interval", "-i", type=int, default=None,
        help="Poll interval in milliseconds (overrides config)",
    )
    args = parser.parse_args()
    if not args.session:
        parser.error("a session id is required")
    if args.interval is not None and args.interval <= 0:
        parser.error("--interval must be positive")

    load_env_files()
    try:
        config = get_monitor_config()
        if args.interval is not None:
            config.poll_interval = args.interval / 1000.0
        worker = MonitorWorker(args.session, config=config)
    except ConfigError as e:
        print(f"ccremote worker: {e}", file=sys.stderr)
        return 1
    return worker.run()


if __name__ == "__main__":
    sys.exit(main())
