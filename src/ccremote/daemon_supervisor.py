"""
Spawning and tracking monitor workers.

DaemonSupervisor starts one detached worker process per session and keeps a
registry of them in a JSON file so that later CLI invocations can find,
list and stop workers started by earlier ones. The registry is advisory:
every load checks each recorded PID and silently drops entries whose
process is gone (or has been replaced by an unrelated process).
"""

import json
import os
import subprocess
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import DaemonSpawnError
from .pid_utils import get_process_command, is_pid_alive, stop_process
from .settings import SUPERVISOR, get_registry_path, get_session_log_path

WORKER_MODULE = "ccremote.monitor_worker"
SESSION_ENV_VAR = "CCREMOTE_SESSION_ID"


@dataclass
class DaemonRecord:
    """A running worker as remembered by the supervisor."""

    session_id: str
    pid: int
    log_file: Path
    start_time: datetime

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "workerHandle": self.pid,
            "logFile": str(self.log_file),
            "startTime": self.start_time.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DaemonRecord":
        return cls(
            session_id=data["sessionId"],
            pid=int(data["workerHandle"]),
            log_file=Path(data["logFile"]),
            start_time=datetime.fromisoformat(data["startTime"]),
        )


def is_worker_alive(pid: int) -> bool:
    """PID is alive and, where ps can tell, still runs a monitor worker."""
    if not is_pid_alive(pid):
        return False
    command = get_process_command(pid)
    if command is None:
        return True
    return WORKER_MODULE in command


class DaemonSupervisor:
    """Starts, stops and tracks one monitor worker per session."""

    def __init__(
        self,
        registry_path: Optional[Path] = None,
        python: Optional[str] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        liveness: Callable[[int], bool] = is_worker_alive,
        stopper: Callable[..., bool] = stop_process,
        spawn_grace: float = SUPERVISOR.spawn_grace_seconds,
        stop_timeout: float = SUPERVISOR.stop_timeout,
    ):
        self.registry_path = Path(registry_path) if registry_path else get_registry_path()
        self.python = python or sys.executable
        self._popen = popen
        self._is_alive = liveness
        self._stop = stopper
        self.spawn_grace = spawn_grace
        self.stop_timeout = stop_timeout
        self._daemons: Dict[str, DaemonRecord] = {}
        self.load_registry()

    # =========================================================================
    # Registry
    # =========================================================================

    def load_registry(self) -> None:
        """Reload the registry, dropping workers that are no longer alive."""
        self._daemons = {}
        if not self.registry_path.exists():
            return
        try:
            with open(self.registry_path) as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError):
            raw = []
        entries = raw if isinstance(raw, list) else []

        pruned = False
        for entry in entries:
            try:
                record = DaemonRecord.from_dict(entry)
            except (KeyError, TypeError, ValueError):
                pruned = True
                continue
            if self._is_alive(record.pid):
                self._daemons[record.session_id] = record
            else:
                pruned = True
        if pruned or len(entries) != len(self._daemons):
            self._save_registry()

    def _save_registry(self) -> None:
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.registry_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump([r.to_dict() for r in self._daemons.values()], f, indent=2)
        os.replace(temp_path, self.registry_path)

    # =========================================================================
    # Operations
    # =========================================================================

    def build_command(self, session_id: str) -> List[str]:
        return [self.python, "-m", WORKER_MODULE, "--session", session_id]

    def spawn(self, session_id: str, log_file: Optional[Path] = None) -> DaemonRecord:
        """Start the worker for session_id, replacing any existing one.

        Raises:
            DaemonSpawnError: if the process cannot be started or exits
                during the grace period
        """
        if session_id in self._daemons:
            self.stop(session_id)

        log_file = Path(log_file) if log_file else get_session_log_path(session_id)
        env = os.environ.copy()
        env[SESSION_ENV_VAR] = session_id

        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, "a") as log_fh:
                proc = self._popen(
                    self.build_command(session_id),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=log_fh,
                    env=env,
                    start_new_session=True,
                )
        except OSError as e:
            raise DaemonSpawnError(session_id, e) from e

        if self.spawn_grace > 0:
            time.sleep(self.spawn_grace)
        exit_code = proc.poll()
        if exit_code is not None:
            raise DaemonSpawnError(session_id, f"worker exited with code {exit_code} (see {log_file})")

        record = DaemonRecord(
            session_id=session_id,
            pid=proc.pid,
            log_file=log_file,
            start_time=datetime.now(),
        )
        self._daemons[session_id] = record
        self._save_registry()
        return record

    def stop(self, session_id: str) -> bool:
        """Stop a session's worker.

        Returns:
            True if a record existed, False otherwise. Stopping twice is fine.
        """
        record = self._daemons.pop(session_id, None)
        if record is None:
            return False
        if self._is_alive(record.pid):
            self._stop(record.pid, timeout=self.stop_timeout)
        self._save_registry()
        return True

    def stop_all(self) -> int:
        """Stop every tracked worker. Returns how many were stopped."""
        stopped = 0
        for session_id in list(self._daemons):
            if self.stop(session_id):
                stopped += 1
        return stopped

    def is_running(self, session_id: str) -> bool:
        record = self._daemons.get(session_id)
        return record is not None and self._is_alive(record.pid)

    def get(self, session_id: str) -> Optional[DaemonRecord]:
        return self._daemons.get(session_id)

    def list_daemons(self) -> List[DaemonRecord]:
        return sorted(self._daemons.values(), key=lambda r: r.start_time)
