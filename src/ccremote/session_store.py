"""
Durable session records.

Sessions live in one JSON file shared by the CLI and every monitor worker.
Each mutation is a locked read-modify-write of the whole document, written
to a temp file and renamed into place, so readers never see a partial file.
"""

import fcntl
import json
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import SessionNotFoundError, StoreError
from .settings import get_sessions_path
from .status_constants import ALL_STATUSES, STATUS_ACTIVE

SESSION_ID_PREFIX = "ccremote-"
_SESSION_ID_RE = re.compile(rf"^{SESSION_ID_PREFIX}(\d+)$")


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class QuotaSchedule:
    """Daily command that opens the usage window at a fixed time."""

    time: str
    command: str
    next_execution: datetime

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "command": self.command,
            "next_execution": self.next_execution.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuotaSchedule":
        return cls(
            time=data["time"],
            command=data["command"],
            next_execution=datetime.fromisoformat(data["next_execution"]),
        )


@dataclass
class SessionRecord:
    """Persisted metadata for one supervised session."""

    id: str
    name: str
    tmux_session: str
    channel_id: str = ""
    status: str = STATUS_ACTIVE
    created: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    working_directory: str = ""
    quota_schedule: Optional[QuotaSchedule] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tmux_session": self.tmux_session,
            "channel_id": self.channel_id,
            "status": self.status,
            "created": self.created.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "working_directory": self.working_directory,
            "quota_schedule": self.quota_schedule.to_dict() if self.quota_schedule else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        quota = data.get("quota_schedule")
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            tmux_session=data.get("tmux_session", data["id"]),
            channel_id=data.get("channel_id") or "",
            status=data.get("status", STATUS_ACTIVE),
            created=_parse_dt(data.get("created")) or datetime.now(),
            last_activity=_parse_dt(data.get("last_activity")) or datetime.now(),
            working_directory=data.get("working_directory", ""),
            quota_schedule=QuotaSchedule.from_dict(quota) if quota else None,
        )


_UPDATABLE = {f.name for f in fields(SessionRecord)} - {"id", "created", "last_activity"}


class JsonSessionStore:
    """SessionStore backed by a single JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_sessions_path()
        self._lock_path = self.path.with_suffix(self.path.suffix + ".lock")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_fd = open(self._lock_path, "w")
        except OSError as e:
            raise StoreError(f"Cannot open session store lock {self._lock_path}: {e}") from e
        with lock_fd:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)

    def _read(self) -> Dict[str, SessionRecord]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read session store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Session store {self.path} is not a JSON object")
        try:
            return {sid: SessionRecord.from_dict(raw) for sid, raw in data.items()}
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Corrupt session record in {self.path}: {e}") from e

    def _write(self, sessions: Dict[str, SessionRecord]) -> None:
        temp_path = self.path.with_suffix(".tmp")
        try:
            with open(temp_path, "w") as f:
                json.dump({sid: s.to_dict() for sid, s in sessions.items()}, f, indent=2)
            os.replace(temp_path, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write session store {self.path}: {e}") from e

    # --- SessionStore protocol ---

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._locked():
            return self._read().get(session_id)

    def update(self, session_id: str, **updates: Any) -> SessionRecord:
        unknown = set(updates) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        if "status" in updates and updates["status"] not in ALL_STATUSES:
            raise ValueError(f"Invalid session status: {updates['status']}")
        with self._locked():
            sessions = self._read()
            if session_id not in sessions:
                raise SessionNotFoundError(session_id)
            record = replace(sessions[session_id], **updates, last_activity=datetime.now())
            sessions[session_id] = record
            self._write(sessions)
            return record

    def list(self) -> List[SessionRecord]:
        with self._locked():
            return sorted(self._read().values(), key=lambda s: s.created)

    # --- management ---

    def create(
        self,
        name: Optional[str] = None,
        channel_id: str = "",
        working_directory: Optional[str] = None,
        quota_schedule: Optional[QuotaSchedule] = None,
    ) -> SessionRecord:
        """Create a record with the next free ccremote-N id.

        The tmux session is named after the id; the display name defaults
        to session-N.
        """
        with self._locked():
            sessions = self._read()
            number = next_session_number(sessions.keys())
            session_id = f"{SESSION_ID_PREFIX}{number}"
            now = datetime.now()
            record = SessionRecord(
                id=session_id,
                name=name or f"session-{number}",
                tmux_session=session_id,
                channel_id=channel_id,
                status=STATUS_ACTIVE,
                created=now,
                last_activity=now,
                working_directory=working_directory or os.getcwd(),
                quota_schedule=quota_schedule,
            )
            sessions[session_id] = record
            self._write(sessions)
            return record

    def get_by_name(self, name: str) -> Optional[SessionRecord]:
        for record in self.list():
            if record.name == name:
                return record
        return None

    def resolve(self, id_or_name: str) -> Optional[SessionRecord]:
        """Look a session up by id, falling back to its display name."""
        return self.get(id_or_name) or self.get_by_name(id_or_name)

    def delete(self, session_id: str) -> None:
        with self._locked():
            sessions = self._read()
            if session_id not in sessions:
                raise SessionNotFoundError(session_id)
            del sessions[session_id]
            self._write(sessions)


def next_session_number(session_ids) -> int:
    """One more than the highest ccremote-N number in use (1 if none)."""
    numbers = []
    for sid in session_ids:
        match = _SESSION_ID_RE.match(sid)
        if match:
            numbers.append(int(match.group(1)))
    return max(numbers, default=0) + 1
