"""
In-memory implementations of the protocol interfaces for tests.

MockTerminalBridge keeps pane text per session and records every key sent;
MockNotifier records notifications and lets tests inject replies;
MockSessionStore keeps records in a dict.
"""

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import SessionNotFoundError, TerminalError
from .protocols import Notification, OptionHandler
from .session_store import SessionRecord


class MockTerminalBridge:
    """Fake tmux: pane content is whatever the test last set."""

    def __init__(self):
        self.panes: Dict[str, str] = {}
        self.colored: Dict[str, str] = {}
        self.sent: List[Tuple[str, str, str]] = []
        self.available = True
        # Number of upcoming captures that raise TerminalError
        self.fail_captures = 0
        # Called after each continuation command; may change pane content
        self.on_continue: Optional[Callable[[str], None]] = None

    def set_pane_content(self, name: str, text: str, colored: Optional[str] = None) -> None:
        self.panes[name] = text
        if colored is not None:
            self.colored[name] = colored
        else:
            self.colored.pop(name, None)

    def append_pane_content(self, name: str, text: str) -> None:
        self.set_pane_content(name, self.panes.get(name, "") + text)

    def sent_of_kind(self, kind: str) -> List[Tuple[str, str, str]]:
        return [s for s in self.sent if s[1] == kind]

    def _require(self, name: str) -> None:
        if name not in self.panes:
            raise TerminalError(f"tmux session not found: {name}")

    def is_available(self) -> bool:
        return self.available

    def create_session(self, name: str, cwd: Optional[str] = None, command: str = "claude") -> None:
        if name in self.panes:
            raise TerminalError(f"duplicate session: {name}")
        self.panes[name] = ""
        self.sent.append((name, "create", command))

    def session_exists(self, name: str) -> bool:
        return name in self.panes

    def kill_session(self, name: str) -> None:
        self.panes.pop(name, None)
        self.colored.pop(name, None)

    def list_sessions(self) -> List[str]:
        return list(self.panes)

    def capture_pane(self, name: str) -> str:
        if self.fail_captures > 0:
            self.fail_captures -= 1
            raise TerminalError(f"capture-pane of {name} failed")
        self._require(name)
        return self.panes[name]

    def capture_pane_with_colors(self, name: str) -> str:
        self._require(name)
        return self.colored.get(name, self.panes[name])

    def send_keys(self, name: str, text: str) -> None:
        self._require(name)
        self.sent.append((name, "keys", text))

    def send_raw_keys(self, name: str, text: str) -> None:
        self._require(name)
        self.sent.append((name, "raw", text))

    def send_continue_command(self, name: str, command: str = "continue") -> None:
        self._require(name)
        self.sent.append((name, "continue", command))
        if self.on_continue:
            self.on_continue(name)

    def send_option_selection(self, name: str, option: int) -> None:
        self._require(name)
        self.sent.append((name, "option", str(option)))


class MockNotifier:
    """Records notifications; replies are queued with queue_reply."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[str, Notification]] = []
        self.fail = fail
        self.raise_on_send: Optional[Exception] = None
        self.handlers: List[OptionHandler] = []
        self.pending_replies: List[Tuple[str, int]] = []
        self.watched: List[str] = []
        self.closed = False

    def kinds(self) -> List[str]:
        return [n.kind for _, n in self.sent]

    def send_notification(self, session_id: str, notification: Notification) -> bool:
        if self.raise_on_send is not None:
            raise self.raise_on_send
        if self.fail:
            return False
        self.sent.append((session_id, notification))
        return True

    def on_option_selected(self, handler: OptionHandler) -> None:
        self.handlers.append(handler)

    def watch_session(self, session_id: str) -> bool:
        self.watched.append(session_id)
        return True

    def queue_reply(self, session_id: str, option: int) -> None:
        self.pending_replies.append((session_id, option))

    def poll_replies(self) -> int:
        replies, self.pending_replies = self.pending_replies, []
        for session_id, option in replies:
            for handler in self.handlers:
                handler(session_id, option)
        return len(replies)

    def close(self) -> None:
        self.closed = True


class MockSessionStore:
    """SessionStore over a dict."""

    def __init__(self, records: Optional[List[SessionRecord]] = None):
        self.records: Dict[str, SessionRecord] = {r.id: r for r in (records or [])}
        self.update_calls: List[Tuple[str, Dict[str, Any]]] = []
        # Number of upcoming update calls that raise OSError
        self.fail_updates = 0

    def add(self, record: SessionRecord) -> SessionRecord:
        self.records[record.id] = record
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self.records.get(session_id)

    def update(self, session_id: str, **fields: Any) -> SessionRecord:
        if self.fail_updates > 0:
            self.fail_updates -= 1
            raise OSError("disk full")
        if session_id not in self.records:
            raise SessionNotFoundError(session_id)
        self.update_calls.append((session_id, fields))
        record = replace(self.records[session_id], **fields, last_activity=datetime.now())
        self.records[session_id] = record
        return record

    def list(self) -> List[SessionRecord]:
        return list(self.records.values())


class MockDaemonLogger:
    """Collects log lines by level instead of printing them."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []
        self.events: List[Any] = []

    def _add(self, level: str, message: str) -> None:
        self.messages.append((level, message))

    def info(self, message: str) -> None:
        self._add("info", message)

    def warn(self, message: str) -> None:
        self._add("warn", message)

    def error(self, message: str) -> None:
        self._add("error", message)

    def success(self, message: str) -> None:
        self._add("success", message)

    def debug(self, message: str) -> None:
        self._add("debug", message)

    def section(self, title: str) -> None:
        self._add("section", title)

    def event(self, event: Any) -> None:
        self.events.append(event)

    def text(self, level: Optional[str] = None) -> str:
        return "\n".join(m for lvl, m in self.messages if level is None or lvl == level)
