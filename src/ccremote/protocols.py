"""
Protocol definitions for external dependencies.

The session monitor only talks to tmux, the notification channel and the
session store through these interfaces, so tests can swap in the in-memory
implementations from ccremote.mocks.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from .session_store import SessionRecord


# handler(session_id, option_number)
OptionHandler = Callable[[str, int], None]


@dataclass
class Notification:
    """A message about one session, sent to the messaging channel."""

    kind: str
    session_name: str
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class TerminalBridge(Protocol):
    """Interface for tmux operations.

    Methods raise TerminalError on failure, except the existence checks
    which return False.
    """

    def is_available(self) -> bool:
        """Check that the tmux binary can be used."""
        ...

    def create_session(self, name: str, cwd: Optional[str] = None, command: str = "claude") -> None:
        """Create a detached session running command in cwd."""
        ...

    def session_exists(self, name: str) -> bool:
        ...

    def kill_session(self, name: str) -> None:
        """Kill a session. Killing a session that does not exist is not an error."""
        ...

    def list_sessions(self) -> List[str]:
        ...

    def capture_pane(self, name: str) -> str:
        """Capture the pane as plain text (no escape codes)."""
        ...

    def capture_pane_with_colors(self, name: str) -> str:
        """Capture the pane with ANSI escape codes preserved."""
        ...

    def send_keys(self, name: str, text: str) -> None:
        """Type text and submit it with Enter."""
        ...

    def send_raw_keys(self, name: str, text: str) -> None:
        """Send keys without a trailing Enter (tmux key names allowed)."""
        ...

    def send_continue_command(self, name: str, command: str = "continue") -> None:
        """Clear the input line, type the continuation command and submit it."""
        ...

    def send_option_selection(self, name: str, option: int) -> None:
        """Pick a numbered option in an interactive dialog."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Interface for the messaging channel.

    Delivery is best-effort: send_notification reports failure by
    returning False rather than raising.
    """

    def send_notification(self, session_id: str, notification: Notification) -> bool:
        ...

    def on_option_selected(self, handler: OptionHandler) -> None:
        """Register a handler for option choices relayed from the channel."""
        ...

    def watch_session(self, session_id: str) -> bool:
        """Start relaying replies for a session. False if it has no channel."""
        ...

    def poll_replies(self) -> int:
        """Fetch inbound replies and dispatch them to handlers.

        Returns:
            Number of option selections dispatched.
        """
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Interface for durable session records."""

    def get(self, session_id: str) -> Optional["SessionRecord"]:
        ...

    def update(self, session_id: str, **fields: Any) -> "SessionRecord":
        """Merge fields into a record and refresh last_activity.

        Raises:
            SessionNotFoundError: if no record exists for session_id.
        """
        ...

    def list(self) -> List["SessionRecord"]:
        ...
