"""
Exception hierarchy for ccremote.

Poll-level failures (TerminalError, StoreError) are counted by the session
monitor and retried; DaemonSpawnError and ConfigError surface to the CLI.
"""


class CCRemoteError(Exception):
    """Base class for all ccremote errors."""


class TerminalError(CCRemoteError):
    """A tmux operation failed."""


class StoreError(CCRemoteError):
    """The session store could not be read or written."""


class SessionNotFoundError(StoreError):
    """No session record exists for the given id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class NotificationError(CCRemoteError):
    """A notification could not be delivered."""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class ConfigError(CCRemoteError):
    """Configuration is missing or invalid."""


class DaemonSpawnError(CCRemoteError):
    """A monitor worker process could not be started."""

    def __init__(self, session_id: str, cause: object):
        self.session_id = session_id
        self.cause = cause
        super().__init__(f"Failed to start monitor for session {session_id}: {cause}")
