"""
Discord notifications over the REST API.

DiscordNotifier posts one message per notification to the session's
channel and polls the same channel for replies. A reply of "2" (or
"approve"/"deny") from an authorized user selects that option in the
session's approval dialog.

Delivery is retried with exponential backoff for transient failures
(network errors, rate limits, 5xx). Authentication and permission errors
fail immediately.
"""

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from .config import DiscordConfig
from .detection_patterns import DetectionPatterns, get_patterns
from .errors import NotificationError
from .pattern_detectors import parse_option_reply
from .protocols import Notification, OptionHandler, SessionStore
from .status_constants import (
    NOTIFY_APPROVAL,
    NOTIFY_CONTINUED,
    NOTIFY_ERROR,
    NOTIFY_LIMIT,
    NOTIFY_QUOTA,
    NOTIFY_SESSION_ENDED,
    get_notification_emoji,
)

DISCORD_API_BASE = "https://discord.com/api/v10"
MAX_MESSAGE_LENGTH = 2000
REPLY_FETCH_LIMIT = 50
PERMANENT_STATUS_CODES = {400, 401, 403, 404}

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Backoff settings (seconds)."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


# Notifications are sent from inside the poll loop; keep the worst case short
NOTIFY_RETRY = RetryPolicy(max_retries=2)


def is_retryable_error(error: Exception) -> bool:
    """Network errors, 429 and 5xx are worth retrying; everything else is not."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in PERMANENT_STATUS_CODES:
            return False
        return status == 429 or status >= 500
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, NotificationError):
        return error.retryable
    return False


def backoff_delay(attempt: int, policy: RetryPolicy, rand: Callable[[], float] = random.random) -> float:
    """Exponential delay for attempt (0-based) with up to 10% jitter, capped."""
    delay = policy.base_delay * (2 ** attempt)
    delay += delay * 0.1 * rand()
    return min(delay, policy.max_delay)


def _retry_after(error: Exception) -> Optional[float]:
    if isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429:
        try:
            return float(error.response.json().get("retry_after"))
        except (ValueError, TypeError, AttributeError):
            return None
    return None


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
    log=None,
) -> T:
    """Run operation, retrying transient failures.

    Raises:
        The last error once retries are exhausted, or the first
        non-retryable error.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except (httpx.HTTPError, NotificationError) as e:
            if not is_retryable_error(e) or attempt >= policy.max_retries:
                raise
            delay = _retry_after(e)
            if delay is None:
                delay = backoff_delay(attempt, policy)
            delay = min(delay, policy.max_delay)
            if log:
                log.warn(f"Discord request failed ({e}); retrying in {delay:.1f}s")
            sleep(delay)
            attempt += 1


def truncate_message(content: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(content) <= limit:
        return content
    return content[:limit - 1] + "…"


def format_notification(notification: Notification) -> str:
    """Render a notification as a Discord message."""
    kind = notification.kind
    meta = notification.metadata
    header = f"{get_notification_emoji(kind)} **{notification.session_name}**"

    if kind == NOTIFY_LIMIT:
        body = f"{header} - Usage limit reached\nResets: {meta.get('reset_time') or 'unknown'}"
        if notification.message:
            body += f"\n\n{notification.message}"
    elif kind == NOTIFY_CONTINUED:
        body = f"{header} - Session resumed"
    elif kind == NOTIFY_APPROVAL:
        lines = [f"{header} - Approval Required", f"Tool: {meta.get('tool', 'Unknown')}"]
        if meta.get("action"):
            lines.append(f"Action: {meta['action']}")
        if meta.get("command"):
            lines.append(f"```\n{meta['command']}\n```")
        if notification.message:
            lines.append(f"\n{notification.message}")
        for option in meta.get("options") or []:
            line = f"**{option['number']}.** {option['label']}"
            if option.get("shortcut"):
                line += f" ({option['shortcut']})"
            lines.append(line)
        lines.append("\nReply with an option number.")
        body = "\n".join(lines)
    elif kind == NOTIFY_ERROR:
        body = f"{header} - Error\n\n{notification.message}"
    elif kind == NOTIFY_SESSION_ENDED:
        body = f"{header} - Session ended"
        if notification.message:
            body += f"\n\n{notification.message}"
    elif kind == NOTIFY_QUOTA:
        body = f"{header} - Quota window started\nNext: {meta.get('next_execution') or 'unknown'}"
    else:
        body = f"{header}\n\n{notification.message}"
    return truncate_message(body)


class DiscordNotifier:
    """NotificationSink posting to Discord channels via the REST API."""

    def __init__(
        self,
        config: DiscordConfig,
        store: Optional[SessionStore] = None,
        client: Optional[httpx.Client] = None,
        retry: RetryPolicy = NOTIFY_RETRY,
        patterns: Optional[DetectionPatterns] = None,
        log=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.store = store
        self.retry = retry
        self.patterns = patterns or get_patterns()
        self.log = log
        self._sleep = sleep
        self._client = client or httpx.Client(
            base_url=DISCORD_API_BASE,
            headers={
                "Authorization": f"Bot {config.bot_token}",
                "User-Agent": "ccremote (https://github.com/ccremote/ccremote)",
            },
            timeout=10.0,
        )
        self._handlers: List[OptionHandler] = []
        # channel id -> session id
        self._watched: Dict[str, str] = {}
        # channel id -> newest message id already seen
        self._last_seen: Dict[str, Optional[str]] = {}

    def _warn(self, message: str) -> None:
        if self.log:
            self.log.warn(message)

    def channel_for(self, session_id: str) -> Optional[str]:
        """The session's own channel, else the configured default."""
        if self.store is not None:
            record = self.store.get(session_id)
            if record is not None and record.channel_id:
                return record.channel_id
        return self.config.channel_id

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        def operation():
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            try:
                return response.json()
            except ValueError as e:
                raise NotificationError(f"Invalid response from Discord: {e}", retryable=False) from e
        return with_retry(operation, self.retry, sleep=self._sleep, log=self.log)

    def send_notification(self, session_id: str, notification: Notification) -> bool:
        channel = self.channel_for(session_id)
        if not channel:
            self._warn(f"No Discord channel for session {session_id}; dropping {notification.kind}")
            return False
        try:
            message = self._request(
                "POST", f"/channels/{channel}/messages",
                json={"content": format_notification(notification)},
            )
        except (httpx.HTTPError, NotificationError) as e:
            self._warn(f"Discord notification failed: {e}")
            return False
        if channel in self._watched and isinstance(message, dict) and message.get("id"):
            self._advance(channel, message["id"])
        return True

    def on_option_selected(self, handler: OptionHandler) -> None:
        self._handlers.append(handler)

    def watch_session(self, session_id: str) -> bool:
        """Start relaying replies posted in the session's channel.

        Replies already in the channel are skipped.
        """
        channel = self.channel_for(session_id)
        if not channel:
            return False
        self._watched[channel] = session_id
        self._last_seen[channel] = None
        try:
            latest = self._request("GET", f"/channels/{channel}/messages", params={"limit": 1})
        except (httpx.HTTPError, NotificationError) as e:
            self._warn(f"Cannot read Discord channel {channel}: {e}")
            return True
        if latest:
            self._last_seen[channel] = latest[0]["id"]
        return True

    def _advance(self, channel: str, message_id: str) -> None:
        current = self._last_seen.get(channel)
        if current is None or int(message_id) > int(current):
            self._last_seen[channel] = message_id

    def poll_replies(self) -> int:
        dispatched = 0
        allowed = set(self.config.allowed_user_ids())
        for channel, session_id in list(self._watched.items()):
            params: Dict[str, Any] = {"limit": REPLY_FETCH_LIMIT}
            after = self._last_seen.get(channel)
            if after is not None:
                params["after"] = after
            try:
                messages = self._request("GET", f"/channels/{channel}/messages", params=params)
            except (httpx.HTTPError, NotificationError) as e:
                self._warn(f"Cannot poll Discord replies: {e}")
                continue
            if after is None:
                # No baseline yet: remember where we are, act on nothing
                if messages:
                    self._advance(channel, max(messages, key=lambda m: int(m["id"]))["id"])
                continue
            for message in sorted(messages, key=lambda m: int(m["id"])):
                self._advance(channel, message["id"])
                author = message.get("author") or {}
                if author.get("bot") or str(author.get("id")) not in allowed:
                    continue
                option = parse_option_reply(message.get("content", ""), self.patterns)
                if option is None:
                    continue
                for handler in self._handlers:
                    handler(session_id, option)
                dispatched += 1
        return dispatched

    def close(self) -> None:
        self._client.close()
