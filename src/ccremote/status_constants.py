"""
Status constants and mappings for ccremote.

Centralizes session statuses, monitor event types, notification kinds and
their display mappings.
"""


# =============================================================================
# Session Status Values
# =============================================================================

STATUS_ACTIVE = "active"
STATUS_WAITING = "waiting"  # Usage limit hit, continuation pending
STATUS_WAITING_APPROVAL = "waiting_approval"  # Approval dialog relayed, awaiting choice
STATUS_ENDED = "ended"  # tmux session gone; terminal

ALL_STATUSES = [
    STATUS_ACTIVE,
    STATUS_WAITING,
    STATUS_WAITING_APPROVAL,
    STATUS_ENDED,
]


# =============================================================================
# Monitor Event Types
# =============================================================================

EVENT_LIMIT_DETECTED = "limit_detected"
EVENT_CONTINUATION_SCHEDULED = "continuation_scheduled"
EVENT_CONTINUED = "continued"
EVENT_CONTINUATION_READY = "continuation_ready"
EVENT_APPROVAL_NEEDED = "approval_needed"
EVENT_APPROVAL_IGNORED = "approval_ignored"
EVENT_OPTION_SELECTED = "option_selected"
EVENT_QUOTA_STAGED = "quota_staged"
EVENT_QUOTA_EXECUTED = "quota_executed"
EVENT_SESSION_ENDED = "session_ended"
EVENT_ERROR = "error"


# =============================================================================
# Notification Kinds
# =============================================================================

NOTIFY_LIMIT = "limit"
NOTIFY_CONTINUED = "continued"
NOTIFY_APPROVAL = "approval"
NOTIFY_ERROR = "error"
NOTIFY_SESSION_ENDED = "session_ended"
NOTIFY_QUOTA = "quota"

ALL_NOTIFICATION_KINDS = [
    NOTIFY_LIMIT,
    NOTIFY_CONTINUED,
    NOTIFY_APPROVAL,
    NOTIFY_ERROR,
    NOTIFY_SESSION_ENDED,
    NOTIFY_QUOTA,
]


# =============================================================================
# Display Mappings
# =============================================================================

STATUS_EMOJIS = {
    STATUS_ACTIVE: "🟢",
    STATUS_WAITING: "🟡",
    STATUS_WAITING_APPROVAL: "🟠",
    STATUS_ENDED: "⚫",
}

STATUS_COLORS = {
    STATUS_ACTIVE: "green",
    STATUS_WAITING: "yellow",
    STATUS_WAITING_APPROVAL: "orange1",
    STATUS_ENDED: "dim",
}

NOTIFICATION_EMOJIS = {
    NOTIFY_LIMIT: "🚫",
    NOTIFY_CONTINUED: "✅",
    NOTIFY_APPROVAL: "🔐",
    NOTIFY_ERROR: "❌",
    NOTIFY_SESSION_ENDED: "🏁",
    NOTIFY_QUOTA: "🕕",
}

EVENT_STYLES = {
    EVENT_LIMIT_DETECTED: ("warn", "⏸"),
    EVENT_CONTINUATION_SCHEDULED: ("info", "⏲"),
    EVENT_CONTINUED: ("success", "▶"),
    EVENT_CONTINUATION_READY: ("info", "⏵"),
    EVENT_APPROVAL_NEEDED: ("warn", "?"),
    EVENT_APPROVAL_IGNORED: ("dim", "·"),
    EVENT_OPTION_SELECTED: ("success", "↵"),
    EVENT_QUOTA_STAGED: ("info", "…"),
    EVENT_QUOTA_EXECUTED: ("success", "⏎"),
    EVENT_SESSION_ENDED: ("highlight", "■"),
    EVENT_ERROR: ("error", "✗"),
}


def get_status_emoji(status: str) -> str:
    return STATUS_EMOJIS.get(status, "⚪")


def get_status_color(status: str) -> str:
    return STATUS_COLORS.get(status, "white")


def get_notification_emoji(kind: str) -> str:
    return NOTIFICATION_EMOJIS.get(kind, "📢")


def get_event_style(event_type: str) -> str:
    return EVENT_STYLES.get(event_type, ("event", "●"))[0]


def get_event_symbol(event_type: str) -> str:
    return EVENT_STYLES.get(event_type, ("event", "●"))[1]
