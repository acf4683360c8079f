"""
Timing decisions for resuming sessions after a usage limit.

Reset-time parsing, cooldown arithmetic and daily quota-window scheduling.
Pure functions take the current time as an argument; ContinuationScheduler
bundles them with the configured limits for the session monitor.
"""

from datetime import datetime, timedelta
from typing import Optional

from .detection_patterns import DetectionPatterns, get_patterns
from .settings import MONITOR


def parse_time_of_day(text: str, patterns: DetectionPatterns = None) -> Optional[tuple]:
    """Parse "3pm", "3:45 PM", "15:30" or "9" into (hour, minute).

    Without am/pm the hour is read on a 24-hour clock. 12am is midnight and
    12pm is noon.

    Returns:
        (hour, minute), or None if the text is not a valid time
    """
    if patterns is None:
        patterns = get_patterns()
    match = patterns.time_of_day_re.match(text.strip())
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    period = (match.group(3) or "").lower()

    if period:
        if not 1 <= hour <= 12:
            return None
        if period == "pm" and hour != 12:
            hour += 12
        elif period == "am" and hour == 12:
            hour = 0
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        return None
    return hour, minute


def next_occurrence(hour: int, minute: int, now: datetime) -> datetime:
    """The next instant strictly after now with the given clock time."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def parse_reset_time(
    text: str,
    now: datetime,
    max_hours: float = MONITOR.max_reset_hours,
    patterns: DetectionPatterns = None,
) -> Optional[datetime]:
    """Turn reset time text into an absolute instant.

    Times already past today roll over to tomorrow. Anything further away
    than max_hours is rejected, since no usage window lasts that long and
    the text was probably not a reset time.

    Pure function - no side effects, fully testable.

    Args:
        text: Time text as extracted from the banner, e.g. "3:45pm"
        now: Current time
        max_hours: Upper bound on the distance from now

    Returns:
        The reset instant, or None if unparseable or out of range
    """
    parsed = parse_time_of_day(text, patterns)
    if parsed is None:
        return None
    reset_at = next_occurrence(parsed[0], parsed[1], now)
    if reset_at - now > timedelta(hours=max_hours):
        return None
    return reset_at


def cooldown_remaining(
    last_continuation: Optional[datetime],
    now: datetime,
    cooldown_seconds: float = MONITOR.cooldown_seconds,
) -> float:
    """Seconds left before another continuation may be attempted (0 if none)."""
    if last_continuation is None:
        return 0.0
    elapsed = (now - last_continuation).total_seconds()
    return max(0.0, cooldown_seconds - elapsed)


def generate_quota_message(execute_at: datetime) -> str:
    """Text typed into the session to open the usage window at execute_at."""
    when = execute_at.strftime("%Y-%m-%d %H:%M")
    return f"🕕 This message will be sent at {when} to ensure the quota window starts at that time."


def first_quota_execution(time_text: str, now: datetime, patterns: DetectionPatterns = None) -> Optional[datetime]:
    """First firing of a daily quota schedule given as clock text."""
    parsed = parse_time_of_day(time_text, patterns)
    if parsed is None:
        return None
    return next_occurrence(parsed[0], parsed[1], now)


def next_quota_execution(previous: datetime, now: datetime) -> datetime:
    """Next daily firing strictly after now, keeping the scheduled clock time."""
    next_at = previous + timedelta(days=1)
    while next_at <= now:
        next_at += timedelta(days=1)
    return next_at


class ContinuationScheduler:
    """Applies one session's timing limits to reset times and cooldowns."""

    def __init__(
        self,
        cooldown_seconds: float = MONITOR.cooldown_seconds,
        max_reset_hours: float = MONITOR.max_reset_hours,
        patterns: Optional[DetectionPatterns] = None,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.max_reset_hours = max_reset_hours
        self.patterns = patterns or get_patterns()

    def parse_reset(self, reset_text: str, now: datetime) -> Optional[datetime]:
        """Absolute reset instant for extracted time text, within max_reset_hours."""
        return parse_reset_time(reset_text, now, self.max_reset_hours, self.patterns)

    def cooldown_remaining(self, last_continuation: Optional[datetime], now: datetime) -> float:
        return cooldown_remaining(last_continuation, now, self.cooldown_seconds)

    def is_due(self, scheduled: Optional[datetime], now: datetime) -> bool:
        return scheduled is not None and now >= scheduled
