"""
Per-session monitoring state machine.

A SessionMonitor owns the working state of one session and advances it one
tick at a time: capture the pane, diff against the previous capture,
classify the new text, and act (continue after a usage limit, relay an
approval dialog, fire the quota schedule, notice the session ending).
poll_once() returns the typed events produced by the tick; the hosting
worker decides what to do with them.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .config import MonitorConfig
from .continuation_scheduler import ContinuationScheduler, generate_quota_message, next_quota_execution
from .detection_patterns import DetectionPatterns, get_patterns
from .errors import StoreError, TerminalError
from .pattern_detectors import (
    detect_approval_dialog,
    detect_usage_limit,
    extract_approval_info,
    extract_reset_time,
    get_new_output,
    initial_scan_region,
    is_continuation_ready,
    is_interactive_dialog,
    limit_still_present,
    output_after_continue_echo,
    tail_lines,
)
from .protocols import Notification, NotificationSink, SessionStore, TerminalBridge
from .session_store import QuotaSchedule, SessionRecord
from .status_constants import (
    EVENT_APPROVAL_IGNORED,
    EVENT_APPROVAL_NEEDED,
    EVENT_CONTINUATION_READY,
    EVENT_CONTINUATION_SCHEDULED,
    EVENT_CONTINUED,
    EVENT_ERROR,
    EVENT_LIMIT_DETECTED,
    EVENT_OPTION_SELECTED,
    EVENT_QUOTA_EXECUTED,
    EVENT_QUOTA_STAGED,
    EVENT_SESSION_ENDED,
    NOTIFY_APPROVAL,
    NOTIFY_CONTINUED,
    NOTIFY_ERROR,
    NOTIFY_LIMIT,
    NOTIFY_QUOTA,
    NOTIFY_SESSION_ENDED,
    STATUS_ACTIVE,
    STATUS_ENDED,
    STATUS_WAITING,
    STATUS_WAITING_APPROVAL,
)

# Failures that count towards the retry limit; anything else is a bug
POLL_ERRORS = (TerminalError, StoreError, OSError)


@dataclass
class MonitorWorkingState:
    """Mutable state of one session's monitor. Never persisted."""

    last_output: str = ""
    awaiting_continuation: bool = False
    retry_count: int = 0
    last_continuation_time: Optional[datetime] = None
    scheduled_reset_time: Optional[datetime] = None
    immediate_continuation_attempted: bool = False
    limit_detected_at: Optional[datetime] = None
    quota_command_staged: bool = False
    quota_stage_after: Optional[datetime] = None
    last_approval_question: Optional[str] = None


@dataclass
class MonitorEvent:
    """Something that happened during a tick."""

    type: str
    session_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="seconds") if value else None


class SessionMonitor:
    """Watches one session's tmux pane and keeps it moving."""

    def __init__(
        self,
        session_id: str,
        terminal: TerminalBridge,
        store: SessionStore,
        notifier: Optional[NotificationSink] = None,
        config: Optional[MonitorConfig] = None,
        patterns: Optional[DetectionPatterns] = None,
        log=None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_id = session_id
        self.terminal = terminal
        self.store = store
        self.notifier = notifier
        self.config = config or MonitorConfig()
        self.patterns = patterns or get_patterns()
        self.log = log
        self.clock = clock
        self.sleep = sleep
        self.scheduler = ContinuationScheduler(
            cooldown_seconds=self.config.cooldown_seconds,
            max_reset_hours=self.config.max_reset_hours,
            patterns=self.patterns,
        )
        self.state = MonitorWorkingState()
        self.running = True
        self.fatal_error: Optional[str] = None
        self._session_name = session_id

        if self.log is None:
            from .daemon_logging import MonitorLogger
            from .settings import get_session_log_path
            self.log = MonitorLogger(get_session_log_path(session_id))

    # =========================================================================
    # Tick
    # =========================================================================

    def poll_once(self) -> List[MonitorEvent]:
        """Run one monitoring tick.

        Poll failures are counted; a successful tick resets the count and
        reaching max_retries stops the monitor with a fatal error event.

        Returns:
            Events produced by this tick, in order
        """
        if not self.running:
            return []
        events: List[MonitorEvent] = []
        try:
            self._tick(events)
        except POLL_ERRORS as e:
            self._record_failure(e, events)
        else:
            self.state.retry_count = 0
        return events

    def _tick(self, events: List[MonitorEvent]) -> None:
        now = self.clock()
        session = self.store.get(self.session_id)
        if session is None:
            self.running = False
            self.fatal_error = "session record not found"
            self.log.error(f"Monitoring stopped for session {self.session_id}: session record not found")
            events.append(self._event(EVENT_ERROR, fatal=True, error=self.fatal_error))
            return
        self._session_name = session.name

        if session.status == STATUS_ENDED:
            self.running = False
            return
        if not self.terminal.session_exists(session.tmux_session):
            self._end_session(session, events)
            return

        output = self.terminal.capture_pane(session.tmux_session)
        if output != self.state.last_output:
            if self.state.last_output:
                new_output = get_new_output(self.state.last_output, output)
            else:
                # First capture: scrollback may hold banners that were already handled
                new_output = initial_scan_region(output, self.config.initial_scan_lines, self.patterns)
            self.state.last_output = output
            session = self._analyze_output(session, output, new_output, now, events)

        session = self._check_scheduled_reset(session, now, events)
        self._check_quota_schedule(session, now, events)

    def _analyze_output(
        self, session: SessionRecord, output: str, new_output: str, now: datetime, events: List[MonitorEvent]
    ) -> SessionRecord:
        if detect_usage_limit(new_output, self.patterns):
            return self._on_limit_detected(session, output, new_output, now, events)
        if self.state.awaiting_continuation and is_continuation_ready(new_output, self.patterns):
            return self._on_continuation_ready(session, now, events)
        return self._check_approval(session, output, events)

    # =========================================================================
    # Usage limits
    # =========================================================================

    def _on_limit_detected(
        self, session: SessionRecord, output: str, new_output: str, now: datetime, events: List[MonitorEvent]
    ) -> SessionRecord:
        state = self.state
        if state.awaiting_continuation:
            self.log.debug("Limit message still visible; continuation already pending")
            return session
        remaining = self.scheduler.cooldown_remaining(state.last_continuation_time, now)
        if remaining > 0:
            self.log.info(f"Usage limit detected but in cooldown ({remaining:.0f}s remaining)")
            return session

        state.awaiting_continuation = True
        state.limit_detected_at = now
        self.log.warn(f"Usage limit detected in {session.name}")

        response = new_output
        if not state.immediate_continuation_attempted:
            state.immediate_continuation_attempted = True
            self.log.info("Trying to continue immediately")
            self._send_continue(session)
            self.sleep(self.config.continuation_settle_seconds)
            response = self.terminal.capture_pane(session.tmux_session)
            state.last_output = response
            if not limit_still_present(output, response, self.patterns):
                return self._continuation_succeeded(session, events, immediate=True, reason="immediate")
            self.log.info("Limit still in effect after immediate continuation")

        reset_text = self._find_reset_time(response, new_output)
        reset_at = self.scheduler.parse_reset(reset_text, now) if reset_text else None
        state.scheduled_reset_time = reset_at
        session = self._set_status(session, STATUS_WAITING)

        if reset_at:
            message = f"Will continue automatically at {reset_at.strftime('%H:%M')}."
        else:
            message = "Waiting for the usage limit to reset."
        self._notify(
            session, NOTIFY_LIMIT, message,
            reset_time=reset_text, scheduled_for=_iso(reset_at), detected_at=_iso(now),
        )
        events.append(self._event(EVENT_LIMIT_DETECTED, reset_time=reset_text, scheduled_for=_iso(reset_at)))
        if reset_at:
            self.log.info(f"Continuation scheduled for {reset_at.strftime('%Y-%m-%d %H:%M')}")
            events.append(self._event(EVENT_CONTINUATION_SCHEDULED, scheduled_for=_iso(reset_at)))
        elif reset_text:
            self.log.warn(f"Ignoring implausible reset time '{reset_text}'")
        return session

    def _find_reset_time(self, response: str, new_output: str) -> Optional[str]:
        """Reset time from the freshest banner: the refusal, then the new output."""
        candidates = [output_after_continue_echo(response, self.patterns), new_output, response]
        for text in candidates:
            if text:
                reset_text = extract_reset_time(text, self.patterns)
                if reset_text:
                    return reset_text
        return None

    def _on_continuation_ready(self, session: SessionRecord, now: datetime, events: List[MonitorEvent]) -> SessionRecord:
        self.log.info("Limit reset cue seen")
        self.state.retry_count = 0
        self.state.last_continuation_time = now
        events.append(self._event(EVENT_CONTINUATION_READY))
        self.sleep(self.config.continuation_ready_delay)
        return self._perform_deferred_continuation(session, events, reason="ready")

    def _check_scheduled_reset(self, session: SessionRecord, now: datetime, events: List[MonitorEvent]) -> SessionRecord:
        if not self.scheduler.is_due(self.state.scheduled_reset_time, now):
            return session
        self.log.info("Scheduled reset time reached")
        return self._perform_deferred_continuation(session, events, reason="scheduled")

    def _perform_deferred_continuation(
        self, session: SessionRecord, events: List[MonitorEvent], reason: str
    ) -> SessionRecord:
        self._send_continue(session)
        session = self._continuation_succeeded(session, events, immediate=False, reason=reason)
        self._notify(session, NOTIFY_CONTINUED, "Session resumed after usage limit.", action=reason)
        return session

    def _continuation_succeeded(
        self, session: SessionRecord, events: List[MonitorEvent], immediate: bool, reason: str
    ) -> SessionRecord:
        state = self.state
        state.awaiting_continuation = False
        state.immediate_continuation_attempted = False
        state.scheduled_reset_time = None
        state.last_continuation_time = self.clock()
        session = self._set_status(session, STATUS_ACTIVE)
        self.log.success(f"Continued {session.name} ({reason})")
        events.append(self._event(EVENT_CONTINUED, immediate=immediate, reason=reason))
        return session

    def _send_continue(self, session: SessionRecord) -> None:
        self.terminal.send_continue_command(session.tmux_session, self.patterns.continue_command)
        # The continuation clears the input line, including any staged text
        self.state.quota_command_staged = False

    # =========================================================================
    # Approval dialogs
    # =========================================================================

    def _check_approval(self, session: SessionRecord, output: str, events: List[MonitorEvent]) -> SessionRecord:
        state = self.state
        tail = tail_lines(output, self.config.approval_tail_lines)
        if not detect_approval_dialog(tail, self.patterns):
            state.last_approval_question = None
            if session.status == STATUS_WAITING_APPROVAL:
                self.log.info("Approval dialog closed")
                session = self._set_status(session, STATUS_ACTIVE)
            return session

        info = extract_approval_info(tail, self.patterns)
        fingerprint = f"{info.question}|{info.command or ''}"
        if fingerprint == state.last_approval_question:
            return session
        state.last_approval_question = fingerprint

        colored = tail_lines(
            self.terminal.capture_pane_with_colors(session.tmux_session),
            self.config.approval_tail_lines,
        )
        if not is_interactive_dialog(colored, self.patterns):
            self.log.info(f"Ignoring non-interactive dialog text: {info.question}")
            events.append(self._event(EVENT_APPROVAL_IGNORED, question=info.question))
            return session

        session = self._set_status(session, STATUS_WAITING_APPROVAL)
        self.log.warn(f"Approval required: {info.action}")
        options = [
            {"number": o.number, "label": o.label, "shortcut": o.shortcut}
            for o in info.options
        ]
        self._notify(
            session, NOTIFY_APPROVAL, info.question,
            tool=info.tool, action=info.action, command=info.command, options=options,
        )
        events.append(self._event(
            EVENT_APPROVAL_NEEDED,
            question=info.question, tool=info.tool, action=info.action,
            command=info.command, options=len(options),
        ))
        return session

    def handle_option_selected(self, session_id: str, option: int) -> Optional[MonitorEvent]:
        """Relay an option chosen in the messaging channel to the dialog.

        Only acts while the session is waiting on an approval; otherwise a
        stray digit would be typed into the prompt.

        Returns:
            An option_selected event, or None if nothing was sent
        """
        if session_id != self.session_id or not self.running:
            return None
        try:
            session = self.store.get(session_id)
            if session is None or session.status != STATUS_WAITING_APPROVAL:
                self.log.warn(f"Ignoring option {option}: no approval pending")
                return None
            self.terminal.send_option_selection(session.tmux_session, option)
            self._set_status(session, STATUS_ACTIVE)
        except POLL_ERRORS as e:
            self.log.error(f"Failed to relay option {option}: {e}")
            return None
        self.log.success(f"Selected option {option}")
        return self._event(EVENT_OPTION_SELECTED, option=option)

    # =========================================================================
    # Quota schedule
    # =========================================================================

    def _check_quota_schedule(self, session: SessionRecord, now: datetime, events: List[MonitorEvent]) -> None:
        quota = session.quota_schedule
        if quota is None:
            return
        state = self.state
        staging_delay = timedelta(seconds=self.config.quota_staging_delay)
        if state.quota_stage_after is None:
            state.quota_stage_after = session.created + staging_delay

        if now >= quota.next_execution:
            tmux = session.tmux_session
            if not state.quota_command_staged:
                self.terminal.send_raw_keys(tmux, quota.command)
            self.terminal.send_raw_keys(tmux, "Enter")
            next_at = next_quota_execution(quota.next_execution, now)
            session = self.store.update(
                self.session_id,
                quota_schedule=QuotaSchedule(
                    time=quota.time,
                    command=generate_quota_message(next_at),
                    next_execution=next_at,
                ),
            )
            state.quota_command_staged = False
            state.quota_stage_after = now + staging_delay
            self.log.success(f"Quota window command sent; next at {next_at.strftime('%Y-%m-%d %H:%M')}")
            self._notify(
                session, NOTIFY_QUOTA, "Quota window started.",
                executed_at=_iso(now), next_execution=_iso(next_at), quota_time=quota.time,
            )
            events.append(self._event(EVENT_QUOTA_EXECUTED, executed_at=_iso(now), next_execution=_iso(next_at)))
        elif not state.quota_command_staged and now >= state.quota_stage_after:
            self.terminal.send_raw_keys(session.tmux_session, quota.command)
            state.quota_command_staged = True
            self.log.info(f"Staged quota command for {quota.next_execution.strftime('%H:%M')}")
            events.append(self._event(EVENT_QUOTA_STAGED, next_execution=_iso(quota.next_execution)))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _end_session(self, session: SessionRecord, events: List[MonitorEvent]) -> None:
        self.running = False
        self.log.info(f"tmux session {session.tmux_session} is gone; ending monitoring")
        session = self._set_status(session, STATUS_ENDED)
        self._notify(session, NOTIFY_SESSION_ENDED, "The tmux session has ended.")
        events.append(self._event(EVENT_SESSION_ENDED))

    def _record_failure(self, error: Exception, events: List[MonitorEvent]) -> None:
        state = self.state
        state.retry_count += 1
        max_retries = self.config.max_retries
        if state.retry_count < max_retries:
            self.log.warn(f"Poll failed ({state.retry_count}/{max_retries}): {error}")
            events.append(self._event(EVENT_ERROR, fatal=False, error=str(error), retries=state.retry_count))
            return

        self.running = False
        self.fatal_error = str(error)
        self.log.error(
            f"Monitoring stopped for session {self.session_id} after {state.retry_count} failed polls: {error}"
        )
        notification = Notification(
            kind=NOTIFY_ERROR, session_name=self._session_name,
            message=f"Monitoring stopped: {error}", metadata={"retries": state.retry_count},
        )
        self._deliver(notification)
        events.append(self._event(EVENT_ERROR, fatal=True, error=str(error), retries=state.retry_count))

    def stop(self) -> None:
        self.running = False

    def status_summary(self) -> Dict[str, Any]:
        """Snapshot of the working state for the shutdown log."""
        state = self.state
        return {
            "running": self.running,
            "awaiting_continuation": state.awaiting_continuation,
            "scheduled_reset_time": _iso(state.scheduled_reset_time),
            "last_continuation_time": _iso(state.last_continuation_time),
            "retry_count": state.retry_count,
            "fatal_error": self.fatal_error,
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    def _set_status(self, session: SessionRecord, status: str) -> SessionRecord:
        if session.status == status:
            return session
        return self.store.update(self.session_id, status=status)

    def _notify(self, session: SessionRecord, kind: str, message: str, **metadata: Any) -> bool:
        notification = Notification(kind=kind, session_name=session.name, message=message, metadata=metadata)
        return self._deliver(notification)

    def _deliver(self, notification: Notification) -> bool:
        if self.notifier is None:
            return False
        try:
            delivered = self.notifier.send_notification(self.session_id, notification)
        except Exception as e:
            self.log.warn(f"Notification '{notification.kind}' failed: {e}")
            return False
        if not delivered:
            self.log.warn(f"Notification '{notification.kind}' was not delivered")
        return delivered

    def _event(self, event_type: str, **data: Any) -> MonitorEvent:
        return MonitorEvent(type=event_type, session_id=self.session_id, data=data, timestamp=self.clock())
