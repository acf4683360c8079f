"""
Pure functions for classifying captured terminal output.

Nothing here touches tmux or the clock; every function takes text (and an
optional DetectionPatterns) and returns a value, so the monitor's decisions
can be tested directly against pane fixtures.
"""

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import List, Optional, Pattern, Tuple

from .detection_patterns import (
    DetectionPatterns,
    SGR_PATTERN,
    get_patterns,
    strip_ansi,
)


@dataclass
class ApprovalOption:
    """One numbered choice in an approval dialog."""

    number: int
    label: str
    shortcut: Optional[str] = None


@dataclass
class ApprovalInfo:
    """What an approval dialog is asking and which choices it offers."""

    question: str
    tool: str
    action: str
    command: Optional[str] = None
    options: List[ApprovalOption] = field(default_factory=list)


# =============================================================================
# Output diffing
# =============================================================================


def get_new_output(previous: str, current: str) -> str:
    """Return the part of current that was not present in previous.

    If current extends previous, only the suffix is new. Otherwise the pane
    was redrawn or scrolled and everything is treated as new.

    Pure function - no side effects, fully testable.
    """
    if not previous:
        return current
    if current.startswith(previous):
        return current[len(previous):]
    return current


def tail_lines(text: str, count: int) -> str:
    """Last count lines of text."""
    lines = text.splitlines()
    return "\n".join(lines[-count:]) if count > 0 else ""


def clean_line(line: str, patterns: DetectionPatterns = None) -> str:
    """Strip escape codes, surrounding whitespace and dialog box borders."""
    if patterns is None:
        patterns = get_patterns()
    return strip_ansi(line).strip().strip(patterns.box_chars).strip()


def _clean_lines(text: str, patterns: DetectionPatterns) -> List[str]:
    return [clean_line(line, patterns) for line in text.splitlines()]


def matches_any(text: str, regexes: List[Pattern]) -> bool:
    return any(r.search(text) for r in regexes)


# =============================================================================
# Usage limits
# =============================================================================


def is_limit_message(text: str, patterns: DetectionPatterns = None) -> bool:
    """Check for a full contextual usage-limit phrase."""
    if patterns is None:
        patterns = get_patterns()
    return matches_any(strip_ansi(text), patterns.limit_res)


def has_active_terminal_state(text: str, patterns: DetectionPatterns = None) -> bool:
    """Check for a live prompt, open input box, or explicit reset phrasing."""
    if patterns is None:
        patterns = get_patterns()
    return matches_any(strip_ansi(text), patterns.active_terminal_res)


def detect_usage_limit(text: str, patterns: DetectionPatterns = None) -> bool:
    """A usage limit is live only when both grammars match.

    Either alone is ignored: a limit phrase without a live terminal is
    usually scrollback or pasted text, and a prompt alone means nothing.
    """
    return is_limit_message(text, patterns) and has_active_terminal_state(text, patterns)


def is_continuation_ready(text: str, patterns: DetectionPatterns = None) -> bool:
    """Check for the cue that the usage window has reset.

    A chunk that is itself a limit banner never counts as the cue.
    """
    if patterns is None:
        patterns = get_patterns()
    plain = strip_ansi(text)
    if is_limit_message(plain, patterns):
        return False
    return matches_any(plain, patterns.continuation_ready_res)


def output_after_continue_echo(text: str, patterns: DetectionPatterns = None) -> Optional[str]:
    """Text printed after the last echoed continuation command.

    Returns:
        The lines below the last "> continue" echo, or None if there is no echo
    """
    if patterns is None:
        patterns = get_patterns()
    echo_re = re.compile(rf"^[>❯›]\s*{re.escape(patterns.continue_command)}\s*$", re.IGNORECASE)
    lines = text.splitlines()
    echo_index = None
    for i, line in enumerate(lines):
        if echo_re.match(clean_line(line, patterns)):
            echo_index = i
    if echo_index is None:
        return None
    return "\n".join(lines[echo_index + 1:])


def initial_scan_region(text: str, max_lines: int, patterns: DetectionPatterns = None) -> str:
    """The part of a first capture that may still hold a live limit banner.

    A monitor that starts on an existing pane sees its scrollback too.
    Banners above the last continuation echo were already answered, and
    only the bottom max_lines are considered at all.
    """
    after_echo = output_after_continue_echo(text, patterns)
    return tail_lines(text if after_echo is None else after_echo, max_lines)


def limit_still_present(before: str, after: str, patterns: DetectionPatterns = None) -> bool:
    """Decide whether an immediate continuation attempt was refused.

    Looks only at output printed after the echoed continuation command, or
    at the new output since before when the echo cannot be found, so the
    original banner in scrollback does not count.

    Args:
        before: Capture taken before sending the continuation command
        after: Capture taken after the settle delay

    Returns:
        True if a limit phrase appears in the response
    """
    response = output_after_continue_echo(after, patterns)
    if response is None:
        response = get_new_output(before, after)
    return is_limit_message(response, patterns)


def extract_reset_time(text: str, patterns: DetectionPatterns = None) -> Optional[str]:
    """Pull the reset time text (e.g. "3:45pm") out of a limit banner.

    When several banners are visible the bottom-most one wins; older ones
    are scrollback.
    """
    if patterns is None:
        patterns = get_patterns()
    plain = strip_ansi(text)
    last = None
    for regex in patterns.reset_time_res:
        for match in regex.finditer(plain):
            if last is None or match.start() > last.start():
                last = match
    return last.group(1).strip() if last else None


# =============================================================================
# Approval dialogs
# =============================================================================


def find_question(text: str, patterns: DetectionPatterns = None) -> Optional[Tuple[int, str, re.Match]]:
    """Find the last approval question line.

    Returns:
        (line_index, cleaned_line, match) or None
    """
    if patterns is None:
        patterns = get_patterns()
    found = None
    for i, line in enumerate(_clean_lines(text, patterns)):
        for regex in patterns.question_res:
            match = regex.search(line)
            if match:
                found = (i, line, match)
                break
    return found


def detect_approval_dialog(text: str, patterns: DetectionPatterns = None) -> bool:
    """Check that a question, a "1. Yes" option and a selection marker co-occur.

    Any one signal alone is common in ordinary output, so all three are
    required.
    """
    if patterns is None:
        patterns = get_patterns()
    lines = _clean_lines(text, patterns)
    has_question = find_question(text, patterns) is not None
    has_yes = any(patterns.first_option_yes_re.match(line) for line in lines)
    has_marker = any(
        line.startswith(patterns.selection_marker) and patterns.option_line_re.match(line)
        for line in lines
    )
    return has_question and has_yes and has_marker


def parse_approval_options(text: str, patterns: DetectionPatterns = None) -> List[ApprovalOption]:
    """Extract numbered options below the question, in order.

    Numbered lines above the question (the agent's own lists) are ignored,
    as are repeated numbers.
    """
    if patterns is None:
        patterns = get_patterns()
    lines = _clean_lines(text, patterns)
    question = find_question(text, patterns)
    start = question[0] + 1 if question else 0

    options: List[ApprovalOption] = []
    seen = set()
    for line in lines[start:]:
        match = patterns.option_line_re.match(line)
        if not match:
            continue
        number = int(match.group("num"))
        if number in seen:
            continue
        seen.add(number)
        label = match.group("label")
        shortcut = None
        shortcut_match = patterns.option_shortcut_re.match(label)
        if shortcut_match:
            label = shortcut_match.group("label")
            shortcut = shortcut_match.group("shortcut")
        options.append(ApprovalOption(number=number, label=label, shortcut=shortcut))
    return options


def _find_bash_command(lines: List[str], end: int, patterns: DetectionPatterns) -> Optional[str]:
    """Return the first non-empty line after the last "Bash command" marker above end."""
    marker = None
    for i in range(end):
        if patterns.bash_command_marker_re.match(lines[i]):
            marker = i
    if marker is None:
        return None
    for line in lines[marker + 1:end]:
        if line:
            return line
    return None


def extract_approval_info(text: str, patterns: DetectionPatterns = None) -> Optional[ApprovalInfo]:
    """Describe the approval dialog in text.

    Pure function - the same text always yields the same result.

    Returns:
        ApprovalInfo, or None if no approval question is present
    """
    if patterns is None:
        patterns = get_patterns()
    question = find_question(text, patterns)
    if question is None:
        return None
    index, line, match = question
    question_text = match.group(0)
    options = parse_approval_options(text, patterns)

    if match.re is patterns.edit_question_re:
        name = PurePosixPath(match.group("file")).name
        return ApprovalInfo(question=question_text, tool="Edit", action=f"Edit {name}", options=options)
    if match.re is patterns.create_question_re:
        name = PurePosixPath(match.group("file")).name
        return ApprovalInfo(question=question_text, tool="Create", action=f"Create {name}", options=options)

    command = _find_bash_command(_clean_lines(text, patterns), index, patterns)
    if command:
        return ApprovalInfo(
            question=question_text, tool="Bash", action=f"Run {command}",
            command=command, options=options,
        )
    return ApprovalInfo(question=question_text, tool="Tool", action="Proceed", options=options)


def _classify_sgr(params: str, patterns: DetectionPatterns) -> str:
    """Classify one SGR sequence as "muted", "normal" or "neutral" (resets)."""
    try:
        codes = [int(p) if p else 0 for p in params.split(";")]
    except ValueError:
        return "neutral"
    result = "neutral"
    muted = {int(c) for c in patterns.muted_sgr_codes}
    low, high = patterns.grey_palette_range
    i = 0
    while i < len(codes):
        code = codes[i]
        if code in (38, 48) and i + 1 < len(codes):
            if codes[i + 1] == 5 and i + 2 < len(codes):
                index = codes[i + 2]
                grey = index == 8 or low <= index <= high
                i += 3
            elif codes[i + 1] == 2 and i + 4 < len(codes):
                r, g, b = codes[i + 2:i + 5]
                grey = r == g == b
                i += 5
            else:
                i += 2
                continue
            if code == 38:
                if not grey:
                    return "normal"
                result = "muted"
            continue
        if code in muted:
            result = "muted"
        elif code == 0 or 20 <= code <= 29 or code in (39, 49):
            pass
        else:
            return "normal"
        i += 1
    return result


def _line_is_muted(line: str, patterns: DetectionPatterns) -> bool:
    kinds = {_classify_sgr(m.group(1), patterns) for m in SGR_PATTERN.finditer(line)}
    return "muted" in kinds and "normal" not in kinds


def is_interactive_dialog(colored_text: str, patterns: DetectionPatterns = None) -> bool:
    """Tell a live dialog apart from pasted or historical dialog text.

    Claude Code renders pasted and historical text dim or grey. A capture
    with no escape codes at all is assumed live.

    Args:
        colored_text: Pane capture with escape codes preserved

    Returns:
        True if some question line is drawn in normal styling
    """
    if patterns is None:
        patterns = get_patterns()
    if not SGR_PATTERN.search(colored_text):
        return True
    for line in colored_text.splitlines():
        plain = clean_line(line, patterns)
        if not matches_any(plain, patterns.question_res):
            continue
        if not _line_is_muted(line, patterns):
            return True
    return False


# =============================================================================
# Inbound replies
# =============================================================================


def parse_option_reply(content: str, patterns: DetectionPatterns = None) -> Optional[int]:
    """Map a chat reply to an option number ("2" -> 2, "approve" -> 1)."""
    if patterns is None:
        patterns = get_patterns()
    reply = content.strip().lower()
    if reply.isdigit():
        number = int(reply)
        return number if number >= 1 else None
    return patterns.reply_aliases.get(reply)
