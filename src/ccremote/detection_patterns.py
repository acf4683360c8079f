"""
Centralized grammars for reading Claude Code's terminal output.

Every phrase the monitor recognizes lives here so it can be tuned (or
replaced wholesale) when Claude Code changes its wording. The detector
functions in pattern_detectors take a DetectionPatterns instance and never
hard-code text themselves.

All regexes are compiled case-insensitive unless noted otherwise.
"""

import re
from dataclasses import dataclass, field
from typing import List, Pattern

# Regex to match ANSI escape sequences (colors, cursor movement, etc.)
ANSI_ESCAPE_PATTERN = re.compile(r'\x1b\[[0-9;?]*[a-zA-Z]')

# SGR (color/style) sequences only; group 1 holds the parameters
SGR_PATTERN = re.compile(r'\x1b\[([0-9;]*)m')


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text.

    Args:
        text: Text potentially containing ANSI escape sequences

    Returns:
        Text with all ANSI escape sequences removed
    """
    return ANSI_ESCAPE_PATTERN.sub('', text)


def _compile(patterns: List[str], flags: int = re.IGNORECASE) -> List[Pattern]:
    return [re.compile(p, flags) for p in patterns]


@dataclass
class DetectionPatterns:
    """All grammars used by the detectors."""

    # Usage-limit banner. Only full contextual phrases; a bare "limit reached"
    # inside a session list must not match.
    limit_patterns: List[str] = field(default_factory=lambda: [
        r"reached your [\w\s-]{0,40}?limit",
        r"hit your [\w\s-]{0,40}?limit",
        r"\blimit (?:will )?resets?\b",
        r"limit reached\s*[∙·•|-]\s*resets?\b",
        r"continue this conversation\b.{0,80}?\b(?:when|by)\b",
    ])

    # Signs that the banner is live rather than scrollback or pasted text:
    # a bare prompt, an open input box, or explicit reset phrasing.
    active_terminal_patterns: List[str] = field(default_factory=lambda: [
        r"^\s*[│|]?\s*[>❯›]\s*[│|]?\s*$",
        r"^\s*│\s*[>❯›]\s",
        r"\bresets?\s+(?:at\s+)?\d{1,2}(?::\d{2})?\s*(?:am|pm)?\b",
        r"\bavailable again at\b",
        r"\bcontinue this conversation\b",
    ])

    # Claude Code prints one of these once the window has reset. Checked only
    # while a continuation is pending.
    continuation_ready_patterns: List[str] = field(default_factory=lambda: [
        r"\blimit has (?:been )?reset\b",
        r"\bready to continue\b",
        r"\byou can now continue\b",
    ])

    # Reset time phrases. Group 1 is the time text handed to the parser.
    reset_time_patterns: List[str] = field(default_factory=lambda: [
        r"resets?\s+(?:at\s+)?(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)",
        r"available again at\s+(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)",
        r"ready at\s+(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)",
    ])

    # Strict clock grammar: H, H:MM, optional am/pm
    time_of_day_pattern: str = r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$"

    # Approval questions. Named group "file" holds the edited/created path.
    edit_question_pattern: str = r"Do you want to make this edit to\s+(?P<file>[^\s?]+)\s*\?"
    create_question_pattern: str = r"Do you want to create\s+(?P<file>[^\s?]+)\s*\?"
    proceed_question_pattern: str = r"Do you want to proceed\s*\?"

    # Marker line preceding the literal shell command in a Bash approval
    bash_command_marker: str = r"^\s*Bash command\s*$"

    # Numbered option line, optionally carrying the selection marker
    option_line_pattern: str = r"^(?:❯\s*)?(?P<num>\d+)\.\s+(?P<label>\S.*?)\s*$"
    # Trailing keyboard hint on an option label, e.g. "(shift+tab)"
    option_shortcut_pattern: str = r"^(?P<label>.*?)\s*\((?P<shortcut>[^()]+)\)$"
    # Option 1 must read "Yes" for a line to count as an approval menu
    first_option_yes_pattern: str = r"^(?:❯\s*)?1\.\s+Yes\b"

    # Current-selection glyph in front of a numbered option (case-sensitive)
    selection_marker: str = "❯"

    # Box-drawing characters framing dialog lines
    box_chars: str = "│┃║"

    # Muted SGR parameters: dim, conceal, bright black (grey)
    muted_sgr_codes: List[str] = field(default_factory=lambda: ["2", "8", "90"])
    # 256-color palette indices rendered as grey
    grey_palette_range: tuple = (232, 250)

    # Typed into the pane to resume after a limit
    continue_command: str = "continue"

    # Inbound reply words mapped to option numbers
    reply_aliases: dict = field(default_factory=lambda: {"approve": 1, "deny": 2})

    def __post_init__(self):
        self.limit_res = _compile(self.limit_patterns)
        self.active_terminal_res = _compile(self.active_terminal_patterns, re.IGNORECASE | re.MULTILINE)
        self.continuation_ready_res = _compile(self.continuation_ready_patterns)
        self.reset_time_res = _compile(self.reset_time_patterns)
        self.time_of_day_re = re.compile(self.time_of_day_pattern, re.IGNORECASE)
        self.edit_question_re = re.compile(self.edit_question_pattern, re.IGNORECASE)
        self.create_question_re = re.compile(self.create_question_pattern, re.IGNORECASE)
        self.proceed_question_re = re.compile(self.proceed_question_pattern, re.IGNORECASE)
        self.bash_command_marker_re = re.compile(self.bash_command_marker, re.IGNORECASE)
        self.option_line_re = re.compile(self.option_line_pattern)
        self.option_shortcut_re = re.compile(self.option_shortcut_pattern)
        self.first_option_yes_re = re.compile(self.first_option_yes_pattern)

    @property
    def question_res(self) -> List[Pattern]:
        return [self.edit_question_re, self.create_question_re, self.proceed_question_re]


# Default patterns instance
DEFAULT_PATTERNS = DetectionPatterns()


def get_patterns() -> DetectionPatterns:
    """Get the default detection patterns."""
    return DEFAULT_PATTERNS
