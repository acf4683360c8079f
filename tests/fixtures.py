"""
Test fixtures and factories for ccremote unit tests.

Pane captures below are trimmed copies of what Claude Code draws in tmux.
"""

from datetime import datetime
from typing import Optional

from ccremote.session_store import QuotaSchedule, SessionRecord


def create_session_record(
    id: str = "ccremote-1",
    name: str = "session-1",
    tmux_session: Optional[str] = None,
    channel_id: str = "",
    status: str = "active",
    created: Optional[datetime] = None,
    quota_schedule: Optional[QuotaSchedule] = None,
) -> SessionRecord:
    """Create a SessionRecord with sensible defaults."""
    created = created or datetime(2026, 3, 2, 8, 0)
    return SessionRecord(
        id=id,
        name=name,
        tmux_session=tmux_session or id,
        channel_id=channel_id,
        status=status,
        created=created,
        last_activity=created,
        working_directory="/work/project",
        quota_schedule=quota_schedule,
    )


WORKING_PANE = """\
● I'll start by reading the parser module.

● Read(src/parser.py)
  ⎿  Read 120 lines

● The tokenizer is missing a case for escaped quotes.
"""

LIMIT_BANNER = """\

Claude usage limit reached. Your limit resets at 10:30am (Europe/Berlin).

>
"""

COMPACT_LIMIT_BANNER = """\

  5-hour limit reached ∙ resets 3:45pm
  /upgrade to increase your usage limit.

╭──────────────────────────────────────────────╮
│ >                                            │
╰──────────────────────────────────────────────╯
"""

# A session picker row: mentions a limit but is history, not a live banner
SESSION_LIST_PANE = """\
Resume a previous conversation

  1. Fix auth bug               2h ago    limit reached
  2. Refactor tmux bridge       1d ago    completed
❯ 3. Add quota scheduling       3d ago    completed
"""

# The banner text quoted inside a chat answer, no live prompt below it
PASTED_LIMIT_TEXT = """\
● You asked what the message means. When Claude Code prints

    "You've reached your usage limit"

  it means the five-hour window is exhausted.
"""

CONTINUE_ECHO_WITH_LIMIT = """\

> continue

Claude usage limit reached. Your limit resets at 10:30am (Europe/Berlin).

>
"""

CONTINUE_ECHO_OK = """\

> continue

● Picking up where I left off: the tokenizer fix is next.
"""

# A monitor restarted on a pane whose earlier limit was already continued
RESOLVED_LIMIT_SCROLLBACK = (
    WORKING_PANE
    + "\nClaude usage limit reached. Your limit resets at 9am.\n\n>\n"
    + CONTINUE_ECHO_OK
    + "\n>\n"
)

LIMIT_RESET_CUE = """\

Your limit has reset. You can now continue.
"""

APPROVAL_EDIT_PANE = """\
● Update(src/core/tmux.ts)

╭───────────────────────────────────────────────────────────────╮
│ Edit file                                                     │
│ ╭───────────────────────────────────────────────────────────╮ │
│ │ src/core/tmux.ts                                          │ │
│ │  12 -  const delay = 100;                                 │ │
│ │  12 +  const delay = 200;                                 │ │
│ ╰───────────────────────────────────────────────────────────╯ │
│ Do you want to make this edit to tmux.ts?                     │
│ ❯ 1. Yes                                                      │
│   2. Yes, allow all edits during this session (shift+tab)     │
│   3. No, and tell Claude what to do differently (esc)         │
╰───────────────────────────────────────────────────────────────╯
"""

APPROVAL_CREATE_PANE = """\
╭───────────────────────────────────────────────────────────────╮
│ Create file                                                   │
│ Do you want to create docs/notes.md?                          │
│ ❯ 1. Yes                                                      │
│   2. Yes, allow all edits during this session (shift+tab)     │
│   3. No, and tell Claude what to do differently (esc)         │
╰───────────────────────────────────────────────────────────────╯
"""

APPROVAL_BASH_PANE = """\
● Bash(npm test -- --watch=false)

╭───────────────────────────────────────────────────────────────╮
│ Bash command                                                  │
│                                                               │
│   npm test -- --watch=false                                   │
│   Run the test suite                                          │
│                                                               │
│ Do you want to proceed?                                       │
│ ❯ 1. Yes                                                      │
│   2. Yes, and don't ask again for npm test commands in /work  │
│   3. No, and tell Claude what to do differently (esc)         │
╰───────────────────────────────────────────────────────────────╯
"""

APPROVAL_PROCEED_PANE = """\
╭───────────────────────────────────────────────────────────────╮
│ Fetch https://example.com/docs                                │
│                                                               │
│ Do you want to proceed?                                       │
│ ❯ 1. Yes                                                      │
│   2. No, and tell Claude what to do differently (esc)         │
╰───────────────────────────────────────────────────────────────╯
"""


def colorize_question(pane: str, sgr: str) -> str:
    """Wrap every question line of pane in the given SGR parameters."""
    lines = []
    for line in pane.splitlines():
        if "Do you want to" in line:
            line = f"\x1b[{sgr}m{line}\x1b[0m"
        lines.append(line)
    return "\n".join(lines)
