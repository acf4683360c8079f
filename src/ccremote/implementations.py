"""
Real implementations of protocol interfaces.

RealTmux drives tmux through libtmux. The notification and storage
implementations live in discord_notifier and session_store.
"""

import os
import shutil
import time
from typing import Callable, List, Optional

import libtmux
from libtmux.exc import LibTmuxException
from libtmux._internal.query_list import ObjectDoesNotExist

from .errors import TerminalError
from .settings import get_tmux_conf_path


class RealTmux:
    """Production implementation of TerminalBridge using libtmux.

    Sessions are addressed by name and the first pane of the active window
    is used for all capture and input.
    """

    # Claude Code drops keys that arrive in the same burst as a clear/Enter
    KEY_DELAY = 0.2

    def __init__(
        self,
        socket_name: Optional[str] = None,
        history_lines: int = 200,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize with optional socket name for test isolation.

        If no socket_name is provided, checks CCREMOTE_TMUX_SOCKET env var.
        """
        self._socket_name = socket_name or os.environ.get("CCREMOTE_TMUX_SOCKET")
        self._server: Optional[libtmux.Server] = None
        self.history_lines = history_lines
        self._sleep = sleep

    @property
    def server(self) -> libtmux.Server:
        """Lazy-load the tmux server connection."""
        if self._server is None:
            if self._socket_name:
                self._server = libtmux.Server(socket_name=self._socket_name)
            else:
                self._server = libtmux.Server()
        return self._server

    def _get_session(self, name: str) -> Optional[libtmux.Session]:
        try:
            return self.server.sessions.get(session_name=name)
        except (LibTmuxException, ObjectDoesNotExist):
            return None

    def _get_pane(self, name: str) -> libtmux.Pane:
        sess = self._get_session(name)
        if sess is None:
            raise TerminalError(f"tmux session not found: {name}")
        try:
            pane = sess.active_window.active_pane
        except LibTmuxException as e:
            raise TerminalError(f"Cannot reach pane of {name}: {e}") from e
        if pane is None:
            raise TerminalError(f"tmux session {name} has no pane")
        return pane

    def _send(self, name: str, keys: str, literal: bool = False) -> None:
        pane = self._get_pane(name)
        try:
            pane.send_keys(keys, enter=False, literal=literal)
        except LibTmuxException as e:
            raise TerminalError(f"send-keys to {name} failed: {e}") from e

    def _enter(self, name: str) -> None:
        pane = self._get_pane(name)
        try:
            pane.send_keys("", enter=True)
        except LibTmuxException as e:
            raise TerminalError(f"send-keys to {name} failed: {e}") from e

    def is_available(self) -> bool:
        return shutil.which("tmux") is not None

    def create_session(self, name: str, cwd: Optional[str] = None, command: str = "claude") -> None:
        """Create a detached session and start command in it.

        Mouse mode is turned on unless the user keeps a tmux.conf in the
        state directory, which is sourced instead.
        """
        kwargs = {"session_name": name, "attach": False}
        if cwd:
            kwargs["start_directory"] = cwd
        try:
            sess = self.server.new_session(**kwargs)
            tmux_conf = get_tmux_conf_path()
            if tmux_conf.is_file():
                self.server.cmd("source-file", str(tmux_conf))
            else:
                sess.set_option("mouse", "on")
        except LibTmuxException as e:
            raise TerminalError(f"Failed to create tmux session {name}: {e}") from e
        if command:
            self.send_keys(name, command)

    def session_exists(self, name: str) -> bool:
        try:
            return self.server.has_session(name)
        except LibTmuxException:
            return False

    def kill_session(self, name: str) -> None:
        sess = self._get_session(name)
        if sess is None:
            return
        try:
            sess.kill()
        except LibTmuxException as e:
            if "session not found" in str(e) or "can't find session" in str(e):
                return
            raise TerminalError(f"Failed to kill tmux session {name}: {e}") from e

    def list_sessions(self) -> List[str]:
        try:
            return [s.session_name for s in self.server.sessions]
        except LibTmuxException:
            return []

    def _capture(self, name: str, escape_sequences: bool) -> str:
        pane = self._get_pane(name)
        try:
            captured = pane.capture_pane(start=-self.history_lines, escape_sequences=escape_sequences)
        except LibTmuxException as e:
            raise TerminalError(f"capture-pane of {name} failed: {e}") from e
        if isinstance(captured, list):
            captured = "\n".join(captured)
        # Blank rows below the cursor come and go; keep diffs stable
        return captured.rstrip()

    def capture_pane(self, name: str) -> str:
        return self._capture(name, escape_sequences=False)

    def capture_pane_with_colors(self, name: str) -> str:
        return self._capture(name, escape_sequences=True)

    def send_keys(self, name: str, text: str) -> None:
        # Text and Enter go as separate commands or Claude Code ignores the Enter
        self._send(name, text, literal=True)
        self._sleep(self.KEY_DELAY)
        self._enter(name)

    def send_raw_keys(self, name: str, text: str) -> None:
        self._send(name, text)

    def send_continue_command(self, name: str, command: str = "continue") -> None:
        self._send(name, "C-u")
        self._sleep(self.KEY_DELAY)
        self._send(name, command, literal=True)
        self._sleep(self.KEY_DELAY)
        self._enter(name)

    def send_option_selection(self, name: str, option: int) -> None:
        self._send(name, str(option))
