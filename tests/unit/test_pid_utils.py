"""Tests for pid_utils module."""

import os
import signal
from unittest.mock import patch, MagicMock

from ccremote.pid_utils import (
    acquire_daemon_lock,
    get_process_command,
    get_process_pid,
    is_pid_alive,
    remove_pid_file,
    stop_process,
    write_pid_file,
)


class TestIsPidAlive:
    """Tests for is_pid_alive function."""

    def test_current_process_is_alive(self):
        """The test process itself is alive."""
        assert is_pid_alive(os.getpid()) is True

    def test_nonpositive_pid_is_dead(self):
        """PID 0 and negative PIDs are never reported alive."""
        assert is_pid_alive(0) is False
        assert is_pid_alive(-1) is False

    def test_nonexistent_pid_is_dead(self):
        """A PID that does not exist is dead."""
        assert is_pid_alive(99999999) is False

    def test_permission_error_means_alive(self):
        """A process owned by someone else still exists."""
        with patch("ccremote.pid_utils.os.waitpid", side_effect=ChildProcessError), \
             patch("ccremote.pid_utils.os.kill", side_effect=PermissionError):
            assert is_pid_alive(1234) is True

    def test_reaped_child_is_dead(self):
        """An exited child that waitpid reaps is dead."""
        with patch("ccremote.pid_utils.os.waitpid", return_value=(1234, 0)), \
             patch("ccremote.pid_utils.os.kill") as mock_kill:
            assert is_pid_alive(1234) is False
        mock_kill.assert_not_called()


class TestPidFiles:
    """Tests for PID file helpers."""

    def test_returns_none_for_nonexistent_file(self, tmp_path):
        """Should return None when the PID file doesn't exist."""
        assert get_process_pid(tmp_path / "nonexistent.pid") is None

    def test_returns_pid_for_running_process(self, tmp_path):
        """Should return PID when process is running."""
        pid_file = tmp_path / "test.pid"
        pid_file.write_text(str(os.getpid()))

        assert get_process_pid(pid_file) == os.getpid()

    def test_returns_none_for_dead_process(self, tmp_path):
        """Should return None when the recorded process is gone."""
        pid_file = tmp_path / "test.pid"
        pid_file.write_text("99999999")

        assert get_process_pid(pid_file) is None

    def test_returns_none_for_invalid_pid(self, tmp_path):
        """Should return None when PID file contains invalid data."""
        pid_file = tmp_path / "test.pid"
        pid_file.write_text("not_a_number")

        assert get_process_pid(pid_file) is None

    def test_write_creates_parent_dirs(self, tmp_path):
        """Should create parent directories and write current PID."""
        pid_file = tmp_path / "run" / "ccremote-1.pid"

        write_pid_file(pid_file)

        assert pid_file.read_text() == str(os.getpid())

    def test_write_explicit_pid(self, tmp_path):
        """Should write the given PID."""
        pid_file = tmp_path / "test.pid"
        write_pid_file(pid_file, 4242)
        assert pid_file.read_text() == "4242"

    def test_remove_is_idempotent(self, tmp_path):
        """Removing a missing PID file is not an error."""
        pid_file = tmp_path / "test.pid"
        pid_file.write_text("1")

        remove_pid_file(pid_file)
        remove_pid_file(pid_file)

        assert not pid_file.exists()


class TestAcquireDaemonLock:
    """Tests for acquire_daemon_lock function."""

    def test_acquires_fresh_lock(self, tmp_path):
        """Should claim an unused PID file."""
        pid_file = tmp_path / "ccremote-1.pid"

        acquired, existing = acquire_daemon_lock(pid_file)

        assert acquired is True
        assert existing is None
        assert pid_file.read_text() == str(os.getpid())

    def test_replaces_stale_pid(self, tmp_path):
        """A PID file left by a dead process is taken over."""
        pid_file = tmp_path / "ccremote-1.pid"
        pid_file.write_text("99999999")

        acquired, _ = acquire_daemon_lock(pid_file)

        assert acquired is True
        assert pid_file.read_text() == str(os.getpid())

    def test_refuses_when_other_process_holds_it(self, tmp_path):
        """A live foreign PID blocks the claim and is reported."""
        pid_file = tmp_path / "ccremote-1.pid"
        pid_file.write_text("4242")

        with patch("ccremote.pid_utils.is_pid_alive", return_value=True):
            acquired, existing = acquire_daemon_lock(pid_file)

        assert acquired is False
        assert existing == 4242

    def test_reacquire_by_same_process(self, tmp_path):
        """The holder can claim its own file again."""
        pid_file = tmp_path / "ccremote-1.pid"
        acquire_daemon_lock(pid_file)

        acquired, _ = acquire_daemon_lock(pid_file)

        assert acquired is True


class TestStopProcess:
    """Tests for stop_process function."""

    def test_already_gone(self):
        """Should return False when the process does not exist."""
        with patch("ccremote.pid_utils.os.kill", side_effect=ProcessLookupError):
            assert stop_process(1234) is False

    def test_terminates_gracefully(self):
        """SIGTERM is enough when the process exits in time."""
        with patch("ccremote.pid_utils.os.kill") as mock_kill, \
             patch("ccremote.pid_utils.is_pid_alive", return_value=False):
            assert stop_process(1234) is True

        mock_kill.assert_called_once_with(1234, signal.SIGTERM)

    def test_escalates_to_sigkill(self):
        """A process that ignores SIGTERM is killed."""
        with patch("ccremote.pid_utils.os.kill") as mock_kill, \
             patch("ccremote.pid_utils.is_pid_alive", return_value=True), \
             patch("ccremote.pid_utils.time.sleep"):
            assert stop_process(1234, timeout=0.0) is True

        mock_kill.assert_any_call(1234, signal.SIGTERM)
        mock_kill.assert_any_call(1234, signal.SIGKILL)


class TestGetProcessCommand:
    """Tests for get_process_command function."""

    def test_returns_command(self):
        """Should return ps output stripped."""
        result = MagicMock(returncode=0, stdout="python -m ccremote.monitor_worker\n")
        with patch("ccremote.pid_utils.subprocess.run", return_value=result):
            assert get_process_command(1234) == "python -m ccremote.monitor_worker"

    def test_returns_none_on_failure(self):
        """A failed ps call yields None."""
        result = MagicMock(returncode=1, stdout="")
        with patch("ccremote.pid_utils.subprocess.run", return_value=result):
            assert get_process_command(1234) is None

    def test_returns_none_without_ps(self):
        """A missing ps binary yields None."""
        with patch("ccremote.pid_utils.subprocess.run", side_effect=FileNotFoundError):
            assert get_process_command(1234) is None
