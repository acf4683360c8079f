"""
Process and PID-file helpers.

Workers hold a per-session PID lock; the daemon supervisor checks worker
liveness by PID.
"""

import fcntl
import os
import signal
import subprocess
import time
from pathlib import Path
from typing import Optional, Tuple


def is_pid_alive(pid: int) -> bool:
    """Check whether a process exists.

    Reaps the process first if it is an exited child of ours, so zombies
    are reported dead.
    """
    if pid <= 0:
        return False
    try:
        reaped, _ = os.waitpid(pid, os.WNOHANG)
        if reaped == pid:
            return False
    except ChildProcessError:
        pass
    except OSError:
        return False
    try:
        os.kill(pid, 0)
        return True
    except PermissionError:
        # Exists but owned by someone else
        return True
    except OSError:
        return False


def get_process_command(pid: int) -> Optional[str]:
    """Return the command line of a process via ps, or None if unavailable."""
    try:
        result = subprocess.run(
            ["ps", "-p", str(pid), "-o", "command="],
            capture_output=True, text=True, timeout=5,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def _read_pid(pid_file: Path) -> Optional[int]:
    try:
        return int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return None


def get_process_pid(pid_file: Path) -> Optional[int]:
    """Return the PID recorded in pid_file if that process is alive."""
    if not pid_file.exists():
        return None
    pid = _read_pid(pid_file)
    if pid is None or not is_pid_alive(pid):
        return None
    return pid


def write_pid_file(pid_file: Path, pid: Optional[int] = None) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(pid if pid is not None else os.getpid()))


def remove_pid_file(pid_file: Path) -> None:
    try:
        pid_file.unlink()
    except FileNotFoundError:
        pass


def acquire_daemon_lock(pid_file: Path) -> Tuple[bool, Optional[int]]:
    """Atomically claim pid_file for the current process.

    A sidecar .lock file serializes concurrent claimants; a stale PID file
    left by a dead process is replaced.

    Returns:
        (acquired, existing_pid). existing_pid is set when another live
        process already holds the file.
    """
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    lock_path = pid_file.with_suffix(pid_file.suffix + ".lock")
    with open(lock_path, "w") as lock_fd:
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False, None
        try:
            existing = get_process_pid(pid_file)
            if existing is not None and existing != os.getpid():
                return False, existing
            write_pid_file(pid_file)
            return True, None
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)


def stop_process(pid: int, timeout: float = 5.0) -> bool:
    """Send SIGTERM, wait up to timeout, then SIGKILL.

    Returns:
        True if a signal was delivered, False if the process was already gone.
    """
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError:
        return False

    deadline = time.time() + timeout
    while time.time() < deadline:
        if not is_pid_alive(pid):
            return True
        time.sleep(0.1)

    try:
        os.kill(pid, signal.SIGKILL)
    except OSError:
        pass
    return True
