"""
saverun Active Process Cell.

Owns the single live child process and the epoch counter. The
supervisor, the runner and the shutdown watcher only touch the child
through this cell, under one lock.
Requires Python 3.11+.
"""

import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

import psutil

from saverun.utils.errors import KillError, SpawnError
from saverun.utils.logger import LoggerMixin


def parse_command(command: str) -> list[str]:
    """
    Split a command string into an argument list.

    Raises:
        SpawnError: if the command is empty or its quoting is broken
    """
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise SpawnError(command, f"invalid argument list: {e}") from e
    if not argv:
        raise SpawnError(command, "empty command")
    return argv


def kill_process_tree(process: subprocess.Popen) -> int:
    """
    Hard-kill a child process and every descendant it started.

    Args:
        process: Handle returned by subprocess.Popen

    Returns:
        Number of processes that received the kill

    Raises:
        KillError: if the child already exited or cannot be signalled
    """
    if process.poll() is not None:
        raise KillError(process.pid, f"already exited with status {process.returncode}")

    try:
        parent = psutil.Process(process.pid)
        # Collect descendants first, they get reparented once the parent dies
        children = parent.children(recursive=True)
        parent.kill()
    except psutil.NoSuchProcess as e:
        raise KillError(process.pid, "no such process") from e
    except psutil.AccessDenied as e:
        raise KillError(process.pid, "access denied") from e

    killed = 1
    for child in children:
        try:
            child.kill()
            killed += 1
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            # Grandchild exited on its own or belongs to someone else now
            continue
    return killed


@dataclass
class _KillReport:
    """Outcome of a kill made under the cell lock, logged after release."""

    epoch: int
    process: subprocess.Popen
    count: int = 0
    error: KillError | None = None


class ActiveProcess(LoggerMixin):
    """
    Guarded cell holding the current child process and epoch.

    The cell never refers to a process that exited without being
    released: the runner releases its child right after waiting on it,
    and every kill clears the cell.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._process: subprocess.Popen | None = None
        self._epoch = 0
        self._closed = False

    @property
    def epoch(self) -> int:
        """Current epoch number (0 before the first run)."""
        with self._lock:
            return self._epoch

    @property
    def process(self) -> subprocess.Popen | None:
        """The live child, if any."""
        with self._lock:
            return self._process

    @property
    def closed(self) -> bool:
        """Check if the cell was closed for shutdown."""
        with self._lock:
            return self._closed

    def is_current(self, epoch: int) -> bool:
        """Check if a run started under ``epoch`` may keep going."""
        with self._lock:
            return not self._closed and epoch == self._epoch

    def spawn(
        self,
        epoch: int,
        command: str,
        attach_stdin: bool = False,
        cwd: Path | None = None,
    ) -> subprocess.Popen | None:
        """
        Start a command and record it as the active process.

        The epoch check and the start happen under the lock, so a
        superseded run can never leave a child behind.

        Args:
            epoch: Epoch of the calling run
            command: Command string, split with shlex
            attach_stdin: Connect the child's stdin to ours
            cwd: Working directory for the child

        Returns:
            The started process, or None if the epoch is stale

        Raises:
            SpawnError: if the command cannot be started
        """
        argv = parse_command(command)

        with self._lock:
            if self._closed or epoch != self._epoch:
                return None

            try:
                process = subprocess.Popen(
                    argv,
                    stdin=None if attach_stdin else subprocess.DEVNULL,
                    cwd=cwd,
                )
            except (OSError, ValueError) as e:
                raise SpawnError(command, str(e)) from e

            self._process = process

        self.log.debug("process_started", epoch=epoch, pid=process.pid, argv=argv)
        return process

    def release(self, process: subprocess.Popen) -> None:
        """Clear the cell after ``process`` exited, unless it was already replaced."""
        with self._lock:
            if self._process is process:
                self._process = None

    def kill_active(self) -> bool:
        """
        Hard-kill the active process tree and clear the cell.

        Returns:
            True if a live process was killed
        """
        with self._lock:
            report = self._kill_locked()
        return self._log_kill(report) is not None

    def advance(self) -> tuple[int, subprocess.Popen | None]:
        """
        Kill the active process and start a new epoch.

        Returns:
            The new epoch and the process that was killed, if any
        """
        with self._lock:
            report = self._kill_locked()
            self._epoch += 1
            epoch = self._epoch
        return epoch, self._log_kill(report)

    def close(self) -> bool:
        """
        Kill the active process and refuse every later spawn.

        Returns:
            True if a live process was killed
        """
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            report = self._kill_locked()
        return self._log_kill(report) is not None

    def _kill_locked(self) -> _KillReport | None:
        """Kill and clear the current child. Caller must hold the lock."""
        process = self._process
        if process is None:
            return None

        # Cleared whatever the kill outcome
        self._process = None

        try:
            count = kill_process_tree(process)
        except KillError as e:
            return _KillReport(self._epoch, process, error=e)
        return _KillReport(self._epoch, process, count=count)

    def _log_kill(self, report: _KillReport | None) -> subprocess.Popen | None:
        """Log a kill after the lock was released. Returns the killed process."""
        if report is None:
            return None
        if report.error is not None:
            self.log.warning("kill_failed", pid=report.error.pid, reason=report.error.reason)
            return None
        self.log.info("process_killed", epoch=report.epoch, pid=report.process.pid, processes=report.count)
        return report.process
