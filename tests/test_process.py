"""
Tests for the Active Process cell.

Requires Python 3.11+.
"""

import subprocess
import sys
import time
from pathlib import Path

import psutil
import pytest

from saverun.supervisor.process import ActiveProcess, kill_process_tree, parse_command
from saverun.utils.errors import KillError, SpawnError

SLEEP = "import time; time.sleep(30)"


def _dead(proc: psutil.Process) -> bool:
    try:
        return proc.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


class TestParseCommand:
    """Test cases for parse_command."""

    def test_split(self):
        """Test shell-like splitting."""
        assert parse_command("echo 'hello world' x") == ["echo", "hello world", "x"]

    def test_empty(self):
        """Test that an empty command is a spawn error."""
        with pytest.raises(SpawnError, match="empty command"):
            parse_command("   ")

    def test_broken_quotes(self):
        """Test that unbalanced quotes are a spawn error."""
        with pytest.raises(SpawnError, match="invalid argument list"):
            parse_command("echo 'oops")


class TestActiveProcess:
    """Test cases for ActiveProcess."""

    @pytest.fixture
    def active(self):
        """Create a cell and make sure nothing outlives the test."""
        cell = ActiveProcess()
        yield cell
        cell.close()

    def test_initial_state(self, active: ActiveProcess):
        """Test a fresh cell."""
        assert active.epoch == 0
        assert active.process is None
        assert active.closed is False

    def test_spawn_records_process(self, active: ActiveProcess, py):
        """Test that a spawned child becomes the active process."""
        epoch, _ = active.advance()
        process = active.spawn(epoch, py(SLEEP))

        assert process is not None
        assert active.process is process

    def test_spawn_stale_epoch(self, active: ActiveProcess, py):
        """Test that a superseded run cannot start a child."""
        old_epoch, _ = active.advance()
        active.advance()

        assert active.spawn(old_epoch, py(SLEEP)) is None
        assert active.process is None

    def test_spawn_missing_executable(self, active: ActiveProcess):
        """Test that a missing executable raises SpawnError."""
        epoch, _ = active.advance()

        with pytest.raises(SpawnError) as excinfo:
            active.spawn(epoch, "saverun-no-such-executable --flag")

        assert excinfo.value.command == "saverun-no-such-executable --flag"
        assert active.process is None

    def test_release(self, active: ActiveProcess, py):
        """Test that release clears the cell after the child exited."""
        epoch, _ = active.advance()
        process = active.spawn(epoch, py("pass"))
        process.wait()

        active.release(process)

        assert active.process is None

    def test_release_ignores_other_process(self, active: ActiveProcess, py):
        """Test that releasing a replaced handle keeps the current one."""
        epoch, _ = active.advance()
        first = active.spawn(epoch, py("pass"))
        first.wait()
        active.release(first)
        second = active.spawn(epoch, py(SLEEP))

        active.release(first)

        assert active.process is second

    def test_advance_kills_and_increments(self, active: ActiveProcess, py):
        """Test that advance hard-kills the child and opens a new epoch."""
        epoch, killed = active.advance()
        assert killed is None
        process = active.spawn(epoch, py(SLEEP))

        new_epoch, killed = active.advance()

        assert new_epoch == epoch + 1
        assert killed is process
        assert active.process is None
        assert process.wait(timeout=10) != 0
        assert active.is_current(epoch) is False
        assert active.is_current(new_epoch) is True

    def test_kill_active_already_exited(self, active: ActiveProcess, py):
        """Test that killing an exited child is logged, not raised, and clears the cell."""
        epoch, _ = active.advance()
        process = active.spawn(epoch, py("pass"))
        process.wait()

        assert active.kill_active() is False
        assert active.process is None

    def test_kill_active_empty(self, active: ActiveProcess):
        """Test that killing with no child is a no-op."""
        assert active.kill_active() is False

    def test_close_blocks_spawns(self, active: ActiveProcess, py):
        """Test that close kills the child and refuses new ones."""
        epoch, _ = active.advance()
        process = active.spawn(epoch, py(SLEEP))

        assert active.close() is True
        assert process.wait(timeout=10) != 0
        assert active.is_current(epoch) is False
        assert active.spawn(epoch, py(SLEEP)) is None

    def test_close_twice(self, active: ActiveProcess):
        """Test that close is idempotent."""
        active.close()

        assert active.close() is False

    @pytest.mark.parametrize("kill", ["advance", "kill_active", "close"])
    def test_kill_logged_outside_lock(self, active: ActiveProcess, py, kill: str):
        """Test that kill results are logged after the cell lock is released."""
        lock_free_when_logging = []

        class Recorder:
            def _record(self, event, **kw):
                free = active._lock.acquire(blocking=False)
                if free:
                    active._lock.release()
                lock_free_when_logging.append((event, free))

            info = warning = debug = _record

        active._logger = Recorder()
        epoch, _ = active.advance()
        active.spawn(epoch, py(SLEEP))

        getattr(active, kill)()

        assert ("process_killed", True) in lock_free_when_logging
        assert all(free for _, free in lock_free_when_logging)

    def test_stdin_detached_by_default(self, active: ActiveProcess, py, tmp_path: Path):
        """Test that children read EOF from stdin unless attached."""
        out = tmp_path / "stdin.txt"
        code = f"import sys; open({str(out)!r}, 'w').write(repr(sys.stdin.read()))"
        epoch, _ = active.advance()

        process = active.spawn(epoch, py(code))
        process.wait(timeout=10)

        assert out.read_text() == "''"

    def test_cwd(self, active: ActiveProcess, py, tmp_path: Path):
        """Test that children start in the given directory."""
        code = "import os; open('cwd.txt', 'w').write(os.getcwd())"
        epoch, _ = active.advance()

        process = active.spawn(epoch, py(code), cwd=tmp_path)
        process.wait(timeout=10)

        assert Path((tmp_path / "cwd.txt").read_text()).resolve() == tmp_path.resolve()


class TestKillProcessTree:
    """Test cases for kill_process_tree."""

    def test_kills_grandchildren(self, tmp_path: Path, wait_until):
        """Test that descendants die with the child."""
        pid_file = tmp_path / "grandchild.pid"
        code = (
            "import subprocess, sys, time\n"
            "p = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
            f"open({str(pid_file)!r}, 'w').write(str(p.pid))\n"
            "time.sleep(30)\n"
        )
        process = subprocess.Popen([sys.executable, "-c", code])
        assert wait_until(lambda: pid_file.exists() and pid_file.read_text() != "")
        grandchild = psutil.Process(int(pid_file.read_text()))

        killed = kill_process_tree(process)

        assert killed == 2
        process.wait(timeout=10)
        assert wait_until(lambda: _dead(grandchild))

    def test_already_exited(self):
        """Test that an exited child raises KillError."""
        process = subprocess.Popen([sys.executable, "-c", "pass"])
        process.wait()

        with pytest.raises(KillError, match="already exited"):
            kill_process_tree(process)

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_hard_kill_ignores_handlers(self, tmp_path: Path, wait_until):
        """Test that a child ignoring SIGTERM still dies."""
        ready = tmp_path / "ready"
        code = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            f"open({str(ready)!r}, 'w').close()\n"
            "time.sleep(30)\n"
        )
        process = subprocess.Popen([sys.executable, "-c", code])
        assert wait_until(ready.exists)

        start = time.monotonic()
        kill_process_tree(process)
        process.wait(timeout=10)

        assert time.monotonic() - start < 10
        assert process.returncode != 0
