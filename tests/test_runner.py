"""
Tests for the Command-Chain Runner.

Requires Python 3.11+.
"""

import os
import shutil
import threading
from pathlib import Path

import pytest

from saverun.supervisor.models import ChainPolicy, CommandChain, CommandStatus
from saverun.supervisor.process import ActiveProcess
from saverun.supervisor.runner import CommandChainRunner


def _stdout_lines(capfd) -> list[str]:
    return capfd.readouterr().out.splitlines()


class TestCommandChainRunner:
    """Test cases for CommandChainRunner."""

    @pytest.fixture
    def active(self):
        """Create an active process cell."""
        cell = ActiveProcess()
        yield cell
        cell.close()

    def _runner(self, active: ActiveProcess, commands: list[str], **kwargs) -> CommandChainRunner:
        return CommandChainRunner(CommandChain(tuple(commands)), active, **kwargs)

    def test_runs_in_order(self, active: ActiveProcess, py, capfd):
        """Test that commands run sequentially in chain order."""
        runner = self._runner(active, [py("print('one')"), py("print('two')"), py("print('three')")])
        epoch, _ = active.advance()

        result = runner.run(epoch)

        assert _stdout_lines(capfd) == ["one", "two", "three"]
        assert result.completed
        assert [o.status for o in result.outcomes] == [CommandStatus.EXITED] * 3
        assert active.process is None

    def test_continue_after_nonzero_exit(self, active: ActiveProcess, py, capfd):
        """Test that a failing command does not stop the chain."""
        runner = self._runner(active, [py("print('A')"), py("import sys; sys.exit(1)"), py("print('B')")])
        epoch, _ = active.advance()

        result = runner.run(epoch)

        assert _stdout_lines(capfd) == ["A", "B"]
        assert [o.returncode for o in result.outcomes] == [0, 1, 0]

    @pytest.mark.skipif(
        shutil.which("echo") is None or shutil.which("false") is None,
        reason="needs echo and false executables",
    )
    def test_echo_false_echo(self, active: ActiveProcess, capfd):
        """Test the "echo A && false && echo B" chain runs both echoes."""
        chain = CommandChain.parse("echo A && false && echo B")
        runner = CommandChainRunner(chain, active)
        epoch, _ = active.advance()

        runner.run(epoch)

        assert _stdout_lines(capfd) == ["A", "B"]

    def test_continue_after_spawn_failure(self, active: ActiveProcess, py, capfd):
        """Test that a command that cannot start is skipped."""
        runner = self._runner(active, [py("print('A')"), "saverun-no-such-executable", py("print('B')")])
        epoch, _ = active.advance()

        result = runner.run(epoch)

        assert _stdout_lines(capfd) == ["A", "B"]
        assert result.outcomes[1].status == CommandStatus.SPAWN_FAILED
        assert result.outcomes[1].error
        assert result.attempted == list(runner.chain.commands)

    def test_spawn_failure_first_command(self, active: ActiveProcess, py, capfd):
        """Test that later commands run when the first one fails to start."""
        runner = self._runner(active, ["echo 'unbalanced", py("print('B')")])
        epoch, _ = active.advance()

        result = runner.run(epoch)

        assert _stdout_lines(capfd) == ["B"]
        assert result.outcomes[0].status == CommandStatus.SPAWN_FAILED

    def test_stop_on_failure_exit(self, active: ActiveProcess, py, capfd):
        """Test that stop-on-failure ends the chain on a non-zero exit."""
        runner = self._runner(
            active,
            [py("print('A')"), py("import sys; sys.exit(3)"), py("print('B')")],
            policy=ChainPolicy.STOP_ON_FAILURE,
        )
        epoch, _ = active.advance()

        result = runner.run(epoch)

        assert _stdout_lines(capfd) == ["A"]
        assert len(result.outcomes) == 2
        assert result.outcomes[-1].returncode == 3
        assert result.completed

    def test_stop_on_failure_spawn(self, active: ActiveProcess, py, capfd):
        """Test that stop-on-failure ends the chain on a spawn failure."""
        runner = self._runner(
            active,
            ["saverun-no-such-executable", py("print('B')")],
            policy=ChainPolicy.STOP_ON_FAILURE,
        )
        epoch, _ = active.advance()

        result = runner.run(epoch)

        assert _stdout_lines(capfd) == []
        assert len(result.outcomes) == 1

    def test_stale_epoch_runs_nothing(self, active: ActiveProcess, py, capfd):
        """Test that a run for an old epoch starts no command."""
        runner = self._runner(active, [py("print('A')")])
        old_epoch, _ = active.advance()
        active.advance()

        result = runner.run(old_epoch)

        assert result.superseded
        assert result.outcomes == []
        assert _stdout_lines(capfd) == []

    def test_kill_stops_remaining_commands(self, active: ActiveProcess, py, tmp_path: Path, wait_until, lines):
        """Test that a kill mid-chain skips the rest of that epoch."""
        log = tmp_path / "log.txt"
        first = py(f"import time; open({str(log)!r}, 'a').write('one\\n'); time.sleep(30)")
        second = py(f"open({str(log)!r}, 'a').write('two\\n')")
        runner = self._runner(active, [first, second])
        epoch, _ = active.advance()
        results = []

        thread = threading.Thread(target=lambda: results.append(runner.run(epoch)))
        thread.start()
        assert wait_until(lambda: lines(log) == ["one"])

        active.advance()
        thread.join(timeout=10)

        assert not thread.is_alive()
        result = results[0]
        assert result.superseded
        assert result.outcomes[0].status == CommandStatus.SUPERSEDED
        assert len(result.outcomes) == 1
        assert lines(log) == ["one"]

    def test_attach_stdin(self, active: ActiveProcess, py, tmp_path: Path):
        """Test that attach_stdin hands our stdin to the child."""
        source = tmp_path / "input.txt"
        source.write_text("hello\n")
        out = tmp_path / "out.txt"
        code = f"import sys; open({str(out)!r}, 'w').write(sys.stdin.read())"
        runner = self._runner(active, [py(code)], attach_stdin=True)
        epoch, _ = active.advance()

        # Popen inherits file descriptor 0
        saved = os.dup(0)
        with source.open() as stdin:
            os.dup2(stdin.fileno(), 0)
            try:
                runner.run(epoch)
            finally:
                os.dup2(saved, 0)
                os.close(saved)

        assert out.read_text() == "hello\n"
