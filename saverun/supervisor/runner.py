"""
saverun Command-Chain Runner.

Executes the configured commands of one epoch, one after another.
Requires Python 3.11+.
"""

from pathlib import Path

from saverun.supervisor.models import (
    ChainPolicy,
    ChainResult,
    CommandChain,
    CommandOutcome,
    CommandStatus,
)
from saverun.supervisor.process import ActiveProcess
from saverun.utils.errors import SpawnError
from saverun.utils.logger import LoggerMixin


class CommandChainRunner(LoggerMixin):
    """
    Runs a CommandChain under a given epoch.

    With the default CONTINUE_ON_FAILURE policy the chain is not
    short-circuited: a command that fails to start, or exits non-zero,
    is followed by the next one even though the chain is written as
    "a && b". Only a kill (new epoch or shutdown) stops the run early.
    """

    def __init__(
        self,
        chain: CommandChain,
        active: ActiveProcess,
        attach_stdin: bool = False,
        policy: ChainPolicy = ChainPolicy.CONTINUE_ON_FAILURE,
        cwd: Path | None = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            chain: Commands to execute per epoch
            active: Shared active process cell
            attach_stdin: Connect child stdin to ours
            policy: What to do after a failed command
            cwd: Working directory for every command
        """
        self._chain = chain
        self._active = active
        self._attach_stdin = attach_stdin
        self._policy = policy
        self._cwd = cwd

    @property
    def chain(self) -> CommandChain:
        """The commands this runner executes."""
        return self._chain

    @property
    def policy(self) -> ChainPolicy:
        """The failure policy in use."""
        return self._policy

    def run(self, epoch: int) -> ChainResult:
        """
        Execute the chain from the first command.

        Blocks until the last command finished or the epoch went stale.

        Args:
            epoch: Epoch this run belongs to

        Returns:
            ChainResult describing every command that was attempted
        """
        result = ChainResult(epoch=epoch)
        total = len(self._chain)

        for index, command in enumerate(self._chain, start=1):
            if not self._active.is_current(epoch):
                result.superseded = True
                break

            self.log.info("command_started", epoch=epoch, index=index, total=total, command=command)

            try:
                process = self._active.spawn(
                    epoch,
                    command,
                    attach_stdin=self._attach_stdin,
                    cwd=self._cwd,
                )
            except SpawnError as e:
                self.log.error("command_spawn_failed", epoch=epoch, index=index, command=command, reason=e.reason)
                result.outcomes.append(
                    CommandOutcome(index, command, CommandStatus.SPAWN_FAILED, error=e.reason)
                )
                if self._policy == ChainPolicy.STOP_ON_FAILURE:
                    break
                continue

            if process is None:
                # A new epoch began between the check and the spawn
                result.superseded = True
                break

            returncode = process.wait()
            self._active.release(process)

            if not self._active.is_current(epoch):
                self.log.info("command_superseded", epoch=epoch, index=index, command=command)
                result.outcomes.append(
                    CommandOutcome(index, command, CommandStatus.SUPERSEDED, returncode=returncode)
                )
                result.superseded = True
                break

            self.log.info("command_finished", epoch=epoch, index=index, command=command, returncode=returncode)
            outcome = CommandOutcome(index, command, CommandStatus.EXITED, returncode=returncode)
            result.outcomes.append(outcome)
            if not outcome.succeeded and self._policy == ChainPolicy.STOP_ON_FAILURE:
                break

        if not result.superseded:
            self.log.info("chain_finished", epoch=epoch, attempted=len(result.outcomes), total=total)
        return result
