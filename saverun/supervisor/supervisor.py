"""
saverun Process Supervisor.

Turns triggers into kill-then-restart cycles of the command chain.
Requires Python 3.11+.
"""

import subprocess
import threading
import time

from saverun.supervisor.channel import TriggerChannel
from saverun.supervisor.models import Trigger
from saverun.supervisor.process import ActiveProcess
from saverun.supervisor.runner import CommandChainRunner
from saverun.utils.logger import LoggerMixin


class ProcessSupervisor(LoggerMixin):
    """
    Consumes triggers and restarts the command chain for each one.

    Each trigger hard-kills the running child (if any), opens a new
    epoch and starts the runner on its own thread. The killed process
    is not waited for unless ``wait_for_exit`` is set; a short settle
    delay separates its last output from the new run instead.
    """

    def __init__(
        self,
        channel: TriggerChannel,
        active: ActiveProcess,
        runner: CommandChainRunner,
        settle_delay_ms: int = 1000,
        wait_for_exit: bool = False,
        exit_timeout_ms: int = 5000,
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            channel: Source of triggers
            active: Shared active process cell
            runner: Runner executing the chain
            settle_delay_ms: Pause after a kill before restarting
            wait_for_exit: Wait for the killed process instead of pausing
            exit_timeout_ms: Upper bound for that wait
        """
        self._channel = channel
        self._active = active
        self._runner = runner
        self._settle_delay = settle_delay_ms / 1000.0
        self._wait_for_exit = wait_for_exit
        self._exit_timeout = exit_timeout_ms / 1000.0

        self._thread: threading.Thread | None = None
        self._run_threads: list[threading.Thread] = []
        self._running = False

    def start(self) -> None:
        """Start the supervisor loop on a daemon thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(
            target=self._loop,
            name="saverun-supervisor",
            daemon=True,
        )
        self._thread.start()
        self.log.debug("supervisor_started")

    def stop(self, timeout: float = 5.0) -> None:
        """Close the channel and wait for the loop to exit."""
        if not self._running:
            return

        self._running = False
        self._channel.close()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self.log.debug("supervisor_stopped")

    def _loop(self) -> None:
        """Receive triggers until the channel is closed."""
        while self._running:
            trigger = self._channel.receive()
            if trigger is None:
                break
            if not self._running or self._active.closed:
                break
            self.restart(trigger)

    def restart(self, trigger: Trigger) -> threading.Thread | None:
        """
        Kill the current run and start the chain under a new epoch.

        Args:
            trigger: The trigger being handled

        Returns:
            The thread executing the new run, or None after shutdown
        """
        epoch, killed = self._active.advance()
        self.log.info("restart_triggered", epoch=epoch, reason=trigger.reason, path=trigger.path)

        if killed is not None:
            self._settle(killed)

        if self._active.closed:
            return None

        thread = threading.Thread(
            target=self._runner.run,
            args=(epoch,),
            name=f"saverun-chain-{epoch}",
            daemon=True,
        )
        thread.start()
        self._run_threads = [t for t in self._run_threads if t.is_alive()]
        self._run_threads.append(thread)
        return thread

    def _settle(self, killed: subprocess.Popen) -> None:
        """Give the killed process time to go away before new output starts."""
        if not self._wait_for_exit:
            time.sleep(self._settle_delay)
            return

        try:
            killed.wait(timeout=self._exit_timeout)
        except subprocess.TimeoutExpired:
            self.log.warning("killed_process_still_running", pid=killed.pid, timeout=self._exit_timeout)

    @property
    def is_running(self) -> bool:
        """Check if the supervisor loop is running."""
        return self._running

    @property
    def active_runs(self) -> int:
        """Number of runner threads that have not finished yet."""
        return sum(1 for t in self._run_threads if t.is_alive())
