"""
saverun Shutdown Watcher.

Kills the active child process when the program is interrupted.
Requires Python 3.11+.
"""

import os
import signal
import threading
import time
from collections.abc import Callable
from types import FrameType

from saverun.supervisor.process import ActiveProcess
from saverun.utils.logger import LoggerMixin

# Seconds between checks for a request recorded by the signal handler
_POLL_INTERVAL = 0.05


def _fatal_signals() -> list[signal.Signals]:
    """Interrupt and terminate signals available on this platform."""
    names = ("SIGINT", "SIGTERM", "SIGQUIT")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


class ShutdownWatcher(LoggerMixin):
    """
    Handles SIGINT, SIGTERM and SIGQUIT.

    The handler runs on the main thread in between whatever that thread
    was doing, possibly while it holds the log output lock or the
    active process lock. It therefore only records the request; the
    main thread calls ``finish()`` once ``wait()`` returns, which
    closes the active process cell. A second signal calls
    ``force_exit(1)`` right away, without logging or killing.
    """

    def __init__(
        self,
        active: ActiveProcess,
        force_exit: Callable[[int], None] = os._exit,
    ) -> None:
        """
        Initialize the shutdown watcher.

        Args:
            active: Shared active process cell
            force_exit: Called with status 1 on a repeated signal
        """
        self._active = active
        self._force_exit = force_exit
        self._requested = False
        self._signum: int | None = None
        # Set by shutdown() to wake waiters early, never by the handler
        self._wakeup = threading.Event()
        self._finish_lock = threading.Lock()
        self._finished = False
        self._previous: dict[int, object] = {}

    def install(self) -> None:
        """Register the handlers. Must be called from the main thread."""
        for sig in _fatal_signals():
            self._previous[sig] = signal.signal(sig, self._handle)
        self.log.debug("shutdown_watcher_installed", signals=[s.name for s in _fatal_signals()])

    def uninstall(self) -> None:
        """Restore the handlers that were active before install()."""
        for sig, handler in self._previous.items():
            # None means the old handler was not installed from Python
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
        self._previous.clear()

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        # No locks and no logging in here
        self.request(signum)

    def request(self, signum: int | None = None) -> None:
        """
        Record a shutdown request without taking any lock.

        A repeated request exits the process with status 1.
        """
        if self._requested:
            self._force_exit(1)
            return
        self._signum = signum
        self._requested = True

    def finish(self) -> bool:
        """
        Kill the active process and refuse further spawns.

        Runs once; later calls do nothing. Must not be called from a
        signal handler.

        Returns:
            True if this call performed the shutdown
        """
        with self._finish_lock:
            if self._finished:
                return False
            self._finished = True

        self.log.info("exiting", signal=_signal_name(self._signum))
        self._active.close()
        return True

    def shutdown(self, signum: int | None = None) -> None:
        """Request shutdown and perform it on the calling thread."""
        self.request(signum)
        self._wakeup.set()
        self.finish()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until shutdown was requested. Returns True if it was."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._requested:
            interval = _POLL_INTERVAL
            if deadline is not None:
                interval = min(interval, deadline - time.monotonic())
                if interval <= 0:
                    return False
            self._wakeup.wait(interval)
        return True

    @property
    def stopped(self) -> bool:
        """Check if shutdown was requested."""
        return self._requested

    @property
    def signum(self) -> int | None:
        """Signal that started the shutdown, if any."""
        return self._signum


def _signal_name(signum: int | None) -> str | None:
    if signum is None:
        return None
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
