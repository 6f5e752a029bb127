"""
saverun Trigger Channel.

Single-slot handoff between the debouncer and the process supervisor.
Requires Python 3.11+.
"""

import queue

from saverun.supervisor.models import Trigger

# Pushed by close() to wake a blocked receiver
_CLOSED = object()

# Seconds between close() checks of a blocked sender
_POLL_INTERVAL = 0.25


class TriggerChannel:
    """
    Holds at most one pending trigger.

    A sender blocks while the previous trigger has not been received,
    which throttles event bursts the debouncer let through.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=1)
        self._closed = False

    def send(self, trigger: Trigger, timeout: float | None = None) -> bool:
        """
        Hand a trigger to the supervisor.

        Args:
            trigger: Trigger to deliver
            timeout: Seconds to wait for the slot, None to wait forever

        Returns:
            True if delivered, False if the channel is closed or the wait timed out
        """
        if timeout is not None:
            if self._closed:
                return False
            try:
                self._queue.put(trigger, timeout=timeout)
            except queue.Full:
                return False
            return True

        # Wait in slices so a sender blocked on a full slot notices close()
        while not self._closed:
            try:
                self._queue.put(trigger, timeout=_POLL_INTERVAL)
            except queue.Full:
                continue
            return True
        return False

    def receive(self, timeout: float | None = None) -> Trigger | None:
        """Wait for the next trigger. Returns None on timeout or once closed."""
        if self._closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            return None
        return item  # type: ignore[return-value]

    def close(self) -> None:
        """Stop accepting triggers and wake the receiver."""
        if self._closed:
            return
        self._closed = True
        # Drop any pending trigger so the sentinel always fits
        try:
            self._queue.get_nowait()
        except queue.Empty:
            pass
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            pass

    @property
    def closed(self) -> bool:
        """Check if the channel was closed."""
        return self._closed

    @property
    def pending(self) -> bool:
        """Check if a trigger is waiting to be received."""
        return not self._queue.empty()
