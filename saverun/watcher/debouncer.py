"""
saverun Debouncer.

Collapses bursts of file events into at most one trigger per quiet window.
Requires Python 3.11+.
"""

import threading
import time
from collections.abc import Callable

from saverun.supervisor.channel import TriggerChannel
from saverun.supervisor.models import ChangeEvent, Trigger
from saverun.utils.logger import LoggerMixin


class Debouncer(LoggerMixin):
    """
    Rate-limits triggers sent to the supervisor.

    An event is turned into a trigger only if the quiet window has
    elapsed since the last trigger that was *emitted*. Events inside
    the window are dropped, never replayed later, so a long burst of
    saves still yields one trigger per window.
    """

    def __init__(
        self,
        channel: TriggerChannel,
        quiet_window_ms: int = 3000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the debouncer.

        Args:
            channel: Channel receiving the triggers
            quiet_window_ms: Minimum time between two triggers
            clock: Monotonic time source in seconds
        """
        self._channel = channel
        self._window = quiet_window_ms / 1000.0
        self._clock = clock
        self._last_emitted: float | None = None
        self._lock = threading.Lock()
        self._emitted = 0
        self._dropped = 0

    def offer(self, event: ChangeEvent) -> bool:
        """
        Submit a relevant change event.

        Blocks while the channel still holds the previous trigger.

        Args:
            event: Change that passed the path filter

        Returns:
            True if a trigger was emitted, False if the event was dropped
        """
        with self._lock:
            now = self._clock()
            if self._last_emitted is not None and now - self._last_emitted < self._window:
                self._dropped += 1
                self.log.debug("event_debounced", path=event.path, kind=event.kind.value)
                return False

            if not self._channel.send(Trigger.from_event(event)):
                return False

            self._last_emitted = now
            self._emitted += 1

        self.log.debug("trigger_emitted", path=event.path, kind=event.kind.value)
        return True

    @property
    def emitted_count(self) -> int:
        """Number of triggers emitted so far."""
        return self._emitted

    @property
    def dropped_count(self) -> int:
        """Number of events dropped inside the quiet window."""
        return self._dropped
