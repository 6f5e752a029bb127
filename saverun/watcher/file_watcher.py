"""
saverun File Watcher.

Cross-platform file system monitoring using watchdog.
Requires Python 3.11+.
"""

import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from saverun.supervisor.models import ChangeEvent, ChangeKind
from saverun.utils.errors import WatchSourceError
from saverun.utils.logger import LoggerMixin
from saverun.watcher.path_filter import ExclusionRules, is_relevant

# Matches every file name
MATCH_ALL = re.compile(r".+")


def _path(raw: str | bytes) -> str:
    return os.fsdecode(raw).replace("\\", "/")


class ChangeEventHandler(FileSystemEventHandler, LoggerMixin):
    """
    Converts watchdog file events into ChangeEvents.

    Only creations, writes, renames and moves of files are reported;
    deletions and directory events are ignored. Events are passed on
    only if the base name matches the watch pattern and the path is
    not excluded.
    """

    def __init__(
        self,
        on_event: Callable[[ChangeEvent], Any],
        rules: ExclusionRules | None = None,
        watch_pattern: re.Pattern[str] | None = None,
    ) -> None:
        """
        Initialize the handler.

        Args:
            on_event: Called with every relevant ChangeEvent
            rules: Exclusion rules
            watch_pattern: Regex the file's base name must match
        """
        super().__init__()
        self._on_event = on_event
        self._rules = rules or ExclusionRules()
        self._watch_pattern = watch_pattern or MATCH_ALL

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation."""
        if isinstance(event, FileCreatedEvent):
            self._dispatch(ChangeEvent(_path(event.src_path), ChangeKind.CREATE))

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification."""
        if isinstance(event, FileModifiedEvent):
            self._dispatch(ChangeEvent(_path(event.src_path), ChangeKind.WRITE))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file rename or move; the destination is what changed."""
        if not isinstance(event, FileMovedEvent):
            return

        src = _path(event.src_path)
        dest = _path(event.dest_path)
        if os.path.dirname(src) == os.path.dirname(dest):
            kind = ChangeKind.RENAME
        else:
            kind = ChangeKind.MOVE
        self._dispatch(ChangeEvent(dest, kind))

    def accepts(self, change: ChangeEvent) -> bool:
        """Check the watch pattern and the exclusion rules."""
        if not self._watch_pattern.search(os.path.basename(change.path)):
            return False
        return is_relevant(change.path, self._rules)

    def _dispatch(self, change: ChangeEvent) -> None:
        if not self.accepts(change):
            self.log.debug("change_ignored", path=change.path, kind=change.kind.value)
            return

        self.log.debug("change_detected", path=change.path, kind=change.kind.value)
        self._on_event(change)


class FileWatcher(LoggerMixin):
    """
    Watches a directory tree and feeds relevant changes to a callback.

    Runs the watchdog observer on its own thread; the callback (the
    debouncer) is invoked on that thread.
    """

    def __init__(
        self,
        root_path: Path,
        on_event: Callable[[ChangeEvent], Any],
        rules: ExclusionRules | None = None,
        watch_pattern: re.Pattern[str] | None = None,
        poll_interval_ms: int = 300,
        use_polling: bool = False,
        recursive: bool = True,
    ) -> None:
        """
        Initialize the file watcher.

        Args:
            root_path: Root directory to watch
            on_event: Callback for each relevant change
            rules: Exclusion rules
            watch_pattern: Regex the changed file's base name must match
            poll_interval_ms: Observer polling interval
            use_polling: Use stat polling instead of native events
            recursive: Whether to watch subdirectories
        """
        self._root_path = root_path
        self._poll_interval = poll_interval_ms / 1000.0
        self._use_polling = use_polling
        self._recursive = recursive

        self._handler = ChangeEventHandler(
            on_event=on_event,
            rules=rules,
            watch_pattern=watch_pattern,
        )

        self._observer: BaseObserver | None = None
        self._running = False

    def _make_observer(self) -> BaseObserver:
        if self._use_polling:
            return PollingObserver(timeout=self._poll_interval)
        return Observer(timeout=self._poll_interval)

    def start(self) -> None:
        """
        Start watching for file changes.

        Raises:
            WatchSourceError: if the root is missing or the observer cannot start
        """
        if self._running:
            return

        if not self._root_path.is_dir():
            raise WatchSourceError(f"not a directory: {self._root_path}")

        observer = self._make_observer()
        try:
            observer.schedule(
                self._handler,
                str(self._root_path),
                recursive=self._recursive,
            )
            observer.start()
        except OSError as e:
            raise WatchSourceError(f"failed to watch {self._root_path}: {e}") from e

        self._observer = observer
        self._running = True

        self.log.info(
            "file_watcher_started",
            path=str(self._root_path),
            recursive=self._recursive,
            polling=self._use_polling,
        )

    def stop(self) -> None:
        """Stop watching for file changes."""
        if not self._running:
            return

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None

        self._running = False
        self.log.info("file_watcher_stopped")

    def is_alive(self) -> bool:
        """Check if the observer thread is still delivering events."""
        return self._running and self._observer is not None and self._observer.is_alive()

    @property
    def is_running(self) -> bool:
        """Check if the watcher was started and not stopped."""
        return self._running

    @property
    def handler(self) -> ChangeEventHandler:
        """The event handler, for feeding events directly."""
        return self._handler

    def __enter__(self) -> "FileWatcher":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.stop()
