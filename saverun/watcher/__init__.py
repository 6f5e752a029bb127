"""
saverun File Watcher Package.

File system monitoring, path filtering and debouncing.
Requires Python 3.11+.
"""

from saverun.watcher.debouncer import Debouncer
from saverun.watcher.file_watcher import ChangeEventHandler, FileWatcher
from saverun.watcher.path_filter import ExclusionRules, is_relevant

__all__ = ["ChangeEventHandler", "Debouncer", "ExclusionRules", "FileWatcher", "is_relevant"]
