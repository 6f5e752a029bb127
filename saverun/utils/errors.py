"""
saverun Error Types.

Startup errors are fatal; spawn and kill errors are recoverable
and only logged by the supervisor.
Requires Python 3.11+.
"""


class SaverunError(Exception):
    """Base class for all saverun errors."""


class ConfigurationError(SaverunError):
    """Invalid or missing configuration (command chain, project file, flags)."""


class WatchSourceError(SaverunError):
    """The filesystem event source could not start or stopped unexpectedly."""


class SpawnError(SaverunError):
    """A command of the chain could not be started."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"failed to start {command!r}: {reason}")
        self.command = command
        self.reason = reason


class KillError(SaverunError):
    """Killing the active process failed, usually because it already exited."""

    def __init__(self, pid: int, reason: str) -> None:
        super().__init__(f"failed to kill pid {pid}: {reason}")
        self.pid = pid
        self.reason = reason
