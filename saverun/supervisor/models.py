"""
saverun Supervisor Data Models.

Defines change events, triggers, command chains and run reports.
Requires Python 3.11+.
"""

from dataclasses import dataclass, field
from enum import Enum

from saverun.utils.errors import ConfigurationError

# Separator between commands in a chain, e.g. "make && ./app"
CHAIN_SEPARATOR = "&&"


class ChangeKind(str, Enum):
    """Kinds of filesystem changes that can trigger a run."""

    CREATE = "create"
    WRITE = "write"
    RENAME = "rename"
    MOVE = "move"


class ChainPolicy(str, Enum):
    """
    What the runner does after a command fails.

    CONTINUE_ON_FAILURE runs the next command even though commands are
    written with "&&" between them. STOP_ON_FAILURE gives the shell
    meaning of "&&": a spawn failure or non-zero exit ends the run.
    """

    CONTINUE_ON_FAILURE = "continue-on-failure"
    STOP_ON_FAILURE = "stop-on-failure"


class CommandStatus(str, Enum):
    """Final status of one command in a run."""

    EXITED = "exited"
    SPAWN_FAILED = "spawn_failed"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem change reported by the event source."""

    path: str
    kind: ChangeKind


@dataclass(frozen=True)
class Trigger:
    """Signal to re-run the command chain. The path is only for diagnostics."""

    path: str | None = None
    reason: str = "change"

    @classmethod
    def startup(cls) -> "Trigger":
        """Trigger used to run the chain once when the program starts."""
        return cls(path=None, reason="startup")

    @classmethod
    def from_event(cls, event: ChangeEvent) -> "Trigger":
        """Trigger caused by a filesystem change."""
        return cls(path=event.path, reason=event.kind.value)


@dataclass(frozen=True)
class CommandChain:
    """Ordered, immutable list of commands executed for each epoch."""

    commands: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.commands:
            raise ConfigurationError("no commands to run")

    @classmethod
    def parse(cls, raw: str) -> "CommandChain":
        """
        Split a "cmd1 && cmd2" string into a chain.

        Raises:
            ConfigurationError: if the string holds no command at all
        """
        commands = tuple(part.strip() for part in raw.split(CHAIN_SEPARATOR))
        if not any(commands):
            raise ConfigurationError("no commands to run")
        return cls(commands=commands)

    def __iter__(self):
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)

    def __str__(self) -> str:
        return f" {CHAIN_SEPARATOR} ".join(self.commands)


@dataclass
class CommandOutcome:
    """What happened to one command during a run."""

    index: int
    command: str
    status: CommandStatus
    returncode: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """Check if the command ran and exited with status zero."""
        return self.status == CommandStatus.EXITED and self.returncode == 0


@dataclass
class ChainResult:
    """Report of one epoch's run of the command chain."""

    epoch: int
    outcomes: list[CommandOutcome] = field(default_factory=list)
    superseded: bool = False

    @property
    def attempted(self) -> list[str]:
        """Commands the runner tried to start, in order."""
        return [o.command for o in self.outcomes]

    @property
    def completed(self) -> bool:
        """Check if the run ended without being superseded."""
        return not self.superseded
