"""
saverun Supervisor Package.

Trigger channel, process supervision and command-chain execution.
Requires Python 3.11+.
"""

from saverun.supervisor.channel import TriggerChannel
from saverun.supervisor.models import (
    ChainPolicy,
    ChainResult,
    ChangeEvent,
    ChangeKind,
    CommandChain,
    CommandOutcome,
    CommandStatus,
    Trigger,
)
from saverun.supervisor.process import ActiveProcess, kill_process_tree
from saverun.supervisor.runner import CommandChainRunner
from saverun.supervisor.shutdown import ShutdownWatcher
from saverun.supervisor.supervisor import ProcessSupervisor

__all__ = [
    "ActiveProcess",
    "ChainPolicy",
    "ChainResult",
    "ChangeEvent",
    "ChangeKind",
    "CommandChain",
    "CommandChainRunner",
    "CommandOutcome",
    "CommandStatus",
    "ProcessSupervisor",
    "ShutdownWatcher",
    "Trigger",
    "TriggerChannel",
    "kill_process_tree",
]
