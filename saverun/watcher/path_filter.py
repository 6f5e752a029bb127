"""
saverun Path Filter.

Decides whether a changed path is worth re-running the chain for.
Requires Python 3.11+.
"""

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass

from saverun.utils.logger import get_logger

logger = get_logger(__name__)


def compile_rules(patterns: Iterable[str], kind: str) -> tuple[re.Pattern[str], ...]:
    """
    Compile exclusion patterns, dropping the ones that are not valid regexes.

    Args:
        patterns: Regular expressions
        kind: "dirs" or "files", for the log entry

    Returns:
        Compiled patterns, in input order
    """
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            logger.warning("invalid_exclude_pattern", kind=kind, pattern=pattern, error=str(e))
    return tuple(compiled)


@dataclass(frozen=True)
class ExclusionRules:
    """Compiled directory and file-name exclusion rules."""

    dirs: tuple[re.Pattern[str], ...] = ()
    files: tuple[re.Pattern[str], ...] = ()

    @classmethod
    def from_patterns(
        cls,
        dirs: Iterable[str] = (),
        files: Iterable[str] = (),
    ) -> "ExclusionRules":
        """Build rules from raw regex strings."""
        return cls(dirs=compile_rules(dirs, "dirs"), files=compile_rules(files, "files"))

    def extend(self, other: "ExclusionRules") -> "ExclusionRules":
        """Return rules holding both rule sets."""
        return ExclusionRules(dirs=self.dirs + other.dirs, files=self.files + other.files)

    def __bool__(self) -> bool:
        return bool(self.dirs or self.files)


def is_relevant(path: str, rules: ExclusionRules) -> bool:
    """
    Check if a change to ``path`` should trigger a run.

    The directory part is matched against the directory rules and the
    base name against the file rules, both with ``re.search``.

    Args:
        path: Changed path as reported by the event source
        rules: Exclusion rules

    Returns:
        False if any rule excludes the path, True otherwise
    """
    if not rules:
        return True

    directory = os.path.dirname(path).replace("\\", "/")
    for rule in rules.dirs:
        if rule.search(directory):
            return False

    base = os.path.basename(path)
    for rule in rules.files:
        if rule.search(base):
            return False

    return True
