"""
saverun Project File Models.

Schema of the optional saverun.json project file and the merged
configuration handed to the application.
Requires Python 3.11+.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from saverun.supervisor.models import ChainPolicy, CommandChain
from saverun.watcher.path_filter import ExclusionRules


class ExcludeSection(BaseModel):
    """Directory and file patterns to ignore."""

    model_config = ConfigDict(extra="ignore")

    dirs: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)


class ProjectFile(BaseModel):
    """
    Contents of saverun.json.

    Example:
        {
            "watch": ["py", "toml"],
            "exclude": {"dirs": ["build", "*.egg-info"], "files": ["*_test.py"]},
            "cmd": "ruff check . && pytest -x"
        }
    """

    model_config = ConfigDict(extra="ignore")

    watch: list[str] | None = None
    exclude: ExcludeSection = Field(default_factory=ExcludeSection)
    cmd: str | None = None

    @field_validator("watch", mode="before")
    @classmethod
    def parse_watch(cls, v: str | list[str] | None) -> list[str] | None:
        """Accept "py,txt" as well as ["py", "txt"]."""
        if isinstance(v, str):
            return [e.strip() for e in v.split(",") if e.strip()]
        return v


@dataclass(frozen=True)
class RunConfig:
    """Everything the application needs, resolved once at startup."""

    chain: CommandChain
    rules: ExclusionRules
    watch_pattern: re.Pattern[str]
    root: Path
    attach_stdin: bool = False
    policy: ChainPolicy = ChainPolicy.CONTINUE_ON_FAILURE
    extensions: tuple[str, ...] = ()
