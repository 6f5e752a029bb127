"""
saverun Project Configuration Package.

Loads saverun.json and merges it with command-line input.
Requires Python 3.11+.
"""

from saverun.project.loader import (
    anchor_dir_pattern,
    anchor_file_pattern,
    compile_watch_pattern,
    load_config,
    load_project_file,
)
from saverun.project.models import ProjectFile, RunConfig

__all__ = [
    "ProjectFile",
    "RunConfig",
    "anchor_dir_pattern",
    "anchor_file_pattern",
    "compile_watch_pattern",
    "load_config",
    "load_project_file",
]
