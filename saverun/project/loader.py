"""
saverun Configuration Loader.

Merges command-line input with the optional saverun.json project file
and compiles the exclusion rules once, before anything starts.
Requires Python 3.11+.
"""

import json
import re
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from saverun.project.models import ProjectFile, RunConfig
from saverun.supervisor.models import ChainPolicy, CommandChain
from saverun.utils.config import Settings, get_settings
from saverun.utils.errors import ConfigurationError
from saverun.utils.logger import get_logger
from saverun.watcher.file_watcher import MATCH_ALL
from saverun.watcher.path_filter import ExclusionRules

logger = get_logger(__name__)


def _glob_to_regex(pattern: str) -> str:
    """Escape literal text and turn each "*" into "(.*)"."""
    return "(.*)".join(re.escape(part) for part in pattern.split("*"))


def _root_prefix(root: Path) -> str:
    return str(root).replace("\\", "/").rstrip("/")


def anchor_dir_pattern(pattern: str, root: Path) -> str:
    """
    Anchor a directory pattern below the watched root.

    "build" becomes "^<root>/build(.*)$", so it matches the build
    directory and everything inside it.
    """
    return f"^{re.escape(_root_prefix(root))}/{_glob_to_regex(pattern)}(.*)$"


def anchor_file_pattern(pattern: str) -> str:
    """
    Anchor a file-name pattern to the start of the base name.

    The end is anchored too when the pattern ends with a letter, so
    "*.go" excludes "main.go" but not "main.go.orig".
    """
    regex = f"^{_glob_to_regex(pattern)}"
    if pattern[-1].isalpha():
        regex += "$"
    return regex


def hidden_rules(root: Path) -> ExclusionRules:
    """Rules excluding dot-directories below the root and dot-files."""
    return ExclusionRules.from_patterns(
        dirs=[f"^{re.escape(_root_prefix(root))}/(.*/)?\\.[^/]+"],
        files=[r"^\."],
    )


def compile_exclusions(dirs: Iterable[str], files: Iterable[str], root: Path) -> ExclusionRules:
    """Anchor and compile the project file's exclude section. Empty patterns are skipped."""
    return ExclusionRules.from_patterns(
        dirs=[anchor_dir_pattern(p, root) for p in dirs if p],
        files=[anchor_file_pattern(p) for p in files if p],
    )


def normalize_extensions(extensions: Iterable[str]) -> tuple[str, ...]:
    """Strip blanks and leading dots from file extensions."""
    return tuple(e.strip().lstrip(".") for e in extensions if e.strip().lstrip("."))


def compile_watch_pattern(extensions: Iterable[str]) -> re.Pattern[str]:
    """
    Build the regex a changed file's base name must match.

    Args:
        extensions: Extensions such as ["py", "txt"]; empty means all files

    Returns:
        Compiled pattern
    """
    exts = normalize_extensions(extensions)
    if not exts:
        return MATCH_ALL
    return re.compile(r".+\.(?:" + "|".join(re.escape(e) for e in exts) + r")$")


def parse_extension_list(raw: str | None) -> list[str]:
    """Split the "-w py,txt" flag value."""
    if not raw:
        return []
    return [e.strip() for e in raw.split(",") if e.strip()]


def load_project_file(path: Path, required: bool = False) -> ProjectFile | None:
    """
    Read and validate a project file.

    Args:
        path: Location of the JSON file
        required: Raise instead of returning None when the file is missing

    Returns:
        Parsed ProjectFile, or None if the optional file does not exist

    Raises:
        ConfigurationError: on missing required file, bad JSON or bad schema
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if required:
            raise ConfigurationError(f"config file not found: {path}")
        return None
    except OSError as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"failed to parse {path}: {e}") from e

    try:
        project = ProjectFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid {path}: {e}") from e

    logger.debug("project_file_loaded", path=str(path), project=project.model_dump())
    return project


def resolve_chain(
    commands: list[str] | None,
    piped: str | None,
    project: ProjectFile | None,
) -> CommandChain:
    """
    Pick the command chain by precedence.

    Command-line words win over piped input, which wins over the
    project file's "cmd".

    Raises:
        ConfigurationError: if no source provides a command
    """
    if commands:
        return CommandChain.parse(" ".join(commands))
    if piped is not None and piped.strip():
        return CommandChain.parse(piped.rstrip("\r\n"))
    if project is not None and project.cmd:
        return CommandChain.parse(project.cmd)
    raise ConfigurationError("no commands to run")


def load_config(
    commands: list[str] | None = None,
    piped: str | None = None,
    watch: list[str] | None = None,
    attach_stdin: bool = False,
    policy: ChainPolicy = ChainPolicy.CONTINUE_ON_FAILURE,
    config_file: Path | None = None,
    root: Path | None = None,
    settings: Settings | None = None,
) -> RunConfig:
    """
    Build the run configuration.

    Args:
        commands: Command words from the command line
        piped: Text read from a piped stdin
        watch: Extensions from the -w flag
        attach_stdin: Connect children to our stdin
        policy: Chain failure policy
        config_file: Explicit project file (must exist)
        root: Directory to watch, defaults to the working directory
        settings: Settings, defaults to get_settings()

    Returns:
        Resolved RunConfig

    Raises:
        ConfigurationError: on any invalid or missing input
    """
    settings = settings or get_settings()
    root = (root or Path.cwd()).resolve()

    if config_file is not None:
        project = load_project_file(config_file, required=True)
    else:
        project = load_project_file(root / settings.config_file)

    chain = resolve_chain(commands, piped, project)

    # -w overrides the project file's watch list
    extensions = normalize_extensions(watch or [])
    if not extensions and project is not None and project.watch:
        extensions = normalize_extensions(project.watch)

    rules = ExclusionRules()
    if project is not None:
        rules = compile_exclusions(project.exclude.dirs, project.exclude.files, root)
    if settings.watcher.ignore_hidden:
        rules = rules.extend(hidden_rules(root))

    config = RunConfig(
        chain=chain,
        rules=rules,
        watch_pattern=compile_watch_pattern(extensions),
        root=root,
        attach_stdin=attach_stdin,
        policy=policy,
        extensions=extensions,
    )
    logger.debug(
        "config_loaded",
        commands=list(chain.commands),
        extensions=list(extensions) or "all",
        exclude_dirs=[r.pattern for r in rules.dirs],
        exclude_files=[r.pattern for r in rules.files],
        policy=policy.value,
    )
    return config
