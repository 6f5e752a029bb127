"""
saverun Command Line Interface.

Re-runs a chain of commands whenever files below the working
directory change.
Requires Python 3.11+.

Usage:
    saverun 'make && ./bin/app'
    saverun -w py,toml pytest -x
    echo 'go build && ./server' | saverun
"""

import argparse
import sys
from pathlib import Path
from typing import TextIO

from saverun import __version__
from saverun.app import EXIT_CONFIG_ERROR, Application
from saverun.project.loader import load_config, parse_extension_list
from saverun.supervisor.models import ChainPolicy
from saverun.utils.config import Settings, get_settings
from saverun.utils.errors import ConfigurationError
from saverun.utils.logger import configure_logging, get_logger


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="saverun",
        description="Re-run a chain of commands whenever files change.",
        epilog="Commands are separated by '&&'. Quote the chain so the shell does not run it.",
    )
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="command chain, e.g. 'make && ./app' (read from stdin when piped)",
    )
    parser.add_argument(
        "-w",
        "--watch",
        default="",
        help="file extensions to watch for, e.g. 'py,toml' (overrides the project file)",
    )
    parser.add_argument(
        "--stdin",
        action="store_true",
        help="attach stdin to the running commands",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="verbose output (for debugging)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="project file to use instead of ./saverun.json",
    )
    parser.add_argument(
        "--policy",
        choices=[p.value for p in ChainPolicy],
        default=ChainPolicy.CONTINUE_ON_FAILURE.value,
        help="keep going after a failed command (default) or stop the chain",
    )
    parser.add_argument(
        "--polling",
        action="store_true",
        help="poll the filesystem instead of using native events",
    )
    parser.add_argument(
        "--wait-for-exit",
        action="store_true",
        help="wait for a killed command to exit before restarting",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def read_piped_input(stream: TextIO) -> str | None:
    """Return stdin's contents when it is a pipe or file, None for a terminal."""
    try:
        if stream.isatty():
            return None
    except (AttributeError, ValueError):
        return None
    return stream.read()


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Fold command-line switches into a copy of the settings."""
    updates = {}
    if args.polling:
        updates["watcher"] = settings.watcher.model_copy(update={"use_polling": True})
    if args.wait_for_exit:
        updates["supervisor"] = settings.supervisor.model_copy(update={"wait_for_exit": True})
    if args.verbose:
        updates["logging"] = settings.logging.model_copy(update={"level": "DEBUG"})
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def main(argv: list[str] | None = None) -> int:
    """
    Entry point.

    Returns:
        Exit status: 2 for configuration errors, 1 if watching failed,
        0 after an interrupt
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = apply_overrides(get_settings(), args)
    configure_logging(level=settings.logging.level)
    logger = get_logger("saverun")

    commands = list(args.command)
    if commands and commands[0] == "--":
        commands = commands[1:]

    piped = None
    if not commands:
        piped = read_piped_input(sys.stdin)

    try:
        config = load_config(
            commands=commands,
            piped=piped,
            watch=parse_extension_list(args.watch),
            attach_stdin=args.stdin,
            policy=ChainPolicy(args.policy),
            config_file=args.config,
            settings=settings,
        )
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        print(
            f"Usage:\n\t{parser.prog} 'command1 [&& command ...]'\n\tUse --help for more",
            file=sys.stderr,
        )
        return EXIT_CONFIG_ERROR

    return Application(config, settings).run()
