"""
saverun Test Configuration.

Pytest fixtures and configuration.
Requires Python 3.11+.
"""

import shlex
import sys
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from saverun.utils.config import (
    DebounceSettings,
    Settings,
    SupervisorSettings,
    WatcherSettings,
)
from saverun.utils.logger import configure_logging


@pytest.fixture(scope="session", autouse=True)
def logging_to_stderr() -> None:
    """Send log output to stderr so stdout only carries child output."""
    configure_logging(level="DEBUG", fmt="console")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def py() -> Callable[[str], str]:
    """Build a command string running Python code with this interpreter."""

    def build(code: str) -> str:
        return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"

    return build


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a condition until it holds or the timeout expires."""

    def wait(condition: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return wait


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with no debounce or settle delay and a fast polling observer."""
    return Settings(
        watcher=WatcherSettings(use_polling=True, poll_interval_ms=100),
        debounce=DebounceSettings(quiet_window_ms=0),
        supervisor=SupervisorSettings(settle_delay_ms=0),
    )


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create an empty project directory and make it the working directory."""
    root = tmp_path / "project"
    root.mkdir()
    monkeypatch.chdir(root)
    return root


def read_lines(path: Path) -> list[str]:
    """Lines of a marker file, or [] if it does not exist yet."""
    if not path.exists():
        return []
    return path.read_text().splitlines()


@pytest.fixture
def lines() -> Callable[[Path], list[str]]:
    """Read the lines of a marker file written by a child process."""
    return read_lines
