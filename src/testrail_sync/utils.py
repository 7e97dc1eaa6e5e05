"""
Utility functions for the TestRail synchronization tool.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import subprocess
from typing import Final

TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d_%H-%M-%S"

_CONSOLE_LEVELS: Final[dict[int, int]] = {0: logging.WARNING, 1: logging.INFO}
LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid or the entry does not exist."""


def setup_logging(*, verbosity: int = 0) -> None:
    """Configure console logging for the synchronization run.

    The console shows warnings by default, info with -v and debug with -vv.
    The per-run log file is opened by MigrationContext in its log directory.
    """
    console_handler = logging.StreamHandler()
    console_handler.setLevel(_CONSOLE_LEVELS.get(verbosity, logging.DEBUG))

    logging.basicConfig(
        level=logging.DEBUG,
        format=LOG_FORMAT,
        handlers=[console_handler],
    )


def timestamp(moment: dt.datetime | None = None) -> str:
    """Second-resolution timestamp used in output file names."""
    return (moment or dt.datetime.now()).strftime(TIMESTAMP_FORMAT)


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"(?:[A-Za-z0-9_.-]+)(?:/[A-Za-z0-9_.-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise InvalidPassPathError(msg)


def get_pass_value(pass_path: str) -> str:
    """Get the first line stored in the pass utility at the given path."""
    _validate_pass_path(pass_path)

    try:
        result = subprocess.run(  # noqa: S603
            ["pass", "show", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The pass utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        if "not in the password store" in e.stderr.lower():
            msg = f"Pass path '{pass_path}' not found."
            raise InvalidPassPathError(msg) from e
        msg = (
            f"Failed to get value from pass at '{pass_path}'.\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassError(msg) from e

    lines = result.stdout.splitlines()
    return lines[0].strip() if lines else ""
