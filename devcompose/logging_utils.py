"""Logging utilities for the devcontainer feature composer.

Console output goes through rich so log lines and result tables share the
same terminal, and a log file in the temporary directory keeps warnings (or
everything in debug mode) for later inspection.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FILE_NAME = "devcompose_debug.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def default_log_file() -> Path:
    """Return the path of the debug log file in the temporary directory."""
    return Path(tempfile.gettempdir()) / LOG_FILE_NAME


def setup_logging(debug_mode: bool = False, console: Console | None = None, log_file: Path | None = None) -> None:
    """Set up logging configuration based on debug mode.

    Parameters
    ----------
    debug_mode : bool, optional
        Whether to log debug messages to the console and file, by default False
    console : Console | None, optional
        Rich console for log output, by default a console on stderr
    log_file : Path | None, optional
        Log file path, by default ``<tempdir>/devcompose_debug.log``

    """
    # Clear any existing handlers to prevent duplicates
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    level = logging.DEBUG if debug_mode else logging.WARNING
    root_logger.setLevel(logging.DEBUG if debug_mode else logging.INFO)

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        level=level,
        show_path=debug_mode,
        rich_tracebacks=debug_mode,
    )
    root_logger.addHandler(console_handler)

    # In normal mode only warnings/errors reach the file
    file_handler = logging.FileHandler(log_file or default_log_file(), encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name.

    Parameters
    ----------
    name : str
        The name for the logger

    Returns
    -------
    logging.Logger
        Configured logger instance

    """
    return logging.getLogger(name)
