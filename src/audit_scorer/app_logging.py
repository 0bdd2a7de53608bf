"""
Application logging utilities.

Module loggers live under the ``audit_scorer`` root logger. Nothing is
emitted until ``setup_logging`` attaches handlers; the CLI does this from its
``--log-level`` option.
"""

import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme


# Custom theme for log levels
_LOG_THEME = Theme({
    "logging.level.debug": "dim cyan",
    "logging.level.info": "green",
    "logging.level.warning": "yellow",
    "logging.level.error": "bold red",
    "logging.level.critical": "bold white on red",
    "log.time": "dim",
    "log.message": "default",
    "log.path": "dim",
})

# Shared stderr console so log lines never mix with JSON written to stdout
_console = Console(theme=_LOG_THEME, stderr=True)

ROOT_LOGGER_NAME = "audit_scorer"

_logging_configured = False


def setup_logging(
    level: str = "WARNING",
    log_format: Optional[str] = None,
    dev_mode: bool = True,
    show_path: bool = False,
) -> None:
    """
    Setup logging for the audit_scorer package.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format string for the plain stream handler.
        dev_mode: Use a Rich console handler instead of a plain stderr stream.
        show_path: Whether Rich shows the emitting file path.
    """
    global _logging_configured

    if log_format is None:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    level_value = getattr(logging, level.upper())

    if dev_mode:
        handler: logging.Handler = RichHandler(
            console=_console,
            level=level_value,
            show_time=True,
            show_path=show_path,
            rich_tracebacks=True,
            markup=False,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(log_format))
    handler.setLevel(level_value)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level_value)
    logger.handlers.clear()
    logger.addHandler(handler)
    # Prevent propagation to root logger
    logger.propagate = False

    _logging_configured = True


def is_logging_configured() -> bool:
    """Return True once ``setup_logging`` has run."""
    return _logging_configured


# Create root logger on module import with NullHandler
_root_logger = logging.getLogger(ROOT_LOGGER_NAME)
_root_logger.addHandler(logging.NullHandler())
