"""
Logging configuration for Arbor.

All loggers live under the ``arbor`` namespace. The TUI must never log to the
terminal it is drawing on, so ``setup_tui_logging`` only attaches a file
handler; the CLI may log to the console through Rich.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from rich.logging import RichHandler

from .settings import get_state_dir

ROOT_LOGGER_NAME = "arbor"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def get_log_dir() -> Path:
    """Log directory inside the current state directory."""
    return get_state_dir() / "logs"


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``arbor``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
    rich_console: bool = False,
) -> None:
    """Configure the ``arbor`` root logger.

    Existing handlers are removed first so repeated calls do not stack
    duplicate output.

    Args:
        level: Logging level for the arbor namespace
        log_file: Optional file to append log records to
        console: Whether to log to stderr
        rich_console: Use Rich's handler for console output
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(level)
    logger.propagate = False

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if console:
        if rich_console:
            handler: logging.Handler = RichHandler(show_path=False, rich_tracebacks=True)
        else:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)


def setup_tui_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """Log to a file only; the TUI owns the terminal."""
    setup_logging(
        level=level,
        log_file=log_file or get_log_dir() / "tui.log",
        console=False,
    )
    return get_logger("tui")


def setup_cli_logging(verbose: bool = False) -> logging.Logger:
    """Console logging for one-shot CLI commands."""
    setup_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        console=True,
        rich_console=True,
    )
    return get_logger("cli")


class StructuredLogger:
    """Thin wrapper that appends ``key=value`` context to every message."""

    def __init__(self, logger: logging.Logger, context: Optional[dict] = None):
        self._logger = logger
        self._context = dict(context or {})

    def with_context(self, **kwargs: Any) -> "StructuredLogger":
        merged = {**self._context, **kwargs}
        return StructuredLogger(self._logger, merged)

    def _format(self, message: str, kwargs: dict) -> str:
        fields = {**self._context, **kwargs}
        if not fields:
            return message
        suffix = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{message} [{suffix}]"

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(self._format(message, kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(self._format(message, kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(self._format(message, kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(self._format(message, kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        self._logger.exception(self._format(message, kwargs))


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))
