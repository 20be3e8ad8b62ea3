"""
Logging for Atelier.

Provides a consistent logging interface with support for:
- Rich console output on stderr
- Optional file output, plain or JSON
- Helpers for the events the session core reports
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(str, Enum):
    """Log levels for Atelier."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def numeric(self) -> int:
        """Get numeric log level."""
        levels = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
            "critical": logging.CRITICAL,
        }
        return levels.get(self.value, logging.INFO)


_loggers: dict[str, logging.Logger] = {}


def _rich_handler() -> RichHandler:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def get_logger(name: str = "atelier") -> logging.Logger:
    """
    Get a logger instance.

    Loggers below ``atelier`` propagate to the handlers installed by
    ``setup_logging``; a bare ``atelier`` logger gets a Rich handler the
    first time it is requested.

    Args:
        name: Logger name, usually ``atelier.<component>``

    Returns:
        Logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    if name == "atelier" and not logger.handlers:
        logger.addHandler(_rich_handler())
        logger.setLevel(logging.INFO)

    _loggers[name] = logger
    return logger


def setup_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_file: str | Path | None = None,
    json_format: bool = False,
    console: bool = True,
) -> None:
    """
    Set up logging configuration for Atelier.

    Args:
        level: Minimum log level
        log_file: Optional file path for log output
        json_format: Use JSON format for file logs
        console: Enable console output
    """
    if isinstance(level, str):
        level = LogLevel(level.lower())

    root = logging.getLogger("atelier")
    root.setLevel(level.numeric)
    root.handlers.clear()

    if console:
        console_handler = _rich_handler()
        console_handler.setLevel(level.numeric)
        root.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        if json_format:
            file_handler.setFormatter(JsonFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
            ))

        file_handler.setLevel(level.numeric)
        root.addHandler(file_handler)


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = getattr(record, "session_id", None)
        if session_id:
            log_data["session_id"] = session_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def log_decision(
    logger: logging.Logger,
    session_id: str,
    category: str,
    cost: float,
    utilization: float,
) -> None:
    """
    Log a tracked decision.

    Args:
        logger: Logger to use
        session_id: Session the decision belongs to
        category: Decision category
        cost: Implementation cost
        utilization: Budget utilization after the decision, as a fraction
    """
    logger.info(
        "Decision tracked: session=%s category=%s cost=%.2f utilization=%.0f%%",
        session_id, category, cost, utilization * 100,
        extra={"session_id": session_id},
    )


def log_recovery(
    logger: logging.Logger,
    session_id: str,
    category: str,
    strategy: str | None,
    recovered: bool,
) -> None:
    """
    Log the outcome of an error recovery.

    Args:
        logger: Logger to use
        session_id: Session the error belongs to
        category: Classified error category
        strategy: Strategy id that was attempted, if any
        recovered: Whether the error was recovered
    """
    if recovered:
        logger.info(
            "Recovered %s error in session %s via %s",
            category, session_id, strategy,
            extra={"session_id": session_id},
        )
    else:
        logger.warning(
            "Unrecovered %s error in session %s (strategy: %s)",
            category, session_id, strategy or "none",
            extra={"session_id": session_id},
        )
