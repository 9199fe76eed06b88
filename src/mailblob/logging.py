"""
Structured logging for the blob storage engine.

Provides:
- Context variables for task_id, bucket, phase (using contextvars)
- JSONFormatter for machine-readable logs to file
- RichHandler for pretty console output
- ContextLogger wrapper that attaches context to all log calls
- setup_logging() that configures both file and console handlers
- Context manager log_context() for scoped context
- get_logger() factory
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

# Context variables for structured logging
_task_id_var: ContextVar[str | None] = ContextVar("task_id", default=None)
_bucket_var: ContextVar[str | None] = ContextVar("bucket", default=None)
_phase_var: ContextVar[str | None] = ContextVar("phase", default=None)


def get_task_id() -> str | None:
    """Get the current task ID from context."""
    return _task_id_var.get()


def get_bucket() -> str | None:
    """Get the current bucket name from context."""
    return _bucket_var.get()


def get_phase() -> str | None:
    """Get the current phase from context."""
    return _phase_var.get()


@contextmanager
def log_context(
    task_id: str | None = None,
    bucket: str | None = None,
    phase: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for scoped logging context.

    Args:
        task_id: Task ID to set in context.
        bucket: Bucket name to set in context.
        phase: Phase to set in context.

    Yields:
        None. Context variables are set for the duration of the context.
    """
    old_task_id = _task_id_var.get()
    old_bucket = _bucket_var.get()
    old_phase = _phase_var.get()

    try:
        if task_id is not None:
            _task_id_var.set(task_id)
        if bucket is not None:
            _bucket_var.set(bucket)
        if phase is not None:
            _phase_var.set(phase)
        yield
    finally:
        _task_id_var.set(old_task_id)
        _bucket_var.set(old_bucket)
        _phase_var.set(old_phase)


def _current_context() -> dict[str, str]:
    context: dict[str, str] = {}
    task_id = get_task_id()
    bucket = get_bucket()
    phase = get_phase()
    if task_id:
        context["task_id"] = task_id
    if bucket:
        context["bucket"] = bucket
    if phase:
        context["phase"] = phase
    return context


class JSONFormatter(logging.Formatter):
    """JSON formatter for machine-readable log files.

    Produces JSON Lines format with structured context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_obj.update(_current_context())

        # Add extra fields from the record
        if hasattr(record, "extra"):
            log_obj["extra"] = record.extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextRichHandler(RichHandler):
    """Rich handler that includes context in console output."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        """Override to add context prefix."""
        level_text = super().get_level_text(record)

        parts: list[str] = []
        task_id = get_task_id()
        bucket = get_bucket()
        phase = get_phase()

        if task_id:
            # Truncate task_id for readability
            short_id = task_id.split("_")[-1][:8] if "_" in task_id else task_id[:8]
            parts.append(f"[dim]{short_id}[/dim]")
        if bucket:
            parts.append(f"[magenta]{bucket}[/magenta]")
        if phase:
            parts.append(f"[cyan]{phase}[/cyan]")

        if parts:
            prefix = " ".join(parts)
            return Text.from_markup(f"{level_text} {prefix}")

        return level_text


class ContextLogger:
    """Logger wrapper that automatically attaches context to log calls.

    Wraps a standard logger and adds context variables to all log calls.
    Keyword arguments other than the logging ones are attached as context:

        logger.info("Deleted batch", bucket="default", size=100)
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        """Get the logger name."""
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Internal logging method that adds context."""
        extra = kwargs.pop("extra", {})
        extra.update(_current_context())

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel"):
                extra[key] = kwargs.pop(key)

        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


_setup_done: bool = False


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Set up logging with JSON file handler and rich console handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, only console logging is enabled.
        console_output: Whether to enable console output.
    """
    global _setup_done

    root_logger = logging.getLogger("mailblob")
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)  # Log everything to file
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=True,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    root_logger.propagate = False

    for noisy_logger in ["aiosqlite", "asyncio"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapper around the standard logger.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith("mailblob"):
        name = f"mailblob.{name}"

    return ContextLogger(logging.getLogger(name))
