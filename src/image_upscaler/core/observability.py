"""Structured logging with correlation context and per-run log collection."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .logging_config import get_logger


class LogLevel(Enum):
    """Log levels for structured logging."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class LogContext:
    """Context information for structured logging."""

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    operation: str = ""
    component: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_operation(self, operation: str) -> "LogContext":
        """Create new context with operation set."""
        return LogContext(
            correlation_id=self.correlation_id,
            operation=operation,
            component=self.component,
            metadata=self.metadata.copy(),
        )

    def with_metadata(self, **kwargs) -> "LogContext":
        """Create new context with additional metadata."""
        new_metadata = self.metadata.copy()
        new_metadata.update(kwargs)
        return LogContext(
            correlation_id=self.correlation_id,
            operation=self.operation,
            component=self.component,
            metadata=new_metadata,
        )


def format_message(
    message: str, context: Optional[LogContext] = None, **kwargs
) -> str:
    """Render a message with its context as a single log line."""
    if context is None:
        if not kwargs:
            return message
        metadata_str = ", ".join(f"{k}={v}" for k, v in kwargs.items())
        return f"{message} ({metadata_str})"

    formatted_message = f"[{context.correlation_id}] {message}"
    if context.operation:
        formatted_message = f"[{context.operation}] {formatted_message}"

    if context.metadata or kwargs:
        metadata_str = ", ".join(
            f"{k}={v}" for k, v in {**context.metadata, **kwargs}.items()
        )
        formatted_message = f"{formatted_message} ({metadata_str})"
    return formatted_message


class StructuredLogger:
    """Structured logger with context support."""

    def __init__(self, name: str = "image-upscaler", logger: Optional[logging.Logger] = None):
        self._logger = logger or get_logger(name)

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: Optional[LogContext] = None,
        **kwargs,
    ) -> str:
        formatted_message = format_message(message, context, **kwargs)
        getattr(self._logger, level.value.lower())(formatted_message)
        return formatted_message

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log debug message."""
        self._log(LogLevel.DEBUG, message, context, **kwargs)

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log info message."""
        self._log(LogLevel.INFO, message, context, **kwargs)

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log warning message."""
        self._log(LogLevel.WARNING, message, context, **kwargs)

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs):
        """Log error message."""
        self._log(LogLevel.ERROR, message, context, **kwargs)


class RunLog:
    """Log collector scoped to a single batch run.

    Every line is forwarded to the wrapped logger and also kept, so the
    caller can hand the run's log back alongside its results. Debug lines
    are forwarded but not kept.
    """

    def __init__(self, delegate: Any, run_id: str):
        self._delegate = delegate
        self.run_id = run_id
        self._lines: List[str] = []

    def _record(self, level: LogLevel, message: str, context, kwargs) -> None:
        getattr(self._delegate, level.value.lower())(message, context, **kwargs)
        if level is not LogLevel.DEBUG:
            stamp = time.strftime("%H:%M:%S")
            rendered = format_message(message, context, **kwargs)
            self._lines.append(f"{stamp} {level.value} {rendered}")

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._record(LogLevel.DEBUG, message, context, kwargs)

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._record(LogLevel.INFO, message, context, kwargs)

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._record(LogLevel.WARNING, message, context, kwargs)

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._record(LogLevel.ERROR, message, context, kwargs)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def drain(self) -> List[str]:
        """Return the collected lines and reset the collector."""
        lines, self._lines = self._lines, []
        return lines
