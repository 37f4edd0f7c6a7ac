"""Structured logging utilities.

Console output is a single line per record; fields attached with
:class:`LogContext` (the backup identifier of the current run, for instance)
are appended to it in the same ``{'key': value}`` shape the messages use.
File output is always JSON, one object per line, with context fields at the
top level so a log of several runs can be filtered by backup.
"""

import logging
import logging.handlers
import json
import sys
from typing import Any, Dict, Optional, Sequence
from datetime import datetime, timezone
from pathlib import Path

# Keys every JSON record carries; context fields never overwrite them
RESERVED_FIELDS = frozenset({
    "timestamp", "level", "logger", "message", "module", "function", "line", "thread", "exception",
})

# Context fields holding 40-char hashes or UDIDs, shortened on the console
SHORTENED_FIELDS = frozenset({"backup_id", "content_hash"})
SHORT_ID_LENGTH = 8


def context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields attached to ``record`` by an active :class:`LogContext`."""
    return getattr(record, "extra_fields", None) or {}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in context_fields(record).items():
            log_data[f"context_{key}" if key in RESERVED_FIELDS else key] = value

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """Line formatter that appends :class:`LogContext` fields to the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = context_fields(record)
        if not fields:
            return line

        shown = {
            key: str(value)[:SHORT_ID_LENGTH] if key in SHORTENED_FIELDS else value
            for key, value in fields.items()
        }
        return f"{line} {shown!r}"


class DetailedFormatter(ContextFormatter):
    """Human-readable detailed formatter."""

    def __init__(self) -> None:
        fmt = (
            "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(funcName)s:%(lineno)d | "
            "%(message)s"
        )
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")


class SimpleFormatter(ContextFormatter):
    """Simple formatter for console output."""

    def __init__(self) -> None:
        super().__init__(fmt="%(levelname)-8s | %(name)s | %(message)s")


_FORMATTERS = {
    "json": StructuredFormatter,
    "detailed": DetailedFormatter,
    "simple": SimpleFormatter,
}


def setup_logging(
    level: str = "INFO",
    format: str = "simple",
    log_file: Optional[Path] = None,
    quiet_loggers: Sequence[str] = (),
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Console format type (simple, detailed, json)
        log_file: Optional log file path; always written as JSON
        quiet_loggers: Loggers whose per-file DEBUG chatter is held at INFO
            even when ``level`` is DEBUG
        max_file_size_mb: Max log file size in MB
        backup_count: Number of rotated files to keep
    """
    root_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_FORMATTERS.get(format, SimpleFormatter)())
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(root_level, logging.INFO))


class LogContext:
    """Context manager for adding structured fields to logs.

    The record factory is process-wide, so fields apply to records from
    every thread while the context is active.
    """

    def __init__(self, logger: logging.Logger, **fields: Any) -> None:
        self.logger = logger
        self.fields = fields
        self.old_factory = None

    def __enter__(self) -> "LogContext":
        self.old_factory = logging.getLogRecordFactory()
        old_factory = self.old_factory
        fields = self.fields

        def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = old_factory(*args, **kwargs)
            if not hasattr(record, "extra_fields"):
                record.extra_fields = {}
            record.extra_fields.update(fields)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        logging.setLogRecordFactory(self.old_factory)
