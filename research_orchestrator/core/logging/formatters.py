"""
Log Formatters
=============

- DevFormatter: Colored text format for development
- JsonFormatter: Structured JSON format for production
- FileFormatter: Plain text for rotating files

Development (text):
    2026-01-11 12:00:00 | INFO  | orchestration.Session... | [s-1/s-1-echo-ab12] Worker started
"""

import json
import logging
from datetime import datetime, timezone

from research_orchestrator.core.logging.context import (
    format_context_tag,
    get_session_id,
    get_worker_id,
)


class DevFormatter(logging.Formatter):
    """
    Development formatter with colors and readable format.

    Format: {timestamp} | {level} | {logger} | [{session}/{worker}] {message}
    """

    # ANSI color codes
    COLORS = {
        "DEBUG": "\x1b[38;5;244m",    # Gray
        "INFO": "\x1b[38;5;39m",       # Blue
        "WARNING": "\x1b[38;5;208m",   # Orange
        "ERROR": "\x1b[38;5;196m",     # Red
        "CRITICAL": "\x1b[38;5;196;1m",  # Bold Red
    }
    RESET = "\x1b[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(5)

        logger_name = record.name
        if len(logger_name) > 25:
            logger_name = "..." + logger_name[-22:]

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        line = f"{timestamp} | {level} | {logger_name.ljust(25)} | {format_context_tag()}{message}"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            line = f"{color}{line}{self.RESET}"

        return line


class JsonFormatter(logging.Formatter):
    """JSON formatter for log aggregation."""

    _RESERVED = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = get_session_id()
        if session_id:
            log_entry["session_id"] = session_id
        worker_id = get_worker_id()
        if worker_id:
            log_entry["worker_id"] = worker_id

        log_entry["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {k: v for k, v in record.__dict__.items() if k not in self._RESERVED}
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class FileFormatter(logging.Formatter):
    """
    Plain text formatter for file output (no colors).

    Format: {timestamp} | {level} | {logger} | [{session}/{worker}] {message}
    """

    def format(self, record: logging.LogRecord) -> str:
        # Include milliseconds
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S,%f")[:23]
        level = record.levelname.ljust(8)

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{timestamp} | {level} | {record.name} | {format_context_tag()}{message}"
