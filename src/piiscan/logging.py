"""
Logging setup for piiscan.

Every log line written during one scan carries the same run id, so the
matcher, validation and ensemble lines of a call can be grouped. Extra
fields that could hold matched text are redacted before they are written.

Logs go to stderr; stdout is reserved for scan output.

Usage:
    from piiscan.logging import run_scope, setup_logging

    setup_logging(level="DEBUG")
    with run_scope():
        result = extract(text)
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)

# Extra fields that may carry sensitive text
REDACTED_FIELDS = frozenset({"value", "raw_value", "context", "text"})

_NOISY_LOGGERS = ("httpx", "httpcore")

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def get_run_id() -> str | None:
    return run_id_var.get()


def set_run_id(run_id: str | None = None) -> str:
    """Set the run id for the current context, generating one if not given."""
    run_id = run_id or uuid.uuid4().hex
    run_id_var.set(run_id)
    return run_id


@contextmanager
def run_scope(run_id: str | None = None) -> Iterator[str]:
    """Tag log lines inside the block with one run id, restoring the previous id afterwards."""
    token = run_id_var.set(run_id or uuid.uuid4().hex)
    try:
        yield run_id_var.get()
    finally:
        run_id_var.reset(token)


def record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields passed via ``extra=``, with sensitive ones replaced by their length."""
    extras: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        if key in REDACTED_FIELDS:
            value = f"<redacted:{len(str(value))}>"
        extras[key] = value
    return extras


class JSONFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, run id and extras."""

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        run_id = get_run_id()
        if run_id:
            data["run_id"] = run_id
        if record.levelno >= logging.WARNING:
            data["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        data.update(record_extras(record))
        return json.dumps(data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Single-line format for terminals:

        10:30:00 INFO     [9f1c2a3b] piiscan.core.pipeline.extraction: Extracted 12 occurrences
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_colors and record.levelno in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelno]}{level}\033[0m"

        run_id = get_run_id()
        parts = [
            datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            level,
            f"[{run_id[:8]}]" if run_id else "[-]",
            f"{record.name}: {record.getMessage()}",
        ]
        parts.extend(f"{k}={v}" for k, v in record_extras(record).items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Replace the root handlers with a stderr handler and an optional JSON file handler.

    Args:
        level: Log level name, case-insensitive
        json_format: Write JSON to stderr instead of the terminal format
        log_file: Also append JSON lines to this file
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if json_format else DevelopmentFormatter(sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
