"""
Structured Logger
=================

Logging setup for lookup refreshes.

Features:
- JSON-formatted logs
- Context enrichment (thread-local, e.g. the lookup being refreshed)
- Console and file handlers
"""

import json
import logging
import os
import sys
import traceback
from typing import Dict, Optional
from datetime import datetime, timezone
from contextlib import contextmanager
import threading

# Thread-local storage for context
_context = threading.local()

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName'
}

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        context = current_context()
        if context:
            log_entry["context"] = context

        if self.include_extra:
            for key in set(record.__dict__.keys()) - _RESERVED_ATTRS:
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


def current_context() -> Dict:
    """Copy of the context attached to logs on this thread."""
    return getattr(_context, 'data', {}).copy()


@contextmanager
def log_context(**kwargs):
    """
    Context manager for adding context to all logs within scope.

    Usage:
        with log_context(lookup="country_names"):
            logger.info("Refreshing")  # JSON output includes the lookup
    """
    if not hasattr(_context, 'data'):
        _context.data = {}

    old_data = _context.data.copy()
    _context.data.update(kwargs)

    try:
        yield
    finally:
        _context.data = old_data


def setup_logging(log_settings: Optional[Dict] = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        log_settings: Dict with optional ``level``, ``json_format``,
            ``log_to_file`` and ``log_path`` keys

    Returns:
        The configured root logger
    """
    log_settings = log_settings or {}
    log_level = getattr(logging, str(log_settings.get("level", "INFO")).upper(), logging.INFO)
    formatter = JsonFormatter() if log_settings.get("json_format") else logging.Formatter(TEXT_FORMAT)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_settings.get("log_to_file"):
        log_path = log_settings.get("log_path", "logs/lookups.log")
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root
