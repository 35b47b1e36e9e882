"""Logging helpers shared across tooler modules.

Structured fields travel on log records via ``extra=extra_context(...)`` so that
handlers can render or ship them; the default console formatter appends them as
``key=value`` pairs.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from tooler.constants import Constants

_CONTEXT_ATTR = "tooler_context"
_configured = False


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping carrying structured fields, dropping None values."""
    return {_CONTEXT_ATTR: {key: value for key, value in fields.items() if value is not None}}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: Any) -> str:
    """Strip user info and query string from a URL before it is logged."""
    text = str(url)
    try:
        parts = urllib.parse.urlsplit(text)
    except ValueError:
        return text
    if not parts.scheme or not parts.netloc:
        return text
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, host, parts.path, "", ""))


def truncate_line(line: str, limit: int = Constants.MAX_LOGGED_LINE_LENGTH) -> str:
    """Bound the length of a single logged output line."""
    if len(line) <= limit:
        return line
    return f"{line[:limit]}... [{len(line) - limit} more characters]"


class Timer:
    """Context manager measuring elapsed wall time in milliseconds."""

    def __init__(self) -> None:
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        if self._start is None:
            return 0
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)


class ContextFormatter(logging.Formatter):
    """Formatter appending structured context fields to the message."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, _CONTEXT_ATTR, None)
        if context:
            rendered = " ".join(f"{key}={value}" for key, value in context.items())
            message = f"{message} [{rendered}]"
        return message


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger for console use.

    Level precedence: explicit argument, then ``TOOLER_LOG_LEVEL``, then INFO.
    Calling this more than once only adjusts the level.
    """
    global _configured  # pylint: disable=global-statement
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    if not isinstance(level_value, int):
        level_value = logging.INFO

    root = logging.getLogger()
    root.setLevel(level_value)
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter(Constants.LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
