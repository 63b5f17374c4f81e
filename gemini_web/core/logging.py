"""
Centralized Logging for gemini-web

Every module logs through a standard ``logging`` logger under the
``gemini_web`` namespace. This module only decides where records go and
how they look.

Usage:
    from gemini_web.core.logging import configure_logging, get_logger

    configure_logging(level=logging.DEBUG, json_format=False)
    logger = get_logger("gemini_web.client")
    logger.info("Client initialized", extra={"session_id": sid})

Environment Variables:
    GEMINI_WEB_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL
    GEMINI_WEB_LOG_FORMAT: console or json
"""

import logging
import os
import sys
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import orjson

ROOT_LOGGER_NAME = "gemini_web"
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "console"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MAX_CACHE_SIZE = 128

# LogRecord attributes that are not user-supplied ``extra`` fields.
_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
        "asctime",
    )
)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Example output:
        {"timestamp": "2026-02-17T10:30:00+00:00", "level": "INFO",
         "logger": "gemini_web.client", "message": "Client initialized",
         "extra": {"session_id": "-123"}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(log_data, default=str).decode()


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("GEMINI_WEB_LOG_LEVEL", "")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper()) if level else DEFAULT_LOG_LEVEL
    return resolved if isinstance(resolved, int) else DEFAULT_LOG_LEVEL


def configure_logging(
    level: int | str | None = None,
    json_format: bool | None = None,
    stream: Any = None,
) -> logging.Logger:
    """
    Configure the ``gemini_web`` logger hierarchy.

    Replaces any handler previously installed by this function, so it is
    safe to call more than once (e.g. after loading a config file).

    Args:
        level: Logging level or level name (default: env or INFO)
        json_format: Emit JSON lines instead of console text
            (default: ``GEMINI_WEB_LOG_FORMAT == "json"``)
        stream: Output stream (default: stdout)

    Returns:
        The configured root ``gemini_web`` logger
    """
    if json_format is None:
        json_format = os.getenv("GEMINI_WEB_LOG_FORMAT", DEFAULT_LOG_FORMAT) == "json"

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if getattr(handler, "_gemini_web_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handler.setFormatter(formatter)
    handler._gemini_web_handler = True  # type: ignore[attr-defined]

    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    root.propagate = False
    return root


@lru_cache(maxsize=MAX_CACHE_SIZE)
def get_logger(name: str) -> logging.Logger:
    """Get a logger inside the ``gemini_web`` namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


__all__ = ["JSONFormatter", "configure_logging", "get_logger"]
