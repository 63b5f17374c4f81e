"""Ambient stack: errors, logging and configuration."""

from .config import ClientConfig, ConfigLoader, load_config
from .exceptions import ErrorKind, GeminiWebError
from .logging import JSONFormatter, configure_logging, get_logger

__all__ = [
    "ClientConfig",
    "ConfigLoader",
    "load_config",
    "ErrorKind",
    "GeminiWebError",
    "JSONFormatter",
    "configure_logging",
    "get_logger",
]
