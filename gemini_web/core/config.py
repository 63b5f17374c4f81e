"""
Configuration Management for gemini-web
========================================

- ClientConfig: dataclass holding cookies, transport and logging settings
- ConfigLoader: loads from YAML/JSON files and ``GEMINI_WEB_*`` env vars
- load_config: file + env, env wins, validated
"""

import logging
import os
from copy import deepcopy
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import orjson
import yaml

from .exceptions import ErrorKind, GeminiWebError

ENV_PREFIX = "GEMINI_WEB_"


@dataclass
class ClientConfig:
    """Complete client configuration"""

    secure_1psid: str = ""
    secure_1psidts: str | None = None
    proxy: str | None = None
    timeout: float = 30.0
    impersonate: str = "chrome"
    auto_refresh: bool = False
    refresh_interval: float = 540.0
    language: str = "en"
    log_level: str = "INFO"
    log_format: str = "console"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigLoader:
    """
    Loads configuration from files (YAML/JSON) and environment variables.

    Environment variables are mapped by upper-casing the field name:
    ``GEMINI_WEB_SECURE_1PSID``, ``GEMINI_WEB_PROXY``, ``GEMINI_WEB_TIMEOUT``...
    """

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self.env_prefix = env_prefix
        self._logger = logging.getLogger("gemini_web.config")

    def load_from_file(self, path: str | Path) -> dict[str, Any]:
        """Load configuration from a YAML or JSON file"""
        file_path = Path(path)

        if not file_path.exists():
            raise GeminiWebError(
                ErrorKind.CONFIGURATION,
                f"Failed to load configuration from '{path}'",
                details={"path": str(path), "reason": "File does not exist"},
            )

        content = file_path.read_text(encoding="utf-8")
        suffix = file_path.suffix.lower()
        try:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif suffix == ".json":
                data = orjson.loads(content)
            else:
                raise GeminiWebError(
                    ErrorKind.CONFIGURATION,
                    f"Failed to load configuration from '{path}'",
                    details={"path": str(path), "reason": f"Unsupported file format: {suffix}"},
                )
        except yaml.YAMLError as e:
            raise GeminiWebError(
                ErrorKind.CONFIGURATION,
                f"Failed to load configuration from '{path}'",
                details={"path": str(path), "reason": f"YAML error: {e}"},
                cause=e,
            ) from e
        except orjson.JSONDecodeError as e:
            raise GeminiWebError(
                ErrorKind.CONFIGURATION,
                f"Failed to load configuration from '{path}'",
                details={"path": str(path), "reason": f"JSON error: {e}"},
                cause=e,
            ) from e

        if not isinstance(data, dict):
            raise GeminiWebError(
                ErrorKind.CONFIGURATION,
                f"Configuration in '{path}' must be a mapping",
                details={"path": str(path)},
            )
        self._logger.debug("Loaded configuration file %s", file_path)
        return data

    def load_from_env(self) -> dict[str, Any]:
        """Load configuration from environment variables"""
        config: dict[str, Any] = {}
        for f in fields(ClientConfig):
            raw = os.environ.get(f"{self.env_prefix}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            config[f.name] = self._coerce(f.name, raw)
        return config

    def _coerce(self, name: str, raw: str) -> Any:
        default = getattr(ClientConfig, name, None)
        if isinstance(default, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, float):
            try:
                return float(raw)
            except ValueError as e:
                raise GeminiWebError(
                    ErrorKind.CONFIGURATION,
                    f"Invalid configuration value for '{name}'",
                    details={"key": name, "value": raw, "expected_type": "float"},
                    cause=e,
                ) from e
        return raw

    @staticmethod
    def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        result = deepcopy(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = ConfigLoader.deep_merge(result[key], value)
            else:
                result[key] = value
        return result


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = ENV_PREFIX,
    require_cookies: bool = True,
) -> ClientConfig:
    """
    Load configuration from an optional file, then environment overrides.

    Raises:
        GeminiWebError(CONFIGURATION): unreadable file, bad value, or
            missing ``secure_1psid`` when ``require_cookies`` is set
    """
    loader = ConfigLoader(env_prefix=env_prefix)
    data: dict[str, Any] = {}
    if config_path:
        data = loader.load_from_file(config_path)
    data = loader.deep_merge(data, loader.load_from_env())

    config = ClientConfig.from_dict(data)
    if require_cookies and not config.secure_1psid:
        raise GeminiWebError(
            ErrorKind.CONFIGURATION,
            "Missing required configuration: 'secure_1psid'",
            details={"missing_key": "secure_1psid"},
            suggestions=[
                f"Set {env_prefix}SECURE_1PSID or add 'secure_1psid' to your configuration file"
            ],
        )
    return config


__all__ = ["ClientConfig", "ConfigLoader", "load_config", "ENV_PREFIX"]
