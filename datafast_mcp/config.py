"""
Configuration - Where the server learns how to reach DataFast.

Three layers, later ones win:
1. Built-in defaults (the public DataFast API)
2. YAML file: $DATAFAST_CONFIG or ~/.datafast/config/datafast.yaml
3. Environment variables (DATAFAST_*), with .env support
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://datafa.st"
DEFAULT_CONFIG_PATH = Path.home() / ".datafast" / "config" / "datafast.yaml"

FIELD_TYPES = {
    "base_url": str,
    "request_timeout_seconds": float,
    "api_key": str,
    "host": str,
    "port": int,
    "log_level": str,
}

ENV_OVERRIDES = {
    "DATAFAST_BASE_URL": "base_url",
    "DATAFAST_TIMEOUT": "request_timeout_seconds",
    "DATAFAST_API_KEY": "api_key",
    "DATAFAST_HOST": "host",
    "DATAFAST_PORT": "port",
    "DATAFAST_LOG_LEVEL": "log_level",
}


class ConfigError(Exception):
    """Raised at startup when configuration cannot be loaded."""


@dataclass
class Settings:
    """Runtime settings for the DataFast MCP server."""

    base_url: str = DEFAULT_BASE_URL
    request_timeout_seconds: float = 30.0
    # Only used by the stdio transport; HTTP sessions bring their own key.
    api_key: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8787
    log_level: str = "INFO"

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")
        self.log_level = self.log_level.upper()
        if self.request_timeout_seconds <= 0:
            raise ConfigError("request_timeout_seconds must be positive")
        if not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}")


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_settings(config_path: Optional[Path] = None, use_dotenv: bool = True) -> Settings:
    """Load settings from defaults, YAML file and environment.

    Args:
        config_path: Explicit YAML file. Falls back to $DATAFAST_CONFIG, then
            ~/.datafast/config/datafast.yaml (skipped when missing).
        use_dotenv: Load a .env file from the working directory first.
    """
    if use_dotenv:
        load_dotenv()

    values: Dict[str, Any] = {}

    if config_path is None and os.environ.get("DATAFAST_CONFIG"):
        config_path = Path(os.environ["DATAFAST_CONFIG"])
        if not config_path.exists():
            raise ConfigError(f"DATAFAST_CONFIG points to a missing file: {config_path}")
    elif config_path is not None and not Path(config_path).exists():
        raise ConfigError(f"Config file not found: {config_path}")

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if path.exists():
        for key, value in _read_yaml(path).items():
            if key in FIELD_TYPES and value is not None:
                values[key] = _convert(key, value, source=str(path))

    for env_name, field_name in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name, "").strip()
        if raw:
            values[field_name] = _convert(field_name, raw, source=env_name)

    return Settings(**values)


def _convert(field_name: str, value: Any, source: str) -> Any:
    try:
        return FIELD_TYPES[field_name](value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {field_name} in {source}: {value!r}") from e
