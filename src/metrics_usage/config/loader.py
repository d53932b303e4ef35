"""
Configuration file loading.

The YAML file mirrors the structure of ``Settings``; environment variables
prefixed with ``METRICS_USAGE_`` take precedence over its values.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from metrics_usage.config.settings import Settings
from metrics_usage.core.errors import ConfigurationError

logger = structlog.get_logger()


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Read the YAML configuration file into a plain dict."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError("configuration file not found", {"path": str(config_path)})
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            "invalid YAML in configuration file", {"path": str(config_path), "error": str(exc)}
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            "configuration file must contain a mapping", {"path": str(config_path)}
        )
    logger.debug("loaded_config", path=str(config_path))
    return data


def load_settings(path: str | Path | None = None) -> Settings:
    """Build the settings from an optional YAML file and the environment."""
    data = read_config_file(path) if path else {}
    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigurationError("invalid configuration", {"error": str(exc)}) from exc
