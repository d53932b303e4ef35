"""
metrics-usage configuration.

Provides:
- Pydantic-based settings (environment variables, .env files)
- YAML configuration file loading
"""

from metrics_usage.config.loader import load_settings, read_config_file
from metrics_usage.config.settings import (
    CollectorSettings,
    DatabaseSettings,
    HTTPClientSettings,
    LabelsCollectorSettings,
    RulesCollectorSettings,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "DatabaseSettings",
    "HTTPClientSettings",
    "CollectorSettings",
    "LabelsCollectorSettings",
    "RulesCollectorSettings",
    "load_settings",
    "read_config_file",
]
