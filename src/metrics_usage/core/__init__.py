"""Core modules for metrics-usage - centralized definitions and utilities."""

from metrics_usage.core.errors import (
    ConfigurationError,
    ExitCode,
    ExpressionParseError,
    MetricsUsageError,
    PatternCompileError,
    ProviderError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "MetricsUsageError",
    "ConfigurationError",
    "ProviderError",
    "PatternCompileError",
    "ExpressionParseError",
    "main_with_error_handling",
    "format_error_message",
]
