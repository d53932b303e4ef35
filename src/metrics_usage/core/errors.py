"""
Errors raised by metrics-usage and their mapping to process exit codes.

Only the CLI turns errors into exit codes. Inside the service, collectors and
store consumers log a failure and carry on with the next run or fact.

Exit Codes:
- 0: Success
- 10: Configuration error
- 11: Provider error (Prometheus or a remote metrics-usage server)
- 12: Expression or pattern error
- 127: Unknown/internal error
- 130: Interrupted
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    SUCCESS = 0
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    EXPRESSION_ERROR = 12
    UNKNOWN_ERROR = 127
    INTERRUPTED = 130


class MetricsUsageError(Exception):
    """Base error carrying structured ``details`` for the logs."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return format_error_message(self)


class ConfigurationError(MetricsUsageError):
    """Invalid or missing configuration, or an unknown expression engine."""

    exit_code = ExitCode.CONFIG_ERROR


class ProviderError(MetricsUsageError):
    """Prometheus or a remote metrics-usage server failed to answer."""

    exit_code = ExitCode.PROVIDER_ERROR


class PatternCompileError(MetricsUsageError):
    """A partial metric name does not compile into a regexp."""

    exit_code = ExitCode.EXPRESSION_ERROR


class ExpressionParseError(MetricsUsageError):
    """A query expression cannot be analyzed."""

    exit_code = ExitCode.EXPRESSION_ERROR


def format_error_message(error: MetricsUsageError) -> str:
    """``message (key=value, ...)``, the one-line form printed by the CLI."""
    if not error.details:
        return error.message
    details = ", ".join(f"{key}={value}" for key, value in error.details.items())
    return f"{error.message} ({details})"


F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(*, show_traceback: bool = False) -> Callable[[F], F]:
    """Turn the exceptions escaping a CLI entry point into an exit code.

    Known errors are logged with their details and printed on stderr.
    Anything else is logged as ``unexpected_error`` with exit code 127.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except MetricsUsageError as exc:
                logger.error(
                    "command_error",
                    error_type=type(exc).__name__,
                    exit_code=int(exc.exit_code),
                    details=exc.details,
                )
                print(f"error: {format_error_message(exc)}", file=sys.stderr)
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return exc.exit_code
            except KeyboardInterrupt:
                logger.info("command_interrupted")
                return ExitCode.INTERRUPTED
            except Exception as exc:
                logger.error("unexpected_error", error_type=type(exc).__name__, error=str(exc))
                traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator
