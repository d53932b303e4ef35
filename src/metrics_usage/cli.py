"""
Command line entry point: serve the metrics-usage API.

Usage:
    metrics-usage --config config.yaml --port 8080
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence

import uvicorn

from metrics_usage.api.main import create_app
from metrics_usage.config import load_settings
from metrics_usage.core.errors import main_with_error_handling
from metrics_usage.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="metrics-usage",
        description="Collect metric names and their usage in rules and dashboards.",
    )
    parser.add_argument(
        "--config",
        help=(
            "Path to the YAML configuration file. Settings can be overridden "
            "with METRICS_USAGE_* environment variables."
        ),
    )
    parser.add_argument("--host", default="0.0.0.0", help="Address to listen on")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on")
    return parser


@main_with_error_handling()
def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(settings.log_level, debug=settings.debug)

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
