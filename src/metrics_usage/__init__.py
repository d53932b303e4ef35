"""Collect and serve metric name usage from rules and dashboards."""

__version__ = "0.1.0"
