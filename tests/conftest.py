"""Root test configuration."""

import logging

import pytest
import structlog
from metrics_usage.domain.models import DashboardRef, RuleRef, Usage


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def dashboard_usage() -> Usage:
    return Usage(
        dashboards={DashboardRef(id="d1", name="HTTP overview", url="http://grafana/d/d1")}
    )


@pytest.fixture
def alert_usage() -> Usage:
    return Usage(
        alert_rules={
            RuleRef(
                prom_link="http://prometheus:9090",
                group_name="http",
                name="HighErrorRate",
                expression="rate(http_requests_total[5m]) > 1",
            )
        }
    )
