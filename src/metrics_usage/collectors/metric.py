from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from metrics_usage.clients.prometheus import PrometheusClient
from metrics_usage.config.settings import CollectorSettings
from metrics_usage.core.errors import ProviderError
from metrics_usage.database.store import MetricsStore

logger = structlog.get_logger()


class MetricCollector:
    """Feeds the store with the metric names seen by Prometheus.

    This is the source of truth of the store: a metric missing from several
    consecutive runs is evicted.
    """

    name = "metric"

    def __init__(self, store: MetricsStore, client: PrometheusClient, *, period: float) -> None:
        self._store = store
        self._client = client
        self._period = period

    @classmethod
    def from_settings(cls, store: MetricsStore, settings: CollectorSettings) -> MetricCollector:
        return cls(
            store,
            PrometheusClient.from_settings(settings.http_client),
            period=settings.period,
        )

    async def execute(self) -> None:
        end = datetime.now(timezone.utc)
        start = end - timedelta(seconds=self._period)
        try:
            names = await self._client.metric_names(start=start, end=end)
        except ProviderError as exc:
            logger.error("metric_names_query_failed", collector=self.name, **exc.details)
            return

        logger.info("metric_names_collected", collector=self.name, count=len(names))
        if names:
            await self._store.enqueue_metric_list(names)
