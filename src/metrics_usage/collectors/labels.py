from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from metrics_usage.clients.metrics_usage import MetricsUsageClient
from metrics_usage.clients.prometheus import METRIC_NAME_LABEL, PrometheusClient
from metrics_usage.collectors.sink import UsageSink
from metrics_usage.config.settings import LabelsCollectorSettings
from metrics_usage.core.errors import ProviderError
from metrics_usage.database.store import MetricsStore
from metrics_usage.logging import bind_context


class LabelsCollector:
    """Collects the label names of every metric known by Prometheus."""

    name = "labels"

    def __init__(
        self,
        sink: UsageSink,
        client: PrometheusClient,
        *,
        period: float,
        concurrency: int = 10,
    ) -> None:
        self._sink = sink
        self._client = client
        self._period = period
        self._concurrency = concurrency
        self._log = bind_context(collector=self.name)

    @classmethod
    def from_settings(
        cls, store: MetricsStore, settings: LabelsCollectorSettings
    ) -> LabelsCollector:
        remote = None
        if settings.metric_usage_client is not None:
            remote = MetricsUsageClient.from_settings(settings.metric_usage_client)
        return cls(
            UsageSink(store, remote, collector=cls.name),
            PrometheusClient.from_settings(settings.http_client),
            period=settings.period,
            concurrency=settings.concurrency,
        )

    async def execute(self) -> None:
        end = datetime.now(timezone.utc)
        start = end - timedelta(seconds=self._period)
        try:
            names = await self._client.metric_names(start=start, end=end)
        except ProviderError as exc:
            self._log.error("metric_names_query_failed", **exc.details)
            return

        semaphore = asyncio.Semaphore(self._concurrency)

        async def labels_of(metric_name: str) -> tuple[str, list[str]]:
            async with semaphore:
                return metric_name, await self._labels_for_metric(metric_name, start, end)

        results = await asyncio.gather(*(labels_of(name) for name in names))
        labels = {name: values for name, values in results if values}
        self._log.info("labels_collected", metrics=len(labels))
        await self._sink.send_labels(labels)

    async def _labels_for_metric(
        self, metric_name: str, start: datetime, end: datetime
    ) -> list[str]:
        self._log.debug("labels_query", metric_name=metric_name)
        try:
            labels = await self._client.label_names(matches=[metric_name], start=start, end=end)
        except ProviderError as exc:
            self._log.error("labels_query_failed", metric_name=metric_name, **exc.details)
            return []
        return [label for label in labels if label != METRIC_NAME_LABEL]
