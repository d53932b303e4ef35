from __future__ import annotations

from typing import Any

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_incrementing

from metrics_usage.analyze.expr import Analyzer
from metrics_usage.analyze.rules import analyze_rule_groups, parse_rule_groups
from metrics_usage.clients.metrics_usage import MetricsUsageClient
from metrics_usage.clients.prometheus import PrometheusClient
from metrics_usage.collectors.sink import UsageSink
from metrics_usage.config.settings import RulesCollectorSettings
from metrics_usage.core.errors import ProviderError
from metrics_usage.database.store import MetricsStore
from metrics_usage.logging import bind_context

DEFAULT_RETRY_INTERVAL = 10.0


class RulesCollector:
    """Extracts metric usage from the recording and alerting rules of a Prometheus."""

    name = "rules"

    def __init__(
        self,
        sink: UsageSink,
        client: PrometheusClient,
        analyzer: Analyzer,
        *,
        source: str | None = None,
        retries: int = 3,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ) -> None:
        self._sink = sink
        self._client = client
        self._analyzer = analyzer
        # link stored in every rule usage
        self._source = source or client.base_url
        self._retries = retries
        self._retry_interval = retry_interval
        self._log = bind_context(collector=self.name, source=self._source)

    @classmethod
    def from_settings(
        cls, store: MetricsStore, settings: RulesCollectorSettings, analyzer: Analyzer
    ) -> RulesCollector:
        remote = None
        if settings.metric_usage_client is not None:
            remote = MetricsUsageClient.from_settings(settings.metric_usage_client)
        return cls(
            UsageSink(store, remote, collector=cls.name),
            PrometheusClient.from_settings(settings.http_client),
            analyzer,
            source=settings.public_url,
            retries=settings.retry_to_get_rules,
        )

    async def execute(self) -> None:
        try:
            payload = await self._get_rules()
        except ProviderError as exc:
            self._log.error("rules_query_failed", **exc.details)
            return

        groups, errors = parse_rule_groups(payload)
        analysis = analyze_rule_groups(groups, self._source, self._analyzer)
        for error in [*errors, *analysis.errors]:
            self._log.error("rule_analysis_failed", message=error.message, error=error.error)

        self._log.info(
            "rules_usage_collected",
            metrics=len(analysis.usage),
            partial_metrics=len(analysis.partial_usage),
        )
        await self._sink.send_usage(analysis.usage, analysis.partial_usage)

    async def _get_rules(self) -> dict[str, Any]:
        # waits 10s, then 20s, then 30s... between attempts
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ProviderError),
            stop=stop_after_attempt(self._retries),
            wait=wait_incrementing(start=self._retry_interval, increment=self._retry_interval),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return await retrying(self._client.rules)

    def _log_retry(self, retry_state: Any) -> None:
        self._log.info(
            "rules_query_retry",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else None,
        )
