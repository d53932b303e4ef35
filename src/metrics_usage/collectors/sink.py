from __future__ import annotations

from collections.abc import Mapping

import structlog

from metrics_usage.clients.metrics_usage import MetricsUsageClient
from metrics_usage.core.errors import ProviderError
from metrics_usage.database.store import MetricsStore
from metrics_usage.domain.models import Usage


class UsageSink:
    """Delivers collected facts to the local store or to a remote server.

    When a remote client is configured, nothing is written locally. Remote
    failures are logged; the next collector run sends the data again.
    """

    def __init__(
        self,
        store: MetricsStore,
        remote: MetricsUsageClient | None = None,
        *,
        collector: str,
    ) -> None:
        self._store = store
        self._remote = remote
        self._log = structlog.get_logger().bind(collector=collector)

    async def send_usage(
        self, usage: Mapping[str, Usage], partial_usage: Mapping[str, Usage]
    ) -> None:
        if usage:
            if self._remote is not None:
                try:
                    await self._remote.push_usage(usage)
                except ProviderError as exc:
                    self._log.error("usage_push_failed", **exc.details)
            else:
                await self._store.enqueue_usage(usage)

        if partial_usage:
            if self._remote is not None:
                try:
                    await self._remote.push_partial_usage(partial_usage)
                except ProviderError as exc:
                    self._log.error("partial_usage_push_failed", **exc.details)
            else:
                await self._store.enqueue_partial_usage(partial_usage)

    async def send_labels(self, labels: Mapping[str, list[str]]) -> None:
        if not labels:
            return
        if self._remote is not None:
            try:
                await self._remote.push_labels(labels)
            except ProviderError as exc:
                self._log.error("labels_push_failed", **exc.details)
            return
        await self._store.enqueue_labels(labels)
