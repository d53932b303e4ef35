"""Client pushing collected facts to a remote metrics-usage server."""

from __future__ import annotations

from collections.abc import Mapping

from circuitbreaker import CircuitBreakerError

from metrics_usage.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from metrics_usage.core.errors import ProviderError
from metrics_usage.domain.models import Usage

API_PREFIX = "/api/v1"


def _usage_payload(usages: Mapping[str, Usage]) -> dict[str, object]:
    return {
        name: usage.model_dump(mode="json", by_alias=True) for name, usage in usages.items()
    }


class MetricsUsageClient(BaseHTTPClient):
    """Writes usage, partial usage and labels to another instance."""

    async def _push(self, path: str, payload: object) -> None:
        try:
            await self.post(f"{API_PREFIX}{path}", json=payload)
        except (RetryableHTTPError, PermanentHTTPError, CircuitBreakerError) as exc:
            raise ProviderError(
                "failed to push to the metrics-usage server",
                {"url": self.base_url, "path": path, "error": str(exc)},
            ) from exc

    async def push_usage(self, usages: Mapping[str, Usage]) -> None:
        await self._push("/metrics", _usage_payload(usages))

    async def push_partial_usage(self, usages: Mapping[str, Usage]) -> None:
        await self._push("/partial_metrics", _usage_payload(usages))

    async def push_labels(self, labels: Mapping[str, list[str]]) -> None:
        await self._push("/labels", {name: list(values) for name, values in labels.items()})
