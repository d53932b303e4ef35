"""
Prometheus HTTP API client.

Only the endpoints needed to collect metric names, label names and rules are
implemented. Works with Prometheus-compatible backends (Thanos, Mimir,
VictoriaMetrics).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from circuitbreaker import CircuitBreakerError

from metrics_usage.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from metrics_usage.core.errors import ProviderError

METRIC_NAME_LABEL = "__name__"


class PrometheusClient(BaseHTTPClient):
    """Read-only client of the Prometheus HTTP API."""

    async def _api_get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            body = await self.get(path, params=params)
        except (RetryableHTTPError, PermanentHTTPError, CircuitBreakerError) as exc:
            raise ProviderError(
                "Prometheus request failed", {"url": self.base_url, "path": path, "error": str(exc)}
            ) from exc

        if not isinstance(body, dict) or body.get("status") != "success":
            error = body.get("error") if isinstance(body, dict) else None
            raise ProviderError(
                "Prometheus returned an error", {"path": path, "error": error or "unexpected body"}
            )
        return body.get("data")

    async def label_values(
        self, label: str, *, start: datetime | None = None, end: datetime | None = None
    ) -> list[str]:
        """Values of a label over the given time window."""
        data = await self._api_get(f"/api/v1/label/{label}/values", _time_range(start, end))
        return list(data or [])

    async def label_names(
        self,
        *,
        matches: list[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[str]:
        """Label names of the series selected by ``matches``."""
        params = _time_range(start, end)
        if matches:
            params["match[]"] = matches
        data = await self._api_get("/api/v1/labels", params)
        return list(data or [])

    async def metric_names(
        self, *, start: datetime | None = None, end: datetime | None = None
    ) -> list[str]:
        return await self.label_values(METRIC_NAME_LABEL, start=start, end=end)

    async def rules(self) -> dict[str, Any]:
        """The ``data`` object of ``/api/v1/rules`` (a dict with ``groups``)."""
        data = await self._api_get("/api/v1/rules")
        return data or {"groups": []}


def _time_range(start: datetime | None, end: datetime | None) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if start is not None:
        params["start"] = start.timestamp()
    if end is not None:
        params["end"] = end.timestamp()
    return params
