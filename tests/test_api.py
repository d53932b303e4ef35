from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient
from metrics_usage.api.main import create_app
from metrics_usage.api.routes.metrics import (
    MatchMode,
    filter_metrics,
    fuzzy_match,
    is_metric_matching,
)
from metrics_usage.config import Settings
from metrics_usage.database.store import MetricsStore
from metrics_usage.domain.models import DashboardRef, Metric, Usage

DASHBOARD = {"id": "d1", "name": "HTTP overview", "url": "http://grafana/d/d1"}


@asynccontextmanager
async def api_client(store: MetricsStore) -> AsyncIterator[AsyncClient]:
    app = create_app(Settings(), store=store)
    transport = ASGITransport(app=app)
    async with store:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


async def _seed(store: MetricsStore) -> None:
    await store.enqueue_metric_list(["http_requests_total", "http_errors_total", "up"])
    await store.join()
    await store.enqueue_usage(
        {"http_requests_total": Usage(dashboards={DashboardRef(**DASHBOARD)})}
    )
    await store.join()


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self):
        async with api_client(MetricsStore()) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_ready_reports_store_sizes(self):
        store = MetricsStore()
        async with api_client(store) as client:
            await _seed(store)
            response = await client.get("/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["collectors"] == []
        assert body["store"]["metrics"] == 3

    async def test_not_ready_when_store_stopped(self):
        app = create_app(Settings(), store=MetricsStore())
        transport = ASGITransport(app=app)

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


@pytest.mark.asyncio
class TestReadEndpoints:
    async def test_list_metrics(self):
        store = MetricsStore()
        async with api_client(store) as client:
            await _seed(store)
            response = await client.get("/api/v1/metrics")

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"http_requests_total", "http_errors_total", "up"}
        assert body["http_requests_total"]["usage"]["dashboards"] == [DASHBOARD]
        assert "usage" not in body["up"]

    @pytest.mark.parametrize(
        ("params", "expected"),
        [
            ({"metric_name": "htp_tot"}, {"http_requests_total", "http_errors_total"}),
            ({"metric_name": "up", "mode": "exact"}, {"up"}),
            ({"metric_name": "^http_.*_total$", "mode": "regex"}, {"http_requests_total", "http_errors_total"}),
            ({"used": "true"}, {"http_requests_total"}),
            ({"used": "false"}, {"http_errors_total", "up"}),
            ({"metric_name": "http", "used": "false"}, {"http_errors_total"}),
        ],
    )
    async def test_filter_metrics(self, params, expected):
        store = MetricsStore()
        async with api_client(store) as client:
            await _seed(store)
            response = await client.get("/api/v1/metrics", params=params)

        assert response.status_code == 200
        assert set(response.json()) == expected

    async def test_invalid_mode(self):
        async with api_client(MetricsStore()) as client:
            response = await client.get(
                "/api/v1/metrics", params={"metric_name": "up", "mode": "glob"}
            )

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "invalid match mode: glob. Allowed: exact, fuzzy, regex"
        )

    async def test_merge_partial_metrics(self):
        store = MetricsStore()
        async with api_client(store) as client:
            await _seed(store)
            await store.enqueue_partial_usage(
                {"http_${kind}_total": Usage(dashboards={DashboardRef(id="d2")})}
            )
            await store.join()

            merged = await client.get("/api/v1/metrics", params={"merge_partial_metrics": "true"})
            plain = await client.get("/api/v1/metrics")

        body = merged.json()
        ids = {d["id"] for d in body["http_errors_total"]["usage"]["dashboards"]}
        assert ids == {"d2"}
        ids = {d["id"] for d in body["http_requests_total"]["usage"]["dashboards"]}
        assert ids == {"d1", "d2"}
        assert "usage" not in plain.json()["http_errors_total"]
        assert "usage" not in body["up"]

    async def test_get_metric(self):
        store = MetricsStore()
        async with api_client(store) as client:
            await _seed(store)
            response = await client.get("/api/v1/metrics/http_requests_total")

        assert response.status_code == 200
        assert response.json()["usage"]["dashboards"] == [DASHBOARD]

    async def test_get_unknown_metric(self):
        async with api_client(MetricsStore()) as client:
            response = await client.get("/api/v1/metrics/nope")

        assert response.status_code == 404
        assert response.json()["detail"] == "Metric nope not found"

    async def test_delete_metric(self):
        store = MetricsStore()
        async with api_client(store) as client:
            await _seed(store)
            deleted = await client.delete("/api/v1/metrics/up")
            missing = await client.delete("/api/v1/metrics/up")

            assert await store.get_metric("up") is None

        assert deleted.status_code == 204
        assert missing.status_code == 404


@pytest.mark.asyncio
class TestWriteEndpoints:
    async def test_push_usage_for_unknown_metric(self):
        store = MetricsStore()
        async with api_client(store) as client:
            response = await client.post(
                "/api/v1/metrics", json={"new_metric": {"dashboards": [DASHBOARD]}}
            )
            await store.join()
            pending = await client.get("/api/v1/pending_usages")

        assert response.status_code == 202
        assert response.json() == {"message": "OK"}
        assert pending.json()["new_metric"]["dashboards"] == [DASHBOARD]
        assert pending.json()["new_metric"]["alertRules"] == []

    async def test_push_usage_with_wire_names(self):
        store = MetricsStore()
        rule = {"prom_link": "http://prom", "group_name": "g", "name": "r", "expression": "up"}
        async with api_client(store) as client:
            await store.enqueue_metric_list(["up"])
            response = await client.post("/api/v1/metrics", json={"up": {"recordingRules": [rule]}})
            await store.join()

            metric = await store.get_metric("up")

        assert response.status_code == 202
        assert len(metric.usage.recording_rules) == 1

    async def test_push_empty_payload(self):
        async with api_client(MetricsStore()) as client:
            response = await client.post("/api/v1/metrics", json={})

        assert response.status_code == 202

    async def test_push_invalid_payload(self):
        async with api_client(MetricsStore()) as client:
            response = await client.post("/api/v1/metrics", json=["not", "a", "map"])

        assert response.status_code == 422

    @pytest.mark.parametrize("path", ["/api/v1/partial_metrics", "/api/v1/invalid_metrics"])
    async def test_push_partial_usage(self, path):
        store = MetricsStore()
        async with api_client(store) as client:
            await _seed(store)
            response = await client.post(path, json={"http_${kind}_total": {"dashboards": [DASHBOARD]}})
            await store.join()
            partials = await client.get("/api/v1/partial_metrics")

        assert response.status_code == 202
        partial = partials.json()["http_${kind}_total"]
        assert partial["matchingRegexp"] == "^http_.+_total$"
        assert set(partial["matchingMetrics"]) == {"http_requests_total", "http_errors_total"}

    async def test_push_labels(self):
        store = MetricsStore()
        async with api_client(store) as client:
            response = await client.post("/api/v1/labels", json={"up": ["job", "instance"]})
            await store.join()
            metric = await client.get("/api/v1/metrics/up")

        assert response.status_code == 202
        assert set(metric.json()["labels"]) == {"job", "instance"}

    async def test_push_rules(self):
        store = MetricsStore()
        payload = {
            "source": "http://prometheus:9090",
            "groups": [
                {
                    "name": "http",
                    "rules": [
                        {
                            "type": "alerting",
                            "name": "HighErrorRate",
                            "query": "rate(http_errors_total[5m]) > 1",
                        },
                        {
                            "type": "recording",
                            "name": "job:http_requests:rate5m",
                            "query": "sum by (job) (rate(http_requests_${env}[5m]))",
                        },
                        {"type": "recording", "name": "broken", "query": "sum(rate(up[5m])"},
                    ],
                }
            ],
        }
        async with api_client(store) as client:
            await _seed(store)
            response = await client.post("/api/v1/rules", json=payload)
            await store.join()

            metric = await store.get_metric("http_errors_total")
            partials = await store.list_partial_metrics()

        assert response.status_code == 202
        (alert,) = metric.usage.alert_rules
        assert alert.name == "HighErrorRate"
        assert alert.group_name == "http"
        assert alert.prom_link == "http://prometheus:9090"
        assert "http_requests_${env}" in partials


class TestMatching:
    @pytest.mark.parametrize(
        ("pattern", "name", "expected"),
        [
            ("htp", "http_requests_total", True),
            ("reqtot", "http_requests_total", True),
            ("totreq", "http_requests_total", False),
            ("", "up", True),
            ("upx", "up", False),
        ],
    )
    def test_fuzzy_match(self, pattern, name, expected):
        assert fuzzy_match(pattern, name) is expected

    def test_invalid_regex_matches_nothing(self):
        assert not is_metric_matching("up", MatchMode.REGEX, "(")

    def test_filter_without_criteria_returns_everything(self):
        metrics = {"up": Metric(), "node_load1": Metric()}

        assert filter_metrics(metrics) == metrics
