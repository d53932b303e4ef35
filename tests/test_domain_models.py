"""Tests for the usage data model and the merge function."""

import itertools

import pytest
from metrics_usage.domain.models import (
    DashboardRef,
    Metric,
    PartialMetric,
    RuleRef,
    Usage,
    merge_usage,
)
from metrics_usage.database.patterns import generate_regexp


def _rule(name: str) -> RuleRef:
    return RuleRef(prom_link="http://prom", group_name="g", name=name, expression="up")


def _facets(usage: Usage) -> tuple:
    return usage.dashboards, usage.recording_rules, usage.alert_rules


USAGES = [
    Usage(dashboards={DashboardRef(id="a", name="A", url="/a")}),
    Usage(
        dashboards={DashboardRef(id="b", name="B", url="/b")},
        recording_rules={_rule("job:up:sum")},
    ),
    Usage(alert_rules={_rule("InstanceDown")}, recording_rules={_rule("job:up:sum")}),
]


class TestMergeUsage:
    def test_none_sides(self, dashboard_usage):
        assert merge_usage(None, None) is None
        assert merge_usage(dashboard_usage, None) is dashboard_usage
        assert merge_usage(None, dashboard_usage) is dashboard_usage

    def test_union_per_facet(self, dashboard_usage, alert_usage):
        merged = merge_usage(dashboard_usage, alert_usage)

        assert merged.dashboards == dashboard_usage.dashboards
        assert merged.alert_rules == alert_usage.alert_rules
        assert merged.recording_rules == set()

    def test_inputs_are_not_modified(self, dashboard_usage, alert_usage):
        merge_usage(dashboard_usage, alert_usage)

        assert dashboard_usage.alert_rules == set()
        assert alert_usage.dashboards == set()

    @pytest.mark.parametrize("usage", USAGES)
    def test_idempotent(self, usage):
        assert _facets(merge_usage(usage, usage)) == _facets(usage)

    def test_duplicates_by_value(self):
        first = Usage(dashboards={DashboardRef(id="a", name="A", url="/a")})
        second = Usage(dashboards={DashboardRef(id="a", name="A", url="/a")})

        assert len(merge_usage(first, second).dashboards) == 1

    def test_order_independent(self):
        results = []
        for order in itertools.permutations(USAGES):
            merged = None
            for usage in order:
                merged = merge_usage(merged, usage)
            results.append(merged)

        assert all(_facets(result) == _facets(results[0]) for result in results)

    def test_associative(self):
        a, b, c = USAGES
        left = merge_usage(merge_usage(a, b), c)
        right = merge_usage(a, merge_usage(b, c))

        assert _facets(left) == _facets(right)


class TestClone:
    def test_metric_clone_is_independent(self, dashboard_usage):
        metric = Metric(labels={"job"}, usage=dashboard_usage)

        copy = metric.clone()
        copy.labels.add("instance")
        copy.usage.dashboards.clear()

        assert metric.labels == {"job"}
        assert len(metric.usage.dashboards) == 1

    def test_partial_metric_clone_keeps_regexp(self):
        regexp = generate_regexp("foo_${suffix}")
        partial = PartialMetric(matching_regexp=regexp, matching_metrics={"foo_bar"})

        copy = partial.clone()
        copy.matching_metrics.add("foo_baz")

        assert copy.matching_regexp is regexp
        assert partial.matching_metrics == {"foo_bar"}


class TestSerialization:
    def test_usage_uses_wire_names(self, alert_usage):
        data = alert_usage.model_dump(mode="json", by_alias=True)

        assert set(data) == {"dashboards", "recordingRules", "alertRules"}
        assert data["alertRules"][0]["group_name"] == "http"

    def test_usage_accepts_wire_names(self):
        usage = Usage.model_validate(
            {"recordingRules": [{"group_name": "g", "name": "r", "expression": "up"}]}
        )

        assert usage.recording_rules == {RuleRef(group_name="g", name="r", expression="up")}

    def test_dashboard_accepts_display_name(self):
        usage = Usage.model_validate(
            {"dashboards": [{"id": "d1", "display_name": "HTTP overview", "url": "/d/d1"}]}
        )

        (dashboard,) = usage.dashboards
        assert dashboard == DashboardRef(id="d1", name="HTTP overview", url="/d/d1")
        assert dashboard.model_dump()["name"] == "HTTP overview"

    def test_partial_metric_regexp_serialized_as_string(self):
        partial = PartialMetric(matching_regexp=generate_regexp("foo_${suffix}"))

        data = partial.model_dump(mode="json", by_alias=True, exclude_none=True)

        assert data["matchingRegexp"] == "^foo_.+$"
        assert data["matchingMetrics"] == []
