"""Tests for usage extraction from Prometheus rule groups."""

import pytest
from metrics_usage.analyze.expr import PromQLAnalyzer
from metrics_usage.analyze.rules import (
    RuleKind,
    analyze_rule_groups,
    parse_rule_groups,
)
from metrics_usage.domain.models import RuleRef

SOURCE = "http://prometheus:9090"


@pytest.fixture
def rules_payload() -> dict:
    """The ``data`` object of a Prometheus ``/api/v1/rules`` response."""
    return {
        "groups": [
            {
                "name": "http",
                "file": "/etc/prometheus/rules/http.yaml",
                "interval": 30,
                "rules": [
                    {
                        "type": "recording",
                        "name": "job:http_requests:rate5m",
                        "query": "sum by (job) (rate(http_requests_total[5m]))",
                        "health": "ok",
                    },
                    {
                        "type": "alerting",
                        "name": "HighErrorRate",
                        "query": "job:http_requests:rate5m > 100 and rate(http_errors_total[5m]) > 1",
                        "duration": 300,
                        "labels": {"severity": "page"},
                        "alerts": [],
                    },
                    {
                        "type": "alerting",
                        "name": "KubeInfoMissing",
                        "query": 'absent({__name__=~"kube_.+_info"})',
                    },
                ],
            },
            {
                "name": "broken",
                "rules": [
                    {"type": "recording", "name": "bad", "query": "sum(rate(up[5m])"},
                ],
            },
        ]
    }


class TestParseRuleGroups:
    def test_parse(self, rules_payload):
        groups, errors = parse_rule_groups(rules_payload)

        assert errors == []
        assert [group.name for group in groups] == ["http", "broken"]
        rule = groups[0].rules[1]
        assert rule.kind is RuleKind.ALERTING
        assert rule.name == "HighErrorRate"
        assert rule.expression.startswith("job:http_requests:rate5m")

    def test_invalid_group_is_reported(self):
        payload = {
            "groups": [
                {"name": "bad", "rules": [{"type": "unknown", "name": "r", "query": "up"}]},
                {"name": "good", "rules": [{"type": "recording", "name": "r", "query": "up"}]},
            ]
        }

        groups, errors = parse_rule_groups(payload)

        assert [group.name for group in groups] == ["good"]
        assert len(errors) == 1
        assert "'bad'" in errors[0].message

    def test_empty_payload(self):
        assert parse_rule_groups({}) == ([], [])


class TestAnalyzeRuleGroups:
    def test_usage_per_rule_kind(self, rules_payload):
        groups, _ = parse_rule_groups(rules_payload)

        analysis = analyze_rule_groups(groups, SOURCE, PromQLAnalyzer())

        assert set(analysis.usage) == {
            "http_requests_total",
            "http_errors_total",
            "job:http_requests:rate5m",
        }
        recording = analysis.usage["http_requests_total"]
        assert recording.recording_rules == {
            RuleRef(
                prom_link=SOURCE,
                group_name="http",
                name="job:http_requests:rate5m",
                expression="sum by (job) (rate(http_requests_total[5m]))",
            )
        }
        assert recording.alert_rules == set()

        alert = analysis.usage["http_errors_total"]
        assert {rule.name for rule in alert.alert_rules} == {"HighErrorRate"}
        assert alert.recording_rules == set()

    def test_partial_usage(self, rules_payload):
        groups, _ = parse_rule_groups(rules_payload)

        analysis = analyze_rule_groups(groups, SOURCE, PromQLAnalyzer())

        assert set(analysis.partial_usage) == {"kube_.+_info"}
        (rule,) = analysis.partial_usage["kube_.+_info"].alert_rules
        assert rule.name == "KubeInfoMissing"

    def test_unparsable_expression_is_reported(self, rules_payload):
        groups, _ = parse_rule_groups(rules_payload)

        analysis = analyze_rule_groups(groups, SOURCE, PromQLAnalyzer())

        assert len(analysis.errors) == 1
        error = analysis.errors[0]
        assert "'bad'" in error.message
        assert "'broken'" in error.message
        assert error.error == "unbalanced brackets"
        assert "up" not in analysis.usage

    def test_metric_used_by_several_rules(self):
        groups, _ = parse_rule_groups(
            {
                "groups": [
                    {
                        "name": "node",
                        "rules": [
                            {"type": "alerting", "name": "NodeDown", "query": "up == 0"},
                            {"type": "recording", "name": "job:up:sum", "query": "sum(up)"},
                        ],
                    }
                ]
            }
        )

        analysis = analyze_rule_groups(groups, SOURCE, PromQLAnalyzer())

        usage = analysis.usage["up"]
        assert {rule.name for rule in usage.alert_rules} == {"NodeDown"}
        assert {rule.name for rule in usage.recording_rules} == {"job:up:sum"}
