"""Tests for partial metric name compilation and matching."""

import pytest
from metrics_usage.core.errors import PatternCompileError
from metrics_usage.database.patterns import generate_regexp, is_matching


@pytest.mark.parametrize(
    ("partial_metric", "expected"),
    [
        ("${metric}", None),
        (
            "otelcol_exporter_enqueue_failed_log_records${suffix}",
            "^otelcol_exporter_enqueue_failed_log_records.+$",
        ),
        ("${foo}${bar}${john}${doe}", None),
        (
            "prefix_${foo}${bar}:collection_${collection}_suffix:${john}${doe}",
            "^prefix_.+:collection_.+_suffix:.+$",
        ),
        ("otelcol_receiver_.+", "^otelcol_receiver_.+$"),
        ("otelcol_receiver_.*", "^otelcol_receiver_.+$"),
        ("", None),
        (".*", None),
        ("${foo}.+", None),
    ],
    ids=[
        "only-variable",
        "variable-suffix",
        "only-variables",
        "variables-everywhere",
        "regexp-no-variable",
        "regexp-star",
        "empty",
        "only-regexp",
        "variable-and-regexp",
    ],
)
def test_generate_regexp(partial_metric, expected):
    regexp = generate_regexp(partial_metric)

    if expected is None:
        assert regexp is None
    else:
        assert regexp.pattern == expected


def test_generate_regexp_invalid_fragment():
    with pytest.raises(PatternCompileError) as exc_info:
        generate_regexp("foo_(bar")

    assert exc_info.value.details["partial_metric"] == "foo_(bar"


class TestIsMatching:
    def test_empty_branch_does_not_match_everything(self):
        regexp = generate_regexp("foo|")

        assert not is_matching(regexp, "bar")
        assert is_matching(regexp, "foo")

    def test_alternation(self):
        regexp = generate_regexp("foo|bar")

        assert is_matching(regexp, "bar")
        assert is_matching(regexp, "foo")

    def test_variable_needs_at_least_one_char(self):
        regexp = generate_regexp("http_requests_${suffix}")

        assert is_matching(regexp, "http_requests_total")
        assert not is_matching(regexp, "http_requests_")
        assert not is_matching(regexp, "grpc_requests_total")

    def test_anchored(self):
        regexp = generate_regexp("node_${kind}_bytes")

        assert is_matching(regexp, "node_memory_bytes")
        assert not is_matching(regexp, "node_memory_bytes_total")
