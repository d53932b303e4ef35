"""
Usage extraction from Prometheus rule groups.

Rules come in two kinds sharing the same payload; the kind is read from the
``type`` field of the Prometheus rules API and decides which usage facet a
rule lands in.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from metrics_usage.analyze.expr import Analyzer
from metrics_usage.core.errors import ExpressionParseError
from metrics_usage.domain.models import RuleRef, Usage


class RuleKind(StrEnum):
    RECORDING = "recording"
    ALERTING = "alerting"


class Rule(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    kind: RuleKind = Field(alias="type")
    name: str
    expression: str = Field(alias="query")


class RuleGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    rules: list[Rule] = Field(default_factory=list)


@dataclass(slots=True)
class AnalysisError:
    message: str
    error: str


@dataclass(slots=True)
class RulesAnalysis:
    usage: dict[str, Usage]
    partial_usage: dict[str, Usage]
    errors: list[AnalysisError]


def parse_rule_groups(payload: dict[str, Any]) -> tuple[list[RuleGroup], list[AnalysisError]]:
    """Parse the ``data`` object of a ``/api/v1/rules`` response.

    A group that cannot be parsed is reported and skipped.
    """
    groups: list[RuleGroup] = []
    errors: list[AnalysisError] = []
    for raw_group in payload.get("groups", []):
        try:
            groups.append(RuleGroup.model_validate(raw_group))
        except ValidationError as exc:
            name = raw_group.get("name") if isinstance(raw_group, dict) else None
            errors.append(AnalysisError(message=f"invalid rule group {name!r}", error=str(exc)))
    return groups, errors


def analyze_rule_groups(
    groups: Iterable[RuleGroup], source: str, analyzer: Analyzer
) -> RulesAnalysis:
    """Build the usage of every metric referenced by the given rules."""
    result = RulesAnalysis(usage={}, partial_usage={}, errors=[])
    for group in groups:
        for rule in group.rules:
            try:
                metric_names, partial_names = analyzer.analyze(rule.expression)
            except ExpressionParseError as exc:
                result.errors.append(
                    AnalysisError(
                        message=(
                            f"failed to extract metric names for the {rule.kind} rule "
                            f"{rule.name!r} of the group {group.name!r}"
                        ),
                        error=exc.message,
                    )
                )
                continue

            ref = RuleRef(
                prom_link=source,
                group_name=group.name,
                name=rule.name,
                expression=rule.expression,
            )
            _populate_usage(result.usage, metric_names, ref, rule.kind)
            _populate_usage(result.partial_usage, partial_names, ref, rule.kind)
    return result


def _populate_usage(
    usages: dict[str, Usage], names: Iterable[str], ref: RuleRef, kind: RuleKind
) -> None:
    for name in names:
        usage = usages.setdefault(name, Usage())
        if kind is RuleKind.ALERTING:
            usage.alert_rules.add(ref)
        elif kind is RuleKind.RECORDING:
            usage.recording_rules.add(ref)
