"""
Data model shared by the store, the collectors and the HTTP API.

Every mutable model carries a hand-written ``clone()`` so that the store can
hand out snapshots without sharing its own instances.
"""

from __future__ import annotations

import re

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DashboardRef(BaseModel):
    """A dashboard (or one of its panels/variables) referencing a metric."""

    model_config = ConfigDict(frozen=True)

    id: str
    # display name, also accepted as display_name
    name: str = Field(default="", validation_alias=AliasChoices("name", "display_name"))
    url: str = ""


class RuleRef(BaseModel):
    """A recording or alerting rule referencing a metric."""

    model_config = ConfigDict(frozen=True)

    prom_link: str = ""
    group_name: str
    name: str
    expression: str = ""


class Usage(BaseModel):
    """Evidence that a metric is used, split in three independent facets."""

    model_config = ConfigDict(populate_by_name=True)

    dashboards: set[DashboardRef] = Field(default_factory=set)
    recording_rules: set[RuleRef] = Field(default_factory=set, alias="recordingRules")
    alert_rules: set[RuleRef] = Field(default_factory=set, alias="alertRules")

    def clone(self) -> Usage:
        # refs are frozen, only the containers need copying
        return Usage(
            dashboards=set(self.dashboards),
            recording_rules=set(self.recording_rules),
            alert_rules=set(self.alert_rules),
        )


class Metric(BaseModel):
    """A concrete metric name confirmed to exist."""

    labels: set[str] = Field(default_factory=set)
    usage: Usage | None = None

    def clone(self) -> Metric:
        return Metric(
            labels=set(self.labels),
            usage=self.usage.clone() if self.usage is not None else None,
        )


class PartialMetric(BaseModel):
    """A metric name containing a variable or a regexp fragment."""

    model_config = ConfigDict(populate_by_name=True)

    usage: Usage | None = None
    matching_regexp: re.Pattern[str] | None = Field(default=None, alias="matchingRegexp")
    matching_metrics: set[str] = Field(default_factory=set, alias="matchingMetrics")

    def clone(self) -> PartialMetric:
        return PartialMetric(
            usage=self.usage.clone() if self.usage is not None else None,
            # compiled patterns are immutable and can be shared
            matching_regexp=self.matching_regexp,
            matching_metrics=set(self.matching_metrics),
        )


def merge_usage(old: Usage | None, new: Usage | None) -> Usage | None:
    """Union two usage records facet by facet.

    When one side is ``None`` the other one is returned as is. The result of
    merging two records is always a new ``Usage``; neither input is modified.
    """
    if old is None:
        return new
    if new is None:
        return old
    return Usage(
        dashboards=old.dashboards | new.dashboards,
        recording_rules=old.recording_rules | new.recording_rules,
        alert_rules=old.alert_rules | new.alert_rules,
    )
