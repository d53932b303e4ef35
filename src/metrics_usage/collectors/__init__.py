from __future__ import annotations

from metrics_usage.analyze.expr import Analyzer
from metrics_usage.collectors.base import Collector, CollectorRunner, run_periodically
from metrics_usage.collectors.labels import LabelsCollector
from metrics_usage.collectors.metric import MetricCollector
from metrics_usage.collectors.rules import RulesCollector
from metrics_usage.collectors.sink import UsageSink
from metrics_usage.config.settings import Settings
from metrics_usage.database.store import MetricsStore


def build_collectors(settings: Settings, store: MetricsStore, analyzer: Analyzer) -> CollectorRunner:
    """Create a runner holding every collector enabled in the settings."""
    runner = CollectorRunner()
    if settings.metric_collector.enable:
        runner.add(
            MetricCollector.from_settings(store, settings.metric_collector),
            settings.metric_collector.period,
        )
    if settings.labels_collector.enable:
        runner.add(
            LabelsCollector.from_settings(store, settings.labels_collector),
            settings.labels_collector.period,
        )
    for rules_settings in settings.rules_collectors:
        if rules_settings.enable:
            runner.add(
                RulesCollector.from_settings(store, rules_settings, analyzer),
                rules_settings.period,
            )
    return runner


__all__ = [
    "Collector",
    "CollectorRunner",
    "LabelsCollector",
    "MetricCollector",
    "RulesCollector",
    "UsageSink",
    "build_collectors",
    "run_periodically",
]
