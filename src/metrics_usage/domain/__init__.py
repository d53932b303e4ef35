from metrics_usage.domain.models import (
    DashboardRef,
    Metric,
    PartialMetric,
    RuleRef,
    Usage,
    merge_usage,
)

__all__ = ["DashboardRef", "Metric", "PartialMetric", "RuleRef", "Usage", "merge_usage"]
