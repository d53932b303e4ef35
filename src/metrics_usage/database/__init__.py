from metrics_usage.database.patterns import generate_regexp, is_matching
from metrics_usage.database.snapshot import SnapshotFile
from metrics_usage.database.store import MetricsStore

__all__ = ["MetricsStore", "SnapshotFile", "generate_regexp", "is_matching"]
