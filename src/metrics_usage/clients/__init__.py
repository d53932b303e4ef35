from metrics_usage.clients.metrics_usage import MetricsUsageClient
from metrics_usage.clients.prometheus import PrometheusClient

__all__ = ["MetricsUsageClient", "PrometheusClient"]
