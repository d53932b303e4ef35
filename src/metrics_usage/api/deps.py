from __future__ import annotations

from fastapi import Request

from metrics_usage.analyze.expr import Analyzer
from metrics_usage.database.store import MetricsStore


def get_store(request: Request) -> MetricsStore:
    return request.app.state.store


def get_analyzer(request: Request) -> Analyzer:
    return request.app.state.analyzer
