from __future__ import annotations

import re
from enum import StrEnum

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status

from metrics_usage.api.deps import get_store
from metrics_usage.api.routes import ACCEPTED, MessageResponse
from metrics_usage.database.store import MetricsStore
from metrics_usage.domain.models import Metric, PartialMetric, Usage, merge_usage

router = APIRouter()
logger = structlog.get_logger()


class MatchMode(StrEnum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    REGEX = "regex"


def fuzzy_match(pattern: str, name: str) -> bool:
    """True when every character of ``pattern`` appears in ``name``, in order."""
    remaining = iter(name)
    return all(char in remaining for char in pattern)


def is_metric_matching(metric_name: str, mode: MatchMode, value: str) -> bool:
    if mode is MatchMode.EXACT:
        return metric_name == value
    if mode is MatchMode.REGEX:
        try:
            return re.search(value, metric_name) is not None
        except re.error:
            return False
    return fuzzy_match(value, metric_name)


def filter_metrics(
    metrics: dict[str, Metric],
    partial_metrics: dict[str, PartialMetric] | None = None,
    *,
    metric_name: str | None = None,
    mode: MatchMode = MatchMode.FUZZY,
    used: bool | None = None,
) -> dict[str, Metric]:
    """Filter a snapshot of the metrics.

    When ``partial_metrics`` is given, their usage is first merged into the
    matching metrics of the snapshot. The snapshot is modified in place, so
    it must be a copy owned by the caller.
    """
    for partial in (partial_metrics or {}).values():
        for name in partial.matching_metrics:
            metric = metrics.get(name)
            if metric is not None:
                metric.usage = merge_usage(metric.usage, partial.usage)

    if not metric_name and used is None:
        return metrics

    result: dict[str, Metric] = {}
    for name, metric in metrics.items():
        if metric_name and not is_metric_matching(name, mode, metric_name):
            continue
        if used is not None and used != (metric.usage is not None):
            continue
        result[name] = metric
    return result


@router.get(
    "/metrics",
    response_model=dict[str, Metric],
    response_model_exclude_none=True,
)
async def list_metrics(
    metric_name: str | None = None,
    mode: str | None = None,
    used: bool | None = None,
    merge_partial_metrics: bool = False,
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> dict[str, Metric]:
    try:
        match_mode = MatchMode(mode) if mode else MatchMode.FUZZY
    except ValueError:
        allowed = ", ".join(m.value for m in MatchMode)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"invalid match mode: {mode}. Allowed: {allowed}",
        ) from None

    partial_metrics = await store.list_partial_metrics() if merge_partial_metrics else None
    metrics = await store.list_metrics()
    return filter_metrics(
        metrics,
        partial_metrics,
        metric_name=metric_name,
        mode=match_mode,
        used=used,
    )


@router.get(
    "/metrics/{name}",
    response_model=Metric,
    response_model_exclude_none=True,
)
async def get_metric(
    name: str,
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> Metric:
    metric = await store.get_metric(name)
    if metric is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Metric {name} not found",
        )
    return metric


@router.delete("/metrics/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_metric(
    name: str,
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> None:
    if not await store.delete_metric(name):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Metric {name} not found",
        )
    logger.info("metric_deleted", metric_name=name)


@router.post(
    "/metrics",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def push_metrics_usage(
    payload: dict[str, Usage | None] = Body(...),  # noqa: B008
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> MessageResponse:
    if payload:
        await store.enqueue_usage(payload)
    return ACCEPTED


@router.get(
    "/partial_metrics",
    response_model=dict[str, PartialMetric],
    response_model_exclude_none=True,
)
async def list_partial_metrics(
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> dict[str, PartialMetric]:
    return await store.list_partial_metrics()


@router.post(
    "/partial_metrics",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@router.post(
    "/invalid_metrics",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    include_in_schema=False,
)
async def push_partial_metrics_usage(
    payload: dict[str, Usage | None] = Body(...),  # noqa: B008
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> MessageResponse:
    if payload:
        await store.enqueue_partial_usage(payload)
    return ACCEPTED


@router.get(
    "/pending_usages",
    response_model=dict[str, Usage],
)
async def list_pending_usages(
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> dict[str, Usage]:
    return await store.list_pending_usage()
