from __future__ import annotations

from fastapi import APIRouter, Body, Depends, status

from metrics_usage.api.deps import get_store
from metrics_usage.api.routes import ACCEPTED, MessageResponse
from metrics_usage.database.store import MetricsStore

router = APIRouter()


@router.post(
    "/labels",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def push_labels(
    payload: dict[str, list[str]] = Body(...),  # noqa: B008
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> MessageResponse:
    if payload:
        await store.enqueue_labels(payload)
    return ACCEPTED
