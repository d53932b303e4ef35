from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel

from metrics_usage import __version__
from metrics_usage.api.deps import get_store
from metrics_usage.database.store import MetricsStore

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str = __version__


class ReadinessResponse(BaseModel):
    status: str
    collectors: list[str]
    store: dict[str, int]


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check() -> HealthResponse:
    """Liveness: the process answers."""
    return HealthResponse(status="healthy")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(
    request: Request,
    response: Response,
    store: MetricsStore = Depends(get_store),  # noqa: B008
) -> ReadinessResponse:
    """Readiness: the store consumers run. Reports map and queue sizes."""
    if not store.running:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    runner = request.app.state.collectors
    return ReadinessResponse(
        status="ready" if store.running else "not_ready",
        collectors=[collector.name for collector in runner.collectors],
        store=await store.stats(),
    )
