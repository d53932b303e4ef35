from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from metrics_usage.analyze.expr import Analyzer
from metrics_usage.analyze.rules import RuleGroup, analyze_rule_groups
from metrics_usage.api.deps import get_analyzer, get_store
from metrics_usage.api.routes import ACCEPTED, MessageResponse
from metrics_usage.database.store import MetricsStore

router = APIRouter()
logger = structlog.get_logger()


class RulesPushRequest(BaseModel):
    source: str = ""
    groups: list[RuleGroup] = Field(default_factory=list)


@router.post(
    "/rules",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def push_rules(
    payload: RulesPushRequest,
    store: MetricsStore = Depends(get_store),  # noqa: B008
    analyzer: Analyzer = Depends(get_analyzer),  # noqa: B008
) -> MessageResponse:
    """Analyze rule groups sent by a remote agent and record their usage."""
    analysis = analyze_rule_groups(payload.groups, payload.source, analyzer)
    for error in analysis.errors:
        logger.warning(
            "rule_analysis_failed", source=payload.source, message=error.message, error=error.error
        )
    if analysis.usage:
        await store.enqueue_usage(analysis.usage)
    if analysis.partial_usage:
        await store.enqueue_partial_usage(analysis.partial_usage)
    return ACCEPTED
