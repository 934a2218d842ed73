from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.apps.api.deps import get_db
from fundnotify.apps.api.openapi import error_responses
from fundnotify.apps.api.response import SuccessEnvelope, success_response
from fundnotify.persistence.db import pool_stats
from fundnotify.services.telemetry import external_call_stats, get_counters, p95_latency

router = APIRouter(tags=["health"], responses=error_responses(500, 503))

# Latency and transport stats cover the last five minutes.
_STATS_WINDOW_S = 300


class HealthResponse(BaseModel):
    status: str
    database: str
    database_pool: dict[str, int | None]
    p95_latency_ms: float | None
    transports: dict[str, dict[str, float | int | None]]
    counters: dict[str, int]


# Allow legacy unwrapped responses while v1 middleware wraps them into envelopes.
@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    # Report degraded rather than failing so health checks can tell store outages from process death.
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        database = "unavailable"
    payload = HealthResponse(
        status="ok" if database == "ok" else "degraded",
        database=database,
        database_pool=pool_stats(),
        p95_latency_ms=p95_latency(_STATS_WINDOW_S, path_prefix="/v1/notifications"),
        transports=external_call_stats(_STATS_WINDOW_S),
        counters=get_counters(),
    )
    return success_response(request=request, data=payload.model_dump())
