from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request

from app.dependencies import get_store
from app.models import utcnow
from app.schemas.health import HealthResponse
from app.store import ConversationStore

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, store: ConversationStore = Depends(get_store)) -> HealthResponse:
    """Report liveness, process uptime and the number of stored conversations."""
    started_at: float = request.app.state.started_at
    return HealthResponse(
        status="ok",
        timestamp=utcnow(),
        uptime=round(time.monotonic() - started_at, 3),
        conversations=len(store),
    )
