"""Health Score API — read the cached score, recalculate it, chart its history."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_current_user
from app.config import get_settings
from app.database import get_db
from app.models import User
from app.schemas import (
    AtRiskClient,
    HealthScoreCalculated,
    HealthScoreHistoryOut,
    HealthScoreOut,
    HealthScoreStatus,
)
from app.services.health_signals import (
    get_at_risk_clients,
    get_client_for_user,
    get_health_score_status,
    list_health_score_history,
    recalculate_health_score,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(tags=["health-score"])


async def _owned_client(db: AsyncSession, client_id: str, user: User):
    try:
        return await get_client_for_user(db, client_id, user.id)
    except ValueError as e:
        raise HTTPException(404, str(e))


@router.get("/clients/{client_id}/health-score", response_model=HealthScoreStatus)
async def get_health_score(
    client_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    client = await _owned_client(db, client_id, user)
    status = await get_health_score_status(db, client)
    history = status["history"]
    return HealthScoreStatus(
        score=status["score"],
        history=HealthScoreHistoryOut.from_model(history) if history else None,
        cached=status["cached"],
        last_updated=status["last_updated"],
    )


@router.post("/clients/{client_id}/health-score", response_model=HealthScoreCalculated)
async def calculate_health_score(
    client_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Recalculate from the client's recent rows and append a history entry."""
    client = await _owned_client(db, client_id, user)
    score = await recalculate_health_score(db, client)
    return HealthScoreCalculated(health_score=HealthScoreOut.from_score(score))


@router.get(
    "/clients/{client_id}/health-score/history",
    response_model=list[HealthScoreHistoryOut],
)
async def health_score_history(
    client_id: str,
    limit: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    client = await _owned_client(db, client_id, user)
    entries = await list_health_score_history(db, client.id, limit=limit)
    return [HealthScoreHistoryOut.from_model(e) for e in entries]


@router.get("/health-score/at-risk", response_model=list[AtRiskClient])
async def at_risk_clients(
    threshold: Optional[int] = Query(None, ge=0, le=100),
    limit: int = Query(5, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if threshold is None:
        threshold = settings.health_score_at_risk_threshold
    rows = await get_at_risk_clients(db, user.id, threshold=threshold, limit=limit)
    logger.debug(f"{len(rows)} at-risk clients below {threshold} for user {user.id}")
    return rows
