"""Pydantic schemas for API request/response."""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field


# ── Auth ─────────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: str
    email: str
    agency_name: str
    is_superuser: bool

    model_config = {"from_attributes": True}


# ── Client ───────────────────────────────────────────────
class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    segment: str = ""
    status: str = "active"
    monthly_value: float = Field(default=0.0, ge=0)
    average_ticket: Optional[float] = Field(default=None, ge=0)
    monthly_ad_budget: Optional[float] = Field(default=None, ge=0)


class ClientOut(BaseModel):
    id: str
    name: str
    segment: str
    status: str
    monthly_value: float
    average_ticket: Optional[float] = None
    monthly_ad_budget: Optional[float] = None
    health_score: Optional[int] = None
    health_score_updated_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Health score ─────────────────────────────────────────
class HealthScoreComponentsOut(BaseModel):
    performance_score: int
    engagement_score: int
    financial_score: int
    compliance_score: int


class HealthScoreOut(BaseModel):
    client_id: str
    overall_score: int
    level: str
    components: HealthScoreComponentsOut
    details: dict[str, dict[str, Any]]
    calculated_at: datetime
    previous_score: Optional[float] = None
    trend: str
    recommendations: list[str]

    @classmethod
    def from_score(cls, score):
        return cls.model_validate(score.to_dict())


class HealthScoreCalculated(BaseModel):
    success: bool = True
    health_score: HealthScoreOut


class HealthScoreHistoryOut(BaseModel):
    id: str
    client_id: str
    performance_score: Optional[int] = None
    engagement_score: Optional[int] = None
    financial_score: Optional[int] = None
    compliance_score: Optional[int] = None
    overall_score: Optional[int] = None
    level: str = ""
    trend: str = "stable"
    details: Optional[dict] = None
    calculated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_model(cls, entry):
        details = entry.details
        if isinstance(details, str):
            try:
                details = json.loads(details)
            except (json.JSONDecodeError, TypeError):
                details = None
        return cls(
            id=entry.id,
            client_id=entry.client_id,
            performance_score=entry.performance_score,
            engagement_score=entry.engagement_score,
            financial_score=entry.financial_score,
            compliance_score=entry.compliance_score,
            overall_score=entry.overall_score,
            level=entry.level or "",
            trend=entry.trend or "stable",
            details=details,
            calculated_at=entry.calculated_at,
        )


class HealthScoreStatus(BaseModel):
    score: Optional[int] = None
    history: Optional[HealthScoreHistoryOut] = None
    cached: bool = False
    last_updated: Optional[datetime] = None


class AtRiskClient(BaseModel):
    client_id: str
    name: str
    health_score: int
    level: str
    health_score_updated_at: Optional[datetime] = None
