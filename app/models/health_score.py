"""Health score history — append-only log of every calculation."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from app.database import Base
from app.models import new_uuid, utcnow


class HealthScoreHistory(Base):
    """One row per scoring run. Rows are never updated or deleted here."""

    __tablename__ = "client_health_score_history"

    id = Column(String(36), primary_key=True, default=new_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    performance_score = Column(Integer, nullable=True)
    engagement_score = Column(Integer, nullable=True)
    financial_score = Column(Integer, nullable=True)
    compliance_score = Column(Integer, nullable=True)
    overall_score = Column(Integer, nullable=True)
    level = Column(String(20), default="")  # critical|warning|good|excellent
    trend = Column(String(10), default="stable")  # up|down|stable
    details = Column(Text, default="{}")  # JSON stored as text for portability
    calculated_at = Column(DateTime, default=utcnow, index=True)
