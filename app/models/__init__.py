"""SQLAlchemy models — portable across SQLite and PostgreSQL."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)

from app.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ── User ────────────────────────────────────────────────
class User(Base):
    """Agency user; owns the clients it manages."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(320), unique=True, nullable=False)
    hashed_password = Column(String(200), nullable=False)
    agency_name = Column(String(200), default="")
    is_active = Column(Boolean, default=True)
    is_superuser = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)


# ── Client ──────────────────────────────────────────────
class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(300), nullable=False)
    segment = Column(String(100), default="")
    status = Column(String(20), default="active")  # active|paused|churned
    monthly_value = Column(Float, default=0.0)
    average_ticket = Column(Float, nullable=True)
    monthly_ad_budget = Column(Float, nullable=True)
    health_score = Column(Integer, nullable=True)  # latest overall score, denormalized
    health_score_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ── Ad performance report ───────────────────────────────
class Report(Base):
    """Imported ad-platform report covering one period."""

    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=new_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    total_spend = Column(Float, default=0.0)
    total_impressions = Column(Integer, default=0)
    total_clicks = Column(Integer, default=0)
    total_conversions = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)


class Ad(Base):
    """Per-ad metrics inside a report."""

    __tablename__ = "ads"

    id = Column(String(36), primary_key=True, default=new_uuid)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    name = Column(String(300), default="")
    ctr = Column(Float, default=0.0)  # percent
    cpc = Column(Float, default=0.0)
    cpa = Column(Float, default=0.0)
    roas = Column(Float, nullable=True)  # null when the platform reports no revenue
    conversions = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)


# ── Task ────────────────────────────────────────────────
class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    title = Column(String(300), default="")
    status = Column(String(20), default="todo")  # todo|doing|done|cancelled
    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow)


# ── Payment ─────────────────────────────────────────────
class Payment(Base):
    """Billing record for a client's monthly fee."""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    amount = Column(Float, default=0.0)
    status = Column(String(20), default="pending")  # pending|paid|overdue|cancelled
    due_date = Column(Date, nullable=False)
    paid_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow)


# ── Content calendar ────────────────────────────────────
class ContentItem(Base):
    """Scheduled post awaiting client approval."""

    __tablename__ = "content_calendar"

    id = Column(String(36), primary_key=True, default=new_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    title = Column(String(300), default="")
    body = Column(Text, default="")
    status = Column(String(20), default="draft")  # draft|pending_approval|approved|published|rejected
    scheduled_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow)
