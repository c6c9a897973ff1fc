"""Health score signal collection & persistence — from stored client rows to history."""

import calendar
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models import Ad, Client, ContentItem, Payment, Report, Task
from app.models.health_score import HealthScoreHistory
from app.services.health_score import (
    ClientHealthScore,
    ComplianceSignals,
    EngagementSignals,
    FinancialSignals,
    HealthSignals,
    PerformanceSignals,
    Trend,
    build_insufficient_data_score,
    calculate_health_score,
    score_level,
    score_trend,
)
from app.services.health_score_policy import DEFAULT_POLICY, HealthScorePolicy

logger = logging.getLogger(__name__)
settings = get_settings()

APPROVED_STATUSES = ("approved", "published")
CLOSED_TASK_STATUSES = ("done", "cancelled")


@dataclass
class CollectedSignals:
    signals: HealthSignals
    has_reports: bool = False
    has_tasks: bool = False
    has_payments: bool = False

    @property
    def has_data(self) -> bool:
        return self.has_reports or self.has_tasks or self.has_payments


def _months_ago(day: date, months: int) -> date:
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _percent(part: int, total: int) -> float:
    return part / total * 100


# ── Row summaries ──────────────────────────────────────
def summarize_ads(ads) -> PerformanceSignals:
    """Simple means over ads; ROAS only over ads that report one."""
    if not ads:
        return PerformanceSignals()
    with_roas = [ad.roas for ad in ads if ad.roas is not None]
    return PerformanceSignals(
        ctr=sum(ad.ctr or 0 for ad in ads) / len(ads),
        cpc=sum(ad.cpc or 0 for ad in ads) / len(ads),
        roas=sum(with_roas) / len(with_roas) if with_roas else None,
        conversions=sum(ad.conversions or 0 for ad in ads),
    )


def report_ctr_trend(reports, policy: HealthScorePolicy = DEFAULT_POLICY) -> Trend:
    """Compare the newest report's CTR with the mean of the older ones."""
    rated = [
        (r.period_end, r.total_clicks / r.total_impressions * 100)
        for r in reports
        if r.total_impressions
    ]
    if len(rated) < 2:
        return Trend.STABLE
    rated.sort(key=lambda item: item[0])
    older = [ctr for _, ctr in rated[:-1]]
    return score_trend(rated[-1][1], sum(older) / len(older), policy)


def summarize_tasks(tasks, today: date) -> EngagementSignals:
    if not tasks:
        return EngagementSignals()
    completed = sum(1 for t in tasks if t.status == "done")
    overdue = sum(
        1 for t in tasks
        if t.status not in CLOSED_TASK_STATUSES and t.due_date and t.due_date < today
    )
    return EngagementSignals(
        task_completion=_percent(completed, len(tasks)),
        overdue_rate=_percent(overdue, len(tasks)),
    )


def summarize_payments(payments, contract_value: Optional[float] = None) -> FinancialSignals:
    if not payments:
        return FinancialSignals(contract_value=contract_value)
    on_time = sum(
        1 for p in payments
        if p.status == "paid" and p.paid_date and p.paid_date <= p.due_date
    )
    overdue = sum(1 for p in payments if p.status == "overdue")
    return FinancialSignals(
        payment_timeliness=_percent(on_time, len(payments)),
        overdue_rate=_percent(overdue, len(payments)),
        contract_value=contract_value,
    )


def summarize_content(items) -> ComplianceSignals:
    if not items:
        return ComplianceSignals()
    approved = sum(1 for c in items if c.status in APPROVED_STATUSES)
    published = sum(1 for c in items if c.status == "published")
    # No approval timestamp is stored, so approved items count as on schedule.
    return ComplianceSignals(
        content_approval_rate=_percent(approved, len(items)),
        publish_rate=_percent(published, len(items)),
        deadline_compliance=_percent(approved, len(items)),
    )


# ── Collection ─────────────────────────────────────────
async def get_client_for_user(db: AsyncSession, client_id: str, user_id: str) -> Client:
    result = await db.execute(
        select(Client).where(Client.id == client_id, Client.user_id == user_id)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise ValueError(f"Client {client_id} not found")
    return client


async def get_latest_history(db: AsyncSession, client_id: str) -> Optional[HealthScoreHistory]:
    result = await db.execute(
        select(HealthScoreHistory)
        .where(HealthScoreHistory.client_id == client_id)
        .order_by(HealthScoreHistory.calculated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_previous_score(db: AsyncSession, client_id: str) -> Optional[float]:
    last = await get_latest_history(db, client_id)
    if not last or last.overall_score is None:
        return None
    return float(last.overall_score)


async def collect_signals(
    db: AsyncSession,
    client: Client,
    today: Optional[date] = None,
    policy: HealthScorePolicy = DEFAULT_POLICY,
) -> CollectedSignals:
    """Gather the signal bundle for one client from its recent rows."""
    today = today or datetime.now(timezone.utc).date()
    recent = today - timedelta(days=settings.health_score_report_window_days)
    billing_start = _months_ago(today, settings.health_score_payment_window_months)

    reports = (
        await db.execute(
            select(Report).where(Report.client_id == client.id, Report.period_end >= recent)
        )
    ).scalars().all()

    ads = []
    if reports:
        ads = (
            await db.execute(select(Ad).where(Ad.report_id.in_([r.id for r in reports])))
        ).scalars().all()

    tasks = (
        await db.execute(
            select(Task).where(Task.client_id == client.id, Task.due_date >= recent)
        )
    ).scalars().all()

    payments = (
        await db.execute(
            select(Payment).where(
                Payment.client_id == client.id, Payment.due_date >= billing_start
            )
        )
    ).scalars().all()

    content = (
        await db.execute(
            select(ContentItem).where(
                ContentItem.client_id == client.id, ContentItem.scheduled_date >= recent
            )
        )
    ).scalars().all()

    performance = summarize_ads(ads)
    performance.trend = report_ctr_trend(reports, policy).value

    signals = HealthSignals(
        performance=performance,
        engagement=summarize_tasks(tasks, today),
        financial=summarize_payments(payments, client.monthly_value or 0.0),
        compliance=summarize_content(content),
    )
    return CollectedSignals(
        signals=signals,
        has_reports=bool(reports),
        has_tasks=bool(tasks),
        has_payments=bool(payments),
    )


# ── Scoring & persistence ──────────────────────────────
async def compute_client_health_score(
    db: AsyncSession,
    client: Client,
    now: Optional[datetime] = None,
    policy: HealthScorePolicy = DEFAULT_POLICY,
) -> ClientHealthScore:
    now = now or datetime.now(timezone.utc)
    collected = await collect_signals(db, client, today=now.date(), policy=policy)
    previous = await get_previous_score(db, client.id)

    if not collected.has_data:
        logger.info(f"Client {client.id} has no reports, tasks or payments; using placeholder score")
        return build_insufficient_data_score(
            client.id,
            collected.has_reports,
            collected.has_tasks,
            collected.has_payments,
            previous,
            policy=policy,
            now=now,
        )

    return calculate_health_score(
        collected.signals, previous, client_id=client.id, policy=policy, now=now
    )


async def record_health_score(
    db: AsyncSession, client: Client, score: ClientHealthScore
) -> HealthScoreHistory:
    """Append a history row and stamp the client with its latest score."""
    components = score.components
    entry = HealthScoreHistory(
        client_id=client.id,
        performance_score=components.performance_score,
        engagement_score=components.engagement_score,
        financial_score=components.financial_score,
        compliance_score=components.compliance_score,
        overall_score=score.overall_score,
        level=score.level.value,
        trend=score.trend.value,
        details=json.dumps(score.details.to_dict()),
        calculated_at=score.calculated_at,
    )
    db.add(entry)

    client.health_score = score.overall_score
    client.health_score_updated_at = score.calculated_at

    await db.commit()
    await db.refresh(entry)
    logger.info(
        f"Health score for client {client.id}: {score.overall_score} "
        f"({score.level.value}, trend {score.trend.value})"
    )
    return entry


async def recalculate_health_score(
    db: AsyncSession,
    client: Client,
    now: Optional[datetime] = None,
    policy: HealthScorePolicy = DEFAULT_POLICY,
) -> ClientHealthScore:
    score = await compute_client_health_score(db, client, now=now, policy=policy)
    await record_health_score(db, client, score)
    return score


# ── Reads ──────────────────────────────────────────────
async def get_health_score_status(
    db: AsyncSession, client: Client, now: Optional[datetime] = None
) -> dict:
    """Stored score plus latest history; ``cached`` when still inside the cache window."""
    now = now or datetime.now(timezone.utc)
    last = await get_latest_history(db, client.id)

    cached = False
    if client.health_score is not None and client.health_score_updated_at and last:
        age = now - _as_utc(client.health_score_updated_at)
        cached = age < timedelta(hours=settings.health_score_cache_hours)

    return {
        "score": client.health_score,
        "history": last,
        "cached": cached,
        "last_updated": client.health_score_updated_at,
    }


async def list_health_score_history(
    db: AsyncSession, client_id: str, limit: int = 30
) -> list[HealthScoreHistory]:
    result = await db.execute(
        select(HealthScoreHistory)
        .where(HealthScoreHistory.client_id == client_id)
        .order_by(HealthScoreHistory.calculated_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_at_risk_clients(
    db: AsyncSession,
    user_id: str,
    threshold: float = 50,
    limit: int = 5,
) -> list[dict]:
    """Caller's clients with a stored score below ``threshold``, worst first."""
    stmt = (
        select(Client)
        .where(
            Client.user_id == user_id,
            Client.health_score.is_not(None),
            Client.health_score < threshold,
        )
        .order_by(Client.health_score.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return [
        {
            "client_id": c.id,
            "name": c.name,
            "health_score": c.health_score,
            "level": score_level(c.health_score).value,
            "health_score_updated_at": (
                c.health_score_updated_at.isoformat() if c.health_score_updated_at else None
            ),
        }
        for c in result.scalars().all()
    ]
