"""Tests for health score signal collection, persistence and the health-score API."""

import json
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from app.models import Ad, Client, ContentItem, Payment, Report, Task, User
from app.models.health_score import HealthScoreHistory
from app.services.health_score import Trend
from app.services.health_signals import (
    _months_ago,
    collect_signals,
    compute_client_health_score,
    get_at_risk_clients,
    get_health_score_status,
    recalculate_health_score,
    report_ctr_trend,
    summarize_ads,
    summarize_content,
    summarize_payments,
    summarize_tasks,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def _row(**kwargs):
    row = MagicMock()
    for k, v in kwargs.items():
        setattr(row, k, v)
    return row


# ── Pure summaries ────────────────────────────────────────
class TestSummaries:
    def test_ads_means_and_roas_only_where_reported(self):
        ads = [
            _row(ctr=2.0, cpc=1.0, roas=4.0, conversions=3),
            _row(ctr=4.0, cpc=2.0, roas=None, conversions=5),
        ]
        perf = summarize_ads(ads)
        assert perf.ctr == 3.0
        assert perf.cpc == 1.5
        assert perf.roas == 4.0
        assert perf.conversions == 8

    def test_ads_without_roas(self):
        perf = summarize_ads([_row(ctr=1.0, cpc=1.0, roas=None, conversions=0)])
        assert perf.roas is None

    def test_no_ads(self):
        perf = summarize_ads([])
        assert perf.ctr is None and perf.conversions is None

    def test_report_trend(self):
        older = _row(period_end=date(2026, 2, 1), total_clicks=100, total_impressions=10000)
        newer = _row(period_end=date(2026, 2, 28), total_clicks=500, total_impressions=10000)
        assert report_ctr_trend([newer, older]) == Trend.UP
        assert report_ctr_trend([_row(period_end=date(2026, 2, 28), total_clicks=0, total_impressions=10000), older]) == Trend.STABLE
        assert report_ctr_trend([older]) == Trend.STABLE

    def test_report_trend_skips_empty_reports(self):
        empty = _row(period_end=date(2026, 2, 28), total_clicks=0, total_impressions=0)
        older = _row(period_end=date(2026, 2, 1), total_clicks=100, total_impressions=10000)
        assert report_ctr_trend([empty, older]) == Trend.STABLE

    def test_tasks(self):
        tasks = [
            _row(status="done", due_date=date(2026, 2, 10)),
            _row(status="todo", due_date=date(2026, 2, 10)),  # overdue
            _row(status="cancelled", due_date=date(2026, 2, 10)),
            _row(status="doing", due_date=date(2026, 3, 10)),
        ]
        eng = summarize_tasks(tasks, TODAY)
        assert eng.task_completion == 25.0
        assert eng.overdue_rate == 25.0

    def test_payments(self):
        payments = [
            _row(status="paid", due_date=date(2026, 1, 10), paid_date=date(2026, 1, 9)),
            _row(status="paid", due_date=date(2026, 2, 10), paid_date=date(2026, 2, 15)),
            _row(status="overdue", due_date=date(2026, 2, 20), paid_date=None),
            _row(status="pending", due_date=date(2026, 3, 10), paid_date=None),
        ]
        fin = summarize_payments(payments, 1800.0)
        assert fin.payment_timeliness == 25.0
        assert fin.overdue_rate == 25.0
        assert fin.contract_value == 1800.0

    def test_no_payments_keeps_contract_value(self):
        fin = summarize_payments([], 900.0)
        assert fin.payment_timeliness is None
        assert fin.contract_value == 900.0

    def test_content(self):
        items = [
            _row(status="published"),
            _row(status="approved"),
            _row(status="pending_approval"),
            _row(status="rejected"),
        ]
        comp = summarize_content(items)
        assert comp.content_approval_rate == 50.0
        assert comp.publish_rate == 25.0
        assert comp.deadline_compliance == 50.0

    def test_months_ago_clamps_day(self):
        assert _months_ago(date(2026, 8, 31), 6) == date(2026, 2, 28)
        assert _months_ago(date(2026, 3, 2), 6) == date(2025, 9, 2)


# ── Database-backed collection ────────────────────────────
async def _seed_client(db, user: User, **kwargs) -> Client:
    client = Client(user_id=user.id, name=kwargs.pop("name", "Loja Azul"), monthly_value=2000.0, **kwargs)
    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


async def _seed_activity(db, client: Client, today: date = TODAY):
    def ago(days):
        return today - timedelta(days=days)

    recent = Report(
        client_id=client.id,
        period_start=ago(15),
        period_end=ago(2),
        total_impressions=10000,
        total_clicks=500,
    )
    previous = Report(
        client_id=client.id,
        period_start=ago(29),
        period_end=ago(16),
        total_impressions=10000,
        total_clicks=100,
    )
    stale = Report(
        client_id=client.id,
        period_start=ago(120),
        period_end=ago(90),
        total_impressions=10000,
        total_clicks=10,
    )
    db.add_all([recent, previous, stale])
    await db.flush()

    db.add_all([
        Ad(report_id=recent.id, ctr=3.0, cpc=0.5, roas=5.0, conversions=10),
        Ad(report_id=previous.id, ctr=3.0, cpc=0.5, roas=None, conversions=15),
        Ad(report_id=stale.id, ctr=0.1, cpc=9.0, roas=0.2, conversions=0),
    ])

    db.add_all([
        Task(client_id=client.id, status="done", due_date=ago(25)),
        Task(client_id=client.id, status="done", due_date=ago(18)),
        Task(client_id=client.id, status="done", due_date=ago(11)),
        Task(client_id=client.id, status="todo", due_date=ago(10)),
        Task(client_id=client.id, status="todo", due_date=ago(90)),
    ])

    db.add_all([
        Payment(client_id=client.id, status="paid", due_date=ago(80), paid_date=ago(80)),
        Payment(client_id=client.id, status="paid", due_date=ago(50), paid_date=ago(52)),
        Payment(client_id=client.id, status="paid", due_date=ago(20), paid_date=ago(29)),
        Payment(client_id=client.id, status="overdue", due_date=ago(5)),
        Payment(client_id=client.id, status="overdue", due_date=ago(250)),
    ])

    db.add_all([
        ContentItem(client_id=client.id, status="published", scheduled_date=ago(27)),
        ContentItem(client_id=client.id, status="published", scheduled_date=ago(20)),
        ContentItem(client_id=client.id, status="approved", scheduled_date=ago(13)),
        ContentItem(client_id=client.id, status="pending_approval", scheduled_date=ago(6)),
    ])
    await db.commit()


@pytest.mark.asyncio
async def test_collect_signals_uses_recent_rows(db, user):
    client = await _seed_client(db, user)
    await _seed_activity(db, client)

    collected = await collect_signals(db, client, today=TODAY)
    assert collected.has_reports and collected.has_tasks and collected.has_payments

    signals = collected.signals
    assert signals.performance.ctr == 3.0
    assert signals.performance.roas == 5.0
    assert signals.performance.conversions == 25
    assert signals.performance.trend == "up"
    assert signals.engagement.task_completion == 75.0
    assert signals.engagement.overdue_rate == 25.0
    assert signals.financial.payment_timeliness == 75.0
    assert signals.financial.overdue_rate == 25.0
    assert signals.financial.contract_value == 2000.0
    assert signals.compliance.content_approval_rate == 75.0
    assert signals.compliance.publish_rate == 50.0


@pytest.mark.asyncio
async def test_compute_full_score(db, user):
    client = await _seed_client(db, user)
    await _seed_activity(db, client)

    score = await compute_client_health_score(db, client, now=NOW)
    c = score.components
    assert c.performance_score == 100
    # 75% -> 81.25, minus 12.5 overdue penalty
    assert c.engagement_score == 69
    # 75% -> 68.75, minus 25 overdue penalty
    assert c.financial_score == 44
    # 68.75*.4 + 70*.3 + 68.75*.3
    assert c.compliance_score == 69
    # 35 + 17.25 + 11 + 10.35
    assert score.overall_score == 74
    assert score.level.value == "good"
    assert score.details.performance.trend == "up"
    assert score.previous_score is None


@pytest.mark.asyncio
async def test_no_activity_uses_placeholder_score(db, user):
    client = await _seed_client(db, user)
    score = await compute_client_health_score(db, client, now=NOW)
    assert score.overall_score == 40
    assert score.recommendations[0] == "Insufficient data for a complete analysis"


@pytest.mark.asyncio
async def test_recalculate_appends_history_and_updates_client(db, user):
    client = await _seed_client(db, user)

    first = await recalculate_health_score(db, client, now=NOW)
    await _seed_activity(db, client)
    second = await recalculate_health_score(db, client, now=NOW + timedelta(hours=1))

    assert first.overall_score == 40
    assert second.previous_score == 40
    assert second.trend == Trend.UP

    rows = (
        await db.execute(
            select(HealthScoreHistory)
            .where(HealthScoreHistory.client_id == client.id)
            .order_by(HealthScoreHistory.calculated_at)
        )
    ).scalars().all()
    assert [r.overall_score for r in rows] == [40, 74]
    assert json.loads(rows[1].details)["financial"]["contract_value"] == 2000.0
    assert rows[1].trend == "up"

    await db.refresh(client)
    assert client.health_score == 74


@pytest.mark.asyncio
async def test_status_cache_window(db, user):
    client = await _seed_client(db, user)
    await recalculate_health_score(db, client, now=NOW)

    fresh = await get_health_score_status(db, client, now=NOW + timedelta(hours=2))
    assert fresh["cached"] is True
    assert fresh["score"] == 40
    assert fresh["history"] is not None

    stale = await get_health_score_status(db, client, now=NOW + timedelta(hours=30))
    assert stale["cached"] is False


@pytest.mark.asyncio
async def test_status_without_history(db, user):
    client = await _seed_client(db, user)
    status = await get_health_score_status(db, client, now=NOW)
    assert status == {"score": None, "history": None, "cached": False, "last_updated": None}


@pytest.mark.asyncio
async def test_at_risk_clients(db, user):
    await _seed_client(db, user, name="Healthy", health_score=82)
    await _seed_client(db, user, name="Critical", health_score=22)
    await _seed_client(db, user, name="Warning", health_score=45)
    await _seed_client(db, user, name="Unscored")

    rows = await get_at_risk_clients(db, user.id, threshold=50, limit=5)
    assert [r["name"] for r in rows] == ["Critical", "Warning"]
    assert rows[0]["level"] == "critical"
    assert rows[1]["level"] == "warning"


# ── API ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_api_calculate_and_read(client, db, user, auth_headers):
    owned = await _seed_client(db, user)
    await _seed_activity(db, owned, datetime.now(timezone.utc).date())
    url = f"/api/v1/clients/{owned.id}/health-score"

    resp = await client.get(url, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["score"] is None
    assert resp.json()["cached"] is False

    resp = await client.post(url, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    health = body["health_score"]
    assert health["client_id"] == owned.id
    assert 0 <= health["overall_score"] <= 100
    assert health["level"] in ("critical", "warning", "good", "excellent")
    assert set(health["components"]) == {
        "performance_score", "engagement_score", "financial_score", "compliance_score",
    }
    assert health["trend"] == "stable"
    assert health["previous_score"] is None
    assert health["recommendations"]

    resp = await client.get(url, headers=auth_headers)
    status = resp.json()
    assert status["score"] == health["overall_score"]
    assert status["cached"] is True
    assert status["history"]["overall_score"] == health["overall_score"]
    assert status["history"]["details"]["performance"]["ctr"] == 3.0

    resp = await client.post(url, headers=auth_headers)
    assert resp.json()["health_score"]["previous_score"] == health["overall_score"]

    resp = await client.get(f"{url}/history", headers=auth_headers)
    assert resp.status_code == 200
    assert len(resp.json()) == 2


@pytest.mark.asyncio
async def test_api_other_agency_client_is_404(client, db, user, auth_headers):
    other = User(email="other@agency.com", hashed_password="x")
    db.add(other)
    await db.commit()
    await db.refresh(other)
    foreign = await _seed_client(db, other)

    url = f"/api/v1/clients/{foreign.id}/health-score"
    assert (await client.get(url, headers=auth_headers)).status_code == 404
    assert (await client.post(url, headers=auth_headers)).status_code == 404
    assert (await client.get(f"{url}/history", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_api_at_risk(client, db, user, auth_headers):
    await _seed_client(db, user, name="Critical", health_score=22)
    await _seed_client(db, user, name="Fine", health_score=75)

    resp = await client.get("/api/v1/health-score/at-risk", headers=auth_headers)
    assert resp.status_code == 200
    assert [r["name"] for r in resp.json()] == ["Critical"]

    resp = await client.get("/api/v1/health-score/at-risk?threshold=80", headers=auth_headers)
    assert [r["name"] for r in resp.json()] == ["Critical", "Fine"]
