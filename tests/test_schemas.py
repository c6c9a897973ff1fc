"""Test Pydantic schemas validation."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from app.schemas import ClientCreate, HealthScoreHistoryOut, HealthScoreOut, LoginRequest
from app.services.health_score import calculate_health_score


def test_login_invalid_email():
    with pytest.raises(ValidationError):
        LoginRequest(email="not-an-email", password="x")


def test_client_create_defaults():
    c = ClientCreate(name="Clínica Sorriso")
    assert c.monthly_value == 0.0
    assert c.average_ticket is None
    assert c.status == "active"


def test_client_create_requires_name():
    with pytest.raises(ValidationError):
        ClientCreate(name="")


def test_health_score_out_from_score():
    now = datetime(2026, 3, 2, tzinfo=timezone.utc)
    score = calculate_health_score({}, 70, client_id="c1", now=now)
    out = HealthScoreOut.from_score(score)
    assert out.client_id == "c1"
    assert out.level == "good"
    assert out.trend == "down"
    assert out.previous_score == 70
    assert out.components.financial_score == 100
    assert out.details["engagement"]["feedback_frequency"] == 50


def _history(details):
    entry = MagicMock()
    entry.id = "h1"
    entry.client_id = "c1"
    entry.performance_score = 50
    entry.engagement_score = 50
    entry.financial_score = 100
    entry.compliance_score = 74
    entry.overall_score = 66
    entry.level = "good"
    entry.trend = "stable"
    entry.details = details
    entry.calculated_at = datetime(2026, 3, 2)
    return entry


def test_history_out_parses_details_json():
    out = HealthScoreHistoryOut.from_model(_history('{"financial": {"payment_timeliness": 100}}'))
    assert out.details == {"financial": {"payment_timeliness": 100}}


def test_history_out_tolerates_bad_json():
    out = HealthScoreHistoryOut.from_model(_history("{broken"))
    assert out.details is None
    assert out.overall_score == 66
