"""Client health score calculator — pure scoring over already-fetched signals.

No I/O happens here: callers gather the signals (see ``health_signals``) and
persist the resulting ``ClientHealthScore`` themselves.
"""

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from app.services.health_score_policy import (
    COMPONENTS,
    DEFAULT_POLICY,
    INSUFFICIENT_DATA_RECOMMENDATION,
    MISSING_SOURCE_RECOMMENDATIONS,
    HealthScorePolicy,
)


class HealthScoreLevel(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    GOOD = "good"
    EXCELLENT = "excellent"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


# ── Signals ────────────────────────────────────────────
@dataclass
class PerformanceSignals:
    ctr: Optional[float] = None  # percent
    cpc: Optional[float] = None
    conversions: Optional[float] = None
    roas: Optional[float] = None
    trend: Optional[str] = None


@dataclass
class EngagementSignals:
    task_completion: Optional[float] = None
    overdue_rate: Optional[float] = None
    response_rate: Optional[float] = None
    meeting_attendance: Optional[float] = None
    feedback_frequency: Optional[float] = None


@dataclass
class FinancialSignals:
    payment_timeliness: Optional[float] = None
    overdue_rate: Optional[float] = None
    budget_utilization: Optional[float] = None
    contract_value: Optional[float] = None
    growth_rate: Optional[float] = None


@dataclass
class ComplianceSignals:
    content_approval_rate: Optional[float] = None
    publish_rate: Optional[float] = None
    deadline_compliance: Optional[float] = None
    brand_guidelines_adherence: Optional[float] = None
    communication_quality: Optional[float] = None


_GROUP_TYPES = {
    "performance": PerformanceSignals,
    "engagement": EngagementSignals,
    "financial": FinancialSignals,
    "compliance": ComplianceSignals,
}


def _as_group(name: str, raw):
    """Accept a group as its dataclass or a mapping; anything else is empty."""
    group_type = _GROUP_TYPES[name]
    if isinstance(raw, group_type):
        return raw
    if not isinstance(raw, Mapping):
        raw = {}
    known = {f.name for f in fields(group_type)}
    return group_type(**{k: v for k, v in raw.items() if k in known})


# Valid range per signal; None on either side means unbounded.
_PERCENT = (0.0, 100.0)
SIGNAL_BOUNDS = {
    "ctr": (0.0, None),
    "cpc": (0.0, None),
    "conversions": (0.0, None),
    "roas": (0.0, None),
    "contract_value": (0.0, None),
    "growth_rate": (-100.0, 100.0),
}


# Recorded in details but never scored.
_DETAIL_ONLY = {"trend", "contract_value"}


def _numeric_fields(group) -> list[str]:
    return [f.name for f in fields(group) if f.name != "trend"]


def _has_data(group) -> bool:
    return any(
        _coerce_number(getattr(group, f.name)) is not None
        for f in fields(group)
        if f.name not in _DETAIL_ONLY
    )


@dataclass
class HealthSignals:
    """Signal bundle for one client and one scoring run."""

    performance: PerformanceSignals = field(default_factory=PerformanceSignals)
    engagement: EngagementSignals = field(default_factory=EngagementSignals)
    financial: FinancialSignals = field(default_factory=FinancialSignals)
    compliance: ComplianceSignals = field(default_factory=ComplianceSignals)

    @classmethod
    def from_dict(cls, data: Mapping) -> "HealthSignals":
        """Build from nested mappings or group dataclasses, ignoring unknown groups and keys."""
        source = data if isinstance(data, Mapping) else {}
        return cls(**{name: _as_group(name, source.get(name)) for name in _GROUP_TYPES})

    def normalized(self) -> "HealthSignals":
        """Return a copy whose groups are all signal dataclasses."""
        return HealthSignals(
            **{name: _as_group(name, getattr(self, name)) for name in _GROUP_TYPES}
        )

    def present_components(self) -> list[str]:
        return [name for name in COMPONENTS if _has_data(getattr(self, name))]


# ── Result ─────────────────────────────────────────────
@dataclass
class HealthScoreComponents:
    performance_score: int
    engagement_score: int
    financial_score: int
    compliance_score: int

    def get(self, component: str) -> int:
        return getattr(self, f"{component}_score")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class HealthScoreDetails:
    """Resolved raw signals behind each component, kept for display and audit."""

    performance: PerformanceSignals
    engagement: EngagementSignals
    financial: FinancialSignals
    compliance: ComplianceSignals

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClientHealthScore:
    client_id: str
    overall_score: int
    level: HealthScoreLevel
    components: HealthScoreComponents
    details: HealthScoreDetails
    calculated_at: datetime
    previous_score: Optional[float] = None
    trend: Trend = Trend.STABLE
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "overall_score": self.overall_score,
            "level": self.level.value,
            "components": self.components.to_dict(),
            "details": self.details.to_dict(),
            "calculated_at": self.calculated_at.isoformat(),
            "previous_score": self.previous_score,
            "trend": self.trend.value,
            "recommendations": list(self.recommendations),
        }


# ── Helpers ────────────────────────────────────────────
def _coerce_number(value) -> Optional[float]:
    """Return a finite float, or None for anything missing or malformed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _clamp(value: float, low: Optional[float], high: Optional[float]) -> float:
    if low is not None and value < low:
        return low
    if high is not None and value > high:
        return high
    return value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _round_score(value: float) -> int:
    return int(_clamp(_round_half_up(value), 0, 100))


def _round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def _weighted_mean(sub_scores: dict, weights: dict, neutral: float) -> float:
    total = sum(weights.get(name, 0.0) for name in sub_scores)
    if total <= 0:
        return neutral
    return sum(score * weights.get(name, 0.0) for name, score in sub_scores.items()) / total


def _resolve(group, component: str, policy: HealthScorePolicy) -> dict:
    """Coerce, default and clamp every numeric signal of a group."""
    resolved = {}
    for name in _numeric_fields(group):
        value = _coerce_number(getattr(group, name))
        if value is None:
            resolved[name] = policy.default_for(component, name)
            continue
        low, high = SIGNAL_BOUNDS.get(name, _PERCENT)
        resolved[name] = _clamp(value, low, high)
    return resolved


def _as_trend(value, default: Trend = Trend.STABLE) -> Trend:
    try:
        return Trend(value)
    except (TypeError, ValueError):
        return default


def score_level(score: float, policy: HealthScorePolicy = DEFAULT_POLICY) -> HealthScoreLevel:
    """Map an overall score onto its level; lower bounds are inclusive."""
    return HealthScoreLevel(policy.level_for(score))


def score_trend(
    current: float,
    previous: Optional[float],
    policy: HealthScorePolicy = DEFAULT_POLICY,
) -> Trend:
    if previous is None:
        return Trend.STABLE
    diff = current - previous
    if diff > policy.trend_threshold:
        return Trend.UP
    if diff < -policy.trend_threshold:
        return Trend.DOWN
    return Trend.STABLE


# ── Component scores ───────────────────────────────────
def _performance(signals: PerformanceSignals, policy: HealthScorePolicy):
    trend = _as_trend(signals.trend).value
    if not _has_data(signals):
        details = PerformanceSignals(ctr=0.0, cpc=0.0, conversions=0, roas=0.0, trend=trend)
        return _round_score(policy.neutral_score), details

    values = _resolve(signals, "performance", policy)
    neutral = policy.neutral_score
    bench = policy.benchmarks
    ctr, cpc, conversions, roas = (values[k] for k in ("ctr", "cpc", "conversions", "roas"))

    if conversions is None:
        conversion_score = neutral
    elif conversions > 0:
        conversion_score = min(100.0, policy.conversion_base + conversions * policy.conversion_step)
    else:
        conversion_score = policy.conversion_zero_score

    sub_scores = {
        "ctr": bench["ctr"].normalize(ctr) if ctr is not None else neutral,
        "cpc": bench["cpc"].normalize(cpc) if cpc is not None else neutral,
        "roas": bench["roas"].normalize(roas) if roas else neutral,
        "conversions": conversion_score,
    }
    score = _weighted_mean(sub_scores, policy.sub_weights["performance"], neutral)
    # Unreported metrics stay None so no recommendation fires on them.
    details = PerformanceSignals(
        ctr=_round2(ctr) if ctr is not None else None,
        cpc=_round2(cpc) if cpc is not None else None,
        conversions=_round_half_up(conversions) if conversions is not None else None,
        roas=_round2(roas) if roas is not None else None,
        trend=trend,
    )
    return _round_score(score), details


def _engagement(signals: EngagementSignals, policy: HealthScorePolicy):
    values = _resolve(signals, "engagement", policy)
    sub_scores = {
        "task_completion": policy.benchmarks["task_completion"].normalize(values["task_completion"]),
        "response_rate": values["response_rate"],
        "meeting_attendance": values["meeting_attendance"],
        "feedback_frequency": values["feedback_frequency"],
    }
    score = _weighted_mean(sub_scores, policy.sub_weights["engagement"], policy.neutral_score)
    overdue = values["overdue_rate"]
    if overdue > 0:
        score -= min(policy.engagement_overdue_cap, overdue / policy.engagement_overdue_divisor)
    return _round_score(max(0.0, score)), EngagementSignals(
        **{k: _round_half_up(v) for k, v in values.items()}
    )


def _financial(signals: FinancialSignals, policy: HealthScorePolicy):
    values = _resolve(signals, "financial", policy)
    sub_scores = {
        "payment_timeliness": policy.benchmarks["payment_on_time"].normalize(
            values["payment_timeliness"]
        ),
        "budget_utilization": values["budget_utilization"],
        "growth_rate": _clamp(50 + values["growth_rate"] / 2, 0, 100),
    }
    score = _weighted_mean(sub_scores, policy.sub_weights["financial"], policy.neutral_score)
    overdue = values["overdue_rate"]
    if overdue > 0:
        score -= min(policy.financial_overdue_cap, overdue)
    details = {k: _round_half_up(v) for k, v in values.items() if k != "contract_value"}
    details["contract_value"] = _round2(values["contract_value"])
    return _round_score(max(0.0, score)), FinancialSignals(**details)


def _compliance(signals: ComplianceSignals, policy: HealthScorePolicy):
    values = _resolve(signals, "compliance", policy)
    publish_rate = values["publish_rate"]
    if publish_rate > 0:
        publish_score = min(100.0, publish_rate + policy.publish_bonus)
    else:
        publish_score = policy.publish_zero_score
    sub_scores = {
        "content_approval_rate": policy.benchmarks["approval"].normalize(
            values["content_approval_rate"]
        ),
        "publish_rate": publish_score,
        "deadline_compliance": policy.benchmarks["deadline"].normalize(
            values["deadline_compliance"]
        ),
        "brand_guidelines_adherence": values["brand_guidelines_adherence"],
        "communication_quality": values["communication_quality"],
    }
    score = _weighted_mean(sub_scores, policy.sub_weights["compliance"], policy.neutral_score)
    return _round_score(score), ComplianceSignals(
        **{k: _round_half_up(v) for k, v in values.items()}
    )


_CALCULATORS = {
    "performance": _performance,
    "engagement": _engagement,
    "financial": _financial,
    "compliance": _compliance,
}


def _as_signals(signals: Union[HealthSignals, Mapping, None]) -> HealthSignals:
    if isinstance(signals, HealthSignals):
        return signals.normalized()
    if isinstance(signals, Mapping):
        return HealthSignals.from_dict(signals)
    return HealthSignals()


def generate_recommendations(
    components: HealthScoreComponents,
    details: HealthScoreDetails,
    policy: HealthScorePolicy = DEFAULT_POLICY,
) -> list[str]:
    """Evaluate the rule table in declaration order."""
    recommendations = [
        rule.message
        for rule in policy.recommendation_rules
        if rule.matches(
            components.get(rule.component), details, policy.recommendation_gate, policy.benchmarks
        )
    ]
    if not recommendations:
        recommendations.append(policy.healthy_recommendation)
    return recommendations


# ── Public API ─────────────────────────────────────────
def calculate_health_score(
    signals: Union[HealthSignals, Mapping, None],
    previous_score: Optional[float] = None,
    *,
    client_id: str = "",
    policy: HealthScorePolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
) -> ClientHealthScore:
    """Score one client snapshot. Never raises for malformed signal values."""
    signals = _as_signals(signals)
    scores, resolved = {}, {}
    for name in COMPONENTS:
        scores[name], resolved[name] = _CALCULATORS[name](getattr(signals, name), policy)

    components = HealthScoreComponents(**{f"{name}_score": scores[name] for name in COMPONENTS})
    details = HealthScoreDetails(**resolved)

    overall = _round_score(
        sum(scores[name] * policy.component_weights[name] for name in COMPONENTS)
    )
    previous = _coerce_number(previous_score)

    return ClientHealthScore(
        client_id=client_id,
        overall_score=overall,
        level=score_level(overall, policy),
        components=components,
        details=details,
        calculated_at=now or datetime.now(timezone.utc),
        previous_score=previous,
        trend=score_trend(overall, previous, policy),
        recommendations=generate_recommendations(components, details, policy),
    )


def calculate_simplified_health_score(
    partial_signals: Union[HealthSignals, Mapping, None],
    *,
    policy: HealthScorePolicy = DEFAULT_POLICY,
) -> int:
    """Overall score from whichever components have data.

    Weights of absent components are redistributed proportionally over the
    present ones. With nothing present the neutral score is returned.
    """
    signals = _as_signals(partial_signals)
    present = signals.present_components()
    total_weight = sum(policy.component_weights[name] for name in present)
    if not present or total_weight <= 0:
        return _round_score(policy.neutral_score)

    overall = 0.0
    for name in present:
        score, _ = _CALCULATORS[name](getattr(signals, name), policy)
        overall += score * policy.component_weights[name] / total_weight
    return _round_score(overall)


def build_insufficient_data_score(
    client_id: str,
    has_reports: bool,
    has_tasks: bool,
    has_payments: bool,
    previous_score: Optional[float] = None,
    *,
    policy: HealthScorePolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
) -> ClientHealthScore:
    """Placeholder score for a client with too little stored data to analyse."""
    available = {"reports": has_reports, "tasks": has_tasks, "payments": has_payments}
    baseline = policy.insufficient_baseline - sum(
        penalty for source, penalty in policy.insufficient_penalties.items()
        if not available.get(source, False)
    )
    overall = _round_score(baseline)
    previous = _coerce_number(previous_score)

    empty = HealthSignals()
    details = HealthScoreDetails(
        **{name: _CALCULATORS[name](getattr(empty, name), policy)[1] for name in COMPONENTS}
    )
    recommendations = [INSUFFICIENT_DATA_RECOMMENDATION] + [
        message for source, message in MISSING_SOURCE_RECOMMENDATIONS.items()
        if not available.get(source, False)
    ]

    return ClientHealthScore(
        client_id=client_id,
        overall_score=overall,
        level=score_level(overall, policy),
        components=HealthScoreComponents(
            performance_score=60 if has_reports else 50,
            engagement_score=60 if has_tasks else 50,
            financial_score=70 if has_payments else 50,
            compliance_score=60,
        ),
        details=details,
        calculated_at=now or datetime.now(timezone.utc),
        previous_score=previous,
        trend=score_trend(overall, previous, policy),
        recommendations=recommendations,
    )
