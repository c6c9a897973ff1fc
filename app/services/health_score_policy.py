"""Health score policy — weights, benchmarks, defaults and recommendation rules.

Every number the calculator uses lives here so a different weighting policy can
be injected without touching the calculator itself.
"""

import math
import operator
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping, Optional

COMPONENTS = ("performance", "engagement", "financial", "compliance")


# ── Benchmarks ─────────────────────────────────────────
@dataclass(frozen=True)
class Benchmark:
    """Piecewise-linear curve mapping a raw metric onto 0-100.

    ``bound`` is the critical edge: the minimum for higher-is-better metrics,
    the maximum for lower-is-better ones.
    """

    excellent: float
    good: float
    warning: float
    bound: float
    higher_is_better: bool = True

    def __post_init__(self):
        edges = (self.excellent, self.good, self.warning, self.bound)
        if not all(math.isfinite(edge) for edge in edges):
            raise ValueError(f"Benchmark edges must be finite, got {edges}")
        if self.higher_is_better:
            ordered = self.excellent > self.good > self.warning > self.bound > 0
        else:
            ordered = 0 <= self.excellent < self.good < self.warning < self.bound
        if not ordered:
            direction = "descending" if self.higher_is_better else "ascending"
            raise ValueError(f"Benchmark edges must be strictly {direction} and positive, got {edges}")

    def normalize(self, value: float) -> float:
        if self.higher_is_better:
            return self._normalize_higher(value)
        return self._normalize_lower(value)

    def _normalize_higher(self, value: float) -> float:
        if value >= self.excellent:
            return 100.0
        if value >= self.good:
            return 75 + (value - self.good) / (self.excellent - self.good) * 25
        if value >= self.warning:
            return 50 + (value - self.warning) / (self.good - self.warning) * 25
        if value >= self.bound:
            return 25 + (value - self.bound) / (self.warning - self.bound) * 25
        return max(0.0, value / self.bound * 25)

    def _normalize_lower(self, value: float) -> float:
        if value <= self.excellent:
            return 100.0
        if value <= self.good:
            return 100 - (value - self.excellent) / (self.good - self.excellent) * 25
        if value <= self.warning:
            return 75 - (value - self.good) / (self.warning - self.good) * 25
        if value <= self.bound:
            return 50 - (value - self.warning) / (self.bound - self.warning) * 25
        return max(0.0, 25 - (value - self.bound) / self.bound * 25)


DEFAULT_BENCHMARKS = {
    "ctr": Benchmark(excellent=3.0, good=1.5, warning=0.8, bound=0.3),
    "cpc": Benchmark(excellent=0.5, good=1.5, warning=3.0, bound=5.0, higher_is_better=False),
    "roas": Benchmark(excellent=5.0, good=3.0, warning=2.0, bound=1.0),
    "task_completion": Benchmark(excellent=90, good=70, warning=50, bound=30),
    "payment_on_time": Benchmark(excellent=95, good=80, warning=60, bound=40),
    "approval": Benchmark(excellent=95, good=80, warning=60, bound=40),
    "deadline": Benchmark(excellent=95, good=80, warning=60, bound=40),
}


# ── Weights ────────────────────────────────────────────
DEFAULT_COMPONENT_WEIGHTS = {
    "performance": 0.35,
    "engagement": 0.25,
    "financial": 0.25,
    "compliance": 0.15,
}

# Zero-weight signals are still resolved and kept in the details.
DEFAULT_SUB_WEIGHTS = {
    "performance": {"ctr": 0.25, "cpc": 0.25, "roas": 0.30, "conversions": 0.20},
    "engagement": {
        "task_completion": 1.0,
        "response_rate": 0.0,
        "meeting_attendance": 0.0,
        "feedback_frequency": 0.0,
    },
    "financial": {"payment_timeliness": 1.0, "budget_utilization": 0.0, "growth_rate": 0.0},
    "compliance": {
        "content_approval_rate": 0.4,
        "publish_rate": 0.3,
        "deadline_compliance": 0.3,
        "brand_guidelines_adherence": 0.0,
        "communication_quality": 0.0,
    },
}

# None means "no raw default": the sub-signal scores neutral instead.
DEFAULT_SIGNAL_DEFAULTS = {
    "performance": {"ctr": None, "cpc": None, "conversions": None, "roas": None},
    "engagement": {
        "task_completion": 50.0,
        "overdue_rate": 0.0,
        "response_rate": 50.0,
        "meeting_attendance": 100.0,
        "feedback_frequency": 50.0,
    },
    "financial": {
        "payment_timeliness": 100.0,
        "overdue_rate": 0.0,
        "budget_utilization": 80.0,
        "contract_value": 0.0,
        "growth_rate": 0.0,
    },
    "compliance": {
        "content_approval_rate": 80.0,
        "publish_rate": 50.0,
        "deadline_compliance": 80.0,
        "brand_guidelines_adherence": 80.0,
        "communication_quality": 75.0,
    },
}

LEVEL_THRESHOLDS = [
    (80, "excellent"),
    (60, "good"),
    (40, "warning"),
    (0, "critical"),
]


# ── Recommendations ────────────────────────────────────
@dataclass(frozen=True)
class RecommendationRule:
    """Fires when ``component`` is below the policy gate and the signal test holds.

    A rule tied to a ``benchmark`` compares against that curve's warning edge,
    so it follows whatever benchmarks the policy carries. A signal with no
    reported value never fires.
    """

    component: str
    signal: str
    compare: Callable[[float, float], bool]
    threshold: float
    message: str
    benchmark: Optional[str] = None

    def threshold_for(self, benchmarks: Mapping) -> float:
        if self.benchmark is not None and self.benchmark in benchmarks:
            return benchmarks[self.benchmark].warning
        return self.threshold

    def matches(
        self, component_score: float, details, gate: float, benchmarks: Optional[Mapping] = None
    ) -> bool:
        if component_score >= gate:
            return False
        value = getattr(getattr(details, self.component), self.signal, None)
        if value is None:
            return False
        threshold = self.threshold_for(benchmarks if benchmarks is not None else DEFAULT_BENCHMARKS)
        return self.compare(value, threshold)


DEFAULT_RECOMMENDATION_RULES = (
    RecommendationRule(
        "performance", "ctr", operator.lt, DEFAULT_BENCHMARKS["ctr"].warning,
        "CTR below expectations - review creatives and targeting",
        benchmark="ctr",
    ),
    RecommendationRule(
        "performance", "cpc", operator.gt, DEFAULT_BENCHMARKS["cpc"].warning,
        "High CPC - optimize bids and ad quality",
        benchmark="cpc",
    ),
    RecommendationRule(
        "performance", "roas", operator.lt, DEFAULT_BENCHMARKS["roas"].warning,
        "Low ROAS - review the conversion strategy and sales funnel",
        benchmark="roas",
    ),
    RecommendationRule(
        "engagement", "task_completion", operator.lt, 50,
        "Low task completion rate - prioritize pending tasks",
    ),
    RecommendationRule(
        "financial", "payment_timeliness", operator.lt, 70,
        "Payments are frequently late - review billing communication",
    ),
    RecommendationRule(
        "compliance", "content_approval_rate", operator.lt, 70,
        "Low content approval rate - align expectations with the client",
    ),
    RecommendationRule(
        "compliance", "deadline_compliance", operator.lt, 70,
        "Deadlines are being missed - review content planning",
    ),
)

HEALTHY_RECOMMENDATION = "Client in good standing - keep up regular follow-up"

INSUFFICIENT_DATA_RECOMMENDATION = "Insufficient data for a complete analysis"
MISSING_SOURCE_RECOMMENDATIONS = {
    "reports": "Import ad reports to improve the analysis",
    "tasks": "Create tasks to track engagement",
    "payments": "Record payments for financial analysis",
}

DEFAULT_INSUFFICIENT_PENALTIES = {"reports": 10.0, "tasks": 5.0, "payments": 5.0}


def _copy(table: dict) -> Callable[[], dict]:
    return lambda: {k: dict(v) if isinstance(v, dict) else v for k, v in table.items()}


@dataclass(frozen=True)
class HealthScorePolicy:
    """Complete, injectable scoring policy. Defaults reproduce the production model."""

    component_weights: dict = field(default_factory=_copy(DEFAULT_COMPONENT_WEIGHTS))
    sub_weights: dict = field(default_factory=_copy(DEFAULT_SUB_WEIGHTS))
    signal_defaults: dict = field(default_factory=_copy(DEFAULT_SIGNAL_DEFAULTS))
    benchmarks: dict = field(default_factory=lambda: dict(DEFAULT_BENCHMARKS))
    level_thresholds: list = field(default_factory=lambda: list(LEVEL_THRESHOLDS))
    trend_threshold: float = 2.0
    neutral_score: float = 50.0

    # Sub-signal curves without a benchmark
    conversion_base: float = 50.0
    conversion_step: float = 2.0
    conversion_zero_score: float = 30.0
    publish_bonus: float = 20.0
    publish_zero_score: float = 50.0

    # Overdue penalties, in score points
    engagement_overdue_divisor: float = 2.0
    engagement_overdue_cap: float = 20.0
    financial_overdue_cap: float = 30.0

    recommendation_gate: float = 50.0
    recommendation_rules: tuple = DEFAULT_RECOMMENDATION_RULES
    healthy_recommendation: str = HEALTHY_RECOMMENDATION

    # Placeholder score when a client has no reports, tasks or payments
    insufficient_baseline: float = 60.0
    insufficient_penalties: dict = field(default_factory=lambda: dict(DEFAULT_INSUFFICIENT_PENALTIES))

    def __post_init__(self):
        missing = set(COMPONENTS) - set(self.component_weights)
        if missing:
            raise ValueError(f"Missing component weights: {sorted(missing)}")
        total = sum(self.component_weights[name] for name in COMPONENTS)
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Component weights must sum to 1.0, got {total}")
        if any(self.component_weights[name] < 0 for name in COMPONENTS):
            raise ValueError("Component weights must be non-negative")

    def level_for(self, score: float) -> str:
        for threshold, level in self.level_thresholds:
            if score >= threshold:
                return level
        return self.level_thresholds[-1][1]

    def default_for(self, component: str, signal: str) -> Optional[float]:
        return self.signal_defaults.get(component, {}).get(signal)


def _read_only(table: dict) -> Mapping:
    return MappingProxyType(
        {k: MappingProxyType(dict(v)) if isinstance(v, dict) else v for k, v in table.items()}
    )


# Shared process-wide, so its tables are read-only. Build a fresh
# HealthScorePolicy() to get mutable copies.
DEFAULT_POLICY = HealthScorePolicy(
    component_weights=_read_only(DEFAULT_COMPONENT_WEIGHTS),
    sub_weights=_read_only(DEFAULT_SUB_WEIGHTS),
    signal_defaults=_read_only(DEFAULT_SIGNAL_DEFAULTS),
    benchmarks=_read_only(DEFAULT_BENCHMARKS),
    level_thresholds=tuple(LEVEL_THRESHOLDS),
    insufficient_penalties=_read_only(DEFAULT_INSUFFICIENT_PENALTIES),
)
