"""
Domain: value objects for agent matching.

Contract excerpts implemented here:
- Five factors (category, price, tier, workload, performance) each score 0-100.
- The composite score is the weighted sum rounded half-up once, on the total.
- Weights and the auto-assign threshold are named constants injected into the
  ranking policy; they are never persisted.
- Score results are ephemeral: produced per call and never cached, since
  workload and performance change continuously.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from fractions import Fraction
from typing import Mapping, Optional, Tuple, Union
from uuid import UUID

from .agent import Agent

CATEGORY = "category"
PRICE = "price"
TIER = "tier"
WORKLOAD = "workload"
PERFORMANCE = "performance"

FACTOR_NAMES: Tuple[str, ...] = (CATEGORY, PRICE, TIER, WORKLOAD, PERFORMANCE)

DEFAULT_AUTO_ASSIGN_THRESHOLD = 80
DEFAULT_RECOMMENDATION_LIMIT = 3
DEFAULT_DUPLICATE_WINDOW_HOURS = 24


def round_half_up(value: Union[Decimal, Fraction, int]) -> int:
    """Round to the nearest integer, halves away from zero (89.5 -> 90)."""

    if isinstance(value, Fraction):
        value = Decimal(value.numerator) / Decimal(value.denominator)
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_score(value: int) -> int:
    return max(0, min(100, value))


@dataclass(frozen=True, slots=True)
class FactorScore:
    """One factor's sub-score plus its display-only justification."""

    score: int
    reason: str

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 100:
            raise ValueError("factor score must be within [0, 100]")


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    category: Decimal = Decimal("0.30")
    price: Decimal = Decimal("0.25")
    tier: Decimal = Decimal("0.20")
    workload: Decimal = Decimal("0.15")
    performance: Decimal = Decimal("0.10")

    def __post_init__(self) -> None:
        values = self.as_mapping().values()
        if any(w < 0 for w in values):
            raise ValueError("scoring weights must not be negative")
        if sum(values, Decimal("0")) != Decimal("1"):
            raise ValueError("scoring weights must sum to 1")

    def as_mapping(self) -> Mapping[str, Decimal]:
        return {
            CATEGORY: self.category,
            PRICE: self.price,
            TIER: self.tier,
            WORKLOAD: self.workload,
            PERFORMANCE: self.performance,
        }


@dataclass(frozen=True, slots=True)
class MatchingPolicy:
    """Fixed policy constants for one deployment."""

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    auto_assign_threshold: int = DEFAULT_AUTO_ASSIGN_THRESHOLD
    recommendation_limit: int = DEFAULT_RECOMMENDATION_LIMIT
    duplicate_window_hours: int = DEFAULT_DUPLICATE_WINDOW_HOURS

    def __post_init__(self) -> None:
        if not 0 <= self.auto_assign_threshold <= 100:
            raise ValueError("auto_assign_threshold must be within [0, 100]")
        if self.recommendation_limit < 1:
            raise ValueError("recommendation_limit must be at least 1")
        if self.duplicate_window_hours < 1:
            raise ValueError("duplicate_window_hours must be at least 1")


@dataclass(frozen=True, slots=True)
class WorkloadSnapshot:
    """Live count of an agent's non-terminal leads at scoring time."""

    agent_id: UUID
    active_leads: int
    capacity: int

    @property
    def occupancy(self) -> Fraction:
        return Fraction(self.active_leads, self.capacity)

    @property
    def has_capacity(self) -> bool:
        return self.active_leads < self.capacity


@dataclass(frozen=True, slots=True)
class PerformanceSnapshot:
    """Current-month lead intake and conversions for an agent."""

    agent_id: UUID
    received: int
    converted: int

    @property
    def conversion_rate(self) -> Fraction:
        if self.received <= 0:
            return Fraction(0)
        return Fraction(self.converted, self.received)


@dataclass(frozen=True, slots=True)
class ScoreResult:
    agent: Agent
    score: int
    breakdown: Mapping[str, int]
    reasons: Tuple[str, ...]

    @property
    def agent_id(self) -> UUID:
        return self.agent.agent_id


class DecisionOutcome(str, Enum):
    AUTO_ASSIGN = "AUTO_ASSIGN"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    NO_CANDIDATE = "NO_CANDIDATE"


@dataclass(frozen=True, slots=True)
class AssignmentDecision:
    outcome: DecisionOutcome
    top: Optional[ScoreResult] = None

    @property
    def agent_id(self) -> Optional[UUID]:
        """The agent to assign; only set when the outcome is AUTO_ASSIGN."""
        if self.outcome == DecisionOutcome.AUTO_ASSIGN and self.top is not None:
            return self.top.agent_id
        return None

    @property
    def should_assign(self) -> bool:
        return self.outcome == DecisionOutcome.AUTO_ASSIGN
