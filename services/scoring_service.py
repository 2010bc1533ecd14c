"""
Scoring service: factor scorers and score aggregation.

Pure functions only: no I/O. Every scorer maps (agent, vehicle, workload,
performance) to a 0-100 sub-score plus one display-only justification string.

Factors and default weights:
- category     30%  specialist / permitted / not permitted
- price        25%  vehicle price inside the agent's configured bounds
- tier         20%  experience tier suited to the price band
- workload     15%  free share of the agent's capacity
- performance  10%  current-month conversion rate
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict, List, Mapping

from domain.agent import Agent, ExperienceTier
from domain.scoring import (
    CATEGORY,
    PERFORMANCE,
    PRICE,
    TIER,
    WORKLOAD,
    FactorScore,
    PerformanceSnapshot,
    ScoreResult,
    ScoringWeights,
    WorkloadSnapshot,
    clamp_score,
    round_half_up,
)
from domain.vehicle import Vehicle

# Price bands for the tier factor. Boundary values belong to the lower band.
ENTRY_PRICE_CEILING = Decimal("50000")
PREMIUM_PRICE_FLOOR = Decimal("100000")

TIER_MATCH = 100
TIER_MISMATCH_PREMIUM = 20
TIER_MISMATCH = 50

# Thresholds used only to phrase justifications.
_LOW_LOAD = Decimal("0.3")
_MEDIUM_LOAD = Decimal("0.7")
_STRONG_CONVERSION = Decimal("0.3")
_GOOD_CONVERSION = Decimal("0.15")


def _money(value: Decimal) -> str:
    return f"{value:,.2f}"


def score_category(
    agent: Agent,
    vehicle: Vehicle,
    workload: WorkloadSnapshot,
    performance: PerformanceSnapshot,
) -> FactorScore:
    category = vehicle.category.value
    if vehicle.category in agent.specialties:
        return FactorScore(100, f"Specialist in {category}")
    if agent.effective_rules.permits_category(vehicle.category):
        return FactorScore(50, f"Not a {category} specialist, but can serve it")
    return FactorScore(0, f"Category {category} not permitted")


def score_price(
    agent: Agent,
    vehicle: Vehicle,
    workload: WorkloadSnapshot,
    performance: PerformanceSnapshot,
) -> FactorScore:
    rules = agent.effective_rules
    price = vehicle.sale_price
    if rules.min_price is not None and price < rules.min_price:
        return FactorScore(0, f"Price below minimum ({_money(rules.min_price)})")
    if rules.max_price is not None and price > rules.max_price:
        return FactorScore(0, f"Price above maximum ({_money(rules.max_price)})")
    if rules.min_price is None and rules.max_price is None:
        return FactorScore(100, "No price restrictions")
    return FactorScore(100, "Price within configured range")


def ideal_tier_for_price(price: Decimal) -> ExperienceTier:
    if price > PREMIUM_PRICE_FLOOR:
        return ExperienceTier.SENIOR
    if price <= ENTRY_PRICE_CEILING:
        return ExperienceTier.JUNIOR
    return ExperienceTier.MID


def score_tier(
    agent: Agent,
    vehicle: Vehicle,
    workload: WorkloadSnapshot,
    performance: PerformanceSnapshot,
) -> FactorScore:
    ideal = ideal_tier_for_price(vehicle.sale_price)
    if agent.tier == ideal:
        return FactorScore(TIER_MATCH, f"{agent.tier.value} is the ideal tier for this price band")
    if ideal == ExperienceTier.SENIOR:
        return FactorScore(TIER_MISMATCH_PREMIUM, f"{agent.tier.value} for a premium vehicle")
    if ideal == ExperienceTier.JUNIOR:
        return FactorScore(TIER_MISMATCH, f"{agent.tier.value} for an entry-level vehicle")
    return FactorScore(TIER_MISMATCH, f"{agent.tier.value} for a mid-range vehicle")


def score_workload(
    agent: Agent,
    vehicle: Vehicle,
    workload: WorkloadSnapshot,
    performance: PerformanceSnapshot,
) -> FactorScore:
    occupancy = workload.occupancy
    # Over-capacity agents are excluded before scoring; clamp regardless.
    score = clamp_score(round_half_up((1 - occupancy) * 100))
    load = f"{workload.active_leads}/{workload.capacity}"
    occupancy_dec = Decimal(occupancy.numerator) / Decimal(occupancy.denominator)
    if occupancy_dec < _LOW_LOAD:
        return FactorScore(score, f"Low workload ({load})")
    if occupancy_dec < _MEDIUM_LOAD:
        return FactorScore(score, f"Medium workload ({load})")
    return FactorScore(score, f"High workload ({load})")


def score_performance(
    agent: Agent,
    vehicle: Vehicle,
    workload: WorkloadSnapshot,
    performance: PerformanceSnapshot,
) -> FactorScore:
    rate = performance.conversion_rate
    score = clamp_score(round_half_up(rate * 100))
    rate_dec = Decimal(rate.numerator) / Decimal(rate.denominator)
    if performance.received == 0:
        return FactorScore(score, "No leads received this month")
    if rate_dec >= _STRONG_CONVERSION:
        return FactorScore(score, f"Excellent conversion rate ({score}%)")
    if rate_dec >= _GOOD_CONVERSION:
        return FactorScore(score, f"Good conversion rate ({score}%)")
    return FactorScore(score, f"Conversion rate still developing ({score}%)")


FactorScorer = Callable[[Agent, Vehicle, WorkloadSnapshot, PerformanceSnapshot], FactorScore]

# Order matters: justifications are listed in this order.
FACTOR_SCORERS: Mapping[str, FactorScorer] = {
    CATEGORY: score_category,
    PRICE: score_price,
    TIER: score_tier,
    WORKLOAD: score_workload,
    PERFORMANCE: score_performance,
}


def aggregate(breakdown: Mapping[str, int], weights: ScoringWeights) -> int:
    """
    Weighted composite of the five sub-scores.

    Rounding happens once, half-up, on the weighted total.
    """

    total = sum(
        (Decimal(breakdown[name]) * weight for name, weight in weights.as_mapping().items()),
        Decimal("0"),
    )
    return clamp_score(round_half_up(total))


def score_agent(
    agent: Agent,
    vehicle: Vehicle,
    workload: WorkloadSnapshot,
    performance: PerformanceSnapshot,
    weights: ScoringWeights,
) -> ScoreResult:
    """
    Score one candidate agent for a vehicle.

    Example:
        result = score_agent(agent, vehicle, workload, performance, ScoringWeights())
        print(result.score, result.breakdown, result.reasons)
    """

    breakdown: Dict[str, int] = {}
    reasons: List[str] = []
    for name, scorer in FACTOR_SCORERS.items():
        factor = scorer(agent, vehicle, workload, performance)
        breakdown[name] = factor.score
        reasons.append(factor.reason)

    return ScoreResult(
        agent=agent,
        score=aggregate(breakdown, weights),
        breakdown=breakdown,
        reasons=tuple(reasons),
    )


__all__ = [
    "FACTOR_SCORERS",
    "aggregate",
    "ideal_tier_for_price",
    "score_agent",
    "score_category",
    "score_performance",
    "score_price",
    "score_tier",
    "score_workload",
]
