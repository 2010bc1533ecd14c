"""
Matching service: eligibility reading and the ranking policy.

For a vehicle:
1. Load every ACTIVE sales agent
2. Read each agent's live workload; skip agents at or over capacity
3. Read each remaining agent's current-month performance
4. Score candidates (services.scoring_service)
5. Sort descending by composite score, stable on read order for ties

Scoring is read-only. Each call takes a fresh snapshot; nothing is cached, so
any number of rankings may run concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from domain.agent import Agent, AgentRole
from domain.errors import InvalidInputError, NotFoundError
from domain.scoring import (
    AssignmentDecision,
    DecisionOutcome,
    MatchingPolicy,
    PerformanceSnapshot,
    ScoreResult,
    WorkloadSnapshot,
)
from domain.time import start_of_month, utc_now
from domain.vehicle import Vehicle
from repositories.store import LeadStore
from services.scoring_service import score_agent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Candidate:
    """An eligible agent with the snapshots taken for this run."""

    agent: Agent
    workload: WorkloadSnapshot
    performance: PerformanceSnapshot


class MatchingService:
    """
    Ranks sales agents for a vehicle and decides on auto-assignment.

    Example:
        matching = MatchingService(SupabaseLeadStore())
        decision = matching.decide_auto_assign(vehicle_id)
        if decision.should_assign:
            print(f"Assign to {decision.agent_id} (score {decision.top.score})")
    """

    def __init__(
        self,
        store: LeadStore,
        policy: Optional[MatchingPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.policy = policy or MatchingPolicy()
        self.clock = clock

    def get_vehicle(self, vehicle_id: UUID) -> Vehicle:
        vehicle = self.store.get_vehicle(vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return vehicle

    def load_candidates(self, vehicle: Vehicle) -> List[Candidate]:
        """
        Read the current state needed for scoring.

        Agents whose active-lead count has reached their capacity are excluded
        here and are never scored.
        """

        month_start = start_of_month(self.clock())
        candidates: List[Candidate] = []

        for agent in self.store.list_eligible_agents(AgentRole.SALES):
            workload = WorkloadSnapshot(
                agent_id=agent.agent_id,
                active_leads=self.store.count_active_leads_for_agent(agent.agent_id),
                capacity=agent.capacity,
            )
            if not workload.has_capacity:
                logger.debug(
                    "Skipping agent at capacity",
                    extra={
                        "agent_id": str(agent.agent_id),
                        "active_leads": workload.active_leads,
                        "capacity": workload.capacity,
                    },
                )
                continue

            performance = PerformanceSnapshot(
                agent_id=agent.agent_id,
                received=self.store.count_leads_received_since(agent.agent_id, month_start),
                converted=self.store.count_leads_converted_since(agent.agent_id, month_start),
            )
            candidates.append(Candidate(agent=agent, workload=workload, performance=performance))

        return candidates

    def rank_vehicle(self, vehicle: Vehicle) -> List[ScoreResult]:
        results = [
            score_agent(c.agent, vehicle, c.workload, c.performance, self.policy.weights)
            for c in self.load_candidates(vehicle)
        ]
        # sorted() is stable: ties keep eligibility read order.
        ranked = sorted(results, key=lambda r: r.score, reverse=True)
        logger.debug(
            "Ranked agents for vehicle",
            extra={
                "vehicle_id": str(vehicle.vehicle_id),
                "candidates": len(ranked),
                "top_score": ranked[0].score if ranked else None,
            },
        )
        return ranked

    def rank(self, vehicle_id: UUID) -> List[ScoreResult]:
        """
        Ordered score results for every eligible agent.

        Returns an empty list when no agent is eligible (not an error).

        Raises:
            NotFoundError: If the vehicle does not exist.
        """

        return self.rank_vehicle(self.get_vehicle(vehicle_id))

    def top_n(self, vehicle_id: UUID, n: int) -> List[ScoreResult]:
        if n < 0:
            raise InvalidInputError("n must not be negative")
        return self.rank(vehicle_id)[:n]

    def decide(self, ranked: List[ScoreResult]) -> AssignmentDecision:
        """Apply the auto-assign threshold to an already ranked list."""

        if not ranked:
            return AssignmentDecision(outcome=DecisionOutcome.NO_CANDIDATE)
        top = ranked[0]
        if top.score >= self.policy.auto_assign_threshold:
            return AssignmentDecision(outcome=DecisionOutcome.AUTO_ASSIGN, top=top)
        return AssignmentDecision(outcome=DecisionOutcome.MANUAL_REVIEW, top=top)

    def decide_auto_assign(self, vehicle_id: UUID) -> AssignmentDecision:
        decision = self.decide(self.rank(vehicle_id))
        logger.info(
            f"Auto-assign decision: {decision.outcome.value}",
            extra={
                "vehicle_id": str(vehicle_id),
                "outcome": decision.outcome.value,
                "agent_id": str(decision.top.agent_id) if decision.top else None,
                "top_score": decision.top.score if decision.top else None,
                "threshold": self.policy.auto_assign_threshold,
            },
        )
        return decision


__all__ = ["Candidate", "MatchingService"]
