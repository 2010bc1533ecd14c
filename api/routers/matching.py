"""
Matching API Endpoints.

Read-only views of the ranking policy for a vehicle.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_actor, get_matching_service
from api.models import AgentScoreResponse, AssignmentDecisionResponse, RankingResponse
from domain.agent import Actor
from domain.errors import AccessDeniedError
from services.matching_service import MatchingService

router = APIRouter()


def _require_supervisor(actor: Actor) -> None:
    if not actor.is_supervisor:
        raise AccessDeniedError("only managers and admins may view agent rankings")


@router.get(
    "/vehicles/{vehicle_id}/rankings",
    response_model=RankingResponse,
    summary="Rank Agents",
    description="Eligible agents for a vehicle, best first, with per-factor breakdown."
)
def rank_agents(
    vehicle_id: UUID,
    limit: Optional[int] = Query(None, ge=0, description="Return only the top N agents"),
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching_service),
):
    """
    Rank every eligible agent for a vehicle.

    Agents at capacity are excluded. An empty list means nobody can take
    the lead right now.
    """
    _require_supervisor(actor)
    results = matching.rank(vehicle_id) if limit is None else matching.top_n(vehicle_id, limit)
    return RankingResponse(
        vehicle_id=vehicle_id,
        items=[AgentScoreResponse.from_result(r) for r in results],
        total_count=len(results),
    )


@router.get(
    "/vehicles/{vehicle_id}/assignment-decision",
    response_model=AssignmentDecisionResponse,
    summary="Auto-Assignment Decision",
)
def assignment_decision(
    vehicle_id: UUID,
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching_service),
):
    _require_supervisor(actor)
    decision = matching.decide_auto_assign(vehicle_id)
    return AssignmentDecisionResponse.from_decision(
        vehicle_id, decision, matching.policy.auto_assign_threshold
    )
