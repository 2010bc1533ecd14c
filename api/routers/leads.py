"""
Leads API Endpoints.

Public intake plus the back-office lead lifecycle (list, detail, update,
archive, manual assignment, notes and agent recommendations).
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_actor, get_lead_service
from api.models import (
    ActivityCreateRequest,
    ActivityResponse,
    AgentScoreResponse,
    AssignAgentRequest,
    LeadCreateRequest,
    LeadDetailResponse,
    LeadIntakeResponse,
    LeadListResponse,
    LeadResponse,
    LeadUpdateRequest,
)
from domain.agent import Actor
from domain.lead import LeadStatus
from services.lead_service import LeadService, LeadSubmission

router = APIRouter()


@router.post(
    "/leads",
    response_model=LeadIntakeResponse,
    status_code=201,
    summary="Submit Inquiry",
    description="Public storefront intake. Creates the lead and attempts automatic assignment."
)
def submit_lead(
    body: LeadCreateRequest,
    request: Request,
    service: LeadService = Depends(get_lead_service),
):
    """
    Submit a vehicle inquiry.

    **Process:**
    1. Validates contact fields and privacy consent
    2. Rejects a repeat inquiry (same email, phone and vehicle) within 24 hours
       with 409 and the existing `lead_id`
    3. Stores the lead as NEW
    4. Assigns it to the best agent when the top score reaches the threshold
    """
    result = service.submit_lead(
        LeadSubmission(
            name=body.name,
            email=body.email,
            phone=body.phone,
            vehicle_id=body.vehicle_id,
            consent=body.consent,
            deal_type=body.deal_type,
            down_payment=body.down_payment,
            term_months=body.term_months,
            message=body.message,
            contact_preferences=tuple(body.contact_preferences),
            source_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    )
    return LeadIntakeResponse(
        lead=LeadResponse.from_lead(result.lead),
        decision=result.decision.outcome.value,
        auto_assigned=result.auto_assigned,
        message="Inquiry received. Our team will contact you shortly.",
    )


@router.get(
    "/leads",
    response_model=LeadListResponse,
    summary="List Leads",
    description="Leads visible to the caller, newest first. Sales agents only see their own."
)
def list_leads(
    status: Optional[LeadStatus] = Query(None, description="Filter by status"),
    agent_id: Optional[UUID] = Query(None, description="Filter by assigned agent"),
    vehicle_id: Optional[UUID] = Query(None, description="Filter by vehicle"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results"),
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
):
    leads = service.list_leads(
        actor, status=status, agent_id=agent_id, vehicle_id=vehicle_id, limit=limit
    )

    filters_applied = {}
    if status:
        filters_applied["status"] = status.value
    if agent_id:
        filters_applied["agent_id"] = str(agent_id)
    if vehicle_id:
        filters_applied["vehicle_id"] = str(vehicle_id)

    return LeadListResponse(
        items=[LeadResponse.from_lead(lead) for lead in leads],
        total_count=len(leads),
        filters_applied=filters_applied,
    )


@router.get(
    "/leads/{lead_id}",
    response_model=LeadDetailResponse,
    summary="Get Lead",
)
def get_lead(
    lead_id: UUID,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
):
    details = service.get_lead(lead_id, actor)
    return LeadDetailResponse(
        lead=LeadResponse.from_lead(details.lead),
        activities=[ActivityResponse.from_activity(a) for a in details.activities],
    )


@router.patch(
    "/leads/{lead_id}",
    response_model=LeadResponse,
    summary="Update Lead",
    description="Change status and/or agent. Each change is recorded in the audit trail."
)
def update_lead(
    lead_id: UUID,
    body: LeadUpdateRequest,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
):
    lead = service.update_lead(lead_id, actor, status=body.status, agent_id=body.agent_id)
    return LeadResponse.from_lead(lead)


@router.delete(
    "/leads/{lead_id}",
    response_model=LeadResponse,
    summary="Archive Lead",
    description="Soft delete: the lead moves to ARCHIVED and becomes read-only."
)
def archive_lead(
    lead_id: UUID,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
):
    return LeadResponse.from_lead(service.archive_lead(lead_id, actor))


@router.get(
    "/leads/{lead_id}/recommendations",
    response_model=List[AgentScoreResponse],
    summary="Recommend Agents",
    description="Best-scoring agents for the lead's vehicle. Managers and admins only."
)
def recommend_agents(
    lead_id: UUID,
    limit: Optional[int] = Query(None, ge=0, description="Number of agents (default 3)"),
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
):
    results = service.recommend_agents(lead_id, actor, limit=limit)
    return [AgentScoreResponse.from_result(r) for r in results]


@router.post(
    "/leads/{lead_id}/assign",
    response_model=LeadResponse,
    summary="Assign Lead",
    description="Manual assignment. Capacity is not enforced for manual overrides."
)
def assign_lead(
    lead_id: UUID,
    body: AssignAgentRequest,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
):
    return LeadResponse.from_lead(service.assign_agent(lead_id, body.agent_id, actor))


@router.post(
    "/leads/{lead_id}/activities",
    response_model=ActivityResponse,
    status_code=201,
    summary="Add Activity",
)
def add_activity(
    lead_id: UUID,
    body: ActivityCreateRequest,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
):
    activity = service.add_activity(lead_id, actor, body.kind, body.description)
    return ActivityResponse.from_activity(activity)
