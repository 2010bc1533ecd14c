"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.activity import Activity, ActivityKind
from domain.lead import (
    AssignmentMethod,
    ContactChannel,
    DealType,
    Lead,
    LeadStatus,
)
from domain.scoring import AssignmentDecision, ScoreResult


# ============================================================================
# Lead Models
# ============================================================================

class LeadCreateRequest(BaseModel):
    """Public inquiry submitted from the storefront form."""
    name: str
    email: str
    phone: str
    vehicle_id: Optional[UUID] = None
    consent: bool = Field(False, description="Privacy policy accepted")
    deal_type: Optional[DealType] = None
    down_payment: Optional[Decimal] = None
    term_months: Optional[int] = None
    message: Optional[str] = None
    contact_preferences: List[ContactChannel] = Field(
        default_factory=lambda: [ContactChannel.WHATSAPP]
    )

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Maria Souza",
                "email": "maria@example.com",
                "phone": "+55 11 98765-4321",
                "vehicle_id": "123e4567-e89b-12d3-a456-426614174000",
                "consent": True,
                "deal_type": "FINANCED",
                "down_payment": "15000.00",
                "term_months": 48,
                "contact_preferences": ["WHATSAPP", "EMAIL"]
            }
        }


class LeadResponse(BaseModel):
    """Single lead in API response."""
    lead_id: UUID
    name: str
    email: str
    phone: str
    vehicle_id: UUID
    status: LeadStatus
    agent_id: Optional[UUID] = None
    assignment_method: Optional[AssignmentMethod] = None
    created_at: datetime
    status_changed_at: datetime
    deal_type: Optional[DealType] = None
    down_payment: Optional[Decimal] = None
    term_months: Optional[int] = None
    message: Optional[str] = None
    contact_preferences: List[ContactChannel] = Field(default_factory=list)

    @classmethod
    def from_lead(cls, lead: Lead) -> "LeadResponse":
        return cls(
            lead_id=lead.lead_id,
            name=lead.name,
            email=lead.email,
            phone=lead.phone,
            vehicle_id=lead.vehicle_id,
            status=lead.status,
            agent_id=lead.agent_id,
            assignment_method=lead.assignment_method,
            created_at=lead.created_at,
            status_changed_at=lead.status_changed_at,
            deal_type=lead.deal_type,
            down_payment=lead.down_payment,
            term_months=lead.term_months,
            message=lead.message,
            contact_preferences=list(lead.contact_preferences),
        )


class LeadIntakeResponse(BaseModel):
    """Response after a successful submission."""
    lead: LeadResponse
    decision: str  # "AUTO_ASSIGN", "MANUAL_REVIEW" or "NO_CANDIDATE"
    auto_assigned: bool
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "lead": {},
                "decision": "AUTO_ASSIGN",
                "auto_assigned": True,
                "message": "Inquiry received. Our team will contact you shortly."
            }
        }


class LeadListResponse(BaseModel):
    """Response for lead listing."""
    items: List[LeadResponse]
    total_count: int
    filters_applied: dict


class LeadUpdateRequest(BaseModel):
    """Partial update: new status and/or new agent."""
    status: Optional[LeadStatus] = None
    agent_id: Optional[UUID] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "CONVERTED"
            }
        }


class AssignAgentRequest(BaseModel):
    """Manual assignment of a lead."""
    agent_id: UUID


# ============================================================================
# Activity Models
# ============================================================================

class ActivityCreateRequest(BaseModel):
    """User note on a lead."""
    kind: ActivityKind = ActivityKind.NOTE
    description: str = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "CALL",
                "description": "Called the customer, test drive booked for Saturday"
            }
        }


class ActivityResponse(BaseModel):
    """Single audit row."""
    activity_id: UUID
    lead_id: UUID
    kind: ActivityKind
    description: str
    actor_id: Optional[UUID] = None
    created_at: datetime

    @classmethod
    def from_activity(cls, activity: Activity) -> "ActivityResponse":
        return cls(
            activity_id=activity.activity_id,
            lead_id=activity.lead_id,
            kind=activity.kind,
            description=activity.description,
            actor_id=activity.actor_id,
            created_at=activity.created_at,
        )


class LeadDetailResponse(BaseModel):
    """Lead with its audit trail (newest first)."""
    lead: LeadResponse
    activities: List[ActivityResponse]


# ============================================================================
# Matching Models
# ============================================================================

class AgentScoreResponse(BaseModel):
    """Composite score for one candidate agent."""
    agent_id: UUID
    agent_name: str
    tier: str
    score: int
    breakdown: Dict[str, int]
    reasons: List[str]

    @classmethod
    def from_result(cls, result: ScoreResult) -> "AgentScoreResponse":
        return cls(
            agent_id=result.agent_id,
            agent_name=result.agent.name,
            tier=result.agent.tier.value,
            score=result.score,
            breakdown=dict(result.breakdown),
            reasons=list(result.reasons),
        )

    class Config:
        json_schema_extra = {
            "example": {
                "agent_id": "123e4567-e89b-12d3-a456-426614174010",
                "agent_name": "Ana Lima",
                "tier": "JUNIOR",
                "score": 87,
                "breakdown": {
                    "category": 100,
                    "price": 100,
                    "tier": 100,
                    "workload": 60,
                    "performance": 25
                },
                "reasons": [
                    "Specialist in SEDAN",
                    "No price restrictions",
                    "JUNIOR is the ideal tier for this price band",
                    "Medium workload (2/5)",
                    "Good conversion rate (25%)"
                ]
            }
        }


class RankingResponse(BaseModel):
    """Ranked candidates for a vehicle."""
    vehicle_id: UUID
    items: List[AgentScoreResponse]
    total_count: int


class AssignmentDecisionResponse(BaseModel):
    """Auto-assignment decision for a vehicle."""
    vehicle_id: UUID
    outcome: str
    agent_id: Optional[UUID] = None
    top: Optional[AgentScoreResponse] = None
    threshold: int

    @classmethod
    def from_decision(
        cls, vehicle_id: UUID, decision: AssignmentDecision, threshold: int
    ) -> "AssignmentDecisionResponse":
        return cls(
            vehicle_id=vehicle_id,
            outcome=decision.outcome.value,
            agent_id=decision.agent_id,
            top=AgentScoreResponse.from_result(decision.top) if decision.top else None,
            threshold=threshold,
        )
