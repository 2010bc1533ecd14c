"""
Lead service: intake, assignment and lifecycle.

Handles:
- Public intake with validation and 24h duplicate suppression
- Automatic assignment through the matching engine, committed atomically with
  a capacity re-check (a lost race downgrades to manual review)
- Manual assignment, status changes and archiving, each with one audit row
- Access rules for the acting user (SALES users only touch their own leads)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple
from uuid import UUID, uuid4

from domain.activity import Activity, ActivityDraft, ActivityKind
from domain.agent import Actor, AgentRole
from domain.errors import (
    AccessDeniedError,
    AgentAtCapacityError,
    DuplicateLeadError,
    InvalidAssigneeError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from domain.lead import (
    AssignmentMethod,
    ContactChannel,
    DealType,
    Lead,
    LeadStatus,
)
from domain.scoring import (
    AssignmentDecision,
    DecisionOutcome,
    MatchingPolicy,
    ScoreResult,
)
from domain.time import utc_now
from repositories.store import LeadChange, LeadFilters, LeadStore
from services.matching_service import MatchingService

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
MIN_PHONE_DIGITS = 10


@dataclass(frozen=True, slots=True)
class LeadSubmission:
    """
    A storefront inquiry as received from the public form.

    consent: the submitter accepted the privacy policy (required)
    """
    name: str
    email: str
    phone: str
    vehicle_id: Optional[UUID]
    consent: bool
    deal_type: Optional[DealType] = None
    down_payment: Optional[Decimal] = None
    term_months: Optional[int] = None
    message: Optional[str] = None
    contact_preferences: Tuple[ContactChannel, ...] = (ContactChannel.WHATSAPP,)
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LeadIntakeResult:
    """
    Result of a lead submission.

    lead: the stored lead (IN_SERVICE when auto-assigned, NEW otherwise)
    decision: the routing decision (downgraded to MANUAL_REVIEW if the
        assignment lost a capacity race)
    auto_assigned: True if the system assignment was committed
    """
    lead: Lead
    decision: AssignmentDecision
    auto_assigned: bool


@dataclass(frozen=True, slots=True)
class LeadDetails:
    lead: Lead
    activities: List[Activity] = field(default_factory=list)


def validate_submission(submission: LeadSubmission) -> None:
    """
    Check a submission before anything is written.

    Raises:
        InvalidInputError: With the first failing rule as the reason.
    """
    name = (submission.name or "").strip()
    if len(name) < MIN_NAME_LENGTH:
        raise InvalidInputError(f"name is required (at least {MIN_NAME_LENGTH} characters)")

    if "@" not in (submission.email or ""):
        raise InvalidInputError("email is invalid")

    digits = sum(1 for ch in (submission.phone or "") if ch.isdigit())
    if digits < MIN_PHONE_DIGITS:
        raise InvalidInputError(f"phone is invalid (at least {MIN_PHONE_DIGITS} digits)")

    if submission.vehicle_id is None:
        raise InvalidInputError("vehicle of interest is required")

    if not submission.consent:
        raise InvalidInputError("the privacy policy must be accepted")

    if submission.down_payment is not None and submission.down_payment < 0:
        raise InvalidInputError("down_payment must not be negative")

    if submission.term_months is not None and submission.term_months <= 0:
        raise InvalidInputError("term_months must be positive")


class LeadService:
    """
    Lead lifecycle operations on top of a LeadStore.

    Example:
        service = LeadService(SupabaseLeadStore(), policy=load_matching_policy())
        result = service.submit_lead(submission)
        if result.auto_assigned:
            print(f"Lead {result.lead.lead_id} -> agent {result.lead.agent_id}")
    """

    def __init__(
        self,
        store: LeadStore,
        matching: Optional[MatchingService] = None,
        policy: Optional[MatchingPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.policy = policy or (matching.policy if matching else MatchingPolicy())
        self.clock = clock or (matching.clock if matching else utc_now)
        self.matching = matching or MatchingService(store, self.policy, self.clock)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def submit_lead(self, submission: LeadSubmission) -> LeadIntakeResult:
        """
        Create a lead from a public inquiry and try to auto-assign it.

        Process:
        1. Validate the submission
        2. Look up the vehicle
        3. Reject an identical (email, phone, vehicle) inquiry inside the
           duplicate window
        4. Insert the lead in NEW
        5. Decide on auto-assignment and, on AUTO_ASSIGN, commit the system
           assignment with a capacity re-check

        Raises:
            InvalidInputError: Validation failed.
            NotFoundError: Unknown vehicle.
            DuplicateLeadError: Same inquiry already received in the window;
                carries the existing lead id.
        """
        validate_submission(submission)
        vehicle = self.matching.get_vehicle(submission.vehicle_id)

        now = self.clock()
        name = submission.name.strip()
        email = submission.email.strip()
        phone = submission.phone.strip()

        window_hours = self.policy.duplicate_window_hours
        existing = self.store.find_recent_duplicate(
            email, phone, vehicle.vehicle_id, now - timedelta(hours=window_hours)
        )
        if existing is not None:
            logger.info(
                "Duplicate lead suppressed",
                extra={"lead_id": str(existing.lead_id), "vehicle_id": str(vehicle.vehicle_id)},
            )
            raise DuplicateLeadError(existing.lead_id, window_hours)

        lead = self.store.create_lead(
            Lead(
                lead_id=uuid4(),
                name=name,
                email=email,
                phone=phone,
                vehicle_id=vehicle.vehicle_id,
                status=LeadStatus.NEW,
                created_at=now,
                status_changed_at=now,
                deal_type=submission.deal_type,
                down_payment=submission.down_payment,
                term_months=submission.term_months,
                message=submission.message,
                contact_preferences=submission.contact_preferences or (ContactChannel.WHATSAPP,),
                source_ip=submission.source_ip,
                user_agent=submission.user_agent,
            )
        )
        logger.info(
            "Lead created",
            extra={"lead_id": str(lead.lead_id), "vehicle_id": str(vehicle.vehicle_id)},
        )

        decision = self.matching.decide_auto_assign(vehicle.vehicle_id)
        if not decision.should_assign:
            logger.info(
                f"Lead left for manual routing: {decision.outcome.value}",
                extra={
                    "lead_id": str(lead.lead_id),
                    "top_score": decision.top.score if decision.top else None,
                },
            )
            return LeadIntakeResult(lead=lead, decision=decision, auto_assigned=False)

        return self._apply_auto_assignment(lead, decision)

    def _apply_auto_assignment(self, lead: Lead, decision: AssignmentDecision) -> LeadIntakeResult:
        agent_id = decision.agent_id
        change = LeadChange(
            lead_id=lead.lead_id,
            changed_at=self.clock(),
            status=LeadStatus.IN_SERVICE,
            agent_id=agent_id,
            assignment_method=AssignmentMethod.SYSTEM,
            activities=(
                ActivityDraft(
                    kind=ActivityKind.SYSTEM,
                    description=(
                        f"Lead automatically assigned to {decision.top.agent.name} "
                        f"(score {decision.top.score})"
                    ),
                    actor_id=agent_id,
                ),
            ),
            capacity_agent_id=agent_id,
        )

        try:
            assigned = self.store.commit_lead_change(change)
        except AgentAtCapacityError as e:
            logger.warning(
                "Auto-assignment lost a capacity race; lead left for manual review",
                extra={
                    "lead_id": str(lead.lead_id),
                    "agent_id": str(agent_id),
                    "active_leads": e.active_leads,
                    "capacity": e.capacity,
                },
            )
            downgraded = AssignmentDecision(outcome=DecisionOutcome.MANUAL_REVIEW, top=decision.top)
            return LeadIntakeResult(lead=lead, decision=downgraded, auto_assigned=False)

        logger.info(
            "Lead auto-assigned",
            extra={
                "lead_id": str(lead.lead_id),
                "agent_id": str(agent_id),
                "score": decision.top.score,
            },
        )
        return LeadIntakeResult(lead=assigned, decision=decision, auto_assigned=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load_lead(self, lead_id: UUID) -> Lead:
        lead = self.store.get_lead(lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        return lead

    def _authorize(self, lead: Lead, actor: Actor) -> None:
        if actor.is_supervisor:
            return
        if not lead.is_owned_by(actor.actor_id):
            raise AccessDeniedError(f"lead {lead.lead_id} is not assigned to {actor.actor_id}")

    def _require_mutable(self, lead: Lead) -> None:
        if lead.is_terminal:
            raise InvalidStateError(f"lead {lead.lead_id} is {lead.status.value} and can no longer change")

    def get_lead(self, lead_id: UUID, actor: Actor) -> LeadDetails:
        lead = self._load_lead(lead_id)
        self._authorize(lead, actor)
        return LeadDetails(lead=lead, activities=self.store.list_activities(lead_id))

    def list_leads(
        self,
        actor: Actor,
        status: Optional[LeadStatus] = None,
        agent_id: Optional[UUID] = None,
        vehicle_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> List[Lead]:
        """Leads visible to the actor, newest first. SALES users only see their own."""
        if limit <= 0:
            raise InvalidInputError("limit must be positive")
        if not actor.is_supervisor:
            agent_id = actor.actor_id
        return self.store.list_leads(
            LeadFilters(status=status, agent_id=agent_id, vehicle_id=vehicle_id, limit=limit)
        )

    def recommend_agents(
        self, lead_id: UUID, actor: Actor, limit: Optional[int] = None
    ) -> List[ScoreResult]:
        """Best-scoring agents for the lead's vehicle (supervisors only)."""
        if not actor.is_supervisor:
            raise AccessDeniedError("only managers and admins may request recommendations")
        lead = self._load_lead(lead_id)
        n = self.policy.recommendation_limit if limit is None else limit
        return self.matching.top_n(lead.vehicle_id, n)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _require_assignable(self, agent_id: UUID) -> None:
        agent = self.store.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        if agent.role != AgentRole.SALES:
            raise InvalidAssigneeError(agent_id, f"role {agent.role.value} cannot own leads")
        if not agent.is_eligible():
            raise InvalidAssigneeError(agent_id, f"agent is {agent.status.value}")

    def assign_agent(self, lead_id: UUID, agent_id: UUID, actor: Actor) -> Lead:
        """
        Manually assign a lead to an agent.

        The lead moves to IN_SERVICE with method MANUAL. Capacity is not
        enforced: manual assignment is a supervisor override.

        Raises:
            NotFoundError: Unknown lead or agent.
            InvalidAssigneeError: Agent is not an ACTIVE sales agent.
            InvalidStateError: Lead is terminal.
            AccessDeniedError: SALES actor does not own the lead.
        """
        lead = self._load_lead(lead_id)
        self._authorize(lead, actor)
        self._require_mutable(lead)
        self._require_assignable(agent_id)

        updated = self.store.commit_lead_change(
            LeadChange(
                lead_id=lead_id,
                changed_at=self.clock(),
                status=LeadStatus.IN_SERVICE,
                agent_id=agent_id,
                assignment_method=AssignmentMethod.MANUAL,
                activities=(
                    ActivityDraft(
                        kind=ActivityKind.ASSIGNMENT,
                        description=f"Lead manually assigned to agent {agent_id}",
                        actor_id=actor.actor_id,
                    ),
                ),
            )
        )
        logger.info(
            "Lead manually assigned",
            extra={"lead_id": str(lead_id), "agent_id": str(agent_id), "actor_id": str(actor.actor_id)},
        )
        return updated

    def update_lead(
        self,
        lead_id: UUID,
        actor: Actor,
        status: Optional[LeadStatus] = None,
        agent_id: Optional[UUID] = None,
    ) -> Lead:
        """
        Change a lead's status and/or agent in one atomic commit.

        A status change appends one STATUS activity; an agent change appends
        one ASSIGNMENT activity (method MANUAL).

        Raises:
            InvalidInputError: Nothing to change.
            InvalidStateError: Lead is terminal, the transition is not allowed,
                or IN_SERVICE is requested without an agent.
        """
        if status is None and agent_id is None:
            raise InvalidInputError("nothing to update: provide status and/or agent_id")

        lead = self._load_lead(lead_id)
        self._authorize(lead, actor)
        self._require_mutable(lead)

        activities: List[ActivityDraft] = []
        method: Optional[AssignmentMethod] = None

        if agent_id is not None and agent_id != lead.agent_id:
            self._require_assignable(agent_id)
            method = AssignmentMethod.MANUAL
            activities.append(
                ActivityDraft(
                    kind=ActivityKind.ASSIGNMENT,
                    description=f"Lead reassigned to agent {agent_id}",
                    actor_id=actor.actor_id,
                )
            )
        else:
            agent_id = None

        if status is not None and status != lead.status:
            if not lead.status.can_transition_to(status):
                raise InvalidStateError(
                    f"cannot move lead from {lead.status.value} to {status.value}"
                )
            if status == LeadStatus.IN_SERVICE and agent_id is None and lead.agent_id is None:
                raise InvalidStateError("an agent must be assigned before the lead is in service")
            activities.append(
                ActivityDraft(
                    kind=ActivityKind.STATUS,
                    description=f"Status changed from {lead.status.value} to {status.value}",
                    actor_id=actor.actor_id,
                )
            )
        else:
            status = None

        if not activities:
            return lead

        updated = self.store.commit_lead_change(
            LeadChange(
                lead_id=lead_id,
                changed_at=self.clock(),
                status=status,
                agent_id=agent_id,
                assignment_method=method,
                activities=tuple(activities),
            )
        )
        logger.info(
            "Lead updated",
            extra={
                "lead_id": str(lead_id),
                "status": updated.status.value,
                "agent_id": str(updated.agent_id) if updated.agent_id else None,
                "actor_id": str(actor.actor_id),
            },
        )
        return updated

    def archive_lead(self, lead_id: UUID, actor: Actor) -> Lead:
        """Soft-delete a non-terminal lead (moves it to ARCHIVED)."""
        lead = self._load_lead(lead_id)
        self._authorize(lead, actor)
        self._require_mutable(lead)

        updated = self.store.commit_lead_change(
            LeadChange(
                lead_id=lead_id,
                changed_at=self.clock(),
                status=LeadStatus.ARCHIVED,
                activities=(
                    ActivityDraft(
                        kind=ActivityKind.SYSTEM,
                        description=f"Lead archived (was {lead.status.value})",
                        actor_id=actor.actor_id,
                    ),
                ),
            )
        )
        logger.info("Lead archived", extra={"lead_id": str(lead_id), "actor_id": str(actor.actor_id)})
        return updated

    def add_activity(
        self, lead_id: UUID, actor: Actor, kind: ActivityKind, description: str
    ) -> Activity:
        """Record a user note (call, visit, message...) on a lead."""
        if kind.is_reserved:
            raise InvalidInputError(f"activity kind {kind.value} is reserved for the system")
        description = (description or "").strip()
        if not description:
            raise InvalidInputError("description is required")

        lead = self._load_lead(lead_id)
        self._authorize(lead, actor)
        self._require_mutable(lead)

        return self.store.append_activity(
            lead_id,
            ActivityDraft(kind=kind, description=description, actor_id=actor.actor_id),
            self.clock(),
        )


__all__ = [
    "LeadDetails",
    "LeadIntakeResult",
    "LeadService",
    "LeadSubmission",
    "validate_submission",
]
