"""
Tests for `services/lead_service.py`.

Covers contract rules:
- Intake validation (name, email, phone, vehicle, consent, deal figures).
- Duplicate suppression: same (email, phone, vehicle) within 24h -> DuplicateLeadError
  with the existing lead id and exactly one stored lead; outside the window a new lead.
- Auto-assignment is one atomic unit (lead update + SYSTEM activity); a failed audit
  append leaves the lead unchanged.
- A lost capacity race downgrades the decision to MANUAL_REVIEW and leaves the lead NEW.
- Manual assignment: ACTIVE sales agents only, method MANUAL, capacity not enforced.
- Status changes follow the lifecycle; terminal (including ARCHIVED) leads are read-only.
- Access rules: SALES actors only touch their own leads.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import NOW, give_workload, make_agent, make_lead, make_vehicle
from domain.activity import ActivityKind
from domain.agent import Actor, AgentRole, AgentStatus, ExperienceTier
from domain.errors import (
    AccessDeniedError,
    DuplicateLeadError,
    InvalidAssigneeError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    StoreError,
)
from domain.lead import AssignmentMethod, LeadStatus
from domain.scoring import DecisionOutcome, MatchingPolicy
from domain.vehicle import VehicleCategory
from repositories.memory_store import InMemoryLeadStore
from repositories.store import LeadFilters
from services.lead_service import LeadService, LeadSubmission


class Clock:
    """Settable clock so tests can move across the duplicate window."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FailingAuditStore(InMemoryLeadStore):
    """Store whose audit appends fail inside commit_lead_change."""

    def _append(self, lead_id, draft, created_at):
        raise StoreError("audit insert failed")


class RacingStore(InMemoryLeadStore):
    """Store where a concurrent intake takes the agent's last slot just before the commit."""

    def commit_lead_change(self, change):
        if change.capacity_agent_id is not None:
            lead = self.get_lead(change.lead_id)
            self.create_lead(
                make_lead(lead.vehicle_id, change.capacity_agent_id, LeadStatus.IN_SERVICE)
            )
        return super().commit_lead_change(change)


def _submission(vehicle_id, **overrides) -> LeadSubmission:
    fields = dict(
        name="Maria Souza",
        email="maria@example.com",
        phone="(11) 98765-4321",
        vehicle_id=vehicle_id,
        consent=True,
    )
    fields.update(overrides)
    return LeadSubmission(**fields)


def _setup(store=None, price: str = "40000", capacity: int = 5, clock=None):
    store = store if store is not None else InMemoryLeadStore()
    vehicle = store.add_vehicle(make_vehicle(VehicleCategory.SEDAN, price))
    agent = store.add_agent(make_agent(tier=ExperienceTier.JUNIOR, capacity=capacity))
    service = LeadService(store, clock=clock or Clock())
    return store, service, vehicle, agent


def _all_leads(store):
    return store.list_leads(LeadFilters(limit=1000))


def _sales(agent) -> Actor:
    return Actor(actor_id=agent.agent_id, role=AgentRole.SALES)


# ----------------------------------------------------------------------------
# Intake
# ----------------------------------------------------------------------------

def test_submit_auto_assigns_above_threshold() -> None:
    """Verify a 90-point match is assigned by the system in the same call."""

    store, service, vehicle, agent = _setup()

    result = service.submit_lead(_submission(vehicle.vehicle_id))

    assert result.auto_assigned is True
    assert result.decision.outcome == DecisionOutcome.AUTO_ASSIGN
    assert result.lead.status == LeadStatus.IN_SERVICE
    assert result.lead.agent_id == agent.agent_id
    assert result.lead.assignment_method == AssignmentMethod.SYSTEM

    activities = store.list_activities(result.lead.lead_id)
    assert len(activities) == 1
    assert activities[0].kind == ActivityKind.SYSTEM
    assert activities[0].actor_id == agent.agent_id


def test_submit_below_threshold_waits_for_manual_review() -> None:
    """Verify a 74-point match leaves the lead NEW with no assignment."""

    store, service, vehicle, _ = _setup(price="150000")

    result = service.submit_lead(_submission(vehicle.vehicle_id))

    assert result.auto_assigned is False
    assert result.decision.outcome == DecisionOutcome.MANUAL_REVIEW
    assert result.decision.top.score == 74
    assert result.lead.status == LeadStatus.NEW
    assert result.lead.agent_id is None
    assert store.list_activities(result.lead.lead_id) == []


def test_submit_with_no_candidate() -> None:
    """Verify a sole agent at capacity yields NO_CANDIDATE and a NEW lead."""

    store, service, vehicle, agent = _setup(capacity=5)
    give_workload(store, agent, vehicle, active=5)

    result = service.submit_lead(_submission(vehicle.vehicle_id))

    assert result.decision.outcome == DecisionOutcome.NO_CANDIDATE
    assert result.lead.status == LeadStatus.NEW


def test_submit_keeps_inquiry_details() -> None:
    """Verify deal fields and source metadata are stored on the lead."""

    _, service, vehicle, _ = _setup(price="150000")

    result = service.submit_lead(
        _submission(
            vehicle.vehicle_id,
            down_payment=Decimal("15000"),
            term_months=48,
            message="Is it still available?",
            source_ip="203.0.113.7",
            user_agent="pytest",
        )
    )

    assert result.lead.down_payment == Decimal("15000")
    assert result.lead.term_months == 48
    assert result.lead.source_ip == "203.0.113.7"
    assert result.lead.created_at == NOW


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "Al"},
        {"name": "   "},
        {"email": "maria.example.com"},
        {"phone": "98765-432"},
        {"vehicle_id": None},
        {"consent": False},
        {"down_payment": Decimal("-1")},
        {"term_months": 0},
    ],
)
def test_submit_rejects_invalid_input(overrides) -> None:
    """Verify each validation rule raises InvalidInputError and stores nothing."""

    store, service, vehicle, _ = _setup()

    with pytest.raises(InvalidInputError):
        service.submit_lead(_submission(**{"vehicle_id": vehicle.vehicle_id, **overrides}))

    assert _all_leads(store) == []


def test_submit_unknown_vehicle() -> None:
    """Verify an unknown vehicle raises NotFoundError before anything is written."""

    store, service, _, _ = _setup()

    with pytest.raises(NotFoundError):
        service.submit_lead(_submission(uuid4()))

    assert _all_leads(store) == []


def test_duplicate_within_window_returns_existing_lead() -> None:
    """Verify a repeat inquiry within 24h is suppressed and reports the first lead id."""

    clock = Clock()
    store, service, vehicle, _ = _setup(price="150000", clock=clock)

    first = service.submit_lead(_submission(vehicle.vehicle_id))
    clock.advance(hours=23, minutes=59)

    with pytest.raises(DuplicateLeadError) as excinfo:
        service.submit_lead(_submission(vehicle.vehicle_id))

    assert excinfo.value.existing_lead_id == first.lead.lead_id
    assert excinfo.value.window_hours == 24
    assert len(_all_leads(store)) == 1


def test_duplicate_window_expires() -> None:
    """Verify the same inquiry after 24h creates a new lead."""

    clock = Clock()
    store, service, vehicle, _ = _setup(price="150000", clock=clock)

    first = service.submit_lead(_submission(vehicle.vehicle_id))
    clock.advance(hours=24, seconds=1)
    second = service.submit_lead(_submission(vehicle.vehicle_id))

    assert second.lead.lead_id != first.lead.lead_id
    assert len(_all_leads(store)) == 2


def test_duplicate_requires_same_vehicle_email_and_phone() -> None:
    """Verify a different vehicle is a distinct inquiry."""

    store, service, vehicle, _ = _setup(price="150000")
    other = store.add_vehicle(make_vehicle(VehicleCategory.SEDAN, "150000"))

    service.submit_lead(_submission(vehicle.vehicle_id))
    service.submit_lead(_submission(other.vehicle_id))

    assert len(_all_leads(store)) == 2


def test_failed_audit_append_leaves_lead_unchanged() -> None:
    """Verify the assignment is rolled back when the audit row cannot be written."""

    store, service, vehicle, _ = _setup(store=FailingAuditStore())

    with pytest.raises(StoreError):
        service.submit_lead(_submission(vehicle.vehicle_id))

    [lead] = _all_leads(store)
    assert lead.status == LeadStatus.NEW
    assert lead.agent_id is None
    assert lead.assignment_method is None
    assert store.list_activities(lead.lead_id) == []


def test_lost_capacity_race_downgrades_to_manual_review() -> None:
    """Verify a concurrent intake taking the last slot leaves the lead NEW for review."""

    store, service, vehicle, agent = _setup(store=RacingStore(), capacity=1)

    result = service.submit_lead(_submission(vehicle.vehicle_id))

    assert result.auto_assigned is False
    assert result.decision.outcome == DecisionOutcome.MANUAL_REVIEW
    assert result.decision.agent_id is None
    assert result.lead.status == LeadStatus.NEW
    assert store.get_lead(result.lead.lead_id).agent_id is None
    assert store.count_active_leads_for_agent(agent.agent_id) == 1


# ----------------------------------------------------------------------------
# Manual assignment and lifecycle
# ----------------------------------------------------------------------------

def _new_lead(store, vehicle, **kwargs):
    return store.create_lead(make_lead(vehicle.vehicle_id, **kwargs))


def test_manual_assignment(manager) -> None:
    """Verify manual assignment sets MANUAL, IN_SERVICE and one ASSIGNMENT activity."""

    store, service, vehicle, agent = _setup()
    lead = _new_lead(store, vehicle)

    updated = service.assign_agent(lead.lead_id, agent.agent_id, manager)

    assert updated.agent_id == agent.agent_id
    assert updated.assignment_method == AssignmentMethod.MANUAL
    assert updated.status == LeadStatus.IN_SERVICE
    [activity] = store.list_activities(lead.lead_id)
    assert activity.kind == ActivityKind.ASSIGNMENT
    assert activity.actor_id == manager.actor_id


def test_manual_assignment_ignores_capacity(manager) -> None:
    """Verify a manager may override capacity."""

    store, service, vehicle, agent = _setup(capacity=1)
    give_workload(store, agent, vehicle, active=1)
    lead = _new_lead(store, vehicle)

    updated = service.assign_agent(lead.lead_id, agent.agent_id, manager)

    assert updated.agent_id == agent.agent_id
    assert store.count_active_leads_for_agent(agent.agent_id) == 2


@pytest.mark.parametrize(
    "agent_kwargs",
    [
        {"status": AgentStatus.INACTIVE},
        {"status": AgentStatus.ON_LEAVE},
        {"role": AgentRole.MANAGER},
    ],
)
def test_manual_assignment_rejects_ineligible_agent(manager, agent_kwargs) -> None:
    """Verify only ACTIVE sales agents can own leads."""

    store, service, vehicle, _ = _setup()
    target = store.add_agent(make_agent(**agent_kwargs))
    lead = _new_lead(store, vehicle)

    with pytest.raises(InvalidAssigneeError):
        service.assign_agent(lead.lead_id, target.agent_id, manager)

    assert store.get_lead(lead.lead_id).agent_id is None


def test_manual_assignment_unknown_agent_or_lead(manager) -> None:
    """Verify unknown agent and unknown lead raise NotFoundError."""

    store, service, vehicle, agent = _setup()
    lead = _new_lead(store, vehicle)

    with pytest.raises(NotFoundError):
        service.assign_agent(lead.lead_id, uuid4(), manager)
    with pytest.raises(NotFoundError):
        service.assign_agent(uuid4(), agent.agent_id, manager)


def test_status_change_appends_one_status_activity(manager) -> None:
    """Verify IN_SERVICE -> CONVERTED records exactly one STATUS activity."""

    store, service, vehicle, agent = _setup()
    lead = _new_lead(store, vehicle, agent_id=agent.agent_id, status=LeadStatus.IN_SERVICE)

    updated = service.update_lead(lead.lead_id, manager, status=LeadStatus.CONVERTED)

    assert updated.status == LeadStatus.CONVERTED
    [activity] = store.list_activities(lead.lead_id)
    assert activity.kind == ActivityKind.STATUS


def test_status_and_agent_change_in_one_commit(manager) -> None:
    """Verify agent and status change together append ASSIGNMENT and STATUS rows."""

    store, service, vehicle, agent = _setup()
    lead = _new_lead(store, vehicle)

    updated = service.update_lead(
        lead.lead_id, manager, status=LeadStatus.IN_SERVICE, agent_id=agent.agent_id
    )

    assert updated.status == LeadStatus.IN_SERVICE
    assert updated.assignment_method == AssignmentMethod.MANUAL
    kinds = {a.kind for a in store.list_activities(lead.lead_id)}
    assert kinds == {ActivityKind.ASSIGNMENT, ActivityKind.STATUS}


def test_disallowed_transition(manager) -> None:
    """Verify NEW -> CONVERTED is rejected and nothing is written."""

    store, service, vehicle, _ = _setup()
    lead = _new_lead(store, vehicle)

    with pytest.raises(InvalidStateError):
        service.update_lead(lead.lead_id, manager, status=LeadStatus.CONVERTED)

    assert store.get_lead(lead.lead_id).status == LeadStatus.NEW
    assert store.list_activities(lead.lead_id) == []


def test_in_service_requires_agent(manager) -> None:
    """Verify NEW -> IN_SERVICE without an agent is rejected."""

    store, service, vehicle, _ = _setup()
    lead = _new_lead(store, vehicle)

    with pytest.raises(InvalidStateError):
        service.update_lead(lead.lead_id, manager, status=LeadStatus.IN_SERVICE)


def test_empty_update_rejected(manager) -> None:
    """Verify an update with nothing to change is InvalidInputError."""

    store, service, vehicle, _ = _setup()
    lead = _new_lead(store, vehicle)

    with pytest.raises(InvalidInputError):
        service.update_lead(lead.lead_id, manager)


def test_archived_lead_is_read_only(manager) -> None:
    """Verify archiving appends one SYSTEM activity and blocks further mutations."""

    store, service, vehicle, agent = _setup()
    lead = _new_lead(store, vehicle)

    archived = service.archive_lead(lead.lead_id, manager)
    assert archived.status == LeadStatus.ARCHIVED
    [activity] = store.list_activities(lead.lead_id)
    assert activity.kind == ActivityKind.SYSTEM

    with pytest.raises(InvalidStateError):
        service.assign_agent(lead.lead_id, agent.agent_id, manager)
    with pytest.raises(InvalidStateError):
        service.update_lead(lead.lead_id, manager, status=LeadStatus.IN_SERVICE)
    with pytest.raises(InvalidStateError):
        service.archive_lead(lead.lead_id, manager)
    with pytest.raises(InvalidStateError):
        service.add_activity(lead.lead_id, manager, ActivityKind.NOTE, "late note")

    assert len(store.list_activities(lead.lead_id)) == 1


@pytest.mark.parametrize("status", [LeadStatus.CONVERTED, LeadStatus.LOST])
def test_closed_lead_is_read_only(manager, status) -> None:
    """Verify CONVERTED and LOST leads cannot be reassigned."""

    store, service, vehicle, agent = _setup()
    lead = _new_lead(store, vehicle, agent_id=agent.agent_id, status=status)

    with pytest.raises(InvalidStateError):
        service.assign_agent(lead.lead_id, agent.agent_id, manager)


# ----------------------------------------------------------------------------
# Activities, reads and access rules
# ----------------------------------------------------------------------------

def test_add_activity(manager) -> None:
    """Verify user notes are stored and listed newest first."""

    clock = Clock()
    store, service, vehicle, _ = _setup(clock=clock)
    lead = _new_lead(store, vehicle)

    service.add_activity(lead.lead_id, manager, ActivityKind.CALL, "Left a voicemail")
    clock.advance(minutes=10)
    service.add_activity(lead.lead_id, manager, ActivityKind.NOTE, "  Wants a test drive  ")

    details = service.get_lead(lead.lead_id, manager)
    assert [a.kind for a in details.activities] == [ActivityKind.NOTE, ActivityKind.CALL]
    assert details.activities[0].description == "Wants a test drive"


@pytest.mark.parametrize("kind", [ActivityKind.SYSTEM, ActivityKind.STATUS, ActivityKind.ASSIGNMENT])
def test_add_activity_rejects_reserved_kinds(manager, kind) -> None:
    """Verify engine-only activity kinds cannot be written by users."""

    store, service, vehicle, _ = _setup()
    lead = _new_lead(store, vehicle)

    with pytest.raises(InvalidInputError):
        service.add_activity(lead.lead_id, manager, kind, "forged")


def test_add_activity_requires_description(manager) -> None:
    """Verify a blank description is rejected."""

    store, service, vehicle, _ = _setup()
    lead = _new_lead(store, vehicle)

    with pytest.raises(InvalidInputError):
        service.add_activity(lead.lead_id, manager, ActivityKind.NOTE, "   ")


def test_sales_actor_only_sees_own_leads() -> None:
    """Verify SALES actors are denied on other leads and listing is scoped to them."""

    store, service, vehicle, agent = _setup()
    colleague = store.add_agent(make_agent(name="Colleague"))
    mine = _new_lead(store, vehicle, agent_id=agent.agent_id, status=LeadStatus.IN_SERVICE)
    theirs = _new_lead(store, vehicle, agent_id=colleague.agent_id, status=LeadStatus.IN_SERVICE)
    actor = _sales(agent)

    assert service.get_lead(mine.lead_id, actor).lead.lead_id == mine.lead_id
    with pytest.raises(AccessDeniedError):
        service.get_lead(theirs.lead_id, actor)
    with pytest.raises(AccessDeniedError):
        service.update_lead(theirs.lead_id, actor, status=LeadStatus.LOST)
    with pytest.raises(AccessDeniedError):
        service.archive_lead(theirs.lead_id, actor)

    listed = service.list_leads(actor, agent_id=colleague.agent_id)
    assert [l.lead_id for l in listed] == [mine.lead_id]


def test_sales_actor_can_close_own_lead() -> None:
    """Verify the owning agent may move their lead forward."""

    store, service, vehicle, agent = _setup()
    lead = _new_lead(store, vehicle, agent_id=agent.agent_id, status=LeadStatus.IN_SERVICE)

    updated = service.update_lead(lead.lead_id, _sales(agent), status=LeadStatus.LOST)

    assert updated.status == LeadStatus.LOST


def test_manager_lists_with_filters(manager) -> None:
    """Verify supervisors see every lead and filters apply."""

    store, service, vehicle, agent = _setup()
    _new_lead(store, vehicle)
    _new_lead(store, vehicle, agent_id=agent.agent_id, status=LeadStatus.IN_SERVICE)

    assert len(service.list_leads(manager)) == 2
    assert len(service.list_leads(manager, status=LeadStatus.NEW)) == 1
    assert len(service.list_leads(manager, agent_id=agent.agent_id)) == 1


def test_recommend_agents(manager) -> None:
    """Verify recommendations default to the top 3 and are supervisor-only."""

    store, service, vehicle, agent = _setup()
    for i in range(4):
        store.add_agent(make_agent(name=f"Extra {i}", specialties=()))
    lead = _new_lead(store, vehicle)

    recommended = service.recommend_agents(lead.lead_id, manager)
    assert len(recommended) == 3
    assert recommended[0].agent_id == agent.agent_id

    assert len(service.recommend_agents(lead.lead_id, manager, limit=5)) == 5

    with pytest.raises(AccessDeniedError):
        service.recommend_agents(lead.lead_id, _sales(agent))


def test_policy_overrides_flow_through() -> None:
    """Verify a custom duplicate window from the policy is applied."""

    clock = Clock()
    store = InMemoryLeadStore()
    vehicle = store.add_vehicle(make_vehicle(VehicleCategory.SEDAN, "150000"))
    service = LeadService(store, policy=MatchingPolicy(duplicate_window_hours=1), clock=clock)

    service.submit_lead(_submission(vehicle.vehicle_id))
    clock.advance(hours=2)
    service.submit_lead(_submission(vehicle.vehicle_id))

    assert len(_all_leads(store)) == 2
