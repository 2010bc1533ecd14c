"""
In-process lead store.

Implements the LeadStore contract over plain dictionaries guarded by a single
re-entrant lock. Used for local runs, demos and tests. Atomicity of
`commit_lead_change` is provided by holding the lock for the whole unit and
restoring the previous lead and activity log if any step fails.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID, uuid4

from domain.activity import Activity, ActivityDraft
from domain.agent import Agent, AgentRole, AgentStatus
from domain.errors import AgentAtCapacityError, NotFoundError, StoreError
from domain.lead import TERMINAL_STATUSES, Lead, LeadStatus
from domain.vehicle import Vehicle
from repositories.store import LeadChange, LeadFilters, LeadStore


class InMemoryLeadStore(LeadStore):
    def __init__(
        self,
        vehicles: Iterable[Vehicle] = (),
        agents: Iterable[Agent] = (),
        leads: Iterable[Lead] = (),
    ):
        self._lock = threading.RLock()
        self._vehicles: Dict[UUID, Vehicle] = {v.vehicle_id: v for v in vehicles}
        # Insertion order is the eligibility read order.
        self._agents: Dict[UUID, Agent] = {a.agent_id: a for a in agents}
        self._leads: Dict[UUID, Lead] = {l.lead_id: l for l in leads}
        self._activities: List[Activity] = []

    # Seeding helpers

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        with self._lock:
            self._vehicles[vehicle.vehicle_id] = vehicle
        return vehicle

    def add_agent(self, agent: Agent) -> Agent:
        with self._lock:
            self._agents[agent.agent_id] = agent
        return agent

    # Eligibility & workload reads

    def get_vehicle(self, vehicle_id: UUID) -> Optional[Vehicle]:
        with self._lock:
            return self._vehicles.get(vehicle_id)

    def get_agent(self, agent_id: UUID) -> Optional[Agent]:
        with self._lock:
            return self._agents.get(agent_id)

    def list_eligible_agents(self, role: AgentRole = AgentRole.SALES) -> List[Agent]:
        with self._lock:
            return [
                a for a in self._agents.values()
                if a.role == role and a.status == AgentStatus.ACTIVE
            ]

    def count_active_leads_for_agent(self, agent_id: UUID) -> int:
        with self._lock:
            return self._count_active(agent_id)

    def count_leads_received_since(self, agent_id: UUID, since: datetime) -> int:
        with self._lock:
            return sum(
                1 for l in self._leads.values()
                if l.agent_id == agent_id and l.created_at >= since
            )

    def count_leads_converted_since(self, agent_id: UUID, since: datetime) -> int:
        with self._lock:
            return sum(
                1 for l in self._leads.values()
                if l.agent_id == agent_id
                and l.status == LeadStatus.CONVERTED
                and l.status_changed_at >= since
            )

    # Lead lifecycle

    def create_lead(self, lead: Lead) -> Lead:
        with self._lock:
            if lead.lead_id in self._leads:
                raise StoreError(f"Lead already exists: {lead.lead_id}")
            self._leads[lead.lead_id] = lead
        return lead

    def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        with self._lock:
            return self._leads.get(lead_id)

    def list_leads(self, filters: LeadFilters) -> List[Lead]:
        with self._lock:
            leads = [
                l for l in self._leads.values()
                if (filters.status is None or l.status == filters.status)
                and (filters.agent_id is None or l.agent_id == filters.agent_id)
                and (filters.vehicle_id is None or l.vehicle_id == filters.vehicle_id)
            ]
        leads.sort(key=lambda l: l.created_at, reverse=True)
        return leads[: filters.limit]

    def find_recent_duplicate(
        self, email: str, phone: str, vehicle_id: UUID, since: datetime
    ) -> Optional[Lead]:
        with self._lock:
            matches = [
                l for l in self._leads.values()
                if l.email == email
                and l.phone == phone
                and l.vehicle_id == vehicle_id
                and l.created_at >= since
            ]
        if not matches:
            return None
        return max(matches, key=lambda l: l.created_at)

    def commit_lead_change(self, change: LeadChange) -> Lead:
        with self._lock:
            current = self._leads.get(change.lead_id)
            if current is None:
                raise NotFoundError("Lead", change.lead_id)

            if change.capacity_agent_id is not None:
                self._check_capacity(change.capacity_agent_id, exclude_lead_id=change.lead_id)

            updated = current.with_changes(
                changed_at=change.changed_at,
                status=change.status,
                agent_id=change.agent_id,
                assignment_method=change.assignment_method,
            )

            activity_count = len(self._activities)
            self._leads[change.lead_id] = updated
            try:
                for draft in change.activities:
                    self._append(change.lead_id, draft, change.changed_at)
            except Exception:
                self._leads[change.lead_id] = current
                del self._activities[activity_count:]
                raise
            return updated

    # Audit trail

    def append_activity(self, lead_id: UUID, draft: ActivityDraft, created_at: datetime) -> Activity:
        with self._lock:
            if lead_id not in self._leads:
                raise NotFoundError("Lead", lead_id)
            return self._append(lead_id, draft, created_at)

    def list_activities(self, lead_id: UUID) -> List[Activity]:
        with self._lock:
            activities = [a for a in self._activities if a.lead_id == lead_id]
        return list(reversed(activities))

    # Internals (callers hold the lock)

    def _count_active(self, agent_id: UUID, exclude_lead_id: Optional[UUID] = None) -> int:
        return sum(
            1 for l in self._leads.values()
            if l.agent_id == agent_id
            and l.status not in TERMINAL_STATUSES
            and l.lead_id != exclude_lead_id
        )

    def _check_capacity(self, agent_id: UUID, exclude_lead_id: UUID) -> None:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        active = self._count_active(agent_id, exclude_lead_id=exclude_lead_id)
        if active >= agent.capacity:
            raise AgentAtCapacityError(agent_id, active, agent.capacity)

    def _append(self, lead_id: UUID, draft: ActivityDraft, created_at: datetime) -> Activity:
        activity = Activity(
            activity_id=uuid4(),
            lead_id=lead_id,
            kind=draft.kind,
            description=draft.description,
            actor_id=draft.actor_id,
            created_at=created_at,
        )
        self._activities.append(activity)
        return activity


__all__ = ["InMemoryLeadStore"]
