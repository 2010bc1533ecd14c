"""
Lead store contract.

The matching engine and the lead service only talk to persistence through this
interface. Implementations:
- repositories.supabase_store.SupabaseLeadStore (production)
- repositories.memory_store.InMemoryLeadStore (local runs and tests)

No business rules belong here beyond the conditional capacity check performed
inside `commit_lead_change`, which must run in the same atomic unit as the
write it guards.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from domain.activity import Activity, ActivityDraft
from domain.agent import Agent, AgentRole
from domain.lead import AssignmentMethod, Lead, LeadStatus
from domain.vehicle import Vehicle


@dataclass(frozen=True, slots=True)
class LeadChange:
    """
    One atomic mutation of a lead.

    - status / agent_id / assignment_method: fields to set (None = unchanged)
    - activities: audit rows appended in the same unit
    - capacity_agent_id: when set, the store re-checks that this agent still
      has a free slot (active leads < capacity) before writing, and raises
      AgentAtCapacityError otherwise
    """

    lead_id: UUID
    changed_at: datetime
    status: Optional[LeadStatus] = None
    agent_id: Optional[UUID] = None
    assignment_method: Optional[AssignmentMethod] = None
    activities: Tuple[ActivityDraft, ...] = ()
    capacity_agent_id: Optional[UUID] = None


@dataclass(frozen=True, slots=True)
class LeadFilters:
    status: Optional[LeadStatus] = None
    agent_id: Optional[UUID] = None
    vehicle_id: Optional[UUID] = None
    limit: int = 100


class LeadStore(ABC):
    """Read/write contract consumed by the matching engine and lead service."""

    # Eligibility & workload reads

    @abstractmethod
    def get_vehicle(self, vehicle_id: UUID) -> Optional[Vehicle]:
        ...

    @abstractmethod
    def get_agent(self, agent_id: UUID) -> Optional[Agent]:
        ...

    @abstractmethod
    def list_eligible_agents(self, role: AgentRole = AgentRole.SALES) -> List[Agent]:
        """ACTIVE agents with the given role, in a stable read order."""

    @abstractmethod
    def count_active_leads_for_agent(self, agent_id: UUID) -> int:
        """Leads assigned to the agent whose status is not terminal."""

    @abstractmethod
    def count_leads_received_since(self, agent_id: UUID, since: datetime) -> int:
        """Leads assigned to the agent that were created at or after `since`."""

    @abstractmethod
    def count_leads_converted_since(self, agent_id: UUID, since: datetime) -> int:
        """Leads assigned to the agent that became CONVERTED at or after `since`."""

    # Lead lifecycle

    @abstractmethod
    def create_lead(self, lead: Lead) -> Lead:
        ...

    @abstractmethod
    def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        ...

    @abstractmethod
    def list_leads(self, filters: LeadFilters) -> List[Lead]:
        """Leads matching the filters, newest first."""

    @abstractmethod
    def find_recent_duplicate(
        self, email: str, phone: str, vehicle_id: UUID, since: datetime
    ) -> Optional[Lead]:
        ...

    @abstractmethod
    def commit_lead_change(self, change: LeadChange) -> Lead:
        """
        Apply `change` atomically: either the lead update and every activity
        are persisted, or nothing is.
        """

    # Audit trail

    @abstractmethod
    def append_activity(self, lead_id: UUID, draft: ActivityDraft, created_at: datetime) -> Activity:
        ...

    @abstractmethod
    def list_activities(self, lead_id: UUID) -> List[Activity]:
        """Activities for a lead, newest first."""


__all__ = ["LeadChange", "LeadFilters", "LeadStore"]
