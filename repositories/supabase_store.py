"""
Supabase-backed lead store (persistence).

Implements the LeadStore contract on top of four tables (see
sql/lead_routing.sql): vehicles, agents, leads and lead_activities.

Reads are plain PostgREST queries. The only multi-row write,
`commit_lead_change`, goes through the `commit_lead_change()` PostgreSQL
function, which:
- Locks the lead row (FOR UPDATE)
- Locks the capacity agent row (FOR UPDATE), serialising assignment writes
  per agent, and re-counts its non-terminal leads
- Updates the lead and inserts every activity row
All in a single atomic transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID, uuid4

from postgrest.exceptions import APIError

from domain.activity import Activity, ActivityDraft, ActivityKind
from domain.agent import Agent, AgentRole, AgentStatus, AssignmentRules, ExperienceTier
from domain.errors import AgentAtCapacityError, NotFoundError, StoreError
from domain.lead import (
    TERMINAL_STATUSES,
    AssignmentMethod,
    ContactChannel,
    DealType,
    Lead,
    LeadStatus,
)
from domain.time import parse_utc_datetime, to_iso_utc
from domain.vehicle import Vehicle, VehicleCategory
from repositories.client import get_supabase
from repositories.store import LeadChange, LeadFilters, LeadStore

logger = logging.getLogger(__name__)

# Supabase table names.
# Keep these aligned with sql/lead_routing.sql.
_VEHICLES_TABLE: str = "vehicles"
_AGENTS_TABLE: str = "agents"
_LEADS_TABLE: str = "leads"
_ACTIVITIES_TABLE: str = "lead_activities"

_COMMIT_LEAD_CHANGE_RPC: str = "commit_lead_change"

_TERMINAL_STATUS_VALUES: List[str] = sorted(s.value for s in TERMINAL_STATUSES)


def _optional_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None and value != "" else None


def _row_to_vehicle(row: Mapping[str, Any]) -> Vehicle:
    """Convert a Supabase row into a domain Vehicle."""

    return Vehicle(
        vehicle_id=UUID(str(row["vehicle_id"])),
        category=VehicleCategory(str(row["category"])),
        sale_price=Decimal(str(row["sale_price"])),
        make=row.get("make"),
        model=row.get("model"),
        model_year=int(row["model_year"]) if row.get("model_year") else None,
    )


def _row_to_agent(row: Mapping[str, Any]) -> Agent:
    """Convert a Supabase row into a domain Agent."""

    return Agent(
        agent_id=UUID(str(row["agent_id"])),
        name=str(row["name"]),
        email=row.get("email"),
        role=AgentRole(str(row["role"])),
        tier=ExperienceTier(str(row["tier"])),
        status=AgentStatus(str(row["status"])),
        capacity=int(row["capacity"]),
        specialties=frozenset(VehicleCategory(str(c)) for c in row.get("specialties") or []),
        rules=AssignmentRules.from_payload(row.get("assignment_rules")),
    )


def _vehicle_to_row(vehicle: Vehicle) -> dict[str, Any]:
    return {
        "vehicle_id": str(vehicle.vehicle_id),
        "category": vehicle.category.value,
        "sale_price": str(vehicle.sale_price),
        "make": vehicle.make,
        "model": vehicle.model,
        "model_year": vehicle.model_year,
    }


def _agent_to_row(agent: Agent) -> dict[str, Any]:
    return {
        "agent_id": str(agent.agent_id),
        "name": agent.name,
        "email": agent.email,
        "role": agent.role.value,
        "tier": agent.tier.value,
        "status": agent.status.value,
        "capacity": agent.capacity,
        "specialties": sorted(c.value for c in agent.specialties),
        "assignment_rules": agent.rules.to_payload() if agent.rules is not None else None,
    }


def _lead_to_row(lead: Lead) -> dict[str, Any]:
    """Convert a domain Lead to a Supabase row payload."""

    return {
        # Core identifiers
        "lead_id": str(lead.lead_id),
        "vehicle_id": str(lead.vehicle_id),
        "status": lead.status.value,
        "agent_id": str(lead.agent_id) if lead.agent_id else None,
        "assignment_method": lead.assignment_method.value if lead.assignment_method else None,
        "created_at_utc": to_iso_utc(lead.created_at, name="created_at"),
        "status_changed_at_utc": to_iso_utc(lead.status_changed_at, name="status_changed_at"),

        # Contact information
        "name": lead.name,
        "email": lead.email,
        "phone": lead.phone,

        # Inquiry details
        "deal_type": lead.deal_type.value if lead.deal_type else None,
        "down_payment": str(lead.down_payment) if lead.down_payment is not None else None,
        "term_months": lead.term_months,
        "message": lead.message,
        "contact_preferences": [c.value for c in lead.contact_preferences],

        # Audit-only source metadata
        "source_ip": lead.source_ip,
        "user_agent": lead.user_agent,
    }


def _row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    method = row.get("assignment_method")
    deal_type = row.get("deal_type")
    preferences = row.get("contact_preferences") or [ContactChannel.WHATSAPP.value]

    return Lead(
        lead_id=UUID(str(row["lead_id"])),
        vehicle_id=UUID(str(row["vehicle_id"])),
        status=LeadStatus(str(row["status"])),
        agent_id=_optional_uuid(row.get("agent_id")),
        assignment_method=AssignmentMethod(str(method)) if method else None,
        created_at=parse_utc_datetime(row["created_at_utc"]),
        status_changed_at=parse_utc_datetime(
            row.get("status_changed_at_utc") or row["created_at_utc"]
        ),
        name=str(row["name"]),
        email=str(row["email"]),
        phone=str(row["phone"]),
        deal_type=DealType(str(deal_type)) if deal_type else None,
        down_payment=_optional_decimal(row.get("down_payment")),
        term_months=int(row["term_months"]) if row.get("term_months") is not None else None,
        message=row.get("message"),
        contact_preferences=tuple(ContactChannel(str(c)) for c in preferences),
        source_ip=row.get("source_ip"),
        user_agent=row.get("user_agent"),
    )


def _row_to_activity(row: Mapping[str, Any]) -> Activity:
    """Convert a Supabase row into a domain Activity."""

    return Activity(
        activity_id=UUID(str(row["activity_id"])),
        lead_id=UUID(str(row["lead_id"])),
        kind=ActivityKind(str(row["kind"])),
        description=str(row["description"]),
        actor_id=_optional_uuid(row.get("actor_id")),
        created_at=parse_utc_datetime(row["created_at_utc"]),
    )


def _change_to_rpc_params(change: LeadChange) -> dict[str, Any]:
    return {
        "p_lead_id": str(change.lead_id),
        "p_changed_at": to_iso_utc(change.changed_at, name="changed_at"),
        "p_status": change.status.value if change.status else None,
        "p_agent_id": str(change.agent_id) if change.agent_id else None,
        "p_assignment_method": (
            change.assignment_method.value if change.assignment_method else None
        ),
        "p_activities": [
            {
                "kind": draft.kind.value,
                "description": draft.description,
                "actor_id": str(draft.actor_id) if draft.actor_id else None,
            }
            for draft in change.activities
        ],
        "p_capacity_agent_id": (
            str(change.capacity_agent_id) if change.capacity_agent_id else None
        ),
    }


def _raise_for_rpc_failure(result: Mapping[str, Any], change: LeadChange) -> None:
    """Translate a commit_lead_change() error payload into a domain error."""

    code = result.get("error")
    message = result.get("message") or str(code)
    if code == "LEAD_NOT_FOUND":
        raise NotFoundError("Lead", change.lead_id)
    if code == "AGENT_NOT_FOUND":
        raise NotFoundError("Agent", change.capacity_agent_id)
    if code == "AGENT_AT_CAPACITY":
        raise AgentAtCapacityError(
            change.capacity_agent_id,
            result.get("active_leads"),
            result.get("capacity"),
        )
    raise StoreError(f"Failed to commit lead change: {message}")


def _rpc_payload_from_error(error: APIError) -> Optional[Mapping[str, Any]]:
    """
    Recover the function result from an APIError.

    supabase-py raises APIError when a PostgreSQL function returns JSON, for
    both success and error payloads. A payload carrying `success` is the real
    function result; anything else is a genuine request failure.
    """

    try:
        payload = error.json() if callable(getattr(error, "json", None)) else None
    except ValueError:
        return None
    if isinstance(payload, Mapping) and "success" in payload:
        return payload
    return None


class SupabaseLeadStore(LeadStore):
    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _execute(self, query: Any, action: str) -> Any:
        """
        Execute a PostgREST query and normalise failures to StoreError.

        Raises:
        - StoreError if Supabase raises or returns an error response.
        """

        try:
            response = query.execute()
        except APIError as e:
            logger.error(f"Supabase request failed: {action}", extra={"action": action, "error": str(e)})
            raise StoreError(f"Failed to {action}: {e}") from e
        error = getattr(response, "error", None)
        if error:
            logger.error(f"Supabase request failed: {action}", extra={"action": action, "error": str(error)})
            raise StoreError(f"Failed to {action}: {error}")
        return response

    def _rows(self, query: Any, action: str) -> List[Mapping[str, Any]]:
        response = self._execute(query, action)
        return getattr(response, "data", None) or []

    def _count(self, query: Any, action: str) -> int:
        response = self._execute(query, action)
        count = getattr(response, "count", None)
        if count is None:
            raise StoreError(f"Failed to {action}: no count returned")
        return int(count)

    # Reference data (seeding and back-office tools)

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        self._execute(
            self.client.table(_VEHICLES_TABLE).upsert(_vehicle_to_row(vehicle)),
            "upsert vehicle",
        )
        return vehicle

    def add_agent(self, agent: Agent) -> Agent:
        self._execute(
            self.client.table(_AGENTS_TABLE).upsert(_agent_to_row(agent)),
            "upsert agent",
        )
        return agent

    # Eligibility & workload reads

    def get_vehicle(self, vehicle_id: UUID) -> Optional[Vehicle]:
        rows = self._rows(
            self.client.table(_VEHICLES_TABLE)
            .select("*")
            .eq("vehicle_id", str(vehicle_id))
            .limit(1),
            "fetch vehicle",
        )
        return _row_to_vehicle(rows[0]) if rows else None

    def get_agent(self, agent_id: UUID) -> Optional[Agent]:
        rows = self._rows(
            self.client.table(_AGENTS_TABLE)
            .select("*")
            .eq("agent_id", str(agent_id))
            .limit(1),
            "fetch agent",
        )
        return _row_to_agent(rows[0]) if rows else None

    def list_eligible_agents(self, role: AgentRole = AgentRole.SALES) -> List[Agent]:
        # Ordered by agent_id so ties in ranking resolve the same way on every read.
        rows = self._rows(
            self.client.table(_AGENTS_TABLE)
            .select("*")
            .eq("role", role.value)
            .eq("status", AgentStatus.ACTIVE.value)
            .order("agent_id"),
            "list eligible agents",
        )
        return [_row_to_agent(row) for row in rows]

    def count_active_leads_for_agent(self, agent_id: UUID) -> int:
        return self._count(
            self.client.table(_LEADS_TABLE)
            .select("lead_id", count="exact")
            .eq("agent_id", str(agent_id))
            .not_.in_("status", _TERMINAL_STATUS_VALUES),
            "count active leads",
        )

    def count_leads_received_since(self, agent_id: UUID, since: datetime) -> int:
        return self._count(
            self.client.table(_LEADS_TABLE)
            .select("lead_id", count="exact")
            .eq("agent_id", str(agent_id))
            .gte("created_at_utc", to_iso_utc(since, name="since")),
            "count received leads",
        )

    def count_leads_converted_since(self, agent_id: UUID, since: datetime) -> int:
        return self._count(
            self.client.table(_LEADS_TABLE)
            .select("lead_id", count="exact")
            .eq("agent_id", str(agent_id))
            .eq("status", LeadStatus.CONVERTED.value)
            .gte("status_changed_at_utc", to_iso_utc(since, name="since")),
            "count converted leads",
        )

    # Lead lifecycle

    def create_lead(self, lead: Lead) -> Lead:
        self._execute(
            self.client.table(_LEADS_TABLE).insert(_lead_to_row(lead)),
            "insert lead",
        )
        return lead

    def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        rows = self._rows(
            self.client.table(_LEADS_TABLE)
            .select("*")
            .eq("lead_id", str(lead_id))
            .limit(1),
            "fetch lead",
        )
        return _row_to_lead(rows[0]) if rows else None

    def list_leads(self, filters: LeadFilters) -> List[Lead]:
        query = self.client.table(_LEADS_TABLE).select("*")
        if filters.status is not None:
            query = query.eq("status", filters.status.value)
        if filters.agent_id is not None:
            query = query.eq("agent_id", str(filters.agent_id))
        if filters.vehicle_id is not None:
            query = query.eq("vehicle_id", str(filters.vehicle_id))
        query = query.order("created_at_utc", desc=True).limit(filters.limit)
        return [_row_to_lead(row) for row in self._rows(query, "list leads")]

    def find_recent_duplicate(
        self, email: str, phone: str, vehicle_id: UUID, since: datetime
    ) -> Optional[Lead]:
        rows = self._rows(
            self.client.table(_LEADS_TABLE)
            .select("*")
            .eq("email", email)
            .eq("phone", phone)
            .eq("vehicle_id", str(vehicle_id))
            .gte("created_at_utc", to_iso_utc(since, name="since"))
            .order("created_at_utc", desc=True)
            .limit(1),
            "look up duplicate lead",
        )
        return _row_to_lead(rows[0]) if rows else None

    def commit_lead_change(self, change: LeadChange) -> Lead:
        query = self.client.rpc(_COMMIT_LEAD_CHANGE_RPC, _change_to_rpc_params(change))
        try:
            result = getattr(query.execute(), "data", None) or {}
        except APIError as e:
            result = _rpc_payload_from_error(e)
            if result is None:
                logger.error(
                    "Supabase request failed: commit lead change",
                    extra={"action": "commit lead change", "lead_id": str(change.lead_id), "error": str(e)},
                )
                raise StoreError(f"Failed to commit lead change: {e}") from e

        if not result.get("success"):
            _raise_for_rpc_failure(result, change)
        return _row_to_lead(result["lead"])

    # Audit trail

    def append_activity(self, lead_id: UUID, draft: ActivityDraft, created_at: datetime) -> Activity:
        activity = Activity(
            activity_id=uuid4(),
            lead_id=lead_id,
            kind=draft.kind,
            description=draft.description,
            actor_id=draft.actor_id,
            created_at=created_at,
        )
        self._execute(
            self.client.table(_ACTIVITIES_TABLE).insert(
                {
                    "activity_id": str(activity.activity_id),
                    "lead_id": str(lead_id),
                    "kind": activity.kind.value,
                    "description": activity.description,
                    "actor_id": str(activity.actor_id) if activity.actor_id else None,
                    "created_at_utc": to_iso_utc(created_at, name="created_at"),
                }
            ),
            "insert activity",
        )
        return activity

    def list_activities(self, lead_id: UUID) -> List[Activity]:
        rows = self._rows(
            self.client.table(_ACTIVITIES_TABLE)
            .select("*")
            .eq("lead_id", str(lead_id))
            .order("created_at_utc", desc=True),
            "list activities",
        )
        return [_row_to_activity(row) for row in rows]


__all__ = ["SupabaseLeadStore"]
