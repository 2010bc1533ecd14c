"""
Domain: error taxonomy for lead routing.

Every error raised by the engine derives from LeadRoutingError so adapters can
map the whole family in one place. Errors carry the data a caller needs to
react (e.g. the existing lead id for a duplicate submission).
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID


class LeadRoutingError(Exception):
    """Base class for all lead routing errors."""


class NotFoundError(LeadRoutingError):
    """Raised when a referenced vehicle, agent or lead does not exist."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidInputError(LeadRoutingError):
    """Raised when required lead fields are missing or malformed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class DuplicateLeadError(LeadRoutingError):
    """
    Raised when an identical (email, phone, vehicle) submission already exists
    inside the idempotency window. Not fatal: callers should hand back the
    existing lead reference.
    """

    def __init__(self, existing_lead_id: UUID, window_hours: int):
        self.existing_lead_id = existing_lead_id
        self.window_hours = window_hours
        super().__init__(
            f"An inquiry for this vehicle was already submitted in the last "
            f"{window_hours} hours (lead {existing_lead_id})"
        )


class InvalidAssigneeError(LeadRoutingError):
    """Raised when the target agent cannot own leads."""

    def __init__(self, agent_id: UUID, reason: str):
        self.agent_id = agent_id
        self.reason = reason
        super().__init__(f"Agent {agent_id} cannot be assigned: {reason}")


class AgentAtCapacityError(InvalidAssigneeError):
    """Raised by the conditional write when the agent has no free slot left."""

    def __init__(self, agent_id: UUID, active_leads: Optional[int] = None, capacity: Optional[int] = None):
        self.active_leads = active_leads
        self.capacity = capacity
        detail = "agent is at capacity"
        if active_leads is not None and capacity is not None:
            detail = f"agent is at capacity ({active_leads}/{capacity})"
        super().__init__(agent_id, detail)


class InvalidStateError(LeadRoutingError):
    """Raised when a mutation is not allowed from the lead's current status."""


class AccessDeniedError(LeadRoutingError):
    """Raised when the acting user may not perform the operation."""


class StoreError(LeadRoutingError):
    """Raised when the data store fails (internal error)."""


__all__ = [
    "AccessDeniedError",
    "AgentAtCapacityError",
    "DuplicateLeadError",
    "InvalidAssigneeError",
    "InvalidInputError",
    "InvalidStateError",
    "LeadRoutingError",
    "NotFoundError",
    "StoreError",
]
