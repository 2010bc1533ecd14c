"""
Domain: Lead entity and its lifecycle.

Contract excerpts implemented here:
- A Lead represents a single inbound inquiry about one vehicle and is uniquely
  identified by lead_id (UUID).
- Lifecycle: NEW -> IN_SERVICE -> {CONVERTED | LOST}; any non-terminal status
  may move to ARCHIVED (soft delete). CONVERTED, LOST and ARCHIVED are terminal.
- Once an agent is assigned, the assignment method (SYSTEM or MANUAL) is always
  recorded. A lead without an agent has no assignment method.
- created_at and status_changed_at are UTC timestamps.
- Source metadata (origin IP, user agent) is audit-only.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Mapping, Optional, Tuple
from uuid import UUID

from .time import require_utc_timestamp


class LeadStatus(str, Enum):
    NEW = "NEW"
    IN_SERVICE = "IN_SERVICE"
    CONVERTED = "CONVERTED"
    LOST = "LOST"
    ARCHIVED = "ARCHIVED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "LeadStatus") -> bool:
        return target in _TRANSITIONS[self]


TERMINAL_STATUSES: FrozenSet[LeadStatus] = frozenset(
    {LeadStatus.CONVERTED, LeadStatus.LOST, LeadStatus.ARCHIVED}
)

_TRANSITIONS: Mapping[LeadStatus, FrozenSet[LeadStatus]] = {
    LeadStatus.NEW: frozenset({LeadStatus.IN_SERVICE, LeadStatus.ARCHIVED}),
    LeadStatus.IN_SERVICE: frozenset(
        {LeadStatus.CONVERTED, LeadStatus.LOST, LeadStatus.ARCHIVED}
    ),
    LeadStatus.CONVERTED: frozenset(),
    LeadStatus.LOST: frozenset(),
    LeadStatus.ARCHIVED: frozenset(),
}


class AssignmentMethod(str, Enum):
    SYSTEM = "SYSTEM"
    MANUAL = "MANUAL"


class DealType(str, Enum):
    CASH = "CASH"
    FINANCED = "FINANCED"
    DOWN_PAYMENT_INSTALLMENTS = "DOWN_PAYMENT_INSTALLMENTS"


class ContactChannel(str, Enum):
    WHATSAPP = "WHATSAPP"
    PHONE = "PHONE"
    EMAIL = "EMAIL"


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Pure domain entity for a Lead.

    Immutability:
    - The entity is frozen; lifecycle changes produce a new instance through
      `with_changes`, which re-runs validation.
    """

    lead_id: UUID
    name: str
    email: str
    phone: str
    vehicle_id: UUID
    status: LeadStatus
    created_at: datetime
    status_changed_at: datetime
    agent_id: Optional[UUID] = None
    assignment_method: Optional[AssignmentMethod] = None

    # Inquiry details captured by the storefront form
    deal_type: Optional[DealType] = None
    down_payment: Optional[Decimal] = None
    term_months: Optional[int] = None
    message: Optional[str] = None
    contact_preferences: Tuple[ContactChannel, ...] = (ContactChannel.WHATSAPP,)

    # Audit-only source metadata
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("status_changed_at", self.status_changed_at)
        if self.agent_id is not None and self.assignment_method is None:
            raise ValueError("assignment_method is required once an agent is assigned")
        if self.agent_id is None and self.assignment_method is not None:
            raise ValueError("assignment_method must be empty when no agent is assigned")
        if self.status == LeadStatus.IN_SERVICE and self.agent_id is None:
            raise ValueError("an IN_SERVICE lead must have an assigned agent")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_owned_by(self, agent_id: UUID) -> bool:
        return self.agent_id is not None and self.agent_id == agent_id

    def with_changes(
        self,
        *,
        changed_at: datetime,
        status: Optional[LeadStatus] = None,
        agent_id: Optional[UUID] = None,
        assignment_method: Optional[AssignmentMethod] = None,
    ) -> "Lead":
        """
        Return a new Lead with the given status and/or assignment applied.

        status_changed_at only moves when the status actually changes.
        """

        updated = self
        if agent_id is not None:
            if assignment_method is None:
                raise ValueError("assignment_method is required when assigning an agent")
            updated = replace(updated, agent_id=agent_id, assignment_method=assignment_method)
        if status is not None and status != self.status:
            updated = replace(updated, status=status, status_changed_at=changed_at)
        return updated
