"""
Domain: sales agents and the users acting on leads.

Contract excerpts implemented here:
- Only ACTIVE agents with the SALES role may own leads.
- Experience tiers are ordinal: JUNIOR < MID < SENIOR.
- Capacity (maximum concurrent non-terminal leads) is a positive integer.
- Assignment rules are an optional policy. A missing rule-set and a missing
  field inside a rule-set both mean "no restriction on that axis".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, FrozenSet, Mapping, Optional
from uuid import UUID

from .vehicle import VehicleCategory


class AgentRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SALES = "SALES"


class AgentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ON_LEAVE = "ON_LEAVE"


class ExperienceTier(str, Enum):
    JUNIOR = "JUNIOR"
    MID = "MID"
    SENIOR = "SENIOR"

    @property
    def rank(self) -> int:
        return _TIER_ORDER[self]


_TIER_ORDER = {
    ExperienceTier.JUNIOR: 0,
    ExperienceTier.MID: 1,
    ExperienceTier.SENIOR: 2,
}


def _parse_price(name: str, value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name} must be numeric, got {value!r}") from None
    if price < 0:
        raise ValueError(f"{name} must not be negative")
    return price


@dataclass(frozen=True, slots=True)
class AssignmentRules:
    """
    Typed assignment policy for an agent.

    allowed_categories: empty means the agent may serve any category.
    min_price / max_price: each bound is independently optional.
    """

    allowed_categories: FrozenSet[VehicleCategory] = frozenset()
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")

    @property
    def restricts_categories(self) -> bool:
        return bool(self.allowed_categories)

    def permits_category(self, category: VehicleCategory) -> bool:
        return not self.allowed_categories or category in self.allowed_categories

    @staticmethod
    def from_payload(payload: Optional[Mapping[str, Any]]) -> Optional["AssignmentRules"]:
        """
        Parse the loosely-structured stored rule payload.

        Returns None when no payload is stored. Unknown keys are ignored;
        unknown category values raise ValueError.
        """

        if payload is None:
            return None
        categories = payload.get("allowed_categories") or []
        return AssignmentRules(
            allowed_categories=frozenset(VehicleCategory(str(c)) for c in categories),
            min_price=_parse_price("min_price", payload.get("min_price")),
            max_price=_parse_price("max_price", payload.get("max_price")),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "allowed_categories": sorted(c.value for c in self.allowed_categories),
            "min_price": str(self.min_price) if self.min_price is not None else None,
            "max_price": str(self.max_price) if self.max_price is not None else None,
        }


@dataclass(frozen=True, slots=True)
class Agent:
    """
    A user who may own leads.

    Managers and admins are stored in the same table; eligibility for lead
    ownership is decided by `is_eligible`.
    """

    agent_id: UUID
    name: str
    role: AgentRole
    tier: ExperienceTier
    capacity: int
    status: AgentStatus = AgentStatus.ACTIVE
    specialties: FrozenSet[VehicleCategory] = field(default_factory=frozenset)
    rules: Optional[AssignmentRules] = None
    email: Optional[str] = None

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError("capacity must be a positive integer")

    @property
    def effective_rules(self) -> AssignmentRules:
        """Rules with absence normalized to 'no restriction'."""
        return self.rules if self.rules is not None else AssignmentRules()

    def is_eligible(self) -> bool:
        """Check if this agent may own leads."""
        return self.role == AgentRole.SALES and self.status == AgentStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated user performing an operation (identity is external)."""

    actor_id: UUID
    role: AgentRole

    @property
    def is_supervisor(self) -> bool:
        return self.role in (AgentRole.ADMIN, AgentRole.MANAGER)
