"""
Domain: Lead activity (audit trail).

Every assignment and status change appends exactly one activity, inside the
same atomic unit as the lead update. SYSTEM, STATUS and ASSIGNMENT entries are
written by the engine only; the remaining kinds are user notes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


class ActivityKind(str, Enum):
    SYSTEM = "SYSTEM"
    STATUS = "STATUS"
    ASSIGNMENT = "ASSIGNMENT"
    NOTE = "NOTE"
    CALL = "CALL"
    EMAIL = "EMAIL"
    MESSAGE = "MESSAGE"
    VISIT = "VISIT"

    @property
    def is_reserved(self) -> bool:
        return self in (ActivityKind.SYSTEM, ActivityKind.STATUS, ActivityKind.ASSIGNMENT)


@dataclass(frozen=True, slots=True)
class ActivityDraft:
    """An activity that has not been persisted yet."""

    kind: ActivityKind
    description: str
    actor_id: Optional[UUID] = None


@dataclass(frozen=True, slots=True)
class Activity:
    activity_id: UUID
    lead_id: UUID
    kind: ActivityKind
    description: str
    created_at: datetime
    actor_id: Optional[UUID] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
