"""
FastAPI dependencies.

Services are built once per process on top of the Supabase store. Tests swap
them through `app.dependency_overrides`.

The acting user is resolved from headers set by the upstream auth gateway:
- X-Actor-Id: the user's UUID
- X-Actor-Role: ADMIN, MANAGER or SALES
"""

from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException

from domain.agent import Actor, AgentRole
from domain.scoring import MatchingPolicy
from repositories.store import LeadStore
from repositories.supabase_store import SupabaseLeadStore
from services.lead_service import LeadService
from services.matching_service import MatchingService
from services.settings import load_matching_policy


@lru_cache(maxsize=1)
def get_store() -> LeadStore:
    return SupabaseLeadStore()


@lru_cache(maxsize=1)
def get_policy() -> MatchingPolicy:
    return load_matching_policy()


def get_matching_service(
    store: LeadStore = Depends(get_store),
    policy: MatchingPolicy = Depends(get_policy),
) -> MatchingService:
    return MatchingService(store, policy)


def get_lead_service(
    matching: MatchingService = Depends(get_matching_service),
) -> LeadService:
    return LeadService(matching.store, matching=matching)


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Resolve the authenticated user; 401 when the gateway headers are missing or malformed."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing actor identity headers")
    try:
        return Actor(actor_id=UUID(x_actor_id), role=AgentRole(x_actor_role.upper()))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid actor identity headers")
