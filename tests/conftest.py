"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules, and
provides small factories for building routing scenarios on the in-process
store.
"""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional
from uuid import UUID, uuid4

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.agent import (  # noqa: E402
    Actor,
    Agent,
    AgentRole,
    AgentStatus,
    AssignmentRules,
    ExperienceTier,
)
from domain.lead import AssignmentMethod, Lead, LeadStatus  # noqa: E402
from domain.vehicle import Vehicle, VehicleCategory  # noqa: E402
from repositories.memory_store import InMemoryLeadStore  # noqa: E402

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


def make_vehicle(
    category: VehicleCategory = VehicleCategory.SEDAN,
    price: str = "40000",
    vehicle_id: Optional[UUID] = None,
) -> Vehicle:
    return Vehicle(
        vehicle_id=vehicle_id or uuid4(),
        category=category,
        sale_price=Decimal(price),
        make="Toyota",
        model="Corolla",
        model_year=2022,
    )


def make_agent(
    name: str = "Ana Lima",
    tier: ExperienceTier = ExperienceTier.JUNIOR,
    capacity: int = 5,
    specialties: Iterable[VehicleCategory] = (VehicleCategory.SEDAN,),
    rules: Optional[AssignmentRules] = None,
    role: AgentRole = AgentRole.SALES,
    status: AgentStatus = AgentStatus.ACTIVE,
    agent_id: Optional[UUID] = None,
) -> Agent:
    return Agent(
        agent_id=agent_id or uuid4(),
        name=name,
        role=role,
        tier=tier,
        capacity=capacity,
        status=status,
        specialties=frozenset(specialties),
        rules=rules,
    )


def make_lead(
    vehicle_id: UUID,
    agent_id: Optional[UUID] = None,
    status: LeadStatus = LeadStatus.NEW,
    created_at: datetime = NOW,
    status_changed_at: Optional[datetime] = None,
    email: Optional[str] = None,
    phone: str = "11987654321",
) -> Lead:
    return Lead(
        lead_id=uuid4(),
        name="Customer",
        email=email or f"{uuid4().hex[:8]}@example.com",
        phone=phone,
        vehicle_id=vehicle_id,
        status=status,
        created_at=created_at,
        status_changed_at=status_changed_at or created_at,
        agent_id=agent_id,
        assignment_method=AssignmentMethod.MANUAL if agent_id else None,
    )


def give_workload(
    store: InMemoryLeadStore,
    agent: Agent,
    vehicle: Vehicle,
    active: int = 0,
    converted: int = 0,
    lost: int = 0,
) -> None:
    """Seed leads for an agent: `active` IN_SERVICE plus closed ones this month."""
    for _ in range(active):
        store.create_lead(make_lead(vehicle.vehicle_id, agent.agent_id, LeadStatus.IN_SERVICE))
    for _ in range(converted):
        store.create_lead(make_lead(vehicle.vehicle_id, agent.agent_id, LeadStatus.CONVERTED))
    for _ in range(lost):
        store.create_lead(make_lead(vehicle.vehicle_id, agent.agent_id, LeadStatus.LOST))


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryLeadStore:
    return InMemoryLeadStore()


@pytest.fixture
def manager() -> Actor:
    return Actor(actor_id=uuid4(), role=AgentRole.MANAGER)


@pytest.fixture
def last_month() -> datetime:
    return NOW.replace(day=1) - timedelta(days=3)
