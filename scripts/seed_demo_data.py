#!/usr/bin/env python3
"""
Seed demo vehicles and sales agents.

Creates (or updates) a small fixed catalogue so the storefront, dashboard and
ranking CLI have something to work with. Safe to run repeatedly: rows are
upserted by their fixed ids.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --dry-run
"""

from __future__ import annotations

import argparse
import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Tuple
from uuid import UUID

# Add parent directory to path so we can import from repositories
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.agent import Agent, AgentRole, AssignmentRules, ExperienceTier
from domain.vehicle import Vehicle, VehicleCategory
from repositories.supabase_store import SupabaseLeadStore


def demo_catalogue() -> Tuple[List[Vehicle], List[Agent]]:
    vehicles = [
        Vehicle(
            vehicle_id=UUID("6f1c1a52-0000-4000-8000-000000000001"),
            category=VehicleCategory.SEDAN,
            sale_price=Decimal("40000.00"),
            make="Toyota",
            model="Corolla",
            model_year=2022,
        ),
        Vehicle(
            vehicle_id=UUID("6f1c1a52-0000-4000-8000-000000000002"),
            category=VehicleCategory.SUV,
            sale_price=Decimal("85000.00"),
            make="Jeep",
            model="Compass",
            model_year=2023,
        ),
        Vehicle(
            vehicle_id=UUID("6f1c1a52-0000-4000-8000-000000000003"),
            category=VehicleCategory.SPORTS,
            sale_price=Decimal("150000.00"),
            make="Porsche",
            model="718 Cayman",
            model_year=2021,
        ),
    ]

    agents = [
        Agent(
            agent_id=UUID("a9e0b7d4-0000-4000-8000-000000000001"),
            name="Ana Lima",
            email="ana.lima@example.com",
            role=AgentRole.SALES,
            tier=ExperienceTier.JUNIOR,
            capacity=5,
            specialties=frozenset({VehicleCategory.SEDAN}),
        ),
        Agent(
            agent_id=UUID("a9e0b7d4-0000-4000-8000-000000000002"),
            name="Bruno Costa",
            email="bruno.costa@example.com",
            role=AgentRole.SALES,
            tier=ExperienceTier.MID,
            capacity=8,
            specialties=frozenset({VehicleCategory.SUV}),
            rules=AssignmentRules(
                allowed_categories=frozenset({VehicleCategory.SUV, VehicleCategory.SEDAN}),
                max_price=Decimal("120000"),
            ),
        ),
        Agent(
            agent_id=UUID("a9e0b7d4-0000-4000-8000-000000000003"),
            name="Carla Mendes",
            email="carla.mendes@example.com",
            role=AgentRole.SALES,
            tier=ExperienceTier.SENIOR,
            capacity=10,
            specialties=frozenset({VehicleCategory.SPORTS, VehicleCategory.COUPE}),
            rules=AssignmentRules(min_price=Decimal("60000")),
        ),
        Agent(
            agent_id=UUID("a9e0b7d4-0000-4000-8000-000000000004"),
            name="Demo Manager",
            email="manager@example.com",
            role=AgentRole.MANAGER,
            tier=ExperienceTier.SENIOR,
            capacity=1,
        ),
    ]
    return vehicles, agents


def seed(dry_run: bool = False) -> None:
    vehicles, agents = demo_catalogue()
    store = None if dry_run else SupabaseLeadStore()

    for vehicle in vehicles:
        if store is not None:
            store.add_vehicle(vehicle)
        print(f"  vehicle {vehicle.vehicle_id}  {vehicle.label:<28} {vehicle.category.value:<7} {vehicle.sale_price:>12,.2f}")

    for agent in agents:
        if store is not None:
            store.add_agent(agent)
        print(f"  agent   {agent.agent_id}  {agent.name:<28} {agent.role.value:<7} {agent.tier.value}")


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Seed demo vehicles and sales agents")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the catalogue without writing to Supabase"
    )
    args = parser.parse_args()

    try:
        print("Seeding demo data..." if not args.dry_run else "Demo data (dry run):")
        seed(dry_run=args.dry_run)
        print("[SUCCESS] Done")
        return 0
    except Exception as e:
        print(f"\n[ERROR] Seeding failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
