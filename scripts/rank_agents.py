#!/usr/bin/env python3
"""
Agent Ranking Script

Prints the ranked sales agents for a vehicle, with the per-factor breakdown,
and the auto-assignment decision the intake would take right now. Read-only.

Usage:
    python scripts/rank_agents.py <vehicle_id>
    python scripts/rank_agents.py <vehicle_id> --top 3
    python scripts/rank_agents.py <vehicle_id> --reasons
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List
from uuid import UUID

# Add parent directory to path so we can import from services
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import LeadRoutingError
from domain.scoring import FACTOR_NAMES, ScoreResult
from repositories.supabase_store import SupabaseLeadStore
from services.matching_service import MatchingService
from services.settings import load_matching_policy


def print_ranking(results: List[ScoreResult], show_reasons: bool) -> None:
    header = f"{'#':>2}  {'Agent':<24} {'Tier':<7} {'Score':>5}  " + " ".join(
        f"{name[:5]:>5}" for name in FACTOR_NAMES
    )
    print(header)
    print("-" * len(header))
    for position, result in enumerate(results, start=1):
        factors = " ".join(f"{result.breakdown[name]:>5}" for name in FACTOR_NAMES)
        print(
            f"{position:>2}  {result.agent.name[:24]:<24} {result.agent.tier.value:<7} "
            f"{result.score:>5}  {factors}"
        )
        if show_reasons:
            for reason in result.reasons:
                print(f"      - {reason}")


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Rank sales agents for a vehicle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full ranking
  python scripts/rank_agents.py 6f1c1a52-0000-4000-8000-000000000001

  # Top 3 with justifications
  python scripts/rank_agents.py 6f1c1a52-0000-4000-8000-000000000001 --top 3 --reasons
        """
    )
    parser.add_argument("vehicle_id", type=UUID, help="Vehicle UUID")
    parser.add_argument(
        "--top",
        type=int,
        help="Only show the N best agents"
    )
    parser.add_argument(
        "--reasons",
        action="store_true",
        help="Print the justification for every factor"
    )
    args = parser.parse_args()

    try:
        matching = MatchingService(SupabaseLeadStore(), load_matching_policy())
        vehicle = matching.get_vehicle(args.vehicle_id)
        ranked = matching.rank_vehicle(vehicle)
        shown = ranked if args.top is None else ranked[: max(args.top, 0)]

        print(f"Vehicle: {vehicle.label} ({vehicle.category.value}, {vehicle.sale_price:,.2f})")
        print()
        if shown:
            print_ranking(shown, args.reasons)
        else:
            print("No eligible agent with free capacity.")

        decision = matching.decide(ranked)
        print()
        print(f"Decision: {decision.outcome.value} (threshold {matching.policy.auto_assign_threshold})")
        if decision.should_assign:
            print(f"  -> {decision.top.agent.name} ({decision.agent_id})")
        return 0

    except LeadRoutingError as e:
        print(f"\n[ERROR] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
