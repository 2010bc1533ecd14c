"""
Routing settings.

Reads deployment overrides for the matching policy from the environment
(loaded from the project's .env file, like the Supabase credentials).
Scoring weights are fixed constants; only the policy knobs below are
configurable.

Environment variables (all optional):
- ROUTING_AUTO_ASSIGN_THRESHOLD: minimum composite score to auto-assign (default 80)
- ROUTING_RECOMMENDATION_LIMIT: default number of recommended agents (default 3)
- ROUTING_DUPLICATE_WINDOW_HOURS: idempotency window for intake (default 24)
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from domain.scoring import (
    DEFAULT_AUTO_ASSIGN_THRESHOLD,
    DEFAULT_DUPLICATE_WINDOW_HOURS,
    DEFAULT_RECOMMENDATION_LIMIT,
    MatchingPolicy,
)

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_matching_policy() -> MatchingPolicy:
    """
    Build the MatchingPolicy for this deployment.

    Raises:
        ValueError: If an override is not an integer or is out of range.
    """

    return MatchingPolicy(
        auto_assign_threshold=_int_from_env(
            "ROUTING_AUTO_ASSIGN_THRESHOLD", DEFAULT_AUTO_ASSIGN_THRESHOLD
        ),
        recommendation_limit=_int_from_env(
            "ROUTING_RECOMMENDATION_LIMIT", DEFAULT_RECOMMENDATION_LIMIT
        ),
        duplicate_window_hours=_int_from_env(
            "ROUTING_DUPLICATE_WINDOW_HOURS", DEFAULT_DUPLICATE_WINDOW_HOURS
        ),
    )


__all__ = ["load_matching_policy"]
