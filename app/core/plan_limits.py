"""
Plan-based usage limits configuration.

Single source of truth for daily search quotas per plan and for the
per-user-type message caps.
"""
from typing import Dict, List

from app.core.config import (
    FREE_PLAN_SEARCHES_PER_DAY,
    FREE_PLAN_DEEP_SEARCHES_PER_DAY,
    PRO_PLAN_SEARCHES_PER_DAY,
    PRO_PLAN_DEEP_SEARCHES_PER_DAY,
    GUEST_MAX_MESSAGES_PER_DAY,
    REGULAR_MAX_MESSAGES_PER_DAY,
)

# Metered actions
SEARCH = "search"
DEEP_SEARCH = "deepSearch"
SUPPORTED_ACTIONS: List[str] = [SEARCH, DEEP_SEARCH]

# Client-facing search modes -> metered actions
SEARCH_MODE_TO_ACTION: Dict[str, str] = {
    "search": SEARCH,
    "deep-search": DEEP_SEARCH,
}

# Plan limits (per UTC day)
PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "free": {
        "searchesPerDay": FREE_PLAN_SEARCHES_PER_DAY,
        "deepSearchesPerDay": FREE_PLAN_DEEP_SEARCHES_PER_DAY,
    },
    "pro": {
        "searchesPerDay": PRO_PLAN_SEARCHES_PER_DAY,
        "deepSearchesPerDay": PRO_PLAN_DEEP_SEARCHES_PER_DAY,
    },
}

# Guests have no durable identity; hardcoded
GUEST_LIMITS: Dict[str, int] = {
    "searchesPerDay": 1,
    "deepSearchesPerDay": 0,
}

# Rolling 24h message caps per user type
MAX_MESSAGES_PER_DAY: Dict[str, int] = {
    "guest": GUEST_MAX_MESSAGES_PER_DAY,
    "regular": REGULAR_MAX_MESSAGES_PER_DAY,
}


def action_for_search_mode(search_mode: str) -> str:
    """Map a client search mode to the metered action ("deep-search" -> deepSearch, else search)."""
    return SEARCH_MODE_TO_ACTION.get(search_mode, SEARCH)


def get_plan_limits(plan_type: str) -> Dict[str, int]:
    """
    Get the daily limits for a plan.

    Args:
        plan_type: Plan type (free, pro). Unknown or empty plans resolve to free.

    Returns:
        Dict with searchesPerDay and deepSearchesPerDay
    """
    plan_type = plan_type.lower() if plan_type else "free"
    return dict(PLAN_LIMITS.get(plan_type, PLAN_LIMITS["free"]))


def limit_key_for_action(action: str) -> str:
    """Limit dict key for an action."""
    return "deepSearchesPerDay" if action == DEEP_SEARCH else "searchesPerDay"


def get_action_limit(plan_type: str, action: str) -> int:
    """Get the daily limit for one action in a given plan."""
    return get_plan_limits(plan_type)[limit_key_for_action(action)]
