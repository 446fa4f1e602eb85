from typing import Dict

# Plan limits configuration
# -1 means unlimited
PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "free": {
        "max_chains": 3,
    },
    "pro": {
        "max_chains": 20,
    },
    "enterprise": {
        "max_chains": -1,
    },
}

PLANS = tuple(PLAN_LIMITS.keys())


def get_plan_limit(plan_tier: str, limit_type: str) -> int:
    """Get the limit value for a specific plan and limit type."""
    return PLAN_LIMITS.get(plan_tier, PLAN_LIMITS["free"]).get(limit_type, 0)


def is_unlimited(limit: int) -> bool:
    return limit == -1
