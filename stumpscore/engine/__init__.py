"""Pure decision logic for StumpScore (no I/O)."""

from stumpscore.engine.entitlement import is_premium, premium_days_remaining
from stumpscore.engine.plans import PAYMENT_PLANS, get_plan, parse_plan_type, premium_until_for
from stumpscore.engine.route_guard import RouteClass, GuardDecision, guard

__all__ = [
    "is_premium",
    "premium_days_remaining",
    "PAYMENT_PLANS",
    "get_plan",
    "parse_plan_type",
    "premium_until_for",
    "RouteClass",
    "GuardDecision",
    "guard",
]
