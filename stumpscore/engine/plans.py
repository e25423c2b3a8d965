"""Plan catalog and premium period arithmetic.

Premium periods are calendar periods, not fixed durations: a monthly plan
bought on Jan 15 lapses on Feb 15. Month ends are clamped (Jan 31 + 1 month
is Feb 28/29).
"""

from datetime import datetime
from typing import Dict, Union

from dateutil.relativedelta import relativedelta

from stumpscore.errors import InvalidPlanError
from stumpscore.models.payment import Plan, PlanType

# Razorpay and friends take amounts in the smallest currency unit.
MINOR_UNITS_PER_MAJOR = 100

PAYMENT_PLANS: Dict[PlanType, Plan] = {
    PlanType.MONTHLY: Plan(
        id=PlanType.MONTHLY,
        name="Monthly",
        price=50,
        period="month",
        description="Monthly premium subscription",
    ),
    PlanType.ANNUAL: Plan(
        id=PlanType.ANNUAL,
        name="Annual",
        price=200,
        period="year",
        description="Annual premium subscription (Save 67%)",
    ),
}

_PERIODS = {
    PlanType.MONTHLY: relativedelta(months=1),
    PlanType.ANNUAL: relativedelta(years=1),
}


def parse_plan_type(value: Union[str, PlanType, None]) -> PlanType:
    """Parse a plan identifier, failing closed on anything unknown.

    Raises:
        InvalidPlanError: If value is not exactly a known plan id
    """
    if isinstance(value, PlanType):
        return value
    try:
        return PlanType(value)
    except ValueError:
        raise InvalidPlanError()


def get_plan(plan_type: Union[str, PlanType]) -> Plan:
    return PAYMENT_PLANS[parse_plan_type(plan_type)]


def to_minor_units(amount: Union[int, float]) -> int:
    """Convert a major-unit amount (rupees) to minor units (paise)."""
    return int(round(amount * MINOR_UNITS_PER_MAJOR))


def to_major_units(amount: int) -> float:
    return amount / MINOR_UNITS_PER_MAJOR


def premium_until_for(plan_type: Union[str, PlanType], now: datetime) -> datetime:
    """Compute when a plan bought at ``now`` lapses."""
    return now + _PERIODS[parse_plan_type(plan_type)]
