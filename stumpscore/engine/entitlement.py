"""Entitlement evaluation for StumpScore.

Premium access is derived, never stored: a user is premium when the stored
flag is set and ``premium_until`` is still in the future. Evaluate it at
every gating decision so a lapse is caught without a server round trip.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from dateutil import parser

from stumpscore.models.user import User

logger = logging.getLogger(__name__)

UserLike = Union[User, Mapping[str, Any]]

# Marks a premium_until that could not be read.
_UNREADABLE = object()


def _as_naive_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Normalize a timestamp (datetime or ISO string) to naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = parser.isoparse(value)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _premium_until(value: Any):
    """Like _as_naive_utc, but a corrupt cached value yields _UNREADABLE."""
    try:
        return _as_naive_utc(value)
    except (ValueError, TypeError, OverflowError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable premiumUntil {value!r}: {type(e).__name__}: {str(e)}")
        return _UNREADABLE


def _fields(user: UserLike) -> tuple:
    """Return (is_premium, premium_until) from a model or a cached JSON dict."""
    if isinstance(user, User):
        return user.is_premium, user.premium_until
    is_premium = user.get("isPremium", user.get("is_premium", False))
    premium_until = user.get("premiumUntil", user.get("premium_until"))
    # Cached dicts come from storage; only a real boolean True counts.
    return is_premium is True, premium_until


def is_premium(user: Optional[UserLike], now: Optional[datetime] = None) -> bool:
    """Whether ``user`` has premium access at ``now``.

    Args:
        user: User model or cached user dict (camelCase or snake_case keys)
        now: Evaluation time; defaults to the current UTC time

    Returns:
        True iff the stored flag is set and the entitlement has not lapsed.
        An unreadable ``premium_until`` counts as lapsed.
    """
    if user is None:
        return False
    flag, premium_until = _fields(user)
    if not flag:
        return False
    until = _premium_until(premium_until)
    if until is _UNREADABLE:
        return False
    if until is None:
        return True
    current = _as_naive_utc(now) if now is not None else datetime.utcnow()
    return until > current


def premium_days_remaining(user: Optional[UserLike], now: Optional[datetime] = None) -> int:
    """Whole days (rounded up) left on the entitlement, 0 when not premium."""
    if not is_premium(user, now):
        return 0
    _, premium_until = _fields(user)
    until = _as_naive_utc(premium_until)
    if until is None:
        return 0
    current = _as_naive_utc(now) if now is not None else datetime.utcnow()
    return math.ceil((until - current).total_seconds() / 86400)
