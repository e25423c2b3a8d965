"""Navigation guard for protected and premium-only views.

Stateless: the decision is recomputed on every navigation, so a lapsed
subscription is caught on the next premium route access.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from stumpscore.engine.entitlement import UserLike, is_premium

LOGIN_PATH = "/login"
PREMIUM_PATH = "/premium"


class RouteClass(str, Enum):
    """How a view is gated."""
    PUBLIC = "public"
    PROTECTED = "protected"
    PREMIUM = "premium"


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of a navigation check."""
    allowed: bool
    redirect_to: Optional[str] = None
    # Intended destination, handed to the login page for post-login return.
    next_path: Optional[str] = None


ALLOW = GuardDecision(allowed=True)


def guard(
    route_class: RouteClass,
    path: str,
    is_authenticated: bool,
    user: Optional[UserLike],
    now: Optional[datetime] = None,
) -> GuardDecision:
    """Decide whether navigation to ``path`` may proceed.

    Truth table:
        public                          -> allow
        protected/premium, logged out   -> /login (next = path)
        premium, logged in, no premium  -> /premium
        otherwise                       -> allow
    """
    route_class = RouteClass(route_class)
    if route_class == RouteClass.PUBLIC:
        return ALLOW
    if not is_authenticated:
        return GuardDecision(allowed=False, redirect_to=LOGIN_PATH, next_path=path)
    if route_class == RouteClass.PREMIUM and not is_premium(user, now):
        return GuardDecision(allowed=False, redirect_to=PREMIUM_PATH)
    return ALLOW
