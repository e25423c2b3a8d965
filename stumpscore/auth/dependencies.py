"""FastAPI dependencies for authentication and premium gating."""

from datetime import datetime
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from stumpscore.database.database import get_db
from stumpscore.database.user_repository import UserRepository
from stumpscore.auth.jwt import get_user_id_from_token, NO_TOKEN_MESSAGE
from stumpscore.engine.entitlement import is_premium
from stumpscore.errors import AuthError, PremiumRequiredError
from stumpscore.models.user import User

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)

USER_GONE_MESSAGE = "Token is valid, but user no longer exists"


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from the bearer token.

    Raises:
        AuthError: "no token" when the header is missing, "verification
            failed" when the token is bad or expired
    """
    if not credentials or not credentials.credentials:
        raise AuthError(NO_TOKEN_MESSAGE)

    user_id = get_user_id_from_token(credentials.credentials)

    user = UserRepository(db).get(user_id)
    if not user:
        raise AuthError(USER_GONE_MESSAGE)
    return user


def require_premium(user: User = Depends(get_current_user)) -> User:
    """Allow only users whose derived entitlement is current.

    The stored flag is left untouched on lapse; entitlement is always derived.
    """
    if not is_premium(user, datetime.utcnow()):
        if user.is_premium:
            raise PremiumRequiredError("Your premium subscription has expired", expired=True)
        raise PremiumRequiredError()
    return user
