"""JWT token generation and validation for StumpScore."""

import os
import jwt
from datetime import datetime, timedelta
from typing import Dict
from dotenv import load_dotenv

from stumpscore.errors import AuthError

load_dotenv()

# JWT configuration
JWT_SECRET = os.getenv("JWT_SECRET", "stumpscore_jwt_secret")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_DAYS = int(os.getenv("JWT_EXPIRATION_DAYS", "30"))

NO_TOKEN_MESSAGE = "No authentication token, access denied"
VERIFICATION_FAILED_MESSAGE = "Token verification failed"


def create_access_token(user_id: str) -> str:
    """Create a signed access token for a user.

    Args:
        user_id: User ID to encode in token

    Returns:
        Encoded JWT token string, valid for JWT_EXPIRATION_DAYS
    """
    now = datetime.utcnow()
    payload = {
        "id": user_id,
        "exp": now + timedelta(days=JWT_EXPIRATION_DAYS),
        "iat": now,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict:
    """Decode and validate an access token.

    Raises:
        AuthError: If the token is expired, tampered with or malformed
    """
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError(VERIFICATION_FAILED_MESSAGE)
    except jwt.InvalidTokenError:
        raise AuthError(VERIFICATION_FAILED_MESSAGE)


def get_user_id_from_token(token: str) -> str:
    """Extract the user ID from a token.

    Raises:
        AuthError: If the token is invalid or carries no user id
    """
    payload = decode_access_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise AuthError(VERIFICATION_FAILED_MESSAGE)
    return user_id
