"""Google ID token verification for federated sign-in."""

import logging
import os
from typing import Optional, Dict
from google.oauth2 import id_token
from google.auth.transport import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_CLIENT_ID = os.getenv("GOOGLE_OAUTH_CLIENT_ID")
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


def verify_google_token(id_token_str: str) -> Optional[Dict]:
    """Verify a Google ID token and extract user information.

    Args:
        id_token_str: Google ID token string from the sign-in popup

    Returns:
        Dictionary with user info (id, email, name, picture), or None if invalid
    """
    try:
        idinfo = id_token.verify_oauth2_token(
            id_token_str,
            requests.Request(),
            GOOGLE_OAUTH_CLIENT_ID
        )
    except ValueError as e:
        logger.warning(f"Rejected Google ID token: {str(e)}")
        return None

    if idinfo.get("iss") not in GOOGLE_ISSUERS:
        return None
    if not idinfo.get("email"):
        return None

    return {
        "id": idinfo["sub"],
        "email": idinfo["email"],
        "name": idinfo.get("name") or idinfo["email"].split("@")[0],
        "picture": idinfo.get("picture"),
    }
