"""Federated identity providers for Google sign-in.

A provider's only job is to produce a Google ID token that the API can
verify. When Google cannot be used, ``UnavailableProvider`` says so with a
typed error; no provider ever fabricates an identity.
"""

import logging
import os
from typing import Callable, Optional

from dotenv import load_dotenv
from google_auth_oauthlib.flow import InstalledAppFlow

from stumpscore.errors import ProviderUnavailableError, SignInCancelled

load_dotenv()

logger = logging.getLogger(__name__)

SCOPES = ["openid", "https://www.googleapis.com/auth/userinfo.email", "https://www.googleapis.com/auth/userinfo.profile"]


class AuthProvider:
    """Capability interface: obtain a Google ID token from the user."""

    name = "base"

    def sign_in(self) -> str:
        """Prompt the user and return a Google ID token.

        Raises:
            SignInCancelled: User dismissed the prompt
            ProviderUnavailableError: Provider failed or is not configured
        """
        raise NotImplementedError


class UnavailableProvider(AuthProvider):
    """Used when Google sign-in is not configured or known to be down."""

    name = "unavailable"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason

    def sign_in(self) -> str:
        raise ProviderUnavailableError(self.reason)


class GoogleIdentityProvider(AuthProvider):
    """Google sign-in through a consent popup.

    ``popup`` returns an ID token, or None when the user cancels. The default
    popup runs Google's installed-app flow in the local browser.
    """

    name = "google"

    def __init__(self, popup: Optional[Callable[[], Optional[str]]] = None, client_secrets_path: Optional[str] = None):
        self.client_secrets_path = client_secrets_path or os.getenv("GOOGLE_OAUTH_CLIENT_SECRETS_PATH", "client_secret.json")
        self.popup = popup or self._installed_app_popup

    def _installed_app_popup(self) -> Optional[str]:
        if not os.path.exists(self.client_secrets_path):
            raise ProviderUnavailableError("Google sign-in is not configured")
        flow = InstalledAppFlow.from_client_secrets_file(self.client_secrets_path, SCOPES)
        creds = flow.run_local_server(port=0)
        return getattr(creds, "id_token", None)

    def sign_in(self) -> str:
        try:
            id_token = self.popup()
        except (ProviderUnavailableError, SignInCancelled):
            raise
        except Exception as e:
            logger.warning(f"Google sign-in popup failed: {type(e).__name__}: {str(e)}")
            raise ProviderUnavailableError() from e
        if not id_token:
            raise SignInCancelled()
        return id_token


def provider_from_env() -> AuthProvider:
    """Pick the provider for this environment."""
    if not os.getenv("GOOGLE_OAUTH_CLIENT_ID"):
        return UnavailableProvider("Google sign-in is not configured")
    return GoogleIdentityProvider()
