"""Client-side authentication state for StumpScore.

The controller talks to the API, writes the session store, and exposes
who is signed in. Failures surface as taxonomy errors with user-safe
messages; the last one is kept in ``last_error`` for display.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from stumpscore.client.api_client import ApiClient
from stumpscore.client.auth_provider import AuthProvider, UnavailableProvider
from stumpscore.client.payment_orchestrator import PaymentOrchestrator
from stumpscore.client.session_store import SessionStore
from stumpscore.engine.entitlement import is_premium
from stumpscore.engine.route_guard import GuardDecision, RouteClass, guard
from stumpscore.errors import AuthError, ServerError, StumpScoreError
from stumpscore.models.payment import PaymentProof, PlanType

logger = logging.getLogger(__name__)

# Fields of an API user payload kept in the cached user.
_CACHED_FIELDS = ("name", "email", "isPremium", "premiumUntil", "profilePicture", "googleId")


def cached_user_from(data: Dict) -> Dict:
    """Project an API user payload onto the cached-user shape."""
    user = {"id": data.get("_id") or data.get("id")}
    for field in _CACHED_FIELDS:
        if field in data:
            user[field] = data[field]
    user.setdefault("isPremium", False)
    user.setdefault("premiumUntil", None)
    return user


class AuthController:
    def __init__(
        self,
        api: ApiClient,
        session_store: SessionStore,
        auth_provider: Optional[AuthProvider] = None,
        payments: Optional[PaymentOrchestrator] = None,
        on_logout: Optional[Callable[[str], None]] = None,
    ):
        """Initialize the controller.

        Args:
            api: API client
            session_store: Where the session lives
            auth_provider: Google sign-in capability (unavailable if None)
            payments: Payment orchestrator used for premium upgrades
            on_logout: Optional best-effort server notification on logout
        """
        self.api = api
        self.session_store = session_store
        self.auth_provider = auth_provider or UnavailableProvider()
        self.payments = payments or PaymentOrchestrator(api, session_store)
        self.on_logout = on_logout
        self.last_error: Optional[StumpScoreError] = None

    @property
    def is_authenticated(self) -> bool:
        return self.session_store.token is not None

    @property
    def current_user(self) -> Optional[Dict]:
        return self.session_store.user

    def is_premium(self, now: Optional[datetime] = None) -> bool:
        """Derived entitlement, evaluated fresh on every call."""
        return is_premium(self.current_user, now)

    def check_route(self, route_class: RouteClass, path: str, now: Optional[datetime] = None) -> GuardDecision:
        return guard(route_class, path, self.is_authenticated, self.current_user, now)

    def _run(self, action: str, fn: Callable):
        """Run ``fn``, recording failures in last_error.

        An AuthError while signed in means the token is no longer accepted,
        so the local session is dropped.
        """
        try:
            result = fn()
        except AuthError as e:
            if self.is_authenticated and action not in ("login", "signup", "google sign-in"):
                logger.info(f"{action}: session rejected by server, signing out locally")
                self.session_store.clear()
            self.last_error = e
            raise
        except StumpScoreError as e:
            self.last_error = e
            raise
        except Exception as e:
            logger.exception(f"{action} failed: {type(e).__name__}: {str(e)}")
            self.last_error = ServerError(f"{action.capitalize()} failed")
            raise self.last_error from e
        self.last_error = None
        return result

    def _start_session(self, data: Dict) -> Dict:
        token = data.get("token")
        if not token:
            raise ServerError("Sign-in response did not include a token")
        user = cached_user_from(data)
        self.session_store.save(token, user)
        return {"user": user, "token": token}

    def login(self, email: str, password: str) -> Dict:
        """Sign in with email and password.

        Returns:
            {"user": cached user, "token": token}
        """
        return self._run("login", lambda: self._start_session(self.api.login(email, password)))

    def signup(self, name: str, email: str, password: str) -> Dict:
        return self._run("signup", lambda: self._start_session(self.api.register(name, email, password)))

    def login_with_google(self) -> Dict:
        """Sign in through the federated provider.

        Raises:
            ProviderUnavailableError: Provider cannot be used
            SignInCancelled: User dismissed the prompt
        """
        def _sign_in():
            id_token = self.auth_provider.sign_in()
            return self._start_session(self.api.google_sign_in(id_token))

        return self._run("google sign-in", _sign_in)

    def logout(self) -> None:
        """Sign out locally. Always succeeds, even if the server call fails."""
        token = self.session_store.token
        user_id = (self.session_store.user or {}).get("id")
        try:
            if self.on_logout and token:
                self.on_logout(token)
        except Exception as e:
            logger.warning(f"Logout notification failed: {type(e).__name__}: {str(e)}")
        finally:
            if user_id:
                self.payments.release_user(user_id)
            self.session_store.clear()
            self.payments.cache.clear()
            self.last_error = None

    def refresh_user(self) -> Optional[Dict]:
        """Re-read the profile from the server into the cached user."""
        token = self.session_store.token
        if not token:
            return None

        def _refresh():
            user = cached_user_from(self.api.get_profile(token))
            self.session_store.update_user(user, expected_token=token)
            return self.session_store.user

        return self._run("profile refresh", _refresh)

    def upgrade_to_premium(self, payment_proof: Union[PaymentProof, Dict], plan: Union[str, PlanType], amount: int) -> Dict:
        """Verify a completed payment, then refresh the cached user.

        Args:
            payment_proof: Gateway payment id, order id and signature
            plan: Plan the order was created for
            amount: Order amount in minor units

        Returns:
            {"user": refreshed cached user}
        """
        if isinstance(payment_proof, dict):
            payment_proof = PaymentProof(**payment_proof)

        def _upgrade():
            self.payments.verify(
                payment_id=payment_proof.razorpay_payment_id,
                order=payment_proof.razorpay_order_id,
                signature=payment_proof.razorpay_signature,
                plan=plan,
                amount=amount,
            )
            return {"user": self.refresh_user()}

        return self._run("premium upgrade", _upgrade)
