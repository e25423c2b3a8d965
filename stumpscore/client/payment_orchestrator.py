"""Client-side payment flow: create order -> collect payment -> verify.

Each attempt is a small state machine:

    IDLE -> ORDER_CREATED -> AWAITING_USER_PAYMENT -> VERIFYING -> SUCCEEDED
                  \\                   \\                  \\-> FAILED
                   \\-------------------\\-> FAILED

Terminal states are final. A failed attempt is retried by starting a new
attempt at order creation, never by re-verifying.

The legacy card form and the hosted checkout are two entry points into the
same machine.
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from stumpscore.client.api_client import ApiClient
from stumpscore.client.cache import TTLCache
from stumpscore.client.session_store import SessionStore
from stumpscore.engine.plans import get_plan
from stumpscore.engine.validation import validate_card_details
from stumpscore.errors import (
    AuthError,
    PaymentInProgressError,
    PaymentStateError,
    ServerError,
    StumpScoreError,
    ValidationError,
    VerificationError,
)
from stumpscore.models.payment import (
    OrderRef,
    PaymentProof,
    PaymentState,
    Plan,
    PlanType,
    TERMINAL_PAYMENT_STATES,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_CACHE_KEY = "subscription"


class UserLockRegistry:
    """One in-flight payment attempt per user."""

    def __init__(self):
        self._held: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    def acquire(self, user_id: str, owner: Optional[str] = None) -> None:
        with self._lock:
            if user_id in self._held:
                raise PaymentInProgressError()
            self._held[user_id] = owner

    def release(self, user_id: str, owner: Optional[str] = None) -> None:
        """Release the user's lock; with ``owner``, only if that owner holds it."""
        with self._lock:
            if owner is not None and self._held.get(user_id, owner) != owner:
                return
            self._held.pop(user_id, None)

    def is_held(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._held


class PaymentAttempt:
    """State of one payment attempt."""

    def __init__(self, user_id: str, plan: Plan):
        self.id = str(uuid.uuid4())
        self.user_id = user_id
        self.plan = plan
        self.state = PaymentState.IDLE
        self.transitions: List[PaymentState] = [PaymentState.IDLE]
        self.order: Optional[OrderRef] = None
        self.proof: Optional[PaymentProof] = None
        self.error: Optional[StumpScoreError] = None
        self.user: Optional[Dict] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_PAYMENT_STATES

    def transition(self, new_state: PaymentState, allowed_from) -> None:
        if self.state not in allowed_from:
            raise PaymentStateError(
                f"Cannot move payment from {self.state.value} to {new_state.value}"
            )
        self.state = new_state
        self.transitions.append(new_state)


class CheckoutGateway:
    """Hosted checkout, invoked out-of-band.

    ``open`` shows the gateway UI and returns immediately; the gateway later
    calls exactly one of ``on_success(PaymentProof)`` or ``on_failure(dict)``.
    """

    def open(
        self,
        order: OrderRef,
        plan: Plan,
        prefill: Dict,
        on_success: Callable[[PaymentProof], None],
        on_failure: Callable[[Dict], None],
    ) -> None:
        raise NotImplementedError


class PaymentOrchestrator:
    def __init__(
        self,
        api: ApiClient,
        session_store: SessionStore,
        locks: Optional[UserLockRegistry] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.api = api
        self.session_store = session_store
        self.locks = locks or UserLockRegistry()
        self.cache = cache or TTLCache()

    def _require_session(self) -> tuple:
        token = self.session_store.token
        user = self.session_store.user
        if not token or not user or not user.get("id"):
            raise AuthError("Please log in to continue")
        return token, user

    def _call(self, fn: Callable, *args, **kwargs):
        """Run an API call, wrapping anything unexpected as ServerError."""
        try:
            return fn(*args, **kwargs)
        except StumpScoreError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected payment error: {type(e).__name__}: {str(e)}")
            raise ServerError() from e

    def _fail(self, attempt: PaymentAttempt, error: StumpScoreError) -> None:
        if attempt.is_terminal:
            return
        attempt.error = error
        attempt.transition(PaymentState.FAILED, allowed_from=set(PaymentState) - TERMINAL_PAYMENT_STATES)
        self.locks.release(attempt.user_id, owner=attempt.id)
        logger.info(f"Payment attempt {attempt.id} failed: {error.message}")

    def create_order(self, plan: Union[str, PlanType]) -> PaymentAttempt:
        """Start an attempt by minting a server-side order.

        Raises:
            InvalidPlanError: Unknown plan (no attempt is started)
            AuthError: No session
            PaymentInProgressError: Another attempt is in flight for this user
        """
        plan = get_plan(plan)
        token, user = self._require_session()
        attempt = PaymentAttempt(user["id"], plan)
        self.locks.acquire(user["id"], owner=attempt.id)

        try:
            data = self._call(self.api.create_order, token, plan.price, plan.currency, plan.id.value)
            attempt.order = OrderRef(id=data["id"], amount=data["amount"], currency=data["currency"], plan_type=plan.id)
        except StumpScoreError as e:
            self._fail(attempt, e)
            raise
        except (KeyError, TypeError) as e:
            logger.error(f"Malformed create-order response: {type(e).__name__}: {str(e)}")
            error = ServerError("Failed to create payment order")
            self._fail(attempt, error)
            raise error from e

        attempt.transition(PaymentState.ORDER_CREATED, allowed_from={PaymentState.IDLE})
        logger.info(f"Payment attempt {attempt.id}: order {attempt.order.id} for {plan.id.value}")
        return attempt

    def begin_checkout(self, attempt: PaymentAttempt, checkout: CheckoutGateway) -> PaymentAttempt:
        """Hand the order to the hosted checkout and wait for its callback."""
        attempt.transition(PaymentState.AWAITING_USER_PAYMENT, allowed_from={PaymentState.ORDER_CREATED})
        user = self.session_store.user or {}
        prefill = {"name": user.get("name", ""), "email": user.get("email", "")}
        try:
            checkout.open(
                attempt.order,
                attempt.plan,
                prefill,
                on_success=lambda proof: self.on_payment_success(attempt, proof),
                on_failure=lambda error: self.on_payment_failed(attempt, error),
            )
        except StumpScoreError as e:
            self._fail(attempt, e)
            raise
        except Exception as e:
            logger.exception(f"Checkout failed to open for attempt {attempt.id}: {type(e).__name__}")
            error = ServerError("Failed to open the payment window")
            self._fail(attempt, error)
            raise error from e
        return attempt

    def on_payment_success(self, attempt: PaymentAttempt, proof: Union[PaymentProof, Dict]) -> PaymentAttempt:
        """Checkout completion callback: verify and finish the attempt."""
        if isinstance(proof, dict):
            proof = PaymentProof(**proof)
        attempt.transition(PaymentState.VERIFYING, allowed_from={PaymentState.AWAITING_USER_PAYMENT})
        attempt.proof = proof
        try:
            attempt.user = self.verify(
                payment_id=proof.razorpay_payment_id,
                order=attempt.order,
                signature=proof.razorpay_signature,
                plan=attempt.plan.id,
                amount=attempt.order.amount,
            )
        except StumpScoreError as e:
            self._fail(attempt, e)
            return attempt

        attempt.transition(PaymentState.SUCCEEDED, allowed_from={PaymentState.VERIFYING})
        self.locks.release(attempt.user_id, owner=attempt.id)
        logger.info(f"Payment attempt {attempt.id} succeeded")
        return attempt

    def on_payment_failed(self, attempt: PaymentAttempt, error: Optional[Dict] = None) -> PaymentAttempt:
        """Checkout failure callback reported by the gateway."""
        if attempt.state not in (PaymentState.ORDER_CREATED, PaymentState.AWAITING_USER_PAYMENT):
            raise PaymentStateError()
        description = (error or {}).get("description") or "Payment failed"
        self._fail(attempt, VerificationError(description))
        return attempt

    def cancel(self, attempt: PaymentAttempt, reason: str = "Payment cancelled") -> PaymentAttempt:
        """Abandon an attempt (user navigated away). No-op once terminal."""
        self._fail(attempt, VerificationError(reason))
        return attempt

    def release_user(self, user_id: str) -> None:
        """Drop any in-flight attempt lock held for ``user_id``."""
        self.locks.release(user_id)

    def verify(
        self,
        payment_id: str,
        order: Union[OrderRef, str],
        signature: str,
        plan: Union[str, PlanType],
        amount: int,
    ) -> Dict:
        """Ask the server to verify a payment; refresh the cached user.

        Returns:
            The updated cached user dict
        """
        plan = get_plan(plan)
        token, cached_user = self._require_session()
        order_id = order.id if isinstance(order, OrderRef) else order

        data = self._call(self.api.verify_payment, token, payment_id, order_id, signature, plan.id.value, amount)
        server_user = data.get("user") or {}
        if not server_user.get("isPremium"):
            raise VerificationError()

        updated = {
            **cached_user,
            "isPremium": True,
            "premiumUntil": server_user.get("premiumUntil"),
        }
        self.session_store.update_user(updated, expected_token=token)
        self.cache.invalidate((SUBSCRIPTION_CACHE_KEY, cached_user["id"]))
        return updated

    def retry(self, attempt: PaymentAttempt) -> PaymentAttempt:
        """Start over from order creation after a failure."""
        if attempt.state != PaymentState.FAILED:
            raise PaymentStateError("Only a failed payment can be retried")
        return self.create_order(attempt.plan.id)

    def pay_with_checkout(self, plan: Union[str, PlanType], checkout: CheckoutGateway) -> PaymentAttempt:
        """Hosted checkout entry point."""
        attempt = self.create_order(plan)
        return self.begin_checkout(attempt, checkout)

    def pay_with_card(
        self,
        plan: Union[str, PlanType],
        card_details: Dict,
        checkout: CheckoutGateway,
        now: Optional[datetime] = None,
    ) -> PaymentAttempt:
        """Legacy card-form entry point.

        The card is checked locally before any order is created.

        Raises:
            ValidationError: With ``field_errors`` listing every bad field
        """
        field_errors = validate_card_details(
            card_details.get("card_number"),
            card_details.get("expiry_date"),
            card_details.get("cvv"),
            card_details.get("cardholder_name"),
            now=now,
        )
        if field_errors:
            error = ValidationError(next(iter(field_errors.values())))
            error.field_errors = field_errors
            raise error
        return self.pay_with_checkout(plan, checkout)

    def subscription_details(self, force_refresh: bool = False) -> Dict:
        """Subscription facts from the server, cached for a short window."""
        token, user = self._require_session()
        key = (SUBSCRIPTION_CACHE_KEY, user["id"])
        if force_refresh:
            self.cache.invalidate(key)
        return self.cache.get_or_load(key, lambda: self._call(self.api.get_subscription, token))
