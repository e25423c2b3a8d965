"""Error taxonomy shared by the StumpScore API and its client.

Every error carries an HTTP status code, a machine-readable ``code`` and a
message that is safe to show to an end user. Internal detail belongs in the
logs, not in ``message``.
"""

from typing import Optional


class StumpScoreError(Exception):
    """Base class for all StumpScore errors."""

    status_code: int = 500
    code: str = "server_error"
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StumpScoreError):
    """Malformed input. Caller-correctable, never retried automatically."""

    status_code = 400
    code = "validation_error"
    default_message = "Invalid request data"


class InvalidPlanError(ValidationError):
    """Plan type is not one of the known plans."""

    code = "invalid_plan"
    default_message = "Invalid plan type"


class DuplicateError(StumpScoreError):
    """Email already registered."""

    status_code = 400
    code = "duplicate"
    default_message = "User already exists with this email"


class AuthError(StumpScoreError):
    """Bad credentials or an expired/invalid token. Forces re-login."""

    status_code = 401
    code = "auth_error"
    default_message = "Authentication failed"


class PremiumRequiredError(StumpScoreError):
    """Authenticated, but without a current premium entitlement."""

    status_code = 403
    code = "premium_required"
    default_message = "Premium subscription required for this feature"

    def __init__(self, message: Optional[str] = None, expired: bool = False):
        super().__init__(message)
        self.expired = expired


class NotFoundError(StumpScoreError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class VerificationError(StumpScoreError):
    """Payment signature, order or amount mismatch. Retry restarts at order creation."""

    status_code = 400
    code = "verification_failed"
    default_message = "Payment verification failed"


class ServerError(StumpScoreError):
    """Unexpected failure. Details are logged, never shown."""

    status_code = 500
    code = "server_error"
    default_message = "Server error"


class ProviderUnavailableError(StumpScoreError):
    """Federated identity provider cannot be reached or is not configured."""

    status_code = 503
    code = "provider_unavailable"
    default_message = "Google sign-in is currently unavailable"


class SignInCancelled(StumpScoreError):
    """User dismissed the federated sign-in prompt."""

    status_code = 400
    code = "sign_in_cancelled"
    default_message = "Sign-in canceled by user"


class PaymentStateError(StumpScoreError):
    """Illegal payment-attempt state transition."""

    status_code = 409
    code = "payment_state"
    default_message = "Payment attempt is not in a valid state for this action"


class PaymentInProgressError(StumpScoreError):
    """Another payment attempt is already in flight for this user."""

    status_code = 409
    code = "payment_in_progress"
    default_message = "A payment is already in progress"


_ERROR_CLASSES = [
    ValidationError,
    InvalidPlanError,
    DuplicateError,
    AuthError,
    PremiumRequiredError,
    NotFoundError,
    VerificationError,
    ServerError,
    ProviderUnavailableError,
    SignInCancelled,
    PaymentStateError,
    PaymentInProgressError,
]

ERRORS_BY_CODE = {cls.code: cls for cls in _ERROR_CLASSES}


def error_from_response(status_code: int, code: Optional[str] = None, message: Optional[str] = None) -> StumpScoreError:
    """Rebuild a taxonomy error from an API error response.

    The ``code`` field wins when present; otherwise the status code decides.
    """
    error_class = ERRORS_BY_CODE.get(code or "")
    if error_class is None:
        if status_code == 401:
            error_class = AuthError
        elif status_code == 403:
            error_class = PremiumRequiredError
        elif status_code == 404:
            error_class = NotFoundError
        elif 400 <= status_code < 500:
            error_class = ValidationError
        else:
            error_class = ServerError
    if error_class is ServerError:
        # Never surface server internals to the user.
        message = None
    return error_class(message)
