"""Razorpay payment signature verification.

The gateway signs ``"<order_id>|<payment_id>"`` with the merchant key secret
(HMAC-SHA256, hex digest). A payment is trusted only if the signature matches.
"""

import hashlib
import hmac
import os

from dotenv import load_dotenv

load_dotenv()

RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "rzp_test_key")


def _key_secret_bytes() -> bytes:
    secret = os.getenv("RAZORPAY_KEY_SECRET") or "dev-razorpay-secret-change-me"
    return secret.encode("utf-8")


def sign_payment(order_id: str, payment_id: str) -> str:
    """Compute the gateway signature for an order/payment pair."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(_key_secret_bytes(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str) -> bool:
    if not order_id or not payment_id or not signature:
        return False
    expected = sign_payment(order_id, payment_id).encode("ascii")
    return hmac.compare_digest(expected, signature.encode("utf-8", "replace"))
