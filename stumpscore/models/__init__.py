"""Data models for StumpScore."""

from stumpscore.models.payment import PlanType, Plan, OrderRef, PaymentProof, PaymentState, TERMINAL_PAYMENT_STATES
from stumpscore.models.user import User, PaymentRecord

__all__ = [
    "PlanType",
    "Plan",
    "OrderRef",
    "PaymentProof",
    "PaymentState",
    "TERMINAL_PAYMENT_STATES",
    "User",
    "PaymentRecord",
]
