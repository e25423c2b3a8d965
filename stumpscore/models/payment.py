"""Payment plan and order models for StumpScore."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class PlanType(str, Enum):
    """Subscription plan enumeration."""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class PaymentState(str, Enum):
    """States of a single client-side payment attempt."""
    IDLE = "idle"
    ORDER_CREATED = "order_created"
    AWAITING_USER_PAYMENT = "awaiting_user_payment"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_PAYMENT_STATES = frozenset({PaymentState.SUCCEEDED, PaymentState.FAILED})


class Plan(BaseModel):
    """A purchasable plan."""

    id: PlanType
    name: str
    price: int = Field(..., description="Price in the major currency unit")
    currency: str = "INR"
    period: str
    description: str = ""


class OrderRef(BaseModel):
    """Opaque payment intent minted by the server before the user pays."""

    id: str = Field(..., description="Order identifier (order_...)")
    amount: int = Field(..., description="Amount in the gateway's minor currency unit (paise)")
    currency: str = "INR"
    plan_type: Optional[PlanType] = Field(None, alias="planType")
    receipt: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True
        use_enum_values = True


class PaymentProof(BaseModel):
    """What the hosted checkout hands back after a successful payment."""

    razorpay_payment_id: str
    razorpay_order_id: str
    razorpay_signature: str
