"""Request/response models for payment endpoints."""

from typing import Optional, Union
from pydantic import BaseModel, Field


class CreateOrderRequest(BaseModel):
    """Amount is in the major currency unit (rupees)."""
    amount: Optional[Union[int, float]] = None
    currency: Optional[str] = None
    plan_type: Optional[str] = Field(None, alias="planType")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class CreateOrderResponse(BaseModel):
    """Amount is in the minor currency unit (paise)."""
    id: str
    amount: int
    currency: str


class VerifyPaymentRequest(BaseModel):
    """Checkout completion payload. Amount is in minor units."""
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    plan_type: Optional[str] = Field(None, alias="planType")
    amount: Optional[int] = None

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class VerifyPaymentResponse(BaseModel):
    success: bool
    message: str
    user: dict
