"""User data model for StumpScore."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from stumpscore.models.payment import PlanType


class PaymentRecord(BaseModel):
    """One verified payment. Records are append-only, oldest first."""

    plan_type: PlanType = Field(..., alias="planType", description="Plan purchased")
    amount: float = Field(..., description="Amount paid in the major currency unit (rupees)")
    date: datetime = Field(default_factory=datetime.utcnow, description="When the payment was verified")
    payment_id: str = Field(..., alias="paymentId", description="Gateway payment reference")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True
        use_enum_values = True


class User(BaseModel):
    """User projection shared with clients. Never carries a password."""

    id: str = Field(..., alias="_id", description="Server-assigned user identifier")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address (unique)")
    is_premium: bool = Field(False, alias="isPremium", description="Stored premium flag")
    premium_until: Optional[datetime] = Field(
        None, alias="premiumUntil", description="When the premium entitlement lapses"
    )
    payment_history: List[PaymentRecord] = Field(default_factory=list, alias="paymentHistory")
    google_id: Optional[str] = Field(None, alias="googleId", description="Linked Google account id")
    profile_picture: Optional[str] = Field(None, alias="profilePicture")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_login: Optional[datetime] = Field(None, alias="lastLogin")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True

    def to_public(self) -> dict:
        """JSON-ready dict using the API's camelCase field names."""
        return self.model_dump(by_alias=True, mode="json")
