"""Request/response models for account endpoints."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from stumpscore.models.user import PaymentRecord


class RegisterRequest(BaseModel):
    """Request model for password registration."""
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class GoogleSignInRequest(BaseModel):
    """Request model for Google sign-in."""
    id_token: str = Field(..., description="Google ID token from the sign-in popup")


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class AuthResponse(BaseModel):
    """User projection plus a fresh token."""
    id: str = Field(..., alias="_id")
    name: str
    email: str
    is_premium: bool = Field(..., alias="isPremium")
    premium_until: Optional[datetime] = Field(None, alias="premiumUntil")
    profile_picture: Optional[str] = Field(None, alias="profilePicture")
    token: str

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class SubscriptionResponse(BaseModel):
    is_premium: bool = Field(..., alias="isPremium")
    premium_until: Optional[datetime] = Field(None, alias="premiumUntil")
    days_remaining: int = Field(0, alias="daysRemaining")
    payment_history: List[PaymentRecord] = Field(default_factory=list, alias="paymentHistory")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True
