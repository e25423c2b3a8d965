"""SQLAlchemy database models for StumpScore."""

from datetime import datetime
import uuid
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from stumpscore.database.database import Base

# Stored as password_hash for accounts created through Google sign-in.
# It is not a bcrypt hash, so no password ever matches it.
GOOGLE_AUTH_SENTINEL = "GOOGLE_AUTH_USER"


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # User profile
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    google_id = Column(String, nullable=True, index=True)
    profile_picture = Column(String, nullable=True)

    # Entitlement. is_premium and premium_until only change together.
    is_premium = Column(Boolean, nullable=False, default=False)
    premium_until = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    payment_records = relationship(
        "PaymentRecordDB",
        order_by="PaymentRecordDB.seq",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def to_pydantic(self):
        """Convert database model to Pydantic model (password hash excluded)."""
        from stumpscore.models.user import User
        return User(
            id=self.id,
            name=self.name,
            email=self.email,
            is_premium=self.is_premium,
            premium_until=self.premium_until,
            payment_history=[record.to_pydantic() for record in self.payment_records],
            google_id=self.google_id,
            profile_picture=self.profile_picture,
            created_at=self.created_at,
            last_login=self.last_login,
        )


class PaymentRecordDB(Base):
    """Append-only payment history entry.

    payment_id is globally unique: one gateway payment grants entitlement once.
    """

    __tablename__ = "payment_records"

    # Insertion order is chronological order.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    plan_type = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)
    payment_id = Column(String, nullable=False, unique=True, index=True)
    order_id = Column(String, nullable=True)

    user = relationship("UserDB", back_populates="payment_records")

    def to_pydantic(self):
        from stumpscore.models.user import PaymentRecord
        return PaymentRecord(
            plan_type=self.plan_type,
            amount=self.amount,
            date=self.date,
            payment_id=self.payment_id,
        )


class PaymentOrderDB(Base):
    """Payment intent minted by create-order. Amount is in minor units."""

    __tablename__ = "payment_orders"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    plan_type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="INR")
    receipt = Column(String, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        from stumpscore.models.payment import OrderRef
        return OrderRef(
            id=self.id,
            amount=self.amount,
            currency=self.currency,
            plan_type=self.plan_type,
            receipt=self.receipt,
            created_at=self.created_at,
        )
