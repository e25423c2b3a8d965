"""Repository for payment orders (OrderRefs)."""

import logging
import secrets
import time
from typing import Optional
from sqlalchemy.orm import Session

from stumpscore.database.models import PaymentOrderDB
from stumpscore.models.payment import OrderRef, PlanType

logger = logging.getLogger(__name__)


def generate_order_id() -> str:
    """Mint an opaque order id. Every call yields a new, distinct order."""
    return f"order_{secrets.token_hex(7)}"


class PaymentOrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, plan_type: PlanType, amount: int, currency: str) -> OrderRef:
        """Persist a new order. ``amount`` is in minor units."""
        row = PaymentOrderDB(
            id=generate_order_id(),
            user_id=user_id,
            plan_type=PlanType(plan_type).value,
            amount=amount,
            currency=currency,
            receipt=f"receipt_{int(time.time() * 1000)}",
        )
        self.db.add(row)
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create order for user {user_id}: {type(e).__name__}: {str(e)}")
            raise
        self.db.refresh(row)
        logger.debug(f"Created order {row.id} for user {user_id}: {row.amount} {row.currency}")
        return row.to_pydantic()

    def get(self, user_id: str, order_id: str) -> Optional[OrderRef]:
        """Get an order owned by ``user_id``."""
        row = self.db.query(PaymentOrderDB).filter(
            PaymentOrderDB.id == order_id,
            PaymentOrderDB.user_id == user_id,
        ).first()
        return row.to_pydantic() if row else None
