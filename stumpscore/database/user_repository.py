"""Repository for User database operations."""

import logging
from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stumpscore.auth.passwords import hash_password, verify_password
from stumpscore.database.models import UserDB, PaymentRecordDB, GOOGLE_AUTH_SENTINEL
from stumpscore.engine.plans import parse_plan_type, premium_until_for
from stumpscore.errors import AuthError, DuplicateError, NotFoundError, VerificationError
from stumpscore.models.user import User

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _get_row(self, user_id: str, for_update: bool = False) -> Optional[UserDB]:
        query = self.db.query(UserDB).filter(UserDB.id == user_id)
        if for_update:
            # Row lock on PostgreSQL; SQLite serializes writers on its own.
            query = query.with_for_update()
        return query.first()

    def _get_row_by_email(self, email: str) -> Optional[UserDB]:
        return self.db.query(UserDB).filter(UserDB.email == email).first()

    def _commit(self, action: str, user_ref: str) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action} user {user_ref}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        user_db = self._get_row(user_id)
        return user_db.to_pydantic() if user_db else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        user_db = self._get_row_by_email(email)
        return user_db.to_pydantic() if user_db else None

    def create(self, name: str, email: str, password: str) -> User:
        """Register a new password account.

        Raises:
            DuplicateError: If the email is already registered
        """
        if self._get_row_by_email(email):
            raise DuplicateError()

        user_db = UserDB(name=name, email=email, password_hash=hash_password(password))
        self.db.add(user_db)
        try:
            self._commit("create", email)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            raise DuplicateError()
        self.db.refresh(user_db)
        logger.info(f"Registered user {user_db.id}")
        return user_db.to_pydantic()

    def authenticate(self, email: str, password: str) -> User:
        """Check credentials and touch last_login.

        Raises:
            AuthError: If no user has this email or the password does not match
        """
        user_db = self._get_row_by_email(email)
        if not user_db or not verify_password(password, user_db.password_hash):
            raise AuthError(INVALID_CREDENTIALS_MESSAGE)

        user_db.last_login = datetime.utcnow()
        self._commit("touch last_login for", user_db.id)
        self.db.refresh(user_db)
        return user_db.to_pydantic()

    def upsert_google(self, google_id: str, email: str, name: str, picture: Optional[str] = None) -> User:
        """Find-by-email, create-if-absent, link google_id if not yet linked."""
        user_db = self._get_row_by_email(email)
        if user_db is None:
            user_db = UserDB(
                name=name,
                email=email,
                password_hash=GOOGLE_AUTH_SENTINEL,
                google_id=google_id,
                profile_picture=picture,
            )
            self.db.add(user_db)
            logger.info(f"Creating Google account for {email}")
        elif not user_db.google_id:
            user_db.google_id = google_id
            if picture:
                user_db.profile_picture = picture
            logger.info(f"Linking Google account to user {user_db.id}")

        user_db.last_login = datetime.utcnow()
        try:
            self._commit("upsert Google", email)
        except IntegrityError:
            # A concurrent sign-in created the row first; use it.
            user_db = self._get_row_by_email(email)
            if user_db is None:
                raise
        self.db.refresh(user_db)
        return user_db.to_pydantic()

    def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        """Update name/email/password. Empty values leave a field unchanged.

        Raises:
            NotFoundError: If the user does not exist
            DuplicateError: If the new email belongs to another user
        """
        user_db = self._get_row(user_id)
        if not user_db:
            raise NotFoundError("User not found")

        if email and email != user_db.email:
            other = self._get_row_by_email(email)
            if other is not None and other.id != user_id:
                raise DuplicateError("Email is already in use")
            user_db.email = email
        if name:
            user_db.name = name
        if password:
            user_db.password_hash = hash_password(password)

        try:
            self._commit("update", user_id)
        except IntegrityError:
            raise DuplicateError("Email is already in use")
        self.db.refresh(user_db)
        return user_db.to_pydantic()

    def apply_verified_payment(
        self,
        user_id: str,
        plan_type: str,
        amount: float,
        payment_id: str,
        order_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[User, bool]:
        """Grant premium for one verified payment, exactly once per payment_id.

        is_premium, premium_until and the appended history record are
        written in a single transaction. Replaying a payment_id already
        recorded for this user is a no-op.

        Args:
            user_id: Paying user
            plan_type: monthly or annual
            amount: Amount paid in major units
            payment_id: Gateway payment reference
            order_id: Order the payment settled
            now: Verification time (defaults to utcnow)

        Returns:
            (updated user, True if entitlement was granted by this call)

        Raises:
            InvalidPlanError: If plan_type is unknown
            NotFoundError: If the user does not exist
            VerificationError: If payment_id is recorded for another user
        """
        plan = parse_plan_type(plan_type)
        now = now or datetime.utcnow()

        user_db = self._get_row(user_id, for_update=True)
        if not user_db:
            raise NotFoundError("User not found")

        existing = self.db.query(PaymentRecordDB).filter(PaymentRecordDB.payment_id == payment_id).first()
        if existing is not None:
            return self._replayed(existing, user_id, payment_id)

        self.db.add(PaymentRecordDB(
            user_id=user_id,
            plan_type=plan.value,
            amount=amount,
            date=now,
            payment_id=payment_id,
            order_id=order_id,
        ))
        user_db.is_premium = True
        user_db.premium_until = premium_until_for(plan, now)

        try:
            self._commit("apply payment for", user_id)
        except IntegrityError:
            # A concurrent verify inserted the same payment_id first.
            existing = self.db.query(PaymentRecordDB).filter(PaymentRecordDB.payment_id == payment_id).first()
            if existing is None:
                raise
            return self._replayed(existing, user_id, payment_id)

        self.db.refresh(user_db)
        logger.info(f"Premium ({plan.value}) granted to user {user_id} until {user_db.premium_until.isoformat()}")
        return user_db.to_pydantic(), True

    def _replayed(self, record: PaymentRecordDB, user_id: str, payment_id: str) -> Tuple[User, bool]:
        owner_id = record.user_id
        self.db.rollback()
        if owner_id != user_id:
            logger.warning(f"Payment {payment_id} replayed by user {user_id} but belongs to another user")
            raise VerificationError("Payment has already been used")
        logger.info(f"Ignoring replayed verification of payment {payment_id} for user {user_id}")
        user_db = self._get_row(user_id)
        return user_db.to_pydantic(), False
