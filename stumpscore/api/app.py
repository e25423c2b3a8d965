"""FastAPI web application for StumpScore accounts and payments."""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from stumpscore.api.auth_models import (
    AuthResponse,
    GoogleSignInRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    SubscriptionResponse,
)
from stumpscore.api.payment_models import (
    CreateOrderRequest,
    CreateOrderResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from stumpscore.auth.dependencies import get_current_user, require_premium
from stumpscore.auth.google_oauth import verify_google_token
from stumpscore.auth.jwt import create_access_token
from stumpscore.auth.payment_signature import verify_payment_signature
from stumpscore.database.database import get_db, init_db
from stumpscore.database.order_repository import PaymentOrderRepository
from stumpscore.database.user_repository import UserRepository
from stumpscore.engine.entitlement import is_premium, premium_days_remaining
from stumpscore.engine.plans import get_plan, parse_plan_type, to_major_units, to_minor_units
from stumpscore.engine.validation import validate_email, validate_login, validate_name, validate_password, validate_registration
from stumpscore.errors import AuthError, PremiumRequiredError, StumpScoreError, ValidationError, VerificationError
from stumpscore.models.user import PaymentRecord, User

load_dotenv()

logger = logging.getLogger(__name__)

ACCEPTED_CURRENCIES = {"INR": "INR", "₹": "INR"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="StumpScore API",
    description="Accounts, premium subscriptions and payments for StumpScore",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StumpScoreError)
async def stumpscore_error_handler(request: Request, exc: StumpScoreError):
    body = {"message": exc.message, "error": exc.code}
    if isinstance(exc, PremiumRequiredError) and exc.expired:
        body["expired"] = True
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    logger.debug(f"Malformed request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"message": ValidationError.default_message, "error": ValidationError.code},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(status_code=500, content={"message": "Server error", "error": "server_error"})


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        is_premium=user.is_premium,
        premium_until=user.premium_until,
        profile_picture=user.profile_picture,
        token=create_access_token(user.id),
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@app.post("/api/users/register", response_model=AuthResponse, status_code=201)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new account and return a token."""
    name, email, password = validate_registration(request.name, request.email, request.password)
    user = UserRepository(db).create(name, email, password)
    return _auth_response(user)


@app.post("/api/users/login", response_model=AuthResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate with email and password."""
    email, password = validate_login(request.email, request.password)
    user = UserRepository(db).authenticate(email, password)
    logger.info(f"User {user.id} logged in")
    return _auth_response(user)


@app.post("/api/users/google", response_model=AuthResponse)
def google_sign_in(request: GoogleSignInRequest, db: Session = Depends(get_db)):
    """Sign in (or sign up) with a verified Google ID token."""
    user_info = verify_google_token(request.id_token)
    if not user_info:
        raise AuthError("Google sign-in failed")
    user = UserRepository(db).upsert_google(
        google_id=user_info["id"],
        email=validate_email(user_info["email"]),
        name=user_info["name"],
        picture=user_info.get("picture"),
    )
    return _auth_response(user)


@app.get("/api/users/profile")
def get_profile(current_user: User = Depends(get_current_user)):
    """Current user projection (never includes the password hash)."""
    return current_user.to_public()


@app.put("/api/users/profile", response_model=AuthResponse)
def update_profile(
    request: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update name, email and/or password."""
    user = UserRepository(db).update_profile(
        current_user.id,
        name=validate_name(request.name) if request.name else None,
        email=validate_email(request.email) if request.email else None,
        password=validate_password(request.password) if request.password else None,
    )
    return _auth_response(user)


@app.get("/api/users/subscription", response_model=SubscriptionResponse)
def get_subscription(current_user: User = Depends(get_current_user)):
    """Derived entitlement plus the raw subscription facts."""
    now = datetime.utcnow()
    return SubscriptionResponse(
        is_premium=is_premium(current_user, now),
        premium_until=current_user.premium_until,
        days_remaining=premium_days_remaining(current_user, now),
        payment_history=current_user.payment_history,
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@app.post("/api/payments/create-order", response_model=CreateOrderResponse)
def create_order(
    request: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mint a new order for a plan. Retrying mints another, distinct order."""
    if not request.amount or not request.currency or not request.plan_type:
        raise ValidationError("Missing required payment details")

    plan = get_plan(request.plan_type)
    if request.amount != plan.price:
        raise ValidationError("Amount does not match the plan price")
    currency = ACCEPTED_CURRENCIES.get(request.currency)
    if currency is None:
        raise ValidationError("Unsupported currency")

    order = PaymentOrderRepository(db).create(
        user_id=current_user.id,
        plan_type=plan.id,
        amount=to_minor_units(plan.price),
        currency=currency,
    )
    return CreateOrderResponse(id=order.id, amount=order.amount, currency=order.currency)


@app.post("/api/payments/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Verify a completed checkout and grant premium, once per payment id."""
    plan_type = parse_plan_type(request.plan_type)

    if not request.razorpay_payment_id or not request.razorpay_order_id or not request.razorpay_signature:
        raise ValidationError("Missing payment details")

    order = PaymentOrderRepository(db).get(current_user.id, request.razorpay_order_id)
    if order is None:
        raise VerificationError("Unknown payment order")
    if order.plan_type != plan_type.value:
        raise VerificationError("Plan does not match the payment order")
    if request.amount is not None and request.amount != order.amount:
        raise VerificationError("Amount does not match the payment order")
    if not verify_payment_signature(order.id, request.razorpay_payment_id, request.razorpay_signature):
        logger.warning(f"Invalid payment signature from user {current_user.id} for order {order.id}")
        raise VerificationError("Invalid payment signature")

    user, granted = UserRepository(db).apply_verified_payment(
        current_user.id,
        plan_type=plan_type.value,
        amount=to_major_units(order.amount),
        payment_id=request.razorpay_payment_id,
        order_id=order.id,
    )
    return VerifyPaymentResponse(
        success=True,
        message="Payment verified successfully" if granted else "Payment already verified",
        user={
            "_id": user.id,
            "name": user.name,
            "email": user.email,
            "isPremium": user.is_premium,
            "premiumUntil": user.premium_until.isoformat() if user.premium_until else None,
        },
    )


@app.get("/api/payments/history", response_model=List[PaymentRecord])
def payment_history(current_user: User = Depends(get_current_user)):
    """Payment history, oldest first."""
    return current_user.payment_history


@app.get("/api/premium/status")
def premium_status(current_user: User = Depends(require_premium)):
    """Premium-only check endpoint; 403 when the entitlement is missing or lapsed."""
    return {
        "isPremium": True,
        "premiumUntil": current_user.premium_until.isoformat() if current_user.premium_until else None,
        "daysRemaining": premium_days_remaining(current_user),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
