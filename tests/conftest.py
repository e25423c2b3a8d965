"""Pytest fixtures and configuration for StumpScore tests."""

import os

# Keep hashing fast and the app engine off disk. Must run before stumpscore imports.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from stumpscore.auth.payment_signature import sign_payment
from stumpscore.client.api_client import ApiClient
from stumpscore.client.auth_controller import AuthController
from stumpscore.client.payment_orchestrator import CheckoutGateway, PaymentOrchestrator
from stumpscore.client.session_store import MemoryStorage, SessionStore
from stumpscore.database.database import Base
from stumpscore.database import models  # noqa: F401
from stumpscore.database.user_repository import UserRepository
from stumpscore.models.payment import PaymentProof


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_EMAIL = "a@x.com"
TEST_PASSWORD = "secret123"


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user_repository(db_session: Session):
    return UserRepository(db_session)


@pytest.fixture
def test_client(db_session: Session):
    """FastAPI test client backed by the test database (real token auth)."""
    from stumpscore.api.app import app
    from stumpscore.database.database import get_db

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def registered(test_client):
    """Register the default test user through the API; returns the response body."""
    response = test_client.post(
        "/api/users/register",
        json={"name": "Test User", "email": TEST_EMAIL, "password": TEST_PASSWORD},
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def auth_headers(registered):
    return {"Authorization": f"Bearer {registered['token']}"}


@pytest.fixture
def api_client(test_client):
    """ApiClient that talks to the in-process app instead of the network."""
    return ApiClient(base_url="http://testserver/api", timeout=5, session=test_client)


@pytest.fixture
def session_store():
    return SessionStore(MemoryStorage())


@pytest.fixture
def payments(api_client, session_store):
    return PaymentOrchestrator(api_client, session_store)


@pytest.fixture
def auth_controller(api_client, session_store, payments):
    return AuthController(api_client, session_store, payments=payments)


@pytest.fixture
def logged_in(auth_controller, registered):
    """Controller with the default test user signed in."""
    auth_controller.login(TEST_EMAIL, TEST_PASSWORD)
    return auth_controller


class FakeCheckout(CheckoutGateway):
    """Hosted checkout stand-in that completes synchronously.

    outcome: "success" signs the payment like the gateway would, "failure"
    reports a declined payment, "pending" never calls back.
    """

    def __init__(self, outcome: str = "success", payment_id: str = None, signature: str = None):
        self.outcome = outcome
        self.payment_id = payment_id
        self.signature = signature
        self.opened = []
        self.prefills = []

    def open(self, order, plan, prefill, on_success, on_failure):
        self.opened.append(order)
        self.prefills.append(prefill)
        if self.outcome == "success":
            payment_id = self.payment_id or f"pay_{uuid.uuid4().hex[:14]}"
            on_success(PaymentProof(
                razorpay_payment_id=payment_id,
                razorpay_order_id=order.id,
                razorpay_signature=self.signature or sign_payment(order.id, payment_id),
            ))
        elif self.outcome == "failure":
            on_failure({"code": "BAD_REQUEST_ERROR", "description": "Payment declined by bank"})


@pytest.fixture
def checkout():
    return FakeCheckout()


@pytest.fixture
def make_checkout():
    """Factory for FakeCheckout with a chosen outcome."""
    return FakeCheckout
