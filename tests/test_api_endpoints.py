"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from stumpscore.auth.jwt import create_access_token
from stumpscore.auth.payment_signature import sign_payment
from stumpscore.database.models import UserDB

# Matches the account registered by the `registered` fixture.
TEST_EMAIL = "a@x.com"
TEST_PASSWORD = "secret123"


def _create_order(test_client, headers, plan_type="monthly", amount=50):
    response = test_client.post(
        "/api/payments/create-order",
        json={"amount": amount, "currency": "INR", "planType": plan_type},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


def _verify(test_client, headers, order, payment_id="pay_test_1", plan_type="monthly", signature=None):
    return test_client.post(
        "/api/payments/verify",
        json={
            "razorpay_payment_id": payment_id,
            "razorpay_order_id": order["id"],
            "razorpay_signature": signature or sign_payment(order["id"], payment_id),
            "planType": plan_type,
            "amount": order["amount"],
        },
        headers=headers,
    )


def _profile(test_client, headers):
    response = test_client.get("/api/users/profile", headers=headers)
    assert response.status_code == 200
    return response.json()


def test_health(test_client):
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestUserEndpoints:
    """Registration, login, profile."""

    def test_register(self, registered):
        assert registered["_id"]
        assert registered["email"] == TEST_EMAIL
        assert registered["isPremium"] is False
        assert registered["premiumUntil"] is None
        assert registered["token"]
        assert "password" not in registered

    def test_register_duplicate_email(self, test_client, registered):
        response = test_client.post(
            "/api/users/register",
            json={"name": "Again", "email": TEST_EMAIL.upper(), "password": TEST_PASSWORD},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "duplicate"

    def test_register_missing_fields(self, test_client):
        response = test_client.post("/api/users/register", json={"email": TEST_EMAIL})
        assert response.status_code == 400
        assert response.json()["message"] == "Please provide all required fields"

    def test_register_bad_email(self, test_client):
        response = test_client.post(
            "/api/users/register",
            json={"name": "X", "email": "not-an-email", "password": TEST_PASSWORD},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_login(self, test_client, registered):
        response = test_client.post("/api/users/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD})
        assert response.status_code == 200
        data = response.json()
        assert data["_id"] == registered["_id"]
        assert data["token"]

    def test_login_wrong_password(self, test_client, registered):
        response = test_client.post("/api/users/login", json={"email": TEST_EMAIL, "password": "wrong-one"})
        assert response.status_code == 401
        assert response.json() == {"message": "Invalid email or password", "error": "auth_error"}

    def test_profile_requires_token(self, test_client):
        response = test_client.get("/api/users/profile")
        assert response.status_code == 401
        assert response.json()["message"] == "No authentication token, access denied"

    def test_profile_rejects_bad_token(self, test_client, registered):
        response = test_client.get("/api/users/profile", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["message"] == "Token verification failed"

    def test_profile_rejects_token_of_deleted_user(self, test_client):
        headers = {"Authorization": f"Bearer {create_access_token('no-such-user')}"}
        response = test_client.get("/api/users/profile", headers=headers)
        assert response.status_code == 401

    def test_profile(self, test_client, auth_headers, registered):
        profile = _profile(test_client, auth_headers)
        assert profile["_id"] == registered["_id"]
        assert profile["paymentHistory"] == []
        assert "password" not in profile
        assert "password_hash" not in profile

    def test_update_profile(self, test_client, auth_headers):
        response = test_client.put(
            "/api/users/profile",
            json={"name": "Renamed", "password": "newpass1"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

        login = test_client.post("/api/users/login", json={"email": TEST_EMAIL, "password": "newpass1"})
        assert login.status_code == 200

    def test_update_profile_email_in_use(self, test_client, auth_headers):
        test_client.post(
            "/api/users/register",
            json={"name": "Other", "email": "other@example.com", "password": TEST_PASSWORD},
        )
        response = test_client.put("/api/users/profile", json={"email": "other@example.com"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Email is already in use"


class TestGoogleSignIn:
    GOOGLE_USER = {"id": "google-sub-1", "email": "gfan@example.com", "name": "G Fan", "picture": "http://pic"}

    def test_creates_account(self, test_client):
        with patch("stumpscore.api.app.verify_google_token", return_value=dict(self.GOOGLE_USER)):
            response = test_client.post("/api/users/google", json={"id_token": "token-from-google"})
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "gfan@example.com"
        assert data["profilePicture"] == "http://pic"
        assert data["token"]

    def test_links_existing_account(self, test_client, registered):
        google_user = dict(self.GOOGLE_USER, email=TEST_EMAIL)
        with patch("stumpscore.api.app.verify_google_token", return_value=google_user):
            response = test_client.post("/api/users/google", json={"id_token": "token-from-google"})
        assert response.status_code == 200
        assert response.json()["_id"] == registered["_id"]

    def test_rejects_unverified_token(self, test_client):
        with patch("stumpscore.api.app.verify_google_token", return_value=None):
            response = test_client.post("/api/users/google", json={"id_token": "forged"})
        assert response.status_code == 401
        assert response.json()["message"] == "Google sign-in failed"

    def test_requires_token(self, test_client):
        response = test_client.post("/api/users/google", json={"name": "X", "email": "x@example.com"})
        assert response.status_code == 400


class TestCreateOrder:
    def test_monthly_order(self, test_client, auth_headers):
        order = _create_order(test_client, auth_headers)
        assert order["id"].startswith("order_")
        assert order["amount"] == 5000
        assert order["currency"] == "INR"

    def test_annual_order(self, test_client, auth_headers):
        assert _create_order(test_client, auth_headers, "annual", 200)["amount"] == 20000

    def test_each_call_mints_a_new_order(self, test_client, auth_headers):
        assert _create_order(test_client, auth_headers)["id"] != _create_order(test_client, auth_headers)["id"]

    def test_rupee_symbol_accepted(self, test_client, auth_headers):
        response = test_client.post(
            "/api/payments/create-order",
            json={"amount": 50, "currency": "₹", "planType": "monthly"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["currency"] == "INR"

    def test_missing_details(self, test_client, auth_headers):
        response = test_client.post("/api/payments/create-order", json={"planType": "monthly"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Missing required payment details"

    def test_amount_must_match_plan(self, test_client, auth_headers):
        response = test_client.post(
            "/api/payments/create-order",
            json={"amount": 1, "currency": "INR", "planType": "annual"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_unknown_plan(self, test_client, auth_headers):
        response = test_client.post(
            "/api/payments/create-order",
            json={"amount": 50, "currency": "INR", "planType": "weekly"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_plan"

    def test_requires_auth(self, test_client):
        response = test_client.post(
            "/api/payments/create-order",
            json={"amount": 50, "currency": "INR", "planType": "monthly"},
        )
        assert response.status_code == 401


class TestVerifyPayment:
    def test_monthly_upgrade(self, test_client, auth_headers):
        before = datetime.utcnow()
        order = _create_order(test_client, auth_headers)
        response = _verify(test_client, auth_headers, order)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Payment verified successfully"
        assert data["user"]["isPremium"] is True

        until = datetime.fromisoformat(data["user"]["premiumUntil"])
        assert before + timedelta(days=27) < until < datetime.utcnow() + timedelta(days=32)

        history = test_client.get("/api/payments/history", headers=auth_headers).json()
        assert len(history) == 1
        assert history[0]["planType"] == "monthly"
        assert history[0]["amount"] == 50
        assert history[0]["paymentId"] == "pay_test_1"

    def test_annual_upgrade(self, test_client, auth_headers):
        order = _create_order(test_client, auth_headers, "annual", 200)
        response = _verify(test_client, auth_headers, order, plan_type="annual")
        assert response.status_code == 200
        until = datetime.fromisoformat(response.json()["user"]["premiumUntil"])
        assert until > datetime.utcnow() + timedelta(days=364)

    def test_invalid_plan_rejected_without_change(self, test_client, auth_headers):
        order = _create_order(test_client, auth_headers)
        response = _verify(test_client, auth_headers, order, plan_type="weekly")

        assert response.status_code == 400
        assert response.json() == {"message": "Invalid plan type", "error": "invalid_plan"}
        profile = _profile(test_client, auth_headers)
        assert profile["isPremium"] is False
        assert profile["paymentHistory"] == []

    def test_bad_signature(self, test_client, auth_headers):
        order = _create_order(test_client, auth_headers)
        response = _verify(test_client, auth_headers, order, signature="0" * 64)
        assert response.status_code == 400
        assert response.json()["error"] == "verification_failed"
        assert _profile(test_client, auth_headers)["isPremium"] is False

    @pytest.mark.parametrize("signature", ["sigé", "☃" * 64, "not-hex"])
    def test_malformed_signature_is_a_verification_failure(self, test_client, auth_headers, signature):
        order = _create_order(test_client, auth_headers)
        response = _verify(test_client, auth_headers, order, signature=signature)
        assert response.status_code == 400
        assert response.json()["error"] == "verification_failed"
        assert _profile(test_client, auth_headers)["isPremium"] is False

    def test_plan_mismatch(self, test_client, auth_headers):
        order = _create_order(test_client, auth_headers, "monthly", 50)
        response = _verify(test_client, auth_headers, order, plan_type="annual")
        assert response.status_code == 400
        assert response.json()["message"] == "Plan does not match the payment order"

    def test_unknown_order(self, test_client, auth_headers):
        response = _verify(test_client, auth_headers, {"id": "order_doesnotexist", "amount": 5000})
        assert response.status_code == 400
        assert response.json()["message"] == "Unknown payment order"

    def test_order_of_another_user(self, test_client, auth_headers):
        order = _create_order(test_client, auth_headers)
        other = test_client.post(
            "/api/users/register",
            json={"name": "Other", "email": "other@example.com", "password": TEST_PASSWORD},
        ).json()
        response = _verify(test_client, {"Authorization": f"Bearer {other['token']}"}, order)
        assert response.status_code == 400
        assert response.json()["message"] == "Unknown payment order"

    def test_missing_payment_details(self, test_client, auth_headers):
        response = test_client.post(
            "/api/payments/verify",
            json={"planType": "monthly"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_duplicate_verify_is_idempotent(self, test_client, auth_headers):
        order = _create_order(test_client, auth_headers)
        first = _verify(test_client, auth_headers, order)
        second = _verify(test_client, auth_headers, order)

        assert first.status_code == second.status_code == 200
        assert second.json()["message"] == "Payment already verified"
        assert second.json()["user"]["premiumUntil"] == first.json()["user"]["premiumUntil"]
        assert len(test_client.get("/api/payments/history", headers=auth_headers).json()) == 1

    def test_requires_auth(self, test_client):
        response = test_client.post("/api/payments/verify", json={"planType": "monthly"})
        assert response.status_code == 401


class TestSubscriptionAndPremium:
    def test_subscription_for_free_user(self, test_client, auth_headers):
        response = test_client.get("/api/users/subscription", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {
            "isPremium": False,
            "premiumUntil": None,
            "daysRemaining": 0,
            "paymentHistory": [],
        }

    def test_subscription_after_upgrade(self, test_client, auth_headers):
        _verify(test_client, auth_headers, _create_order(test_client, auth_headers))
        data = test_client.get("/api/users/subscription", headers=auth_headers).json()
        assert data["isPremium"] is True
        assert 28 <= data["daysRemaining"] <= 31
        assert len(data["paymentHistory"]) == 1

    def test_premium_status_requires_premium(self, test_client, auth_headers):
        response = test_client.get("/api/premium/status", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "premium_required"

    def test_premium_status_when_premium(self, test_client, auth_headers):
        _verify(test_client, auth_headers, _create_order(test_client, auth_headers))
        response = test_client.get("/api/premium/status", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["isPremium"] is True

    def test_lapsed_premium_is_denied_without_rewriting_flag(self, test_client, auth_headers, registered, db_session):
        _verify(test_client, auth_headers, _create_order(test_client, auth_headers))
        row = db_session.query(UserDB).filter(UserDB.id == registered["_id"]).first()
        row.premium_until = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        response = test_client.get("/api/premium/status", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["expired"] is True
        assert response.json()["message"] == "Your premium subscription has expired"

        subscription = test_client.get("/api/users/subscription", headers=auth_headers).json()
        assert subscription["isPremium"] is False
        db_session.refresh(row)
        assert row.is_premium is True

    def test_renewal_after_lapse_restores_access(self, test_client, auth_headers, registered, db_session):
        _verify(test_client, auth_headers, _create_order(test_client, auth_headers), payment_id="pay_old")
        row = db_session.query(UserDB).filter(UserDB.id == registered["_id"]).first()
        row.premium_until = datetime.utcnow() - timedelta(days=1)
        db_session.commit()

        response = _verify(test_client, auth_headers, _create_order(test_client, auth_headers), payment_id="pay_new")
        assert response.status_code == 200
        assert test_client.get("/api/premium/status", headers=auth_headers).status_code == 200
        assert len(test_client.get("/api/payments/history", headers=auth_headers).json()) == 2
