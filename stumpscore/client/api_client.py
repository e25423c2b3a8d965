"""HTTP client for the StumpScore API.

Transport failures and error responses are converted into the shared error
taxonomy here, so nothing above this layer sees a raw ``requests`` error.
"""

import logging
import os
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

from stumpscore.errors import ServerError, error_from_response

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_API_URL = os.getenv("STUMPSCORE_API_URL", "http://localhost:5000/api")
DEFAULT_TIMEOUT_SEC = float(os.getenv("STUMPSCORE_HTTP_TIMEOUT_SEC", "10"))

TIMEOUT_MESSAGE = "The server took too long to respond. Please try again."
UNREACHABLE_MESSAGE = "Unable to reach StumpScore. Please check your connection and try again."


class ApiClient:
    """Thin JSON client. Every call has a client-side timeout."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[Any] = None,
    ):
        """Initialize API client.

        Args:
            base_url: API root (e.g. http://localhost:5000/api).
                      If None, reads from STUMPSCORE_API_URL env var.
            timeout: Per-request timeout in seconds.
                     If None, reads from STUMPSCORE_HTTP_TIMEOUT_SEC env var.
            session: requests.Session-compatible object (anything with
                     ``request(method, url, json=, headers=, timeout=)``)
        """
        self.base_url = (base_url or DEFAULT_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else DEFAULT_TIMEOUT_SEC
        self.session = session or requests.Session()

    def request(self, method: str, path: str, json: Optional[Dict] = None, token: Optional[str] = None) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            StumpScoreError: Taxonomy error for any failure
        """
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.session.request(method, url, json=json, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            logger.warning(f"{method} {path} timed out after {self.timeout}s: {e}")
            raise ServerError(TIMEOUT_MESSAGE) from e
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {type(e).__name__}: {str(e)}")
            raise ServerError(UNREACHABLE_MESSAGE) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            code = message = None
            if isinstance(body, dict):
                code, message = body.get("error"), body.get("message")
            logger.info(f"{method} {path} -> {response.status_code} {code or ''}")
            raise error_from_response(response.status_code, code, message)

        if body is None:
            logger.error(f"{method} {path} returned a non-JSON body")
            raise ServerError()
        return body

    def get(self, path: str, token: Optional[str] = None) -> Any:
        return self.request("GET", path, token=token)

    def post(self, path: str, json: Optional[Dict] = None, token: Optional[str] = None) -> Any:
        return self.request("POST", path, json=json or {}, token=token)

    def put(self, path: str, json: Optional[Dict] = None, token: Optional[str] = None) -> Any:
        return self.request("PUT", path, json=json or {}, token=token)

    # Users

    def register(self, name: str, email: str, password: str) -> Dict:
        return self.post("/users/register", {"name": name, "email": email, "password": password})

    def login(self, email: str, password: str) -> Dict:
        return self.post("/users/login", {"email": email, "password": password})

    def google_sign_in(self, id_token: str) -> Dict:
        return self.post("/users/google", {"id_token": id_token})

    def get_profile(self, token: str) -> Dict:
        return self.get("/users/profile", token=token)

    def update_profile(self, token: str, **fields) -> Dict:
        return self.put("/users/profile", {k: v for k, v in fields.items() if v}, token=token)

    def get_subscription(self, token: str) -> Dict:
        return self.get("/users/subscription", token=token)

    # Payments

    def create_order(self, token: str, amount: int, currency: str, plan_type: str) -> Dict:
        return self.post(
            "/payments/create-order",
            {"amount": amount, "currency": currency, "planType": plan_type},
            token=token,
        )

    def verify_payment(
        self,
        token: str,
        payment_id: str,
        order_id: str,
        signature: str,
        plan_type: str,
        amount: int,
    ) -> Dict:
        return self.post(
            "/payments/verify",
            {
                "razorpay_payment_id": payment_id,
                "razorpay_order_id": order_id,
                "razorpay_signature": signature,
                "planType": plan_type,
                "amount": amount,
            },
            token=token,
        )

    def payment_history(self, token: str) -> list:
        return self.get("/payments/history", token=token)
