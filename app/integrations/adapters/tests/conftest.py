"""
Pytest fixtures for payment adapter tests.

This module provides fixtures for testing the provider adapters, including
mock Stripe API responses, a scripted HTTP session for the REST adapters,
and tenant configuration builders.

Sections:
    - Credential Fixtures
    - Mock Stripe Response Fixtures
    - Scripted HTTP Session Fixtures
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import patch

import pytest
import stripe

from integrations.types import PaymentIntegrationConfig, PaymentProvider


# =============================================================================
# Credential Fixtures
# =============================================================================


class PassthroughVault:
    """Vault that treats the stored credentials as already decrypted."""

    def decrypt(self, blob):
        return dict(blob or {})


@pytest.fixture
def vault():
    return PassthroughVault()


@pytest.fixture
def make_config():
    """Build a tenant config with plain-dict credentials."""

    def _create(
        provider: str,
        credentials: dict | None = None,
        settings: dict | None = None,
        enabled: bool = True,
    ) -> PaymentIntegrationConfig:
        return PaymentIntegrationConfig(
            provider=provider,
            enabled=enabled,
            credentials=credentials or {},
            settings=settings if settings is not None else {"test_mode": True},
            tenant_id=f"tenant-{uuid.uuid4().hex[:8]}",
        )

    return _create


@pytest.fixture
def stripe_config(make_config):
    return make_config(
        PaymentProvider.CARD,
        {"client_id": "pk_test_1234567890", "client_secret": "sk_test_1234567890"},
    )


@pytest.fixture
def paypal_config(make_config):
    return make_config(
        PaymentProvider.WALLET,
        {"client_id": "paypal-client-id-123", "client_secret": "paypal-secret-456"},
        settings={"test_mode": True, "webhook_url": "https://tenant.example.com/hooks/"},
    )


@pytest.fixture
def square_config(make_config):
    return make_config(
        PaymentProvider.TERMINAL_POS,
        {
            "access_token": "EAAAsandbox-token",
            "application_id": "sandbox-sq0idb-app",
            "location_id": "L1",
        },
    )


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_payment_intent():
    """Create a mock PaymentIntent response."""

    def _create(
        id: str = "pi_test123456",
        status: str = "succeeded",
        amount: int = 1999,
        currency: str = "usd",
        amount_received: int = 1999,
        application_fee_amount: int | None = None,
        payment_method_types: list | None = None,
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "amount_received": amount_received,
                "application_fee_amount": application_fee_amount,
                "payment_method_types": payment_method_types or ["card"],
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    """Create a mock Refund response."""

    def _create(
        id: str = "re_test123456",
        amount: int = 1999,
        currency: str = "usd",
        status: str = "succeeded",
        payment_intent: str = "pi_test123456",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "currency": currency,
                "status": status,
                "payment_intent": payment_intent,
            }
        )

    return _create


@pytest.fixture
def card_error():
    """Create a Stripe CardError."""

    def _create(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(message=message, param=None, code=code, http_status=402)
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def rate_limit_error():
    """Create a Stripe RateLimitError."""
    return stripe.RateLimitError(
        message="Too many requests hit the API too quickly.",
        http_status=429,
    )


@pytest.fixture
def api_connection_error():
    """Create a Stripe APIConnectionError."""
    return stripe.APIConnectionError(message="Could not connect to Stripe.")


@pytest.fixture
def authentication_error():
    """Create a Stripe AuthenticationError."""
    return stripe.AuthenticationError(message="Invalid API Key provided.", http_status=401)


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""

    def _create(
        message: str = "No such payment_intent: 'pi_missing'",
        code: str = "resource_missing",
        http_status: int = 404,
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(
            message=message,
            param="payment_intent",
            code=code,
            http_status=http_status,
        )

    return _create


@pytest.fixture
def mock_stripe_payment_intent():
    """Patch stripe.PaymentIntent for testing."""
    with patch("stripe.PaymentIntent") as mock:
        yield mock


@pytest.fixture
def mock_stripe_refund():
    """Patch stripe.Refund for testing."""
    with patch("stripe.Refund") as mock:
        yield mock


# =============================================================================
# Scripted HTTP Session Fixtures
# =============================================================================


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


@dataclass
class RecordedRequest:
    method: str
    url: str
    kwargs: dict[str, Any]
    headers: dict[str, str]

    @property
    def json(self) -> Any:
        return self.kwargs.get("json")


@dataclass
class FakeSession:
    """
    Session that replays queued responses in order and records requests.

    Queue entries may be FakeResponse instances or exceptions to raise.
    """

    responses: list[Any] = field(default_factory=list)
    requests: list[RecordedRequest] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    closed: int = 0

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.closed += 1

    def reply(self, status_code: int = 200, payload: Any = None) -> "FakeSession":
        self.responses.append(FakeResponse(status_code, payload))
        return self

    def fail(self, error: Exception) -> "FakeSession":
        self.responses.append(error)
        return self

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append(RecordedRequest(method, url, kwargs, dict(self.headers)))
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def http_session():
    """
    Patch session construction for REST adapters.

    Usage:
        http_session.reply(200, {...})
        adapter.process_payment(config, data)
        assert http_session.requests[0].url.endswith("/v2/payments")
    """
    session = FakeSession()

    def _build(self, headers=None):
        session.headers.update({"Content-Type": "application/json"})
        if headers:
            session.headers.update(headers)
        return session

    with patch("integrations.adapters.base.PaymentAdapter._session", _build):
        yield session
