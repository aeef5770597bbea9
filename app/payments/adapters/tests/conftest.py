"""
Pytest fixtures for Stripe adapter tests.

This module provides fixtures for testing the Stripe adapter, including
mock Stripe API responses and error conditions.

Sections:
    - Mock Stripe Response Fixtures
    - Mock Stripe Error Fixtures
    - Mock Stripe Client Fixtures
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe


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
def mock_transfer():
    """Create a mock Transfer response."""

    def _create(
        id: str = "tr_test123456",
        amount: int = 9000,
        currency: str = "jpy",
        destination: str = "acct_dest123",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "transfer",
                "amount": amount,
                "currency": currency,
                "destination": destination,
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    """Create a mock Refund response."""

    def _create(
        id: str = "re_test123456",
        amount: int = 10000,
        currency: str = "jpy",
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
def mock_payment_intent():
    """Create a mock PaymentIntent response with an expanded card charge."""

    def _create(
        id: str = "pi_test123456",
        latest_charge: Any = "expanded",
    ) -> MockStripeObject:
        if latest_charge == "expanded":
            latest_charge = {
                "id": "ch_test123456",
                "payment_method_details": {
                    "type": "card",
                    "card": {"brand": "visa", "last4": "4242"},
                },
                "billing_details": {"phone": "+81-3-0000-0000"},
            }
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": "succeeded",
                "latest_charge": latest_charge,
            }
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError."""

    def _create(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(message=message, param=None, code=code)
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""

    def _create(
        message: str = "Invalid transfer parameters",
        param: str | None = "amount",
        code: str = "parameter_invalid_integer",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message=message, param=param, code=code)

    return _create


@pytest.fixture
def idempotency_error():
    """Create a Stripe IdempotencyError."""
    return stripe.IdempotencyError(
        message="Keys for idempotent requests can only be used with the same parameters.",
    )


@pytest.fixture
def rate_limit_error():
    """Create a Stripe RateLimitError."""
    return stripe.RateLimitError(message="Too many requests hit the API too quickly.")


@pytest.fixture
def api_connection_error():
    """Create a Stripe APIConnectionError."""
    return stripe.APIConnectionError(message="Could not connect to Stripe.")


@pytest.fixture
def api_error():
    """Create a Stripe APIError."""
    return stripe.APIError(message="Something went wrong on Stripe's end.")


@pytest.fixture
def authentication_error():
    """Create a Stripe AuthenticationError."""
    return stripe.AuthenticationError(message="Invalid API Key provided.")


@pytest.fixture
def signature_verification_error():
    """Create a Stripe SignatureVerificationError."""
    return stripe.SignatureVerificationError(
        message="Unable to verify webhook signature.",
        sig_header="bad_signature",
    )


# =============================================================================
# Mock Stripe Client Fixtures
# =============================================================================


@pytest.fixture
def mock_stripe_transfer(mock_transfer):
    """Mock stripe.Transfer API."""
    with patch("stripe.Transfer") as mock:
        mock.create.return_value = mock_transfer()
        yield mock


@pytest.fixture
def mock_stripe_refund(mock_refund):
    """Mock stripe.Refund API."""
    with patch("stripe.Refund") as mock:
        mock.create.return_value = mock_refund()
        yield mock


@pytest.fixture
def mock_stripe_payment_intent(mock_payment_intent):
    """Mock stripe.PaymentIntent API."""
    with patch("stripe.PaymentIntent") as mock:
        mock.retrieve.return_value = mock_payment_intent()
        yield mock


@pytest.fixture
def mock_stripe_checkout_session():
    """Mock stripe.checkout.Session API."""
    with patch("stripe.checkout.Session") as mock:
        mock.list_line_items.return_value = MockStripeObject({"data": [], "has_more": False})
        yield mock


@pytest.fixture
def mock_stripe_webhook():
    """Mock stripe.Webhook API."""
    with patch("stripe.Webhook") as mock:
        mock.construct_event.return_value = MockStripeObject(
            {
                "id": "evt_test123",
                "type": "checkout.session.completed",
                "data": {"object": {"id": "cs_test123", "object": "checkout.session"}},
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_http_client():
    """Mock stripe.RequestsClient."""
    with patch("stripe.RequestsClient") as mock:
        yield mock
