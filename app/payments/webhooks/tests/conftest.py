"""
Pytest fixtures for webhook tests.

Provides a request factory and a helper that posts a verified event to
the webhook view.
"""

import json
from unittest.mock import patch

import pytest
from django.test import RequestFactory

from payments.webhooks.views import stripe_webhook


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    return RequestFactory()


@pytest.fixture
def deliver(rf, fake_stripe):
    """
    Post an event to the webhook view as if Stripe had signed it.

    Usage:
        response = deliver(checkout_event_payload("cs_1"))
    """

    def _deliver(payload: dict, signature: str = "t=1,v1=test"):
        request = rf.post(
            "/api/v1/payments/webhooks/stripe/",
            data=json.dumps(payload),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )
        with patch(
            "payments.webhooks.views.StripeAdapter.verify_webhook_signature",
            return_value=payload,
        ):
            return stripe_webhook(request)

    return _deliver
