"""
Webhook handling for payment events from Stripe.

Webhooks are verified, stored idempotently as WebhookEvent rows and
processed before the response is sent. Failed events are retried by the
retry_failed_webhooks task.

Usage:
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
