"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature
2. Ignores every event type without a handler
3. Creates/retrieves the WebhookEvent record (idempotent)
4. Processes the event before responding, so the order and escrow exist
   once Stripe sees the acknowledgement
5. Always returns 200

Signature failures are acknowledged too. Stripe would otherwise keep
redelivering a message that can never validate; the failure is only
logged and nothing is written.

Usage:
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import StripeInvalidRequestError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.webhooks.handlers import is_handled


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and process Stripe webhook events.

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - An event already PROCESSED returns 200 without reprocessing
    - A PENDING or FAILED event is processed again

    Returns:
        HttpResponse with status 200 in every case
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=200)

    # Step 1: Verify signature
    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=200)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=200)

    # Step 2: Only handled event types are stored
    if not is_handled(event_type):
        logger.info(
            f"Ignoring Stripe webhook: {event_type}",
            extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
        )
        return HttpResponse("Ignored", status=200)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
        },
    )

    # Step 3: Create/get WebhookEvent (idempotent)
    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "account": event_data.get("account"),
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return HttpResponse("Already processed", status=200)

    # Step 4: Process now; failures are recorded on the event
    from payments.tasks import process_webhook_event

    outcome = process_webhook_event(str(webhook_event.id))

    logger.info(
        "Webhook handled",
        extra={
            "stripe_event_id": stripe_event_id,
            "webhook_event_id": str(webhook_event.id),
            "outcome": outcome.get("status"),
        },
    )
    return HttpResponse("OK", status=200)
