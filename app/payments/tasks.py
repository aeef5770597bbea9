"""
Celery tasks for payment processing.

This module provides tasks for:
- Processing Stripe webhook events
- Retrying failed webhook events
- Resetting webhook events stuck in PROCESSING

The escrow release workers live in payments.workers and are re-exported at
the bottom so Celery autodiscover finds them.

Usage:
    from payments.tasks import process_webhook_event

    # The webhook view calls this synchronously
    process_webhook_event(str(webhook_event.id))

    # Re-queue failed events (typically via celery beat)
    retry_failed_webhooks.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(acks_late=True)
def process_webhook_event(webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to appropriate handler
    5. Marks as processed (last) or failed

    Errors are recorded on the event and never raised: the webhook view
    runs this inline and must still acknowledge the delivery. Failed
    events are picked up by retry_failed_webhooks.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status
    """
    from payments.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {
            "status": "already_processed",
            "webhook_event_id": str(webhook_event_id),
        }

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error": error_msg,
            },
        )
        return {
            "status": "failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
        }

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error": error_msg,
                "error_code": result.error_code,
            },
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
        }

    webhook_event.mark_processed()
    webhook_event.save()
    logger.info(
        "Webhook processed successfully",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
        },
    )
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "stripe_event_id": webhook_event.stripe_event_id,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks that haven't exceeded MAX_WEBHOOK_RETRIES and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=settings.MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
            logger.info(
                "Queued failed webhook for retry",
                extra={
                    "webhook_event_id": str(webhook.id),
                    "stripe_event_id": webhook.stripe_event_id,
                    "retry_count": webhook.retry_count,
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )

    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Finds webhooks that have been in PROCESSING status for too long
    and resets them to FAILED so they can be retried.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in payments.workers but re-exported here so
# Celery autodiscover finds them.

from payments.workers import (  # noqa: E402, F401
    reap_stuck_releases,
    release_due_escrows,
    release_single_escrow,
    release_site_escrows,
)
