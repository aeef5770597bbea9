"""
WebhookEvent model for Stripe webhook event tracking.

Stores every checkout-completion event received from Stripe for idempotent
processing and audit trails. The unique stripe_event_id constraint lets a
redelivered event find its earlier row; only a PROCESSED row counts as a
duplicate.

Usage:
    from payments.models import WebhookEvent
    from payments.state_machines import WebhookEventStatus

    event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id="evt_1234567890",
        defaults={
            "event_type": "checkout.session.completed",
            "payload": event_data,
        }
    )

    if not created and event.status == WebhookEventStatus.PROCESSED:
        # Duplicate webhook - already processed
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Stripe webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify Stripe signature
        2. Insert/get WebhookEvent with stripe_event_id
        3. If exists and PROCESSED -> return 200 (duplicate)
        4. Set status to PROCESSING
        5. Route to the handler (writes order and escrow)
        6. Set status to PROCESSED last, or FAILED on error
        7. If FAILED, retry_failed_webhooks picks it up later

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Type of webhook event
        account: Connected account the event was sent for, if any
        payload: Full JSON payload from Stripe
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'checkout.session.completed')",
    )

    account = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Connected account id (acct_xxx) for Connect events",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    # ==========================================================================
    # Error Handling
    # ==========================================================================

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="payments_we_status_41c0b2_idx"),
            models.Index(fields=["status", "retry_count"], name="payments_we_status_8d2e6f_idx"),
        ]

    def __str__(self) -> str:
        """Return string representation with event ID and type."""
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        """Check if event has been successfully processed."""
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        """Check if event can be retried (failed with retry count < max)."""
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < settings.MAX_WEBHOOK_RETRIES
        )

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """
        Return the event's data.object (checkout session, invoice or subscription), or {}.
        """
        try:
            obj = self.payload.get("data", {}).get("object", {})
        except (AttributeError, TypeError):
            return {}
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        """Extract the primary object ID from the webhook payload."""
        return self.get_object().get("id")
