"""
State enums for payment models.

This module defines the state enums used by payment models.
The escrow states are driven by django-fsm transitions on the model.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Escrow States:
    held → releasing → transferred
    releasing → held (transfer failure, or stuck-lock reaper)

Order States:
    paid → refunded

WebhookEvent States:
    pending → processing → processed
    pending → processing → failed → processing (retry)
"""

from django.db import models


class EscrowStatus(models.TextChoices):
    """
    States for the Escrow model lifecycle.

    Terminal states: TRANSFERRED

    State Flow:
        HELD → RELEASING → TRANSFERRED

    Recovery Flow:
        RELEASING → HELD (rollback after a failed transfer)

    Only the record that moved HELD → RELEASING may call the processor,
    which makes that transition the single concurrency guard.
    """

    HELD = "held", "Held"
    RELEASING = "releasing", "Releasing"
    TRANSFERRED = "transferred", "Transferred"


class OrderStatus(models.TextChoices):
    """
    States for the Order model.

    State Flow:
        PAID → REFUNDED
    """

    PAID = "paid", "Paid"
    REFUNDED = "refunded", "Refunded"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.
    Only PROCESSED marks an event as a duplicate on redelivery.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class ReleaseMode(models.TextChoices):
    """
    How a release batch treats timing and soft-stop flags.

    AUTO: Scheduled sweep. Honors the kill switch, per-seller automatic
        payout flag and the escrow due date.
    FORCED: Admin "pay now". Bypasses those three; manual hold and seller
        suspension still apply.
    """

    AUTO = "auto", "Automatic"
    FORCED = "forced", "Forced"
