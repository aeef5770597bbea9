"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
        stripe_event_id = models.CharField(max_length=255, unique=True)

Note:
    Models keyed by an external identifier (an escrow keyed by its Stripe
    checkout session id, a site keyed by its site key) declare their own
    primary key instead of using this mixin.
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Fields:
        id: UUIDField as primary key (auto-generated)

    Usage:
        event = WebhookEvent.objects.create(stripe_event_id="evt_123", ...)
        print(event.id)  # UUID like: 550e8400-e29b-41d4-a716-446655440000
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
