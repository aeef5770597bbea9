"""
NotificationLog model recording every order notification attempt.

E-mail delivery never blocks settlement, so failures surface here and in
the logs instead of as errors.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class NotificationLog(UUIDPrimaryKeyMixin, BaseModel):
    """
    One row per notification attempt.

    Fields:
        site_key: Tenant the order belongs to
        recipient: Address the message was (or would have been) sent to
        session_id: Checkout session the notification is about
        event_type: What kind of notification (owner_new_order, buyer_receipt)
        sent: Whether the mail backend accepted the message
        reason: Failure or skip reason when not sent
    """

    class EventType(models.TextChoices):
        OWNER_NEW_ORDER = "owner_new_order", "Owner new order"
        BUYER_RECEIPT = "buyer_receipt", "Buyer receipt"

    site_key = models.CharField(max_length=100, blank=True, default="", db_index=True)
    recipient = models.CharField(max_length=254, blank=True, default="")
    session_id = models.CharField(max_length=255, db_index=True)
    event_type = models.CharField(max_length=50, choices=EventType.choices)
    sent = models.BooleanField(default=False)
    reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Notification Log"
        verbose_name_plural = "Notification Logs"

    def __str__(self) -> str:
        state = "sent" if self.sent else "failed"
        return f"NotificationLog({self.event_type}, {self.session_id}, {state})"
