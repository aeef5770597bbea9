"""
Payment domain models.

This module contains all settlement-related models:
- Escrow: Platform-held funds owed to a seller, released by the orchestrator
- Order: Completed checkout, written by webhook ingestion
- WebhookEvent: Stripe webhook event tracking for idempotent processing
- NotificationLog: Record of each order notification attempt
"""

from payments.models.escrow import Escrow
from payments.models.notification_log import NotificationLog
from payments.models.order import Order
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "Escrow",
    "NotificationLog",
    "Order",
    "WebhookEvent",
]
