"""
Webhook event handlers for Stripe events.

This module provides a handler registry, the handler for completed
checkouts and the billing handlers that track each site's hosting
subscription. Event types without a registered handler are acknowledged and
ignored.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.models import WebhookEvent
from payments.webhooks.service import CheckoutIngestionService, SubscriptionStatusService
from sites.models import SubscriptionStatus


logger = logging.getLogger(__name__)


CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.paid"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
CUSTOMER_SUBSCRIPTION_DELETED = "customer.subscription.deleted"


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "checkout.session.completed")

    Returns:
        Decorator function that registers the handler
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def is_handled(event_type: str | None) -> bool:
    return event_type in WEBHOOK_HANDLERS


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Returns:
        ServiceResult from the handler, or success if no handler
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


# =============================================================================
# Checkout Handlers
# =============================================================================


@register_handler(CHECKOUT_SESSION_COMPLETED)
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Create the Order and HELD Escrow for a completed checkout.

    Reads for Connect events go to the connected account the event was
    delivered for.
    """
    session = webhook_event.get_object()
    if not session.get("id"):
        logger.error(
            "checkout.session.completed: Could not extract session id",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.failure(
            "Could not extract checkout session id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    logger.info(
        "Processing checkout.session.completed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "session_id": session["id"],
            "account": webhook_event.account,
        },
    )

    return CheckoutIngestionService.ingest(session, account=webhook_event.account)


# =============================================================================
# Subscription Handlers
# =============================================================================


def _update_subscription(webhook_event: WebhookEvent, status: str) -> ServiceResult:
    data_object = webhook_event.get_object()
    logger.info(
        f"Processing {webhook_event.event_type}",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "customer_id": data_object.get("customer"),
        },
    )
    return SubscriptionStatusService.update_for_customer(data_object.get("customer"), status)


@register_handler(INVOICE_PAID)
def handle_invoice_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """A recurring hosting payment succeeded: the site is active."""
    return _update_subscription(webhook_event, SubscriptionStatus.ACTIVE)


@register_handler(INVOICE_PAYMENT_FAILED)
def handle_invoice_payment_failed(webhook_event: WebhookEvent) -> ServiceResult:
    return _update_subscription(webhook_event, SubscriptionStatus.UNPAID)


@register_handler(CUSTOMER_SUBSCRIPTION_DELETED)
def handle_customer_subscription_deleted(webhook_event: WebhookEvent) -> ServiceResult:
    """
    The hosting subscription ended.

    Only the status is recorded; tearing down the hosted site is left to
    operators.
    """
    return _update_subscription(webhook_event, SubscriptionStatus.CANCELED)
