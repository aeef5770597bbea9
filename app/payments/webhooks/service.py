"""
Checkout ingestion: turns a completed checkout session into an Order and a
HELD Escrow.

Steps, in order:
    1. Read the payment method summary from the PaymentIntent (best effort)
    2. List line items, falling back to one summary item on failure
    3. Resolve the site key, remember the Stripe customer on the site and
       mark its subscription active
    4. Write the Order and the Escrow
    5. Notify the owner and send the buyer a receipt (best effort)

The caller marks the WebhookEvent processed only after all of this returns,
so a crash part-way through leads to a reprocess, never a lost order.
Order is upserted and Escrow is created only if missing, which makes a
reprocess safe.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.adapters import PaymentIntentResult, StripeAdapter
from payments.exceptions import StripeError
from payments.models import Escrow, NotificationLog, Order
from payments.notifications import NotificationService
from payments.state_machines import EscrowStatus, OrderStatus


@dataclass
class IngestionResult:
    order: Order
    escrow: Escrow
    escrow_created: bool
    site_key: str | None


class CheckoutIngestionService(BaseService):
    """Writes orders and escrows from checkout.session.completed events."""

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        """Get the Stripe adapter class."""
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        """Set the Stripe adapter class (for testing)."""
        cls._stripe_adapter = adapter

    @classmethod
    def ingest(
        cls,
        session: dict[str, Any],
        account: str | None = None,
    ) -> ServiceResult[IngestionResult]:
        """
        Ingest one completed checkout session.

        Args:
            session: The checkout session object from the event
            account: Connected account the event was delivered for, if any

        Returns:
            ServiceResult with IngestionResult
        """
        logger = cls.get_logger()
        session_id = session.get("id")
        if not session_id:
            return ServiceResult.failure(
                "Checkout session has no id",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )

        log_context = {"session_id": session_id, "account": account}
        metadata = session.get("metadata") or {}

        intent = cls._payment_intent(session, account)
        items = cls._line_items(session, account)
        site_key = cls.resolve_site_key(session, account)
        logger.info("Resolved site key", extra={**log_context, "site_key": site_key})

        with transaction.atomic():
            cls._activate_site(site_key, session.get("customer"))
            order = cls._save_order(session, account, site_key, items, intent)
            escrow, escrow_created = cls._create_escrow(session, order, site_key, intent, metadata)

        if escrow_created:
            logger.info(
                "Escrow created",
                extra={
                    **log_context,
                    "site_key": site_key,
                    "seller_amount": escrow.seller_amount,
                    "release_at": escrow.release_at.isoformat() if escrow.release_at else None,
                },
            )
        else:
            logger.info("Escrow already exists, left unchanged", extra=log_context)

        cls._notify(order, site_key)

        return ServiceResult.success(
            IngestionResult(
                order=order,
                escrow=escrow,
                escrow_created=escrow_created,
                site_key=site_key,
            )
        )

    # =========================================================================
    # Site Key
    # =========================================================================

    @classmethod
    def resolve_site_key(cls, session: dict[str, Any], account: str | None = None) -> str | None:
        """
        Find the tenant a session belongs to.

        Priority: metadata.siteKey, the seller owning ``account``,
        client_reference_id, the site owning the Stripe customer, then
        DEFAULT_SITE_KEY.
        """
        from sites.models import Site, SiteSeller

        metadata = session.get("metadata") or {}
        if metadata.get("siteKey"):
            return str(metadata["siteKey"])

        if account:
            seller = SiteSeller.objects.filter(connect_account_id=account).first()
            if seller:
                return seller.site_key

        if session.get("client_reference_id"):
            return str(session["client_reference_id"])

        customer_id = session.get("customer")
        if isinstance(customer_id, str) and customer_id:
            site = Site.objects.filter(stripe_customer_id=customer_id).first()
            if site:
                return site.site_key

        return getattr(settings, "DEFAULT_SITE_KEY", None) or None

    @staticmethod
    def _activate_site(site_key: str | None, customer_id: Any) -> None:
        """Record the paying customer and mark the site's subscription active."""
        from sites.models import Site, SubscriptionStatus

        if not site_key:
            return
        fields = {"subscription_status": SubscriptionStatus.ACTIVE}
        if isinstance(customer_id, str) and customer_id:
            fields["stripe_customer_id"] = customer_id
        Site.objects.filter(site_key=site_key).update(**fields, updated_at=timezone.now())

    # =========================================================================
    # Stripe Reads
    # =========================================================================

    @classmethod
    def _payment_intent(cls, session: dict[str, Any], account: str | None) -> PaymentIntentResult | None:
        payment_intent_id = session.get("payment_intent")
        if isinstance(payment_intent_id, dict):
            payment_intent_id = payment_intent_id.get("id")
        if not payment_intent_id:
            return None

        try:
            return cls.get_stripe_adapter().retrieve_payment_intent(
                payment_intent_id,
                stripe_account=account,
            )
        except StripeError as e:
            cls.get_logger().warning(
                "PaymentIntent lookup failed, continuing without payment details",
                extra={"session_id": session.get("id"), "payment_intent_id": payment_intent_id, "error": str(e)},
            )
            return None

    @classmethod
    def _line_items(cls, session: dict[str, Any], account: str | None) -> list[dict[str, Any]]:
        amount_total = session.get("amount_total") or 0
        try:
            raw_items = cls.get_stripe_adapter().list_checkout_line_items(
                session["id"],
                stripe_account=account,
            )
        except StripeError as e:
            cls.get_logger().error(
                "Line item lookup failed, storing a single summary item",
                extra={"session_id": session.get("id"), "error": str(e)},
            )
            return [cls._summary_item(amount_total)]

        items = []
        for line_item in raw_items:
            price = line_item.get("price") or {}
            product = price.get("product")
            name = None
            if isinstance(product, dict):
                name = product.get("name")
            name = name or line_item.get("description") or "Item"
            qty = line_item.get("quantity") or 1
            subtotal = line_item.get("amount_subtotal") or 0
            unit_amount = price.get("unit_amount")
            if unit_amount is None:
                unit_amount = subtotal // qty
            items.append({"name": name, "qty": qty, "unit_amount": unit_amount, "subtotal": subtotal})
        return items or [cls._summary_item(amount_total)]

    @staticmethod
    def _summary_item(amount_total: int) -> dict[str, Any]:
        return {"name": "Item", "qty": 1, "unit_amount": amount_total, "subtotal": amount_total}

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def _save_order(
        session: dict[str, Any],
        account: str | None,
        site_key: str | None,
        items: list[dict[str, Any]],
        intent: PaymentIntentResult | None,
    ) -> Order:
        details = session.get("customer_details") or {}
        shipping = session.get("shipping_details") or (
            (session.get("collected_information") or {}).get("shipping_details") or {}
        )
        phone = details.get("phone") or shipping.get("phone") or (intent.phone if intent else None)
        customer = session.get("customer")
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        fields = {
            "site_key": site_key or "",
            "amount_total": session.get("amount_total") or 0,
            "currency": (session.get("currency") or "jpy").lower(),
            "customer_name": details.get("name") or shipping.get("name") or "",
            "customer_email": details.get("email") or session.get("customer_email") or "",
            "customer_phone": phone or "",
            "customer_address": details.get("address") or shipping.get("address") or {},
            "line_items": items,
            "payment_intent_id": payment_intent,
            "charge_id": intent.charge_id if intent else None,
            "customer_id": customer if isinstance(customer, str) else None,
            "connected_account_id": account,
            "payment_type": intent.payment_type if intent else None,
            "card_brand": intent.card_brand if intent else None,
            "card_last4": intent.card_last4 if intent else None,
        }
        # A reprocessed event refreshes the order but never resets a refund.
        order, _ = Order.objects.update_or_create(
            pk=session["id"],
            defaults=fields,
            create_defaults={**fields, "status": OrderStatus.PAID},
        )
        return order

    @classmethod
    def _create_escrow(
        cls,
        session: dict[str, Any],
        order: Order,
        site_key: str | None,
        intent: PaymentIntentResult | None,
        metadata: dict[str, Any],
    ) -> tuple[Escrow, bool]:
        from sites.models import PlatformSettings, SiteSeller

        seller = SiteSeller.objects.filter(site_key=site_key).first() if site_key else None
        connect_id = metadata.get("sellerConnectId") or (seller.connect_account_id if seller else None)
        hold = timedelta(seconds=PlatformSettings.load().effective_hold_seconds)

        return Escrow.objects.get_or_create(
            pk=session["id"],
            defaults={
                "site_key": site_key,
                "order": order,
                "status": EscrowStatus.HELD,
                "seller_amount": cls.seller_amount(session.get("amount_total"), metadata),
                "currency": (session.get("currency") or "jpy").lower(),
                "seller_connect_id": connect_id or None,
                "charge_id": intent.charge_id if intent else None,
                "transfer_group": metadata.get("transferGroup") or f"order_{session['id']}",
                "release_at": timezone.now() + hold,
            },
        )

    @staticmethod
    def seller_amount(amount_total: Any, metadata: dict[str, Any]) -> int | None:
        """
        Amount owed to the seller in minor units.

        metadata.sellerAmount wins when present. An unparseable value is
        stored as None so the release policy rejects it visibly instead of
        paying a guessed amount.
        """
        explicit = metadata.get("sellerAmount")
        if explicit not in (None, ""):
            try:
                return int(str(explicit))
            except ValueError:
                return None
        if not isinstance(amount_total, int) or isinstance(amount_total, bool):
            return None
        return amount_total * (100 - settings.PLATFORM_FEE_PERCENT) // 100

    # =========================================================================
    # Notifications
    # =========================================================================

    @classmethod
    def _notify(cls, order: Order, site_key: str | None) -> None:
        from sites.models import Site

        if NotificationLog.objects.filter(session_id=order.id, sent=True).exists():
            cls.get_logger().info(
                "Order notifications already sent, skipping",
                extra={"session_id": order.id},
            )
            return

        owner_email = None
        if site_key:
            site = Site.objects.filter(site_key=site_key).first()
            owner_email = site.owner_email if site else None

        NotificationService.notify_owner(order, owner_email)
        NotificationService.send_buyer_receipt(order)


# =============================================================================
# Site Subscriptions
# =============================================================================


class SubscriptionStatusService(BaseService):
    """Keeps Site.subscription_status in step with Stripe billing events."""

    @classmethod
    def update_for_customer(cls, customer_id: Any, status: str) -> ServiceResult[str | None]:
        """
        Set the subscription status of the site owning ``customer_id``.

        Returns:
            ServiceResult with the updated site key, or None when no site
            uses this customer (the event belongs to someone else)
        """
        from sites.models import Site

        logger = cls.get_logger()
        if not isinstance(customer_id, str) or not customer_id:
            return ServiceResult.failure(
                "Billing event has no customer",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )

        site = Site.objects.filter(stripe_customer_id=customer_id).first()
        if site is None:
            logger.info(
                "No site for billing customer, ignoring",
                extra={"customer_id": customer_id, "subscription_status": status},
            )
            return ServiceResult.success(None)

        site.subscription_status = status
        site.save(update_fields=["subscription_status", "updated_at"])
        logger.info(
            "Site subscription status updated",
            extra={
                "site_key": site.site_key,
                "customer_id": customer_id,
                "subscription_status": status,
            },
        )
        return ServiceResult.success(site.site_key)
