"""
Order notifications sent after a checkout completes.

Every attempt, sent or not, is recorded as a NotificationLog row so
operators can see which owners never heard about an order. Sending is
best effort: failures are logged and recorded, never raised, because
settlement never depends on an e-mail arriving.

Usage:
    from payments.notifications import NotificationService

    NotificationService.notify_owner(order, owner_email=site.owner_email)
    NotificationService.send_buyer_receipt(order)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import send_mail

from core.services import BaseService

from payments.models import NotificationLog

if TYPE_CHECKING:
    from payments.models import Order


# Currencies without a minor unit (amounts are already whole units)
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)


def format_amount(amount: int | None, currency: str | None) -> str:
    """Render a minor-unit amount for humans, e.g. ``1,500 JPY`` or ``12.50 USD``."""
    code = (currency or "jpy").lower()
    value = amount or 0
    if code in ZERO_DECIMAL_CURRENCIES:
        return f"{value:,} {code.upper()}"
    return f"{value / 100:,.2f} {code.upper()}"


def _order_lines(order: Order) -> list[str]:
    lines = []
    for item in order.line_items or []:
        lines.append(
            f"- {item.get('name', 'Item')} x{item.get('qty', 1)}: "
            f"{format_amount(item.get('subtotal'), order.currency)}"
        )
    return lines


class NotificationService(BaseService):
    """Owner and buyer e-mails for completed orders."""

    OWNER_SUBJECT = "New order received"
    BUYER_SUBJECT = "Thank you for your purchase (receipt)"

    @classmethod
    def notify_owner(cls, order: Order, owner_email: str | None) -> NotificationLog:
        """
        Tell the site owner about a new order.

        Args:
            order: The order just created
            owner_email: Owner address from the site, if one is on file

        Returns:
            The NotificationLog row describing the attempt
        """
        event_type = NotificationLog.EventType.OWNER_NEW_ORDER

        if not order.site_key:
            return cls._record(order, "", event_type, sent=False, reason="site key unresolved")
        if not owner_email:
            cls.get_logger().warning(
                "Owner email not found",
                extra={"site_key": order.site_key, "session_id": order.id},
            )
            return cls._record(order, "", event_type, sent=False, reason="owner email not found")

        body = "\n".join(
            [
                "A new order has been completed.",
                "",
                f"Order ID: {order.id}",
                f"Buyer: {order.customer_email or '-'}",
                f"Total: {format_amount(order.amount_total, order.currency)}",
                "",
                *_order_lines(order),
                "",
                f"Ship to: {order.customer_name or '-'}",
                f"Phone: {order.customer_phone or '-'}",
                f"Address: {cls._address_line(order.customer_address) or '-'}",
            ]
        )
        return cls._send(order, owner_email, event_type, cls.OWNER_SUBJECT, body)

    @classmethod
    def send_buyer_receipt(cls, order: Order) -> NotificationLog:
        """Send the buyer a receipt for ``order``."""
        event_type = NotificationLog.EventType.BUYER_RECEIPT

        if not order.customer_email:
            return cls._record(order, "", event_type, sent=False, reason="buyer email not found")

        payment = order.payment_type or "-"
        if order.card_brand and order.card_last4:
            payment = f"{order.card_brand.upper()} **** {order.card_last4}"

        body = "\n".join(
            [
                "Thank you for your order.",
                "",
                f"Order ID: {order.id}",
                f"Payment: {payment}",
                f"Total: {format_amount(order.amount_total, order.currency)}",
                "",
                *_order_lines(order),
            ]
        )
        return cls._send(order, order.customer_email, event_type, cls.BUYER_SUBJECT, body)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _address_line(address: dict | None) -> str:
        if not isinstance(address, dict):
            return ""
        parts = [
            address.get("postal_code"),
            address.get("state"),
            address.get("city"),
            address.get("line1"),
            address.get("line2"),
            address.get("country"),
        ]
        return " ".join(p for p in parts if p)

    @classmethod
    def _send(
        cls,
        order: Order,
        recipient: str,
        event_type: str,
        subject: str,
        body: str,
    ) -> NotificationLog:
        try:
            send_mail(
                subject,
                body,
                settings.DEFAULT_FROM_EMAIL,
                [recipient],
                fail_silently=False,
            )
        except Exception as e:
            cls.get_logger().error(
                "Order notification failed",
                extra={"session_id": order.id, "recipient": recipient, "event_type": event_type},
                exc_info=True,
            )
            return cls._record(order, recipient, event_type, sent=False, reason=f"send_mail failed: {e}")

        cls.get_logger().info(
            "Order notification sent",
            extra={"session_id": order.id, "recipient": recipient, "event_type": event_type},
        )
        return cls._record(order, recipient, event_type, sent=True)

    @staticmethod
    def _record(
        order: Order,
        recipient: str,
        event_type: str,
        sent: bool,
        reason: str = "",
    ) -> NotificationLog:
        return NotificationLog.objects.create(
            site_key=order.site_key or "",
            recipient=recipient,
            session_id=order.id,
            event_type=event_type,
            sent=sent,
            reason=reason,
        )
