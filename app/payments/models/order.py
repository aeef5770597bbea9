"""
Order model for completed storefront checkouts.

One Order is written per Stripe checkout session by webhook ingestion. It
is the buyer-facing record (what was bought, by whom, for how much); the
seller-facing money lives on the matching Escrow.

Usage:
    from payments.models import Order

    order = Order.objects.get(pk="cs_test_123")
    order.line_items  # [{"name": ..., "qty": ..., "unit_amount": ..., "subtotal": ...}]
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel

from payments.state_machines import OrderStatus


class Order(BaseModel):
    """
    A paid storefront order keyed by its checkout session id.

    Fields:
        id: Stripe checkout session id (cs_xxx)
        site_key: Tenant the order belongs to
        status: PAID or REFUNDED
        amount_total: Charged total in smallest currency unit
        currency: ISO 4217 currency code (lowercase)
        customer_*: Buyer contact details copied from the session
        line_items: Purchased items as JSON list
        payment_intent_id / charge_id / customer_id: Stripe references
        connected_account_id: Stripe account the event arrived on, if any
        payment_type / card_brand / card_last4: Payment method summary
        refund_id / refund_amount / refunded_at: Refund outcome
    """

    id = models.CharField(
        primary_key=True,
        max_length=255,
        editable=False,
        help_text="Stripe checkout session id (cs_xxx)",
    )

    site_key = models.CharField(
        max_length=100,
        db_index=True,
        blank=True,
        default="",
        help_text="Tenant identifier",
    )

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PAID,
        db_index=True,
    )

    # ==========================================================================
    # Amount
    # ==========================================================================

    amount_total = models.BigIntegerField(
        default=0,
        help_text="Charged total in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="jpy",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Buyer
    # ==========================================================================

    customer_name = models.CharField(max_length=255, blank=True, default="")
    customer_email = models.EmailField(blank=True, default="")
    customer_phone = models.CharField(max_length=50, blank=True, default="")
    customer_address = models.JSONField(default=dict, blank=True)

    line_items = models.JSONField(
        default=list,
        blank=True,
        help_text="List of {name, qty, unit_amount, subtotal}",
    )

    # ==========================================================================
    # Stripe References
    # ==========================================================================

    payment_intent_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    charge_id = models.CharField(max_length=255, null=True, blank=True)
    customer_id = models.CharField(max_length=255, null=True, blank=True)
    connected_account_id = models.CharField(max_length=255, null=True, blank=True)

    payment_type = models.CharField(max_length=50, null=True, blank=True)
    card_brand = models.CharField(max_length=50, null=True, blank=True)
    card_last4 = models.CharField(max_length=4, null=True, blank=True)

    # ==========================================================================
    # Refund
    # ==========================================================================

    refund_id = models.CharField(max_length=255, null=True, blank=True, unique=True)
    refund_amount = models.BigIntegerField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["site_key", "created_at"], name="payments_or_site_ke_5d1c2e_idx"),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.status}, {self.amount_total} {self.currency.upper()})"

    @property
    def is_refunded(self) -> bool:
        return self.status == OrderStatus.REFUNDED
