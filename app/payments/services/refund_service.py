"""
Refund service for returning money to buyers.

An admin refunds an order in full or in part. The Stripe refund is keyed by
order id and amount, so a repeated request (double click, client retry)
returns the original refund instead of refunding twice.

When the order's escrow has not been paid out yet it is put on manual hold
before Stripe is called, so a release sweep running at the same time cannot
pay the seller for a refunded order. The hold blocks every later release
until an operator clears it, and is lifted again if Stripe refuses the
refund. An escrow
that was already transferred is left alone and the refund is logged for
manual recovery from the seller.

Usage:
    from payments.services import RefundService

    result = RefundService.refund_order("cs_test_123", amount=1500)

    if result.success:
        print(f"Refund created: {result.data.refund_id}")
    else:
        print(f"Refund failed: {result.error}")
"""

from __future__ import annotations

from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.adapters import StripeAdapter
from payments.escrow import EscrowStore
from payments.exceptions import (
    AlreadyRefundedError,
    PaymentNotFoundError,
    PaymentValidationError,
    StripeError,
)
from payments.models import Escrow, Order
from payments.state_machines import EscrowStatus, OrderStatus


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundExecutionResult:
    """
    Result of a refund.

    Attributes:
        order: The refunded Order
        refund_id: Stripe Refund ID (re_xxx)
        amount: Refunded amount in smallest currency unit
        escrow_held: Whether the order's escrow was put on manual hold
    """

    order: Order
    refund_id: str
    amount: int
    escrow_held: bool = False


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Refunds storefront orders.

    Flow:
        1. Validate the order (exists, site matches, not refunded, amount)
        2. Put an unpaid escrow on manual hold
        3. Call Stripe refund OUTSIDE any transaction, with an idempotency key
        4. Record the refund on the order under a row lock
    """

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

    @staticmethod
    def idempotency_key(order_id: str, amount: int) -> str:
        return f"refund:{order_id}:{amount}"

    @classmethod
    def refund_order(
        cls,
        order_id: str,
        amount: int | None = None,
        site_key: str | None = None,
    ) -> ServiceResult[RefundExecutionResult]:
        """
        Refund an order.

        Args:
            order_id: Order (checkout session) id
            amount: Amount to refund, defaults to the full order total
            site_key: When given, must match the order's site

        Returns:
            ServiceResult with RefundExecutionResult, or the Stripe failure

        Raises:
            PaymentNotFoundError: Unknown order
            AlreadyRefundedError: The order was refunded before
            PaymentValidationError: Site mismatch, bad amount, or no payment intent
        """
        logger = cls.get_logger()

        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            raise PaymentNotFoundError(
                f"Order {order_id} not found",
                details={"order_id": order_id},
            )

        refund_amount = cls._validate(order, amount, site_key)

        log_context = {
            "order_id": order_id,
            "site_key": order.site_key,
            "amount": refund_amount,
        }
        logger.info("Starting refund", extra=log_context)

        escrow_held, hold_placed = cls._hold_escrow(order_id)

        try:
            refund = cls.get_stripe_adapter().create_refund(
                payment_intent_id=order.payment_intent_id,
                idempotency_key=cls.idempotency_key(order_id, refund_amount),
                amount=refund_amount,
                stripe_account=order.connected_account_id,
            )
        except StripeError as e:
            logger.error(
                "Stripe refund failed",
                extra={**log_context, "error": e.message, "error_code": e.error_code},
            )
            if hold_placed:
                EscrowStore.set_manual_hold(order_id, hold=False)
            return ServiceResult.from_exception(e)

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            order.status = OrderStatus.REFUNDED
            order.refund_id = refund.id
            order.refund_amount = refund_amount
            order.refunded_at = timezone.now()
            order.save(
                update_fields=["status", "refund_id", "refund_amount", "refunded_at", "updated_at"]
            )

        logger.info(
            "Refund completed",
            extra={**log_context, "refund_id": refund.id, "escrow_held": escrow_held},
        )

        return ServiceResult.success(
            RefundExecutionResult(
                order=order,
                refund_id=refund.id,
                amount=refund_amount,
                escrow_held=escrow_held,
            )
        )

    @classmethod
    def _validate(cls, order: Order, amount: int | None, site_key: str | None) -> int:
        if site_key and order.site_key != site_key:
            raise PaymentValidationError(
                "Site mismatch",
                details={"order_id": order.pk, "site_key": site_key},
            )
        if order.status == OrderStatus.REFUNDED:
            raise AlreadyRefundedError(
                f"Order {order.pk} was already refunded",
                details={"order_id": order.pk, "refund_id": order.refund_id},
            )
        if not order.payment_intent_id:
            raise PaymentValidationError(
                "Order has no payment intent to refund",
                details={"order_id": order.pk},
            )

        refund_amount = order.amount_total if amount is None else amount
        if isinstance(refund_amount, bool) or not isinstance(refund_amount, int) or refund_amount <= 0:
            raise PaymentValidationError(
                "Invalid refund amount",
                details={"order_id": order.pk, "amount": refund_amount},
            )
        if refund_amount > order.amount_total:
            raise PaymentValidationError(
                "Refund exceeds original amount",
                details={
                    "order_id": order.pk,
                    "amount": refund_amount,
                    "amount_total": order.amount_total,
                },
            )
        return refund_amount

    @classmethod
    def _hold_escrow(cls, order_id: str) -> tuple[bool, bool]:
        """
        Put the order's unpaid escrow on manual hold.

        Returns:
            (held, placed): whether the escrow is on hold now, and whether
            this call put it there
        """
        escrow = Escrow.objects.filter(pk=order_id).only("status", "manual_hold").first()
        if escrow is None:
            return False, False
        if escrow.status == EscrowStatus.TRANSFERRED:
            cls.get_logger().warning(
                "Refunding an order that was already paid out to the seller",
                extra={"order_id": order_id},
            )
            return False, False
        if escrow.status == EscrowStatus.RELEASING:
            cls.get_logger().warning(
                "Refunding an order whose payout is in flight",
                extra={"order_id": order_id},
            )
        if escrow.manual_hold:
            return True, False
        placed = EscrowStore.set_manual_hold(order_id, hold=True)
        return placed, placed
