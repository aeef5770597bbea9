"""
Pytest fixtures shared by every payments test package.

The Stripe adapter is replaced by ``FakeStripeAdapter`` through the
services' ``set_stripe_adapter`` hooks, so no test talks to Stripe.

Usage:
    def test_release(fake_stripe, due_escrow):
        ReleaseOrchestrator.run()
        assert fake_stripe.transfer_count() == 1
"""

from __future__ import annotations

from collections import Counter, deque
from typing import Any

import pytest

from payments.adapters import PaymentIntentResult, RefundResult, TransferResult
from payments.escrow import TransferExecutor
from payments.services import RefundService
from payments.tests.factories import EscrowFactory, OrderFactory
from payments.webhooks.service import CheckoutIngestionService
from sites.tests.factories import SiteFactory, SiteSellerFactory


class FakeStripeAdapter:
    """
    In-memory stand-in for StripeAdapter.

    Honours idempotency keys the way Stripe does: a replayed key returns
    the object created by the first request. Errors queued with
    ``fail_next`` are raised by the next create_transfer calls in order.
    """

    transfers: dict[str, TransferResult] = {}
    transfer_calls: list[dict[str, Any]] = []
    refund_calls: list[dict[str, Any]] = []
    refunds: dict[str, RefundResult] = {}
    transfer_errors: deque = deque()
    refund_errors: deque = deque()
    payment_intents: dict[str, PaymentIntentResult] = {}
    payment_intent_error: Exception | None = None
    line_items: dict[str, list[dict[str, Any]]] = {}
    line_items_error: Exception | None = None

    @classmethod
    def reset(cls) -> None:
        cls.transfers = {}
        cls.transfer_calls = []
        cls.refund_calls = []
        cls.refunds = {}
        cls.transfer_errors = deque()
        cls.refund_errors = deque()
        cls.payment_intents = {}
        cls.payment_intent_error = None
        cls.line_items = {}
        cls.line_items_error = None

    @classmethod
    def fail_next(cls, *errors: Exception) -> None:
        cls.transfer_errors.extend(errors)

    @classmethod
    def transfer_count(cls) -> int:
        """Distinct transfers created (replayed keys count once)."""
        return len(cls.transfers)

    @classmethod
    def calls_per_key(cls) -> Counter:
        return Counter(call["idempotency_key"] for call in cls.transfer_calls)

    @classmethod
    def create_transfer(
        cls,
        amount,
        currency,
        destination,
        idempotency_key,
        transfer_group=None,
        source_transaction=None,
    ) -> TransferResult:
        cls.transfer_calls.append(
            {
                "amount": amount,
                "currency": currency,
                "destination": destination,
                "idempotency_key": idempotency_key,
                "transfer_group": transfer_group,
                "source_transaction": source_transaction,
            }
        )
        if cls.transfer_errors:
            raise cls.transfer_errors.popleft()
        if idempotency_key not in cls.transfers:
            cls.transfers[idempotency_key] = TransferResult(
                id=f"tr_{len(cls.transfers) + 1:06d}",
                amount=amount,
                currency=currency,
                destination=destination,
            )
        return cls.transfers[idempotency_key]

    @classmethod
    def create_refund(cls, payment_intent_id, idempotency_key, amount=None, stripe_account=None):
        cls.refund_calls.append(
            {
                "payment_intent_id": payment_intent_id,
                "idempotency_key": idempotency_key,
                "amount": amount,
                "stripe_account": stripe_account,
            }
        )
        if cls.refund_errors:
            raise cls.refund_errors.popleft()
        if idempotency_key not in cls.refunds:
            cls.refunds[idempotency_key] = RefundResult(
                id=f"re_{len(cls.refunds) + 1:06d}",
                amount=amount or 0,
                currency="jpy",
                status="succeeded",
                payment_intent_id=payment_intent_id,
            )
        return cls.refunds[idempotency_key]

    @classmethod
    def retrieve_payment_intent(cls, payment_intent_id, stripe_account=None):
        if cls.payment_intent_error is not None:
            raise cls.payment_intent_error
        return cls.payment_intents.get(
            payment_intent_id,
            PaymentIntentResult(
                id=payment_intent_id,
                charge_id="ch_test123",
                payment_type="card",
                card_brand="visa",
                card_last4="4242",
            ),
        )

    @classmethod
    def list_checkout_line_items(cls, session_id, stripe_account=None):
        if cls.line_items_error is not None:
            raise cls.line_items_error
        return cls.line_items.get(session_id, [])


@pytest.fixture
def fake_stripe():
    """Install FakeStripeAdapter on every service that calls Stripe."""
    FakeStripeAdapter.reset()
    services = [TransferExecutor, RefundService, CheckoutIngestionService]
    for service in services:
        service.set_stripe_adapter(FakeStripeAdapter)
    yield FakeStripeAdapter
    for service in services:
        service.set_stripe_adapter(None)
    FakeStripeAdapter.reset()


# =============================================================================
# Site Fixtures
# =============================================================================


@pytest.fixture
def site(db):
    """Site "shop-a" with an owner e-mail."""
    return SiteFactory(site_key="shop-a", owner_email="owner@shop-a.example.com")


@pytest.fixture
def seller(db):
    """Seller "shop-a" with a connected account and no stop flags."""
    return SiteSellerFactory(site_key="shop-a", connect_account_id="acct_shopa")


# =============================================================================
# Escrow Fixtures
# =============================================================================


@pytest.fixture
def due_escrow(db, seller):
    """A HELD escrow whose hold period has passed."""
    return EscrowFactory(id="cs_due_1", site_key="shop-a")


@pytest.fixture
def paid_order(db, site):
    """A PAID order with a payment intent."""
    return OrderFactory(id="cs_paid_1", site_key="shop-a", amount_total=10000)
