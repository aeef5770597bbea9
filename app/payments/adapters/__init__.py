"""
Payment adapters for external services.

All Stripe API calls go through StripeAdapter to ensure consistent
error handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import StripeAdapter

    result = StripeAdapter.create_transfer(
        amount=9000,
        currency="jpy",
        destination="acct_123",
        idempotency_key="transfer:v2:cs_123:plain",
    )
"""

from payments.adapters.stripe_adapter import (
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "PaymentIntentResult",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
]
