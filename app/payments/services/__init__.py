"""
Payment services for coordinating payment operations.

This module provides:
- RefundService: Refunds orders and holds their unpaid escrows

Usage:
    from payments.services import RefundService

    result = RefundService.refund_order(order_id, amount=2500)
"""

from payments.services.refund_service import (
    RefundExecutionResult,
    RefundService,
)

__all__ = [
    "RefundExecutionResult",
    "RefundService",
]
