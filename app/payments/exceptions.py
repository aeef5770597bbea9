"""
Payment-specific exceptions for settlement operations.

This module provides a hierarchy of exceptions for escrow settlement,
covering escrow domain errors, refund errors and Stripe-specific errors.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Order lookup failures
    ├── PaymentValidationError - Refund/amount validation failures
    └── PaymentProcessingError - Payment processing failures
        └── StripeError - Base for all Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInsufficientFundsError - Insufficient platform balance (permanent)
            ├── StripeInvalidAccountError - Invalid connected account (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeIdempotencyKeyMismatchError - Key replayed with other params
            ├── StripeRateLimitError - Rate limited (transient, retry)
            ├── StripeAPIUnavailableError - API unavailable (transient, retry)
            └── StripeTimeoutError - Request timeout (transient, retry)

    EscrowError (base for escrow store errors)
    ├── EscrowNotFoundError - Escrow id does not exist
    └── MalformedEscrowError - Stored row cannot be read as an escrow

    AlreadyRefundedError - Order already refunded (inherits ConflictError)

Usage:
    from payments.exceptions import EscrowNotFoundError, StripeError

    try:
        summary = ReleaseOrchestrator().run(mode=ReleaseMode.FORCED, escrow_id=sid)
    except EscrowNotFoundError as e:
        return Response(e.to_dict(), status=404)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when an order cannot be found.

    Example:
        order = Order.objects.filter(pk=order_id).first()
        if not order:
            raise PaymentNotFoundError(
                f"Order {order_id} not found",
                details={"order_id": order_id}
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class PaymentValidationError(PaymentError):
    """
    Raised when payment validation fails.

    Use for:
    - Refund amount above the order total
    - Non-positive refund amounts
    - Orders without a payment intent
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class PaymentProcessingError(PaymentError):
    """Raised when payment processing fails at the processor."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


class AlreadyRefundedError(ConflictError):
    """Raised when a refund is requested for an order that was already refunded."""

    default_error_code: str = "ALREADY_REFUNDED"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the operation can be retried

    A failed transfer is never retried inside a batch. The escrow goes back
    to ``held`` and the next sweep picks it up; ``is_retryable`` only tells
    operators whether waiting is likely to help.
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """Card was declined by the issuing bank."""

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError):
    """
    Insufficient funds for the operation.

    For transfers this means the platform balance cannot cover the seller
    amount yet. It resolves once pending charges settle, so the escrow is
    simply rolled back and retried by a later sweep.
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class StripeInvalidAccountError(StripeError):
    """
    Invalid Stripe Connect account.

    Raised when the destination account for a transfer is not found,
    restricted, or cannot receive transfers. Requires operator action
    on the seller's account.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    The request itself is malformed and will never succeed with the same
    parameters (unknown currency, refund larger than the charge, missing
    resource).
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


class StripeIdempotencyKeyMismatchError(StripeError):
    """
    An idempotency key was replayed with different parameters.

    Keys are derived from the escrow id and the parameter shape, so this
    only happens after key-derivation drift. The transfer executor retries
    exactly once with a suffixed key when it sees this error.
    """

    default_error_code: str = "IDEMPOTENCY_KEY_MISMATCH"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    This covers network connectivity issues, Stripe server errors (5xx)
    and authentication misconfiguration surfaced at call time.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    IMPORTANT: The operation may have succeeded on Stripe's side.
    Retrying with the same idempotency key returns the original result,
    which is why transfer keys are deterministic per escrow.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Escrow Store Exceptions
# =============================================================================


class EscrowError(BaseApplicationError):
    """Base exception for escrow store operations."""

    default_error_code: str = "ESCROW_ERROR"


class EscrowNotFoundError(EscrowError, NotFoundError):
    """
    Raised when a single-escrow release names an id that does not exist.

    Batch sweeps never raise this; a record disappearing mid-batch is
    just a failed lock.
    """

    default_error_code: str = "ESCROW_NOT_FOUND"


class MalformedEscrowError(EscrowError, ValidationError):
    """
    Raised when a stored escrow row cannot be converted to an EscrowRecord.

    Malformed rows are quarantined at the store boundary: logged, counted
    as skipped, and never handed to the settlement policy.
    """

    default_error_code: str = "MALFORMED_ESCROW"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "PaymentProcessingError",
    "AlreadyRefundedError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeIdempotencyKeyMismatchError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    # Escrow store
    "EscrowError",
    "EscrowNotFoundError",
    "MalformedEscrowError",
]
