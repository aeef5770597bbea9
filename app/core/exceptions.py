"""
Base exception classes for application-wide error handling.

Every domain error carries a human-readable message, a machine-readable
error code and optional details, so views and task results can report
failures in one shape.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or data-quality validation failures
    ├── NotFoundError - Resource not found
    └── ConflictError - State conflicts (already refunded, concurrent change)

Domain apps extend this tree; the Stripe errors in payments.exceptions
derive from it through PaymentProcessingError.

Usage:
    from core.exceptions import ConflictError, NotFoundError

    raise NotFoundError(
        f"Escrow {escrow_id} not found",
        error_code="ESCROW_NOT_FOUND",
        details={"escrow_id": escrow_id},
    )

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, upstream codes)

    Example:
        try:
            RefundService.refund_order(order_id)
        except NotFoundError as e:
            logger.warning(f"Order not found: {e.error_code}")
            return Response(e.to_dict(), status=404)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and (when present) details keys
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input or stored data fails validation.

    Use for service-layer checks such as a refund amount above the order
    total, or a stored record missing a field the domain requires.
    For request payloads, prefer DRF serializer validation.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use for single-resource lookups where existence is expected
    (an escrow id passed to the single release endpoint, an order id
    passed to the refund endpoint).
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Repeating a one-shot operation (refunding an already refunded order)
    - Concurrent modification conflicts
    - Invalid state transitions

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"

