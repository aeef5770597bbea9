"""
Service layer primitives.

- ServiceResult: outcome of an operation that can fail in an expected way
- BaseService: classmethod-only service base with a per-class logger

Expected failures (a declined transfer, a refund Stripe refuses) come back
as a failed ServiceResult. Anything unexpected is raised and left to the
caller; the release orchestrator converts those per record with
ServiceResult.from_exception so one bad escrow never stops a batch.

Usage:
    from core.services import BaseService, ServiceResult

    class TransferExecutor(BaseService):
        @classmethod
        def execute(cls, record) -> ServiceResult[TransferOutcome]:
            try:
                transfer = adapter.create_transfer(...)
            except StripeError as e:
                cls.get_logger().warning("Transfer failed", extra={"escrow_id": record.id})
                return ServiceResult.from_exception(e)
            return ServiceResult.success(TransferOutcome(transfer_id=transfer.id, ...))

    result = TransferExecutor.execute(record)
    if result:
        store.commit_transferred(record.id, result.data.transfer_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success
        error: Human-readable message on failure
        error_code: Machine-readable code on failure (e.g. CARD_DECLINED)

    A result is truthy exactly when it succeeded.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Build a failed result from ``exc``.

        Application errors contribute their message and error_code; any
        other exception is reported under its upper-cased class name.
        """
        code = error_code or getattr(exc, "error_code", None)
        message = getattr(exc, "message", None) or str(exc)
        return cls(
            success=False,
            error=message,
            error_code=code or exc.__class__.__name__.upper(),
        )

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless services.

    Services expose classmethods only. Collaborators that tests need to
    replace (the Stripe adapter) are class attributes with a setter.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Logger named after the service class.

        e.g. ``payments.escrow.orchestrator.ReleaseOrchestrator``
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
