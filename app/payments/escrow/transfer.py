"""
Transfer executor: moves one escrow's funds to the seller with Stripe.

The idempotency key is derived from the escrow id and the shape of the
transfer parameters, never from attempt counters or clocks. Retrying the
same escrow therefore replays the same Stripe request and can never create
a second transfer.

Usage:
    from payments.escrow import TransferExecutor

    result = TransferExecutor.execute(record)
    if result:
        EscrowStore.commit_transferred(record.id, result.data.transfer_id)
    else:
        EscrowStore.rollback_to_held(record.id, result.error)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NamedTuple

from django.db import models

from core.services import BaseService, ServiceResult

from payments.adapters import StripeAdapter
from payments.exceptions import StripeError, StripeIdempotencyKeyMismatchError

if TYPE_CHECKING:
    from payments.escrow.store import EscrowRecord


# =============================================================================
# Idempotency Keys
# =============================================================================


TRANSFER_KEY_SCHEMA_VERSION = "v2"


class TransferShape(models.TextChoices):
    SOURCE_LINKED = "src", "Bound to the originating charge"
    PLAIN = "plain", "Funded from the platform balance"


class TransferIdempotencyKey(NamedTuple):
    """
    Idempotency key as a (schema version, escrow id, parameter shape) tuple.

    Two parameter shapes never share a key, so Stripe never sees one key
    replayed with different parameters unless key derivation itself drifts.
    """

    schema_version: str
    escrow_id: str
    shape: str

    @classmethod
    def for_params(cls, escrow_id: str, params: TransferParams) -> TransferIdempotencyKey:
        return cls(TRANSFER_KEY_SCHEMA_VERSION, escrow_id, params.shape)

    def __str__(self) -> str:
        return f"transfer:{self.schema_version}:{self.escrow_id}:{self.shape}"


@dataclass(frozen=True)
class TransferParams:
    amount: int
    currency: str
    destination: str
    transfer_group: str | None = None
    source_transaction: str | None = None

    @classmethod
    def from_record(cls, record: EscrowRecord) -> TransferParams:
        # Only real charge ids can fund a source-linked transfer
        charge_id = record.charge_id if (record.charge_id or "").startswith("ch_") else None
        return cls(
            amount=record.seller_amount,
            currency=record.currency,
            destination=record.seller_connect_id,
            transfer_group=record.transfer_group,
            source_transaction=charge_id,
        )

    @property
    def shape(self) -> str:
        if self.source_transaction:
            return TransferShape.SOURCE_LINKED
        return TransferShape.PLAIN

    def to_kwargs(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "destination": self.destination,
            "transfer_group": self.transfer_group,
            "source_transaction": self.source_transaction,
        }


@dataclass(frozen=True)
class TransferOutcome:
    """
    Successful transfer for one escrow.

    Attributes:
        escrow_id: The escrow that was paid
        transfer_id: Stripe Transfer ID (tr_xxx)
        idempotency_key: The key the successful request used
        retried: Whether the key-mismatch retry was needed
    """

    escrow_id: str
    transfer_id: str
    idempotency_key: str
    retried: bool = False


# =============================================================================
# Executor
# =============================================================================


class TransferExecutor(BaseService):
    """
    Wraps StripeAdapter.create_transfer for one escrow.

    Failure handling:
        - Idempotency key mismatch: retried exactly once with the key
          suffixed by the current unix time
        - Any other error: returned as a failed ServiceResult; the caller
          rolls the escrow back to HELD so a later sweep retries it
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

    @classmethod
    def execute(cls, record: EscrowRecord) -> ServiceResult[TransferOutcome]:
        """
        Create the Stripe transfer for ``record``.

        Args:
            record: A locked escrow the policy decided to release

        Returns:
            ServiceResult with TransferOutcome on success, or the error
            text and code on failure
        """
        logger = cls.get_logger()
        params = TransferParams.from_record(record)
        key = str(TransferIdempotencyKey.for_params(record.id, params))

        try:
            transfer = cls._create(params, key)
            return ServiceResult.success(
                TransferOutcome(escrow_id=record.id, transfer_id=transfer.id, idempotency_key=key)
            )
        except StripeIdempotencyKeyMismatchError as e:
            retry_key = f"{key}:{int(time.time())}"
            logger.warning(
                "Idempotency key mismatch, retrying once with a fresh key",
                extra={"escrow_id": record.id, "idempotency_key": key, "retry_key": retry_key, "error": str(e)},
            )
        except StripeError as e:
            return cls._failure(record, key, e)

        try:
            transfer = cls._create(params, retry_key)
        except StripeError as e:
            return cls._failure(record, retry_key, e)

        return ServiceResult.success(
            TransferOutcome(
                escrow_id=record.id,
                transfer_id=transfer.id,
                idempotency_key=retry_key,
                retried=True,
            )
        )

    @classmethod
    def _create(cls, params: TransferParams, idempotency_key: str):
        adapter = cls.get_stripe_adapter()
        return adapter.create_transfer(idempotency_key=idempotency_key, **params.to_kwargs())

    @classmethod
    def _failure(
        cls, record: EscrowRecord, idempotency_key: str, error: StripeError
    ) -> ServiceResult[TransferOutcome]:
        cls.get_logger().error(
            "Transfer failed",
            extra={
                "escrow_id": record.id,
                "idempotency_key": idempotency_key,
                "error_code": error.error_code,
                "error": error.message,
            },
        )
        return ServiceResult.from_exception(error)
