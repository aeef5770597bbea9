"""
Escrow store: the only code that reads or mutates Escrow rows for settlement.

Rows are converted to frozen EscrowRecord values at the read boundary, so
the settlement policy never sees a half-populated model instance. Rows that
cannot be converted are quarantined: logged, reported back to the caller
and never handed to the policy.

Mutations:
    lock_for_release   HELD -> RELEASING (compare-and-set, the only lock)
    commit_transferred RELEASING -> TRANSFERRED (best effort)
    rollback_to_held   RELEASING -> HELD (best effort)
    record_error       last_error on a HELD record (best effort)
    release_stuck      RELEASING -> HELD for records left behind by a crash

Best-effort writes log and return False instead of raising. A failed status
write after a successful transfer must never look like "not yet paid";
operators reconcile those against Stripe by transfer id.

Usage:
    from payments.escrow import EscrowFilter, EscrowStore

    batch = EscrowStore.find_due(EscrowFilter(site_key="shop-a", limit=40))
    for record in batch.records:
        if EscrowStore.lock_for_release(record.id):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from django.db import DatabaseError
from django.db.models import F, Q
from django.utils import timezone

from core.services import BaseService

from payments.exceptions import EscrowNotFoundError, MalformedEscrowError
from payments.models import Escrow
from payments.state_machines import EscrowStatus


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class EscrowRecord:
    """
    Validated, immutable view of one Escrow row.

    ``seller_amount`` and ``seller_connect_id`` may still be missing here;
    those are data-quality problems the policy rejects, not read errors.
    """

    id: str
    site_key: str | None
    status: str
    seller_amount: int | None
    currency: str
    seller_connect_id: str | None
    charge_id: str | None
    transfer_group: str | None
    release_at: datetime | None
    manual_hold: bool
    transfer_id: str | None
    last_error: str | None
    releasing_at: datetime | None
    version: int

    @classmethod
    def from_model(cls, escrow: Escrow) -> EscrowRecord:
        """
        Build a record from a model instance.

        Raises:
            MalformedEscrowError: Unknown status, missing currency, or a
                release_at that is not a datetime
        """
        problems = []
        if escrow.status not in EscrowStatus.values:
            problems.append(f"unknown status {escrow.status!r}")
        if not isinstance(escrow.currency, str) or not escrow.currency.strip():
            problems.append("missing currency")
        if escrow.release_at is not None and not isinstance(escrow.release_at, datetime):
            problems.append("release_at is not a timestamp")
        if problems:
            raise MalformedEscrowError(
                f"Escrow {escrow.pk} is malformed: {', '.join(problems)}",
                details={"escrow_id": escrow.pk, "problems": problems},
            )

        return cls(
            id=escrow.pk,
            site_key=escrow.site_key or None,
            status=escrow.status,
            seller_amount=escrow.seller_amount,
            currency=escrow.currency.strip().lower(),
            seller_connect_id=escrow.seller_connect_id or None,
            charge_id=escrow.charge_id or None,
            transfer_group=escrow.transfer_group or None,
            release_at=escrow.release_at,
            manual_hold=escrow.manual_hold is True,
            transfer_id=escrow.transfer_id,
            last_error=escrow.last_error,
            releasing_at=escrow.releasing_at,
            version=escrow.version,
        )


@dataclass(frozen=True)
class EscrowFilter:
    """
    Candidate query for a release batch.

    Attributes:
        site_key: Restrict to one tenant
        due_before: Only records with release_at at or before this time
        escrow_id: Restrict to a single record
        limit: Maximum rows fetched (callers pass the over-fetched size)
    """

    site_key: str | None = None
    due_before: datetime | None = None
    escrow_id: str | None = None
    limit: int = 100


@dataclass
class DueEscrows:
    """
    Candidate rows for one batch.

    Attributes:
        records: Valid HELD records, in release order
        quarantined: Ids of rows that failed conversion
        not_held: Ids of explicitly requested rows that are no longer HELD
    """

    records: list[EscrowRecord] = field(default_factory=list)
    quarantined: list[str] = field(default_factory=list)
    not_held: list[str] = field(default_factory=list)

    @property
    def queried(self) -> int:
        return len(self.records) + len(self.quarantined) + len(self.not_held)


# =============================================================================
# Store
# =============================================================================


class EscrowStore(BaseService):
    """
    Query and state-transition operations over Escrow rows.

    All methods are classmethods; the database is the only state.
    """

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    def find_due(cls, escrow_filter: EscrowFilter) -> DueEscrows:
        """
        Fetch HELD candidates in release order (oldest due first).

        Args:
            escrow_filter: Query bounds

        Returns:
            DueEscrows with converted records and quarantined ids

        Raises:
            DatabaseError: The store is unreachable
        """
        queryset = Escrow.objects.filter(status=EscrowStatus.HELD)
        if escrow_filter.site_key:
            queryset = queryset.filter(site_key=escrow_filter.site_key)
        if escrow_filter.escrow_id:
            queryset = queryset.filter(pk=escrow_filter.escrow_id)
        if escrow_filter.due_before is not None:
            queryset = queryset.filter(release_at__lte=escrow_filter.due_before)

        rows = queryset.order_by(
            F("release_at").asc(nulls_last=True), "created_at"
        )[: max(escrow_filter.limit, 0)]

        result = DueEscrows()
        for row in rows:
            try:
                result.records.append(EscrowRecord.from_model(row))
            except MalformedEscrowError as e:
                cls.get_logger().error(
                    "Quarantined malformed escrow",
                    extra={"escrow_id": row.pk, **e.details},
                )
                result.quarantined.append(row.pk)
        return result

    @classmethod
    def get(cls, escrow_id: str) -> EscrowRecord:
        """
        Read one escrow regardless of status.

        Raises:
            EscrowNotFoundError: No row with this id
            MalformedEscrowError: The row cannot be read as an escrow
        """
        row = Escrow.objects.filter(pk=escrow_id).first()
        if row is None:
            raise EscrowNotFoundError(
                f"Escrow {escrow_id} not found",
                details={"escrow_id": escrow_id},
            )
        return EscrowRecord.from_model(row)

    @classmethod
    def find_stuck(cls, older_than: datetime, limit: int = 100) -> list[str]:
        """
        Ids of RELEASING records locked before ``older_than``.

        A RELEASING row with no releasing_at can only come from a crash
        mid-write, so it counts as stuck too.
        """
        return list(
            Escrow.objects.filter(status=EscrowStatus.RELEASING)
            .filter(Q(releasing_at__lt=older_than) | Q(releasing_at__isnull=True))
            .order_by("releasing_at")
            .values_list("pk", flat=True)[:limit]
        )

    # =========================================================================
    # Lock
    # =========================================================================

    @classmethod
    def lock_for_release(cls, escrow_id: str, now: datetime | None = None) -> bool:
        """
        Atomically move a record from HELD to RELEASING.

        The manual hold is checked again in the same conditional UPDATE, so
        a hold placed after candidate selection still blocks the release.

        Returns:
            True if this caller now owns the record. False if the row is
            missing, no longer HELD, or on manual hold; nothing is written
            in that case.
        """
        row = Escrow.objects.filter(pk=escrow_id).first()
        if row is None or row.status != EscrowStatus.HELD:
            return False
        if row.manual_hold:
            cls.get_logger().info(
                "Escrow put on manual hold after selection",
                extra={"escrow_id": escrow_id},
            )
            return False

        locked = row.begin_release(now=now)
        if not locked:
            cls.get_logger().info(
                "Escrow lock lost to a concurrent writer",
                extra={"escrow_id": escrow_id},
            )
        return locked

    # =========================================================================
    # Best-effort writes
    # =========================================================================

    @classmethod
    def commit_transferred(
        cls,
        escrow_id: str,
        transfer_id: str,
        now: datetime | None = None,
    ) -> bool:
        """
        Record a successful transfer. Never raises.

        If the RELEASING compare-and-set misses (the reaper moved the row
        back to HELD while the transfer was in flight) the transfer still
        happened, so the outcome is written unconditionally over any
        non-terminal status.
        """
        logger = cls.get_logger()
        now = now or timezone.now()
        try:
            row = Escrow.objects.filter(pk=escrow_id).first()
            if row is None:
                logger.error(
                    "Transferred escrow disappeared before commit",
                    extra={"escrow_id": escrow_id, "transfer_id": transfer_id},
                )
                return False
            if row.complete_release(transfer_id=transfer_id, now=now):
                return True

            logger.warning(
                "Escrow left RELEASING during transfer, forcing commit",
                extra={"escrow_id": escrow_id, "transfer_id": transfer_id, "status": row.status},
            )
            rows = (
                Escrow.objects.filter(pk=escrow_id)
                .exclude(status=EscrowStatus.TRANSFERRED)
                .update(
                    status=EscrowStatus.TRANSFERRED,
                    transfer_id=transfer_id,
                    transferred_at=now,
                    releasing_at=None,
                    last_error=None,
                    version=F("version") + 1,
                    updated_at=now,
                )
            )
            return rows == 1
        except DatabaseError:
            logger.exception(
                "Failed to commit transferred escrow",
                extra={"escrow_id": escrow_id, "transfer_id": transfer_id},
            )
            return False

    @classmethod
    def rollback_to_held(cls, escrow_id: str, error: str) -> bool:
        """Return a RELEASING record to HELD with ``error``. Never raises."""
        logger = cls.get_logger()
        try:
            row = Escrow.objects.filter(pk=escrow_id).first()
            if row is None or not row.abort_release(error):
                logger.warning(
                    "Escrow rollback skipped, record not RELEASING",
                    extra={"escrow_id": escrow_id, "error": error},
                )
                return False
            return True
        except DatabaseError:
            logger.exception(
                "Failed to roll escrow back to held",
                extra={"escrow_id": escrow_id, "error": error},
            )
            return False

    @classmethod
    def record_error(cls, escrow_id: str, message: str) -> bool:
        """Write ``last_error`` on a record that is still HELD. Never raises."""
        try:
            rows = Escrow.objects.filter(pk=escrow_id, status=EscrowStatus.HELD).update(
                last_error=message,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
            return rows == 1
        except DatabaseError:
            cls.get_logger().exception(
                "Failed to record escrow error",
                extra={"escrow_id": escrow_id, "error": message},
            )
            return False

    @classmethod
    def release_stuck(cls, escrow_id: str, error: str = "stuck_releasing_reaped") -> bool:
        """
        Move a stuck RELEASING record back to HELD.

        Safe to retry afterwards: the next transfer attempt reuses the same
        idempotency key, so a transfer that did go through is returned by
        Stripe instead of being created again.
        """
        try:
            row = Escrow.objects.filter(pk=escrow_id, status=EscrowStatus.RELEASING).first()
            return row is not None and row.abort_release(error)
        except DatabaseError:
            cls.get_logger().exception(
                "Failed to reap stuck escrow",
                extra={"escrow_id": escrow_id},
            )
            return False

    @classmethod
    def set_manual_hold(cls, escrow_id: str, hold: bool = True) -> bool:
        """Set or clear the manual hold on a non-terminal record."""
        rows = (
            Escrow.objects.filter(pk=escrow_id)
            .exclude(status=EscrowStatus.TRANSFERRED)
            .update(
                manual_hold=hold,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
        )
        return rows == 1
