"""
Release orchestrator: one batch procedure behind every payout trigger.

The scheduled sweep, the per-site admin sweep and the single-escrow
"pay now" action all call ReleaseOrchestrator.run with different
parameters:

    scheduled sweep   run(mode=AUTO)
    site sweep        run(mode=AUTO or FORCED, site_key=...)
    single release    run(mode=FORCED, escrow_id=...)

Per candidate (query order, oldest due first, stopping at ``limit``
releases):

    decide -> skip         skipped += 1
           -> reject       failed += 1, last_error written, record stays HELD
           -> release      lock HELD -> RELEASING
                             lost   -> skipped += 1
                             won    -> transfer
                                         ok     -> TRANSFERRED, released += 1
                                         error  -> back to HELD, failed += 1

A single record never aborts the batch. The lock is the only concurrency
control: two overlapping runs can both select a record, but only the one
that wins the compare-and-set calls Stripe.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.escrow.policy import GlobalFlags, SiteFlags, decide
from payments.escrow.store import DueEscrows, EscrowFilter, EscrowStore
from payments.escrow.transfer import TransferExecutor
from payments.exceptions import MalformedEscrowError
from payments.state_machines import EscrowStatus, ReleaseMode

INVALID_DESTINATION_OR_AMOUNT_ERROR = "invalid destination/amount"


# =============================================================================
# Summary
# =============================================================================


@dataclass
class ReleaseSummary:
    """
    Outcome counts of one batch.

    Attributes:
        queried: Rows returned by the candidate query (including quarantined)
        due: Candidates the policy decided to release
        released: Transfers created and committed
        skipped: Policy skips, lost locks and quarantined rows
        failed: Policy rejects and failed transfers
        suspended: Seller suspension flag, for site sweeps only
        reason: Why the batch did nothing, if it returned early
        errors: One {id, code, message} entry per failed record
    """

    run_id: str
    mode: str
    limit: int
    now: datetime
    site_key: str | None = None
    queried: int = 0
    due: int = 0
    released: int = 0
    skipped: int = 0
    failed: int = 0
    suspended: bool | None = None
    reason: str | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)

    def add_error(self, escrow_id: str, code: str | None, message: str | None) -> None:
        self.errors.append({"id": escrow_id, "code": code, "message": message})

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "queried": self.queried,
            "due": self.due,
            "released": self.released,
            "skipped": self.skipped,
            "failed": self.failed,
            "limit": self.limit,
            "now": self.now.isoformat(),
            "run_id": self.run_id,
            "errors": list(self.errors),
        }
        if self.suspended is not None:
            data["suspended"] = self.suspended
        if self.reason:
            data["reason"] = self.reason
        return data


# =============================================================================
# Orchestrator
# =============================================================================


class ReleaseOrchestrator(BaseService):
    """
    Runs release batches.

    Store and executor are class attributes so tests can swap the
    Stripe adapter behind TransferExecutor without touching this class.
    """

    store = EscrowStore
    executor = TransferExecutor

    @classmethod
    def run(
        cls,
        mode: str = ReleaseMode.AUTO,
        site_key: str | None = None,
        limit: int | None = None,
        now: datetime | None = None,
        escrow_id: str | None = None,
    ) -> ReleaseSummary:
        """
        Run one release batch.

        Args:
            mode: ReleaseMode.AUTO (scheduled) or ReleaseMode.FORCED (admin)
            site_key: Restrict the batch to one seller
            limit: Maximum number of releases (default PAYOUT_CRON_LIMIT)
            now: Reference time (default: current time)
            escrow_id: Release exactly this escrow

        Returns:
            ReleaseSummary with outcome counts

        Raises:
            EscrowNotFoundError: ``escrow_id`` does not exist
            DatabaseError: The candidate query failed
        """
        logger = cls.get_logger()
        now = now or timezone.now()
        if limit is None:
            limit = settings.PAYOUT_CRON_LIMIT
        limit = max(int(limit), 0)

        summary = ReleaseSummary(
            run_id=uuid.uuid4().hex,
            mode=str(mode),
            limit=limit,
            now=now,
            site_key=site_key,
        )
        log_context = {
            "run_id": summary.run_id,
            "mode": summary.mode,
            "site_key": site_key,
            "escrow_id": escrow_id,
            "limit": limit,
        }
        logger.info("Starting escrow release batch", extra=log_context)

        global_flags = cls._load_global_flags()
        if (
            mode == ReleaseMode.AUTO
            and global_flags.auto_payouts_disabled
            and site_key is None
            and escrow_id is None
        ):
            summary.reason = "auto_disabled_global"
            logger.info("Automatic payouts disabled platform-wide", extra=log_context)
            return summary

        site_flags_cache: dict[str, SiteFlags] = {}
        if site_key:
            site_flags = cls._site_flags(site_key, site_flags_cache)
            summary.suspended = site_flags.payouts_suspended

        batch = cls._candidates(mode, site_key, limit, now, escrow_id, summary)
        summary.queried = batch.queried
        summary.skipped += len(batch.quarantined) + len(batch.not_held)

        for record in batch.records:
            if summary.released >= limit:
                break
            cls._process(record, mode, now, global_flags, site_flags_cache, summary)

        logger.info(
            "Escrow release batch complete",
            extra={**log_context, **{k: v for k, v in summary.to_dict().items() if k != "errors"}},
        )
        return summary

    # =========================================================================
    # Candidates
    # =========================================================================

    @classmethod
    def _candidates(
        cls,
        mode: str,
        site_key: str | None,
        limit: int,
        now: datetime,
        escrow_id: str | None,
        summary: ReleaseSummary,
    ) -> DueEscrows:
        if escrow_id:
            try:
                record = cls.store.get(escrow_id)
            except MalformedEscrowError:
                return DueEscrows(quarantined=[escrow_id])
            if record.status != EscrowStatus.HELD:
                cls.get_logger().info(
                    "Escrow not held, nothing to release",
                    extra={"run_id": summary.run_id, "escrow_id": escrow_id, "status": record.status},
                )
                return DueEscrows(not_held=[record.id])
            return DueEscrows(records=[record])

        multiplier = getattr(settings, "PAYOUT_OVERFETCH_MULTIPLIER", 2)
        return cls.store.find_due(
            EscrowFilter(
                site_key=site_key,
                due_before=now if mode == ReleaseMode.AUTO else None,
                limit=limit * multiplier,
            )
        )

    # =========================================================================
    # Per-record processing
    # =========================================================================

    @classmethod
    def _process(
        cls,
        record,
        mode: str,
        now: datetime,
        global_flags: GlobalFlags,
        site_flags_cache: dict[str, SiteFlags],
        summary: ReleaseSummary,
    ) -> None:
        logger = cls.get_logger()
        log_context = {"run_id": summary.run_id, "escrow_id": record.id, "site_key": record.site_key}

        site_flags = cls._site_flags(record.site_key, site_flags_cache)
        decision = decide(record, now, site_flags, global_flags, mode)

        if decision.is_skip:
            summary.skipped += 1
            logger.debug("Escrow skipped", extra={**log_context, "reason": decision.reason})
            return

        if decision.is_reject:
            summary.failed += 1
            summary.add_error(record.id, str(decision.reason), INVALID_DESTINATION_OR_AMOUNT_ERROR)
            cls.store.record_error(record.id, INVALID_DESTINATION_OR_AMOUNT_ERROR)
            logger.error(
                "Escrow rejected",
                extra={
                    **log_context,
                    "reason": decision.reason,
                    "has_destination": bool(record.seller_connect_id),
                    "amount": record.seller_amount,
                },
            )
            return

        summary.due += 1
        try:
            locked = cls.store.lock_for_release(record.id, now=timezone.now())
        except DatabaseError:
            logger.exception("Escrow lock failed", extra=log_context)
            locked = False
        if not locked:
            summary.skipped += 1
            return

        try:
            result = cls.executor.execute(record)
        except Exception as e:
            logger.exception("Unexpected transfer error", extra=log_context)
            result = ServiceResult.from_exception(e)

        if result:
            cls.store.commit_transferred(record.id, result.data.transfer_id)
            summary.released += 1
            logger.info(
                "Escrow released",
                extra={
                    **log_context,
                    "amount": record.seller_amount,
                    "currency": record.currency,
                    "transfer_id": result.data.transfer_id,
                },
            )
        else:
            cls.store.rollback_to_held(record.id, result.error or "transfer failed")
            summary.failed += 1
            summary.add_error(record.id, result.error_code, result.error)

    # =========================================================================
    # Flags
    # =========================================================================

    @classmethod
    def _load_global_flags(cls) -> GlobalFlags:
        from sites.models import PlatformSettings

        try:
            platform_settings = PlatformSettings.objects.filter(pk=PlatformSettings.SINGLETON_PK).first()
        except DatabaseError:
            cls.get_logger().exception("Failed to read platform settings, assuming defaults")
            return GlobalFlags()
        return GlobalFlags.from_settings(platform_settings)

    @classmethod
    def _site_flags(cls, site_key: str | None, cache: dict[str, SiteFlags]) -> SiteFlags:
        from sites.models import SiteSeller

        if not site_key:
            return SiteFlags()
        if site_key not in cache:
            try:
                seller = SiteSeller.objects.filter(site_key=site_key).first()
            except DatabaseError:
                cls.get_logger().exception(
                    "Failed to read seller flags, assuming none set",
                    extra={"site_key": site_key},
                )
                seller = None
            cache[site_key] = SiteFlags.from_seller(seller)
        return cache[site_key]
