"""
Escrow release workers.

This module provides Celery tasks that wrap ReleaseOrchestrator.run for
each release trigger, plus the reaper for escrows stuck in RELEASING.

Tasks:
- release_due_escrows: Scheduled sweep of every due escrow (auto mode)
- release_site_escrows: Sweep of one seller's escrows (auto or forced)
- release_single_escrow: Release one escrow (the admin "pay now" path)
- reap_stuck_releases: Return escrows stuck in RELEASING to HELD

Usage:
    # Typically called via the celery beat schedule
    from payments.workers import release_due_escrows
    release_due_escrows.delay()

    # Admin release of one seller's escrows regardless of due date
    release_site_escrows.delay("shop-a", force=True)
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.escrow import EscrowStore, ReleaseOrchestrator
from payments.state_machines import ReleaseMode

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum stuck escrows reaped per run
REAP_BATCH_SIZE = 100

STUCK_RELEASE_ERROR = "stuck_releasing_reaped"


# =============================================================================
# Release Tasks
# =============================================================================


@shared_task(acks_late=True)
def release_due_escrows(limit: int | None = None) -> dict:
    """
    Release every escrow whose hold period has passed.

    Runs in auto mode: the global kill switch, seller opt-outs and the due
    date all apply. Safe to run concurrently with itself or with a manual
    release; the per-escrow lock decides who pays.

    Args:
        limit: Maximum releases this run (default PAYOUT_CRON_LIMIT)

    Returns:
        ReleaseSummary as a dict
    """
    summary = ReleaseOrchestrator.run(
        mode=ReleaseMode.AUTO,
        limit=limit if limit is not None else settings.PAYOUT_CRON_LIMIT,
    )
    return summary.to_dict()


@shared_task(acks_late=True)
def release_site_escrows(site_key: str, force: bool = False, limit: int | None = None) -> dict:
    """
    Release the HELD escrows of one seller.

    Args:
        site_key: The seller's site key
        force: Ignore due dates and the automatic-payout opt-outs
        limit: Maximum releases this run (default PAYOUT_SITE_LIMIT)

    Returns:
        ReleaseSummary as a dict, including the seller's suspension flag
    """
    summary = ReleaseOrchestrator.run(
        mode=ReleaseMode.FORCED if force else ReleaseMode.AUTO,
        site_key=site_key,
        limit=limit if limit is not None else settings.PAYOUT_SITE_LIMIT,
    )
    return summary.to_dict()


@shared_task(acks_late=True)
def release_single_escrow(escrow_id: str, force: bool = True) -> dict:
    """
    Release exactly one escrow.

    Manual hold and seller suspension still block the release.

    Raises:
        EscrowNotFoundError: No escrow with this id
    """
    summary = ReleaseOrchestrator.run(
        mode=ReleaseMode.FORCED if force else ReleaseMode.AUTO,
        escrow_id=escrow_id,
        limit=1,
    )
    return summary.to_dict()


# =============================================================================
# Stuck Release Reaper
# =============================================================================


@shared_task
def reap_stuck_releases(older_than_minutes: int | None = None) -> dict:
    """
    Return escrows stuck in RELEASING to HELD.

    A worker that dies between locking an escrow and recording the transfer
    outcome leaves it in RELEASING, where no sweep will pick it up again.
    Rolling it back is safe because the next attempt reuses the escrow's
    idempotency key: if the transfer did go through, Stripe returns it
    instead of paying twice.

    Args:
        older_than_minutes: Age threshold (default ESCROW_STUCK_RELEASING_MINUTES)

    Returns:
        Dict with counts of stuck and reaped escrows
    """
    minutes = older_than_minutes or settings.ESCROW_STUCK_RELEASING_MINUTES
    threshold = timezone.now() - timedelta(minutes=minutes)

    stuck_ids = EscrowStore.find_stuck(threshold, limit=REAP_BATCH_SIZE)

    reaped_count = 0
    for escrow_id in stuck_ids:
        if EscrowStore.release_stuck(escrow_id, error=STUCK_RELEASE_ERROR):
            reaped_count += 1
            logger.warning(
                "Reaped stuck escrow release",
                extra={"escrow_id": escrow_id, "threshold_minutes": minutes},
            )

    if stuck_ids:
        logger.info(
            f"Reaped {reaped_count} of {len(stuck_ids)} stuck escrow releases",
            extra={"stuck_count": len(stuck_ids), "reaped_count": reaped_count},
        )

    return {"stuck_count": len(stuck_ids), "reaped_count": reaped_count}
