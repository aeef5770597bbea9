"""
Workers for async payment processing.

This module contains Celery tasks for background settlement operations:
- Escrow release: scheduled, per-seller and single-escrow releases
- Reaper: returns escrows stuck in RELEASING to HELD

Usage:
    from payments.workers import (
        reap_stuck_releases,
        release_due_escrows,
        release_single_escrow,
        release_site_escrows,
    )

    release_due_escrows.delay()
    release_site_escrows.delay("shop-a", force=True)
"""

from payments.workers.escrow_release import (
    reap_stuck_releases,
    release_due_escrows,
    release_single_escrow,
    release_site_escrows,
)

__all__ = [
    "reap_stuck_releases",
    "release_due_escrows",
    "release_single_escrow",
    "release_site_escrows",
]
