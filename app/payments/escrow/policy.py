"""
Settlement policy: decides, per escrow, whether a release may proceed.

``decide`` is a pure function. It reads nothing and writes nothing; the
orchestrator loads the flags and acts on the Decision.

Rules, first match wins:
    1. auto mode and the global kill switch is on   -> skip auto_disabled_global
    2. the escrow is on manual hold                  -> skip manual_hold
    3. the seller's payouts are suspended            -> skip suspended
    4. auto mode and the seller disabled auto payout -> skip auto_disabled_site
    5. auto mode and release_at unset or in future   -> skip not_due
    6. destination missing or amount not a positive integer
                                                     -> reject invalid_destination_or_amount
    7. otherwise                                     -> release

Hard stops (2, 3) apply in forced mode too. Forced mode only bypasses the
kill switch, the seller's auto-payout opt-out and the due date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from django.db import models

from payments.state_machines import ReleaseMode

if TYPE_CHECKING:
    from payments.escrow.store import EscrowRecord
    from sites.models import PlatformSettings, SiteSeller


# =============================================================================
# Flags
# =============================================================================


@dataclass(frozen=True)
class SiteFlags:
    """Per-seller payout switches. Only a real ``True`` counts as set."""

    payouts_suspended: bool = False
    auto_payouts_disabled: bool = False

    @classmethod
    def from_seller(cls, seller: SiteSeller | None) -> SiteFlags:
        if seller is None:
            return cls()
        return cls(
            payouts_suspended=seller.payouts_suspended is True,
            auto_payouts_disabled=seller.auto_payouts_disabled is True,
        )


@dataclass(frozen=True)
class GlobalFlags:
    """Platform-wide switches, read once at the start of a batch."""

    auto_payouts_disabled: bool = False

    @classmethod
    def from_settings(cls, platform_settings: PlatformSettings | None) -> GlobalFlags:
        if platform_settings is None:
            return cls()
        return cls(auto_payouts_disabled=platform_settings.auto_payouts_disabled is True)


# =============================================================================
# Decision
# =============================================================================


class DecisionKind(models.TextChoices):
    RELEASE = "release", "Release"
    SKIP = "skip", "Skip"
    REJECT = "reject", "Reject"


class DecisionReason(models.TextChoices):
    AUTO_DISABLED_GLOBAL = "auto_disabled_global", "Automatic payouts disabled platform-wide"
    MANUAL_HOLD = "manual_hold", "Escrow on manual hold"
    SUSPENDED = "suspended", "Seller payouts suspended"
    AUTO_DISABLED_SITE = "auto_disabled_site", "Seller disabled automatic payouts"
    NOT_DUE = "not_due", "Release date not reached"
    INVALID_DESTINATION_OR_AMOUNT = (
        "invalid_destination_or_amount",
        "Missing destination or invalid amount",
    )


@dataclass(frozen=True)
class Decision:
    kind: str
    reason: str | None = None

    @classmethod
    def release(cls) -> Decision:
        return cls(DecisionKind.RELEASE)

    @classmethod
    def skip(cls, reason: str) -> Decision:
        return cls(DecisionKind.SKIP, reason)

    @classmethod
    def reject(cls, reason: str) -> Decision:
        return cls(DecisionKind.REJECT, reason)

    @property
    def is_release(self) -> bool:
        return self.kind == DecisionKind.RELEASE

    @property
    def is_skip(self) -> bool:
        return self.kind == DecisionKind.SKIP

    @property
    def is_reject(self) -> bool:
        return self.kind == DecisionKind.REJECT


# =============================================================================
# Policy
# =============================================================================


def is_valid_amount(amount: object) -> bool:
    """A positive integer. Booleans and floats are not amounts."""
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


def decide(
    escrow: EscrowRecord,
    now: datetime,
    site_flags: SiteFlags,
    global_flags: GlobalFlags,
    mode: str,
) -> Decision:
    """
    Apply the settlement rules to one escrow.

    Args:
        escrow: The candidate record
        now: Reference time for the due-date check
        site_flags: Flags of the escrow's seller
        global_flags: Platform flags loaded for this batch
        mode: ReleaseMode.AUTO or ReleaseMode.FORCED

    Returns:
        Decision (release, skip with reason, or reject with reason)
    """
    auto = mode == ReleaseMode.AUTO

    if auto and global_flags.auto_payouts_disabled is True:
        return Decision.skip(DecisionReason.AUTO_DISABLED_GLOBAL)

    if escrow.manual_hold is True:
        return Decision.skip(DecisionReason.MANUAL_HOLD)

    if site_flags.payouts_suspended is True:
        return Decision.skip(DecisionReason.SUSPENDED)

    if auto and site_flags.auto_payouts_disabled is True:
        return Decision.skip(DecisionReason.AUTO_DISABLED_SITE)

    if auto and (escrow.release_at is None or escrow.release_at > now):
        return Decision.skip(DecisionReason.NOT_DUE)

    if not escrow.seller_connect_id or not is_valid_amount(escrow.seller_amount):
        return Decision.reject(DecisionReason.INVALID_DESTINATION_OR_AMOUNT)

    return Decision.release()
