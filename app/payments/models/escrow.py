"""
Escrow model for platform-held funds owed to one seller for one order.

An Escrow is created in HELD by webhook ingestion when a checkout session
completes, and is mutated afterwards only by the release orchestrator
(through payments.escrow.store.EscrowStore).

Usage:
    from payments.models import Escrow
    from payments.state_machines import EscrowStatus

    escrow = Escrow.objects.get(pk="cs_test_123")

    # Claim the record for release. Returns False if another process
    # claimed it first, its status is no longer HELD, or it is on hold.
    if escrow.begin_release():
        ...
        escrow.complete_release(transfer_id="tr_123")

State transitions are django-fsm transitions persisted as compare-and-set
writes: each one is a single conditional UPDATE filtered on the source state
and version, so two processes can never both move the same record out of a
given state.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django.utils import timezone
from django_fsm import FSMField, can_proceed, transition

from core.models import BaseModel

from payments.state_machines import EscrowStatus


class Escrow(BaseModel):
    """
    Funds held on the platform account until released to a seller.

    State Flow:
        HELD -> RELEASING -> TRANSFERRED
        RELEASING -> HELD (rollback after a failed transfer, or reaper)

    Fields:
        id: Originating Stripe checkout session id (immutable)
        site_key: Tenant the order belongs to
        status: Current state (HELD, RELEASING, TRANSFERRED)
        seller_amount: Amount owed in the smallest currency unit
        currency: ISO 4217 currency code (lowercase)
        seller_connect_id: Destination Stripe Connect account (acct_xxx)
        charge_id: Originating charge (ch_xxx), binds the transfer to it
        transfer_group: Grouping tag passed through to Stripe
        release_at: When automatic release becomes permitted
        manual_hold: Blocks every release, automatic or forced
        transfer_id: Stripe Transfer id once paid (tr_xxx)
        last_error: Last failure reason, cleared on success
        releasing_at: When the record entered RELEASING
        transferred_at: When the transfer succeeded
        version: Incremented on every write for optimistic locking

    Note:
        ``seller_amount`` and ``seller_connect_id`` are nullable so that
        bad data from ingestion is stored and rejected by the settlement
        policy rather than lost.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    id = models.CharField(
        primary_key=True,
        max_length=255,
        editable=False,
        help_text="Stripe checkout session id (cs_xxx)",
    )

    site_key = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Tenant identifier",
    )

    order = models.OneToOneField(
        "payments.Order",
        on_delete=models.SET_NULL,
        related_name="escrow",
        null=True,
        blank=True,
        help_text="Order created from the same checkout session",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        max_length=20,
        choices=EscrowStatus.choices,
        default=EscrowStatus.HELD,
        db_index=True,
        help_text="Current state of the escrow (managed by FSM)",
    )

    # ==========================================================================
    # Amount & Destination
    # ==========================================================================

    seller_amount = models.BigIntegerField(
        null=True,
        blank=True,
        help_text="Amount owed to the seller in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="jpy",
        help_text="ISO 4217 currency code (lowercase)",
    )

    seller_connect_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Destination Stripe Connect account (acct_xxx)",
    )

    charge_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Originating charge (ch_xxx)",
    )

    transfer_group = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe transfer_group tag",
    )

    # ==========================================================================
    # Release Controls
    # ==========================================================================

    release_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Automatic release is permitted after this time",
    )

    manual_hold = models.BooleanField(
        default=False,
        help_text="Blocks every release, including forced ones",
    )

    # ==========================================================================
    # Outcome
    # ==========================================================================

    transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer id (tr_xxx)",
    )

    last_error = models.TextField(
        null=True,
        blank=True,
        help_text="Last failure reason, for operators",
    )

    releasing_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the record entered RELEASING",
    )

    transferred_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer succeeded",
    )

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each write",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = [F("release_at").asc(nulls_last=True), "created_at"]
        verbose_name = "Escrow"
        verbose_name_plural = "Escrows"
        indexes = [
            models.Index(fields=["status", "release_at"], name="payments_es_status_3b8f0a_idx"),
            models.Index(fields=["site_key", "status"], name="payments_es_site_ke_9c41d7_idx"),
            models.Index(fields=["status", "releasing_at"], name="payments_es_status_e27a55_idx"),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        return f"Escrow({self.id}, {self.status}, {self.seller_amount} {self.currency.upper()})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    def _not_on_hold(self) -> bool:
        return self.manual_hold is not True

    @transition(
        field=status,
        source=EscrowStatus.HELD,
        target=EscrowStatus.RELEASING,
        conditions=[_not_on_hold],
    )
    def start_release(self, now=None):
        """
        Claim the escrow for release.

        Transition: HELD -> RELEASING
        """
        self.releasing_at = now or timezone.now()

    @transition(
        field=status,
        source=EscrowStatus.RELEASING,
        target=EscrowStatus.TRANSFERRED,
    )
    def mark_transferred(self, transfer_id: str, now=None):
        """
        Record a successful transfer.

        Transition: RELEASING -> TRANSFERRED
        """
        self.transfer_id = transfer_id
        self.transferred_at = now or timezone.now()
        self.releasing_at = None
        self.last_error = None

    @transition(
        field=status,
        source=EscrowStatus.RELEASING,
        target=EscrowStatus.HELD,
    )
    def return_to_held(self, error: str):
        """
        Return the escrow to HELD after a failed transfer.

        Transition: RELEASING -> HELD
        """
        self.releasing_at = None
        self.last_error = error

    # ==========================================================================
    # Persisted Transitions (compare-and-set)
    # ==========================================================================

    TRANSITION_FIELDS = ("status", "releasing_at", "transfer_id", "transferred_at", "last_error")

    def _transition_and_save(self, method, *args, row_filters=None, **kwargs) -> bool:
        """
        Run the FSM transition ``method`` and persist it with one conditional UPDATE.

        The UPDATE matches only while the row is still in the source state at
        this instance's version (plus ``row_filters``).

        Returns:
            True if exactly this caller moved the row, False otherwise.
            The in-memory instance is left unchanged on failure.
        """
        if not can_proceed(method):
            return False

        source = self.status
        before = {name: getattr(self, name) for name in self.TRANSITION_FIELDS}
        method(*args, **kwargs)
        changes = {name: getattr(self, name) for name in self.TRANSITION_FIELDS}
        now = timezone.now()

        rows = Escrow.objects.filter(
            pk=self.pk,
            status=source,
            version=self.version,
            **(row_filters or {}),
        ).update(version=F("version") + 1, updated_at=now, **changes)
        if rows != 1:
            for name, value in before.items():
                setattr(self, name, value)
            return False

        self.version += 1
        self.updated_at = now
        return True

    def begin_release(self, now=None) -> bool:
        """HELD -> RELEASING, refused when a manual hold is set in memory or in the row."""
        return self._transition_and_save(
            self.start_release,
            now=now,
            row_filters={"manual_hold": False},
        )

    def complete_release(self, transfer_id: str, now=None) -> bool:
        """RELEASING -> TRANSFERRED."""
        return self._transition_and_save(self.mark_transferred, transfer_id, now=now)

    def abort_release(self, error: str) -> bool:
        """RELEASING -> HELD."""
        return self._transition_and_save(self.return_to_held, error)

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_transferred(self) -> bool:
        """Check if the seller has been paid."""
        return self.status == EscrowStatus.TRANSFERRED and bool(self.transfer_id)

    @property
    def is_held(self) -> bool:
        return self.status == EscrowStatus.HELD
