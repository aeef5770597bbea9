"""
Tenant models consulted by the settlement core.

Models:
    Site: A storefront tenant identified by its site key
    SiteSeller: Payout destination and payout stop flags for a site
    PlatformSettings: Singleton holding platform-wide payout settings

The payments app reads SiteSeller and PlatformSettings once per release
batch and converts them into immutable flag values; it never writes them.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class SubscriptionStatus(models.TextChoices):
    """Hosting subscription state of a site."""

    ACTIVE = "active", "Active"
    UNPAID = "unpaid", "Unpaid"
    CANCELED = "canceled", "Canceled"


class Site(BaseModel):
    """
    A storefront tenant.

    Fields:
        site_key: Stable tenant identifier carried in checkout metadata
        owner_email: Address that receives new-order notifications
        stripe_customer_id: Stripe customer used by the site's subscription,
            recorded by webhook ingestion for site-key resolution
        subscription_status: Hosting subscription state, kept current by
            invoice and subscription webhooks
    """

    site_key = models.CharField(
        max_length=100,
        unique=True,
        help_text="Tenant identifier",
    )
    name = models.CharField(
        max_length=255,
        blank=True,
        default="",
    )
    owner_email = models.EmailField(
        blank=True,
        default="",
        help_text="Receives new-order notifications",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        db_index=True,
        help_text="Stripe customer id (cus_xxx)",
    )
    subscription_status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        blank=True,
        null=True,
        help_text="Hosting subscription state",
    )

    class Meta:
        ordering = ["site_key"]

    def __str__(self) -> str:
        return self.site_key


class SiteSeller(BaseModel):
    """
    Seller payout configuration for a site.

    Flags:
        payouts_suspended: Hard stop. No automatic or forced release.
        auto_payouts_disabled: Soft stop. Blocks only the automatic sweep.

    Only a stored ``True`` engages a flag.
    """

    site_key = models.CharField(
        max_length=100,
        unique=True,
        help_text="Tenant identifier",
    )
    connect_account_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        db_index=True,
        help_text="Stripe Connect account id (acct_xxx)",
    )
    payouts_suspended = models.BooleanField(
        default=False,
        help_text="Blocks all releases for this seller",
    )
    auto_payouts_disabled = models.BooleanField(
        default=False,
        help_text="Blocks automatic releases; forced releases still run",
    )

    class Meta:
        ordering = ["site_key"]

    def __str__(self) -> str:
        return f"{self.site_key} ({self.connect_account_id or 'no account'})"


class PlatformSettings(BaseModel):
    """
    Platform-wide payout settings, stored as a single row.

    Use ``PlatformSettings.load()`` rather than querying directly; it
    creates the row with defaults on first access.
    """

    SINGLETON_PK = 1

    auto_payouts_disabled = models.BooleanField(
        default=False,
        help_text="Kill switch: disables every automatic release sweep",
    )
    payout_hold_seconds = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Hold period applied to new escrows; falls back to settings",
    )

    class Meta:
        verbose_name = "platform settings"
        verbose_name_plural = "platform settings"

    def __str__(self) -> str:
        return "Platform settings"

    def save(self, *args, **kwargs):
        """
        Always write the singleton row.

        A fresh instance saved over an existing row takes over that row's
        created_at, so the write is a plain UPDATE.
        """
        self.pk = self.SINGLETON_PK
        if self._state.adding:
            created_at = (
                type(self).objects.filter(pk=self.pk).values_list("created_at", flat=True).first()
            )
            if created_at is not None:
                self.created_at = created_at
                self._state.adding = False
        super().save(*args, **kwargs)

    @classmethod
    def load(cls) -> PlatformSettings:
        obj, _ = cls.objects.get_or_create(pk=cls.SINGLETON_PK)
        return obj

    @property
    def effective_hold_seconds(self) -> int:
        if self.payout_hold_seconds is not None:
            return self.payout_hold_seconds
        return settings.ESCROW_DEFAULT_HOLD_SECONDS
