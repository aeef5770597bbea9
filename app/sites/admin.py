"""
Sites admin configuration.

Operators use these pages to suspend a seller's payouts, disable automatic
release for one seller, or flip the platform kill switch.
"""

from django.contrib import admin

from sites.models import PlatformSettings, Site, SiteSeller


@admin.register(Site)
class SiteAdmin(admin.ModelAdmin):
    list_display = ["site_key", "name", "owner_email", "stripe_customer_id", "subscription_status", "created_at"]
    search_fields = ["site_key", "name", "owner_email", "stripe_customer_id"]
    readonly_fields = ["created_at", "updated_at"]


@admin.register(SiteSeller)
class SiteSellerAdmin(admin.ModelAdmin):
    list_display = [
        "site_key",
        "connect_account_id",
        "payouts_suspended",
        "auto_payouts_disabled",
        "updated_at",
    ]
    list_filter = ["payouts_suspended", "auto_payouts_disabled"]
    list_editable = ["payouts_suspended", "auto_payouts_disabled"]
    search_fields = ["site_key", "connect_account_id"]
    readonly_fields = ["created_at", "updated_at"]


@admin.register(PlatformSettings)
class PlatformSettingsAdmin(admin.ModelAdmin):
    list_display = ["__str__", "auto_payouts_disabled", "payout_hold_seconds", "updated_at"]
    readonly_fields = ["created_at", "updated_at"]

    def has_add_permission(self, request):
        return not PlatformSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
