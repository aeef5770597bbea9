"""
Payment admin configuration.

Escrows are read-only in the admin: status moves only through the release
orchestrator, and manual holds are set through bulk actions that use the
same conditional updates as the rest of the system.
"""

from django.contrib import admin

from payments.escrow import EscrowStore, ReleaseOrchestrator
from payments.exceptions import EscrowNotFoundError
from payments.models import Escrow, NotificationLog, Order, WebhookEvent
from payments.state_machines import ReleaseMode

__all__ = [
    "EscrowAdmin",
    "NotificationLogAdmin",
    "OrderAdmin",
    "WebhookEventAdmin",
]


@admin.register(Escrow)
class EscrowAdmin(admin.ModelAdmin):
    """
    Admin configuration for Escrow.

    Provides visibility into held funds and their release progress.
    """

    list_display = [
        "id",
        "site_key",
        "status",
        "amount_display",
        "release_at",
        "manual_hold",
        "transfer_id",
        "created_at",
    ]
    list_filter = ["status", "manual_hold", "currency"]
    search_fields = ["id", "site_key", "seller_connect_id", "transfer_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["place_manual_hold", "clear_manual_hold", "release_now"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "site_key", "order", "status", "manual_hold"),
            },
        ),
        (
            "Payout",
            {
                "fields": (
                    "seller_amount",
                    "currency",
                    "seller_connect_id",
                    "charge_id",
                    "transfer_group",
                    "release_at",
                ),
            },
        ),
        (
            "Release",
            {
                "fields": ("transfer_id", "releasing_at", "transferred_at", "last_error"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    @admin.display(description="Amount")
    def amount_display(self, obj: Escrow) -> str:
        return f"{obj.seller_amount} {obj.currency.upper()}"

    @admin.action(description="Place selected escrows on manual hold")
    def place_manual_hold(self, request, queryset):
        """Block release of the selected escrows until the hold is cleared."""
        count = sum(
            EscrowStore.set_manual_hold(pk, hold=True)
            for pk in queryset.values_list("pk", flat=True)
        )
        self.message_user(request, f"Placed {count} escrows on manual hold.")

    @admin.action(description="Clear manual hold on selected escrows")
    def clear_manual_hold(self, request, queryset):
        count = sum(
            EscrowStore.set_manual_hold(pk, hold=False)
            for pk in queryset.values_list("pk", flat=True)
        )
        self.message_user(request, f"Cleared manual hold on {count} escrows.")

    @admin.action(description="Release selected escrows now")
    def release_now(self, request, queryset):
        """Forced release: ignores the due date, still honours holds and suspension."""
        released = failed = skipped = 0
        for pk in queryset.values_list("pk", flat=True):
            try:
                summary = ReleaseOrchestrator.run(
                    mode=ReleaseMode.FORCED,
                    escrow_id=pk,
                    limit=1,
                )
            except EscrowNotFoundError:
                skipped += 1
                continue
            released += summary.released
            failed += summary.failed
            skipped += summary.skipped
        self.message_user(
            request,
            f"Released {released}, failed {failed}, skipped {skipped}.",
        )

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for escrows (audit trail)."""
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Orders are written by webhook ingestion; refunds go through the API.
    """

    list_display = [
        "id",
        "site_key",
        "status",
        "amount_total",
        "currency",
        "customer_email",
        "refund_amount",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "site_key", "customer_email", "payment_intent_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "site_key", "status", "amount_total", "currency"),
            },
        ),
        (
            "Customer",
            {
                "fields": (
                    "customer_name",
                    "customer_email",
                    "customer_phone",
                    "customer_address",
                ),
            },
        ),
        (
            "Payment",
            {
                "fields": (
                    "payment_intent_id",
                    "charge_id",
                    "customer_id",
                    "connected_account_id",
                    "payment_type",
                    "card_brand",
                    "card_last4",
                ),
            },
        ),
        (
            "Refund",
            {
                "fields": ("refund_id", "refund_amount", "refunded_at"),
            },
        ),
        (
            "Line Items",
            {
                "fields": ("line_items",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "account",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type", "account"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "account",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "event_type", "account", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "retry_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ["session_id", "event_type", "recipient", "sent", "reason", "created_at"]
    list_filter = ["event_type", "sent"]
    search_fields = ["session_id", "site_key", "recipient"]
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False
