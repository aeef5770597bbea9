import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.CharField(editable=False, help_text="Stripe checkout session id (cs_xxx)", max_length=255, primary_key=True, serialize=False)),
                ("site_key", models.CharField(blank=True, db_index=True, default="", help_text="Tenant identifier", max_length=100)),
                ("status", models.CharField(choices=[("paid", "Paid"), ("refunded", "Refunded")], db_index=True, default="paid", max_length=20)),
                ("amount_total", models.BigIntegerField(default=0, help_text="Charged total in smallest currency unit")),
                ("currency", models.CharField(default="jpy", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("customer_name", models.CharField(blank=True, default="", max_length=255)),
                ("customer_email", models.EmailField(blank=True, default="", max_length=254)),
                ("customer_phone", models.CharField(blank=True, default="", max_length=50)),
                ("customer_address", models.JSONField(blank=True, default=dict)),
                ("line_items", models.JSONField(blank=True, default=list, help_text="List of {name, qty, unit_amount, subtotal}")),
                ("payment_intent_id", models.CharField(blank=True, db_index=True, max_length=255, null=True)),
                ("charge_id", models.CharField(blank=True, max_length=255, null=True)),
                ("customer_id", models.CharField(blank=True, max_length=255, null=True)),
                ("connected_account_id", models.CharField(blank=True, max_length=255, null=True)),
                ("payment_type", models.CharField(blank=True, max_length=50, null=True)),
                ("card_brand", models.CharField(blank=True, max_length=50, null=True)),
                ("card_last4", models.CharField(blank=True, max_length=4, null=True)),
                ("refund_id", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ("refund_amount", models.BigIntegerField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["site_key", "created_at"], name="payments_or_site_ke_5d1c2e_idx")],
            },
        ),
        migrations.CreateModel(
            name="Escrow",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.CharField(editable=False, help_text="Stripe checkout session id (cs_xxx)", max_length=255, primary_key=True, serialize=False)),
                ("site_key", models.CharField(blank=True, db_index=True, help_text="Tenant identifier", max_length=100, null=True)),
                ("status", django_fsm.FSMField(choices=[("held", "Held"), ("releasing", "Releasing"), ("transferred", "Transferred")], db_index=True, default="held", help_text="Current state of the escrow (managed by FSM)", max_length=20)),
                ("seller_amount", models.BigIntegerField(blank=True, help_text="Amount owed to the seller in smallest currency unit", null=True)),
                ("currency", models.CharField(default="jpy", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("seller_connect_id", models.CharField(blank=True, help_text="Destination Stripe Connect account (acct_xxx)", max_length=255, null=True)),
                ("charge_id", models.CharField(blank=True, help_text="Originating charge (ch_xxx)", max_length=255, null=True)),
                ("transfer_group", models.CharField(blank=True, help_text="Stripe transfer_group tag", max_length=255, null=True)),
                ("release_at", models.DateTimeField(blank=True, db_index=True, help_text="Automatic release is permitted after this time", null=True)),
                ("manual_hold", models.BooleanField(default=False, help_text="Blocks every release, including forced ones")),
                ("transfer_id", models.CharField(blank=True, help_text="Stripe Transfer id (tr_xxx)", max_length=255, null=True, unique=True)),
                ("last_error", models.TextField(blank=True, help_text="Last failure reason, for operators", null=True)),
                ("releasing_at", models.DateTimeField(blank=True, help_text="When the record entered RELEASING", null=True)),
                ("transferred_at", models.DateTimeField(blank=True, help_text="When the transfer succeeded", null=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each write")),
                ("order", models.OneToOneField(blank=True, help_text="Order created from the same checkout session", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="escrow", to="payments.order")),
            ],
            options={
                "verbose_name": "Escrow",
                "verbose_name_plural": "Escrows",
                "ordering": [models.OrderBy(models.F("release_at"), nulls_last=True), "created_at"],
                "indexes": [
                    models.Index(fields=["status", "release_at"], name="payments_es_status_3b8f0a_idx"),
                    models.Index(fields=["site_key", "status"], name="payments_es_site_ke_9c41d7_idx"),
                    models.Index(fields=["status", "releasing_at"], name="payments_es_status_e27a55_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("stripe_event_id", models.CharField(help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency", max_length=255, unique=True)),
                ("event_type", models.CharField(db_index=True, help_text="Stripe event type (e.g., 'checkout.session.completed')", max_length=100)),
                ("account", models.CharField(blank=True, help_text="Connected account id (acct_xxx) for Connect events", max_length=255, null=True)),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe (JSON)")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("processed", "Processed"), ("failed", "Failed")], db_index=True, default="pending", help_text="Current processing status", max_length=20)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True)),
                ("error_message", models.TextField(blank=True, help_text="Error message if processing failed", null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts")),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="payments_we_status_41c0b2_idx"),
                    models.Index(fields=["status", "retry_count"], name="payments_we_status_8d2e6f_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="NotificationLog",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("site_key", models.CharField(blank=True, db_index=True, default="", max_length=100)),
                ("recipient", models.CharField(blank=True, default="", max_length=254)),
                ("session_id", models.CharField(db_index=True, max_length=255)),
                ("event_type", models.CharField(choices=[("owner_new_order", "Owner new order"), ("buyer_receipt", "Buyer receipt")], max_length=50)),
                ("sent", models.BooleanField(default=False)),
                ("reason", models.TextField(blank=True, default="")),
            ],
            options={
                "verbose_name": "Notification Log",
                "verbose_name_plural": "Notification Logs",
                "ordering": ["-created_at"],
            },
        ),
    ]
