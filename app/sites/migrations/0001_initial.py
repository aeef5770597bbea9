from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PlatformSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("auto_payouts_disabled", models.BooleanField(default=False, help_text="Kill switch: disables every automatic release sweep")),
                ("payout_hold_seconds", models.PositiveIntegerField(blank=True, help_text="Hold period applied to new escrows; falls back to settings", null=True)),
            ],
            options={
                "verbose_name": "platform settings",
                "verbose_name_plural": "platform settings",
            },
        ),
        migrations.CreateModel(
            name="Site",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("site_key", models.CharField(help_text="Tenant identifier", max_length=100, unique=True)),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                ("owner_email", models.EmailField(blank=True, default="", help_text="Receives new-order notifications", max_length=254)),
                ("stripe_customer_id", models.CharField(blank=True, db_index=True, help_text="Stripe customer id (cus_xxx)", max_length=255, null=True)),
            ],
            options={
                "ordering": ["site_key"],
            },
        ),
        migrations.CreateModel(
            name="SiteSeller",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("site_key", models.CharField(help_text="Tenant identifier", max_length=100, unique=True)),
                ("connect_account_id", models.CharField(blank=True, db_index=True, help_text="Stripe Connect account id (acct_xxx)", max_length=255, null=True)),
                ("payouts_suspended", models.BooleanField(default=False, help_text="Blocks all releases for this seller")),
                ("auto_payouts_disabled", models.BooleanField(default=False, help_text="Blocks automatic releases; forced releases still run")),
            ],
            options={
                "ordering": ["site_key"],
            },
        ),
    ]
