"""
Payments app configuration.

This app provides the settlement core of the storefront platform:
- Stripe checkout webhook ingestion (orders, escrows, notifications)
- Escrow release to sellers' connected accounts
- Refunds
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
