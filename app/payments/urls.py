"""
URL configuration for the payments app.

Routes:
    - GET|POST /payouts/cron/ - Scheduled sweep of due escrows
    - POST /payouts/release-site/ - Release one seller's escrows
    - POST /payouts/release/<escrow_id>/ - Release one escrow
    - POST /orders/<order_id>/refund/ - Refund an order
    - POST /webhooks/stripe/ - Stripe webhook endpoint

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.views import (
    PayoutCronView,
    RefundOrderView,
    ReleaseEscrowView,
    ReleaseSiteView,
)
from payments.webhooks.views import stripe_webhook

app_name = "payments"

urlpatterns = [
    # Payout triggers
    path("payouts/cron/", PayoutCronView.as_view(), name="payouts_cron"),
    path("payouts/release-site/", ReleaseSiteView.as_view(), name="payouts_release_site"),
    path(
        "payouts/release/<str:escrow_id>/",
        ReleaseEscrowView.as_view(),
        name="payouts_release_escrow",
    ),
    # Refunds
    path("orders/<str:order_id>/refund/", RefundOrderView.as_view(), name="refund_order"),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
