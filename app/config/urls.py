"""
URL configuration for the settlement service.

URL Structure:
    /                                   - ReDoc API documentation
    /admin/                             - Django admin interface
    /health/                            - Health check endpoint (load balancers, Docker)
    /schema/                            - OpenAPI schema (YAML)
    /api/v1/payments/                   - Payment endpoints
        webhooks/stripe/                - Stripe webhook endpoint (POST)
        payouts/cron/                   - Scheduled escrow sweep (GET/POST)
        payouts/release-site/           - Release one site's escrows (POST)
        payouts/release/{escrow_id}/    - Release a single escrow (POST)
        orders/{order_id}/refund/       - Refund an order (POST, staff only)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Storefront Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Escrows, orders and seller payout flags"
