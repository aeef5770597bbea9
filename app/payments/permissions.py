"""
Permissions for the payout trigger endpoints.

The trigger endpoints are called by an external scheduler, not by a logged
in user. They are gated by a shared secret (PAYOUT_CRON_SECRET) passed as
``Authorization: Bearer <secret>`` or ``?key=<secret>``. With no secret
configured the endpoints are open, which is intended for local development.
"""

from __future__ import annotations

import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission


def presented_secret(request) -> tuple[str, str]:
    """Return the (bearer token, key query parameter) pair of a request."""
    header = request.headers.get("Authorization", "")
    bearer = ""
    if header[:7].lower() == "bearer ":
        bearer = header[7:].strip()
    key = request.query_params.get("key", "") if hasattr(request, "query_params") else ""
    return bearer, key


class PayoutTriggerPermission(BasePermission):
    """Allow the request when it presents PAYOUT_CRON_SECRET (or none is set)."""

    message = "Invalid or missing payout trigger secret."

    def has_permission(self, request, view) -> bool:
        secret = getattr(settings, "PAYOUT_CRON_SECRET", "") or ""
        if not secret:
            return True

        bearer, key = presented_secret(request)
        return any(
            candidate and hmac.compare_digest(candidate.encode(), secret.encode())
            for candidate in (bearer, key)
        )
