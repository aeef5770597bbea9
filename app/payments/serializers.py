"""
Serializers for the payments API.

Request serializers validate trigger and refund input; response serializers
describe the JSON bodies for the OpenAPI schema.
"""

from __future__ import annotations

from django.conf import settings
from rest_framework import serializers


# =============================================================================
# Payout Triggers
# =============================================================================


class PayoutLimitMixin(serializers.Serializer):
    """Optional ``limit``; values above PAYOUT_MAX_LIMIT are capped, not rejected."""

    limit = serializers.IntegerField(required=False, min_value=1)

    def validate_limit(self, value: int) -> int:
        return min(value, settings.PAYOUT_MAX_LIMIT)


class CronTriggerSerializer(PayoutLimitMixin):
    """Query or body of the scheduled sweep trigger."""


class SiteReleaseSerializer(PayoutLimitMixin):
    """Body of the per-site release trigger."""

    siteKey = serializers.CharField(source="site_key", max_length=100)
    force = serializers.BooleanField(required=False, default=False)


class SingleReleaseSerializer(serializers.Serializer):
    """Query or body of the single-escrow release trigger."""

    force = serializers.BooleanField(required=False, default=False)


class ReleaseErrorSerializer(serializers.Serializer):
    id = serializers.CharField()
    code = serializers.CharField(allow_null=True)
    message = serializers.CharField(allow_null=True)


class ReleaseSummarySerializer(serializers.Serializer):
    """Response body of every payout trigger."""

    queried = serializers.IntegerField()
    due = serializers.IntegerField()
    released = serializers.IntegerField()
    skipped = serializers.IntegerField()
    failed = serializers.IntegerField()
    suspended = serializers.BooleanField(required=False)
    reason = serializers.CharField(required=False)
    limit = serializers.IntegerField()
    now = serializers.DateTimeField()
    run_id = serializers.CharField()
    errors = ReleaseErrorSerializer(many=True)


# =============================================================================
# Refunds
# =============================================================================


class RefundRequestSerializer(serializers.Serializer):
    """
    Body of the refund endpoint.

    ``amount`` defaults to the full order total. ``siteKey``, when given,
    must match the order's site.
    """

    amount = serializers.IntegerField(required=False, min_value=1)
    siteKey = serializers.CharField(source="site_key", required=False, max_length=100)


class RefundResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    order_id = serializers.CharField()
    refund_id = serializers.CharField()
    amount = serializers.IntegerField()
    escrow_held = serializers.BooleanField()
