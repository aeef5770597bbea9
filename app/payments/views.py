"""
DRF views for the payments app.

Endpoints:
    GET|POST /api/v1/payments/payouts/cron/ - Scheduled sweep of due escrows
    POST /api/v1/payments/payouts/release-site/ - Release one seller's escrows
    POST /api/v1/payments/payouts/release/<escrow_id>/ - Release one escrow
    POST /api/v1/payments/orders/<order_id>/refund/ - Refund an order
    POST /api/v1/payments/webhooks/stripe/ - Stripe webhook (see webhooks/views.py)

Security:
    - Payout triggers require PAYOUT_CRON_SECRET (bearer or ?key=)
    - Refunds require a staff user
    - The webhook verifies the Stripe signature

Payout triggers run the release batch inline and return its summary, so the
caller (a scheduler or an admin tool) sees exactly what was paid.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import DatabaseError
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.escrow import ReleaseOrchestrator
from payments.exceptions import (
    AlreadyRefundedError,
    EscrowNotFoundError,
    PaymentNotFoundError,
    PaymentValidationError,
)
from payments.permissions import PayoutTriggerPermission
from payments.serializers import (
    CronTriggerSerializer,
    RefundRequestSerializer,
    RefundResponseSerializer,
    ReleaseSummarySerializer,
    SingleReleaseSerializer,
    SiteReleaseSerializer,
)
from payments.services import RefundService
from payments.state_machines import ReleaseMode

logger = logging.getLogger(__name__)


def _storage_unavailable(exc: Exception, **context) -> Response:
    logger.error(
        "Payout trigger failed on storage error",
        extra={**context, "error": str(exc)},
    )
    return Response(
        {"error": "Storage unavailable"},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


class PayoutTriggerView(APIView):
    """Base for the secret-gated payout triggers."""

    authentication_classes = []
    permission_classes = [PayoutTriggerPermission]


class PayoutCronView(PayoutTriggerView):
    """
    Scheduled sweep of every due escrow.

    GET|POST /api/v1/payments/payouts/cron/?limit=100
    """

    @extend_schema(
        operation_id="payouts_cron",
        summary="Release due escrows",
        description=(
            "Release every HELD escrow whose hold period has passed, honouring the "
            "global kill switch and seller opt-outs. `limit` defaults to "
            "PAYOUT_CRON_LIMIT and is capped at PAYOUT_MAX_LIMIT."
        ),
        parameters=[
            OpenApiParameter("limit", int, OpenApiParameter.QUERY, required=False),
            OpenApiParameter("key", str, OpenApiParameter.QUERY, required=False),
        ],
        responses={
            200: OpenApiResponse(response=ReleaseSummarySerializer, description="Batch summary"),
            403: OpenApiResponse(description="Invalid or missing trigger secret"),
            503: OpenApiResponse(description="Storage unavailable"),
        },
        tags=["Payouts"],
    )
    def get(self, request):
        return self._run(request, request.query_params)

    @extend_schema(
        operation_id="payouts_cron_post",
        summary="Release due escrows",
        request=CronTriggerSerializer,
        responses={
            200: OpenApiResponse(response=ReleaseSummarySerializer, description="Batch summary"),
            403: OpenApiResponse(description="Invalid or missing trigger secret"),
            503: OpenApiResponse(description="Storage unavailable"),
        },
        tags=["Payouts"],
    )
    def post(self, request):
        return self._run(request, request.data or request.query_params)

    def _run(self, request, data):
        serializer = CronTriggerSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        limit = serializer.validated_data.get("limit")

        try:
            summary = ReleaseOrchestrator.run(mode=ReleaseMode.AUTO, limit=limit)
        except DatabaseError as e:
            return _storage_unavailable(e, trigger="cron")

        return Response(summary.to_dict())


class ReleaseSiteView(PayoutTriggerView):
    """
    Release the HELD escrows of one seller.

    POST /api/v1/payments/payouts/release-site/
    """

    @extend_schema(
        operation_id="payouts_release_site",
        summary="Release one seller's escrows",
        description=(
            "Release the HELD escrows of one site. With `force` the due date is "
            "ignored; manual holds and a suspended seller still block release. "
            "`limit` defaults to PAYOUT_SITE_LIMIT."
        ),
        request=SiteReleaseSerializer,
        responses={
            200: OpenApiResponse(response=ReleaseSummarySerializer, description="Batch summary"),
            400: OpenApiResponse(description="Missing siteKey"),
            403: OpenApiResponse(description="Invalid or missing trigger secret"),
            503: OpenApiResponse(description="Storage unavailable"),
        },
        tags=["Payouts"],
    )
    def post(self, request):
        serializer = SiteReleaseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        site_key = data["site_key"]
        try:
            summary = ReleaseOrchestrator.run(
                mode=ReleaseMode.FORCED if data["force"] else ReleaseMode.AUTO,
                site_key=site_key,
                limit=data.get("limit", settings.PAYOUT_SITE_LIMIT),
            )
        except DatabaseError as e:
            return _storage_unavailable(e, trigger="release_site", site_key=site_key)

        return Response(summary.to_dict())


class ReleaseEscrowView(PayoutTriggerView):
    """
    Release one escrow (the admin "pay now" action).

    POST /api/v1/payments/payouts/release/<escrow_id>/?force=1
    """

    @extend_schema(
        operation_id="payouts_release_escrow",
        summary="Release one escrow",
        description=(
            "Release a single escrow. With `force` the due date is ignored. The "
            "escrow must be HELD; otherwise it is counted as skipped."
        ),
        parameters=[
            OpenApiParameter("force", bool, OpenApiParameter.QUERY, required=False),
        ],
        request=SingleReleaseSerializer,
        responses={
            200: OpenApiResponse(response=ReleaseSummarySerializer, description="Batch summary"),
            400: OpenApiResponse(description="Invalid force flag"),
            403: OpenApiResponse(description="Invalid or missing trigger secret"),
            404: OpenApiResponse(description="Escrow not found"),
            503: OpenApiResponse(description="Storage unavailable"),
        },
        tags=["Payouts"],
    )
    def post(self, request, escrow_id):
        query = SingleReleaseSerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        body = SingleReleaseSerializer(data=request.data or {})
        body.is_valid(raise_exception=True)
        force = query.validated_data["force"] or body.validated_data["force"]

        try:
            summary = ReleaseOrchestrator.run(
                mode=ReleaseMode.FORCED if force else ReleaseMode.AUTO,
                escrow_id=escrow_id,
                limit=1,
            )
        except EscrowNotFoundError as e:
            return Response(e.to_dict(), status=status.HTTP_404_NOT_FOUND)
        except DatabaseError as e:
            return _storage_unavailable(e, trigger="release_escrow", escrow_id=escrow_id)

        return Response(summary.to_dict())


class RefundOrderView(APIView):
    """
    Refund an order in full or in part.

    POST /api/v1/payments/orders/<order_id>/refund/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="refund_order",
        summary="Refund an order",
        description=(
            "Refund a paid order through Stripe. The order's escrow is put on "
            "manual hold when it has not been paid out yet."
        ),
        request=RefundRequestSerializer,
        responses={
            200: OpenApiResponse(response=RefundResponseSerializer, description="Refund created"),
            400: OpenApiResponse(description="Invalid amount, site mismatch, or no payment"),
            403: OpenApiResponse(description="Staff access required"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order already refunded"),
            502: OpenApiResponse(description="Stripe refused the refund"),
        },
        tags=["Refunds"],
    )
    def post(self, request, order_id):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = RefundService.refund_order(
                order_id,
                amount=data.get("amount"),
                site_key=data.get("site_key"),
            )
        except PaymentNotFoundError as e:
            return Response(e.to_dict(), status=status.HTTP_404_NOT_FOUND)
        except AlreadyRefundedError as e:
            return Response(e.to_dict(), status=status.HTTP_409_CONFLICT)
        except PaymentValidationError as e:
            return Response(e.to_dict(), status=status.HTTP_400_BAD_REQUEST)

        if not result.success:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        refund = result.data
        return Response(
            {
                "success": True,
                "order_id": refund.order.pk,
                "refund_id": refund.refund_id,
                "amount": refund.amount,
                "escrow_held": refund.escrow_held,
            }
        )
