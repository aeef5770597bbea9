"""
Tests for the payments API views.

Tests cover:
- Payout trigger secret (bearer and ?key=)
- Cron, per-site and single-escrow triggers
- Limit parsing and capping
- Refund endpoint status codes
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone

from payments.escrow import EscrowStore
from payments.models import Escrow
from payments.state_machines import EscrowStatus, OrderStatus
from payments.tests.factories import EscrowFactory, OrderFactory
from sites.tests.factories import SiteSellerFactory

SECRET = "cron-secret"

CRON_URL = "/api/v1/payments/payouts/cron/"
SITE_URL = "/api/v1/payments/payouts/release-site/"


def release_url(escrow_id: str) -> str:
    return reverse("payments:payouts_release_escrow", kwargs={"escrow_id": escrow_id})


def refund_url(order_id: str) -> str:
    return reverse("payments:refund_order", kwargs={"order_id": order_id})


@pytest.fixture(autouse=True)
def cron_secret(settings):
    settings.PAYOUT_CRON_SECRET = SECRET


@pytest.fixture
def bearer():
    return {"HTTP_AUTHORIZATION": f"Bearer {SECRET}"}


# =============================================================================
# Trigger Secret
# =============================================================================


@pytest.mark.django_db
class TestPayoutTriggerSecret:
    """Secret checks on every payout trigger."""

    def test_missing_secret_is_forbidden(self, api_client, fake_stripe, due_escrow):
        response = api_client.get(CRON_URL)

        assert response.status_code == 403
        assert fake_stripe.transfer_calls == []

    def test_wrong_secret_is_forbidden(self, api_client, fake_stripe, due_escrow):
        response = api_client.get(CRON_URL, HTTP_AUTHORIZATION="Bearer nope")

        assert response.status_code == 403

    def test_bearer_accepted(self, api_client, fake_stripe, due_escrow, bearer):
        response = api_client.get(CRON_URL, **bearer)

        assert response.status_code == 200
        assert response.data["released"] == 1

    def test_key_query_accepted(self, api_client, fake_stripe, due_escrow):
        response = api_client.get(f"{CRON_URL}?key={SECRET}")

        assert response.status_code == 200

    def test_site_and_single_triggers_are_gated(self, api_client, fake_stripe, due_escrow):
        assert api_client.post(SITE_URL, {"siteKey": "shop-a"}, format="json").status_code == 403
        assert api_client.post(release_url(due_escrow.id)).status_code == 403
        assert Escrow.objects.get(pk=due_escrow.id).status == EscrowStatus.HELD

    @override_settings(PAYOUT_CRON_SECRET="")
    def test_no_secret_configured_is_open(self, api_client, fake_stripe, due_escrow):
        assert api_client.get(CRON_URL).status_code == 200


# =============================================================================
# Cron Trigger
# =============================================================================


@pytest.mark.django_db
class TestPayoutCronView:
    """GET|POST /payouts/cron/"""

    def test_summary_shape(self, api_client, fake_stripe, due_escrow, bearer):
        response = api_client.post(CRON_URL, **bearer)

        assert response.status_code == 200
        for key in ("queried", "due", "released", "skipped", "failed", "limit", "now", "run_id", "errors"):
            assert key in response.data

    def test_limit_from_query(self, api_client, fake_stripe, seller, bearer):
        for _ in range(3):
            EscrowFactory()

        response = api_client.get(f"{CRON_URL}?limit=2", **bearer)

        assert response.data["limit"] == 2
        assert response.data["released"] == 2

    def test_limit_capped(self, api_client, fake_stripe, seller, bearer):
        response = api_client.get(f"{CRON_URL}?limit=5000", **bearer)

        assert response.status_code == 200
        assert response.data["limit"] == 200

    def test_invalid_limit(self, api_client, fake_stripe, bearer):
        response = api_client.get(f"{CRON_URL}?limit=abc", **bearer)

        assert response.status_code == 400

    def test_kill_switch_reason(self, api_client, fake_stripe, due_escrow, bearer):
        from sites.models import PlatformSettings

        PlatformSettings.objects.update_or_create(
            pk=PlatformSettings.SINGLETON_PK,
            defaults={"auto_payouts_disabled": True},
        )

        response = api_client.get(CRON_URL, **bearer)

        assert response.status_code == 200
        assert response.data["reason"] == "auto_disabled_global"
        assert response.data["released"] == 0

    def test_storage_failure_is_503(self, api_client, fake_stripe, bearer):
        with patch.object(EscrowStore, "find_due", side_effect=DatabaseError("down")):
            response = api_client.get(CRON_URL, **bearer)

        assert response.status_code == 503


# =============================================================================
# Per-site Trigger
# =============================================================================


@pytest.mark.django_db
class TestReleaseSiteView:
    """POST /payouts/release-site/"""

    def test_missing_site_key(self, api_client, fake_stripe, bearer):
        response = api_client.post(SITE_URL, {}, format="json", **bearer)

        assert response.status_code == 400

    def test_force_releases_before_due(self, api_client, fake_stripe, seller, bearer):
        EscrowFactory(release_at=timezone.now() + timedelta(days=5))

        response = api_client.post(
            SITE_URL, {"siteKey": "shop-a", "force": True}, format="json", **bearer
        )

        assert response.status_code == 200
        assert response.data["released"] == 1
        assert response.data["suspended"] is False

    def test_suspended_site(self, api_client, fake_stripe, bearer):
        SiteSellerFactory(site_key="shop-a", connect_account_id="acct_shopa", payouts_suspended=True)
        EscrowFactory()

        response = api_client.post(
            SITE_URL, {"siteKey": "shop-a", "force": True}, format="json", **bearer
        )

        assert response.data["suspended"] is True
        assert response.data["released"] == 0
        assert response.data["skipped"] == 1


# =============================================================================
# Single Escrow Trigger
# =============================================================================


@pytest.mark.django_db
class TestReleaseEscrowView:
    """POST /payouts/release/<escrow_id>/"""

    def test_missing_escrow_is_404(self, api_client, fake_stripe, bearer):
        response = api_client.post(release_url("cs_missing"), **bearer)

        assert response.status_code == 404
        assert response.data["error_code"] == "ESCROW_NOT_FOUND"

    def test_forced_release(self, api_client, fake_stripe, seller, bearer):
        EscrowFactory(id="cs_1", release_at=timezone.now() + timedelta(days=5))

        response = api_client.post(f"{release_url('cs_1')}?force=1", **bearer)

        assert response.status_code == 200
        assert response.data["released"] == 1

    def test_not_due_without_force(self, api_client, fake_stripe, seller, bearer):
        EscrowFactory(id="cs_1", release_at=timezone.now() + timedelta(days=5))

        response = api_client.post(release_url("cs_1"), **bearer)

        assert response.data["released"] == 0
        assert response.data["skipped"] == 1

    def test_second_release_is_skipped(self, api_client, fake_stripe, seller, bearer):
        EscrowFactory(id="cs_1")

        api_client.post(f"{release_url('cs_1')}?force=1", **bearer)
        response = api_client.post(f"{release_url('cs_1')}?force=1", **bearer)

        assert response.data["skipped"] == 1
        assert fake_stripe.transfer_count() == 1

    @pytest.mark.parametrize("body_format", ["json", "multipart"])
    def test_body_force_false_respects_due_date(self, api_client, fake_stripe, seller, bearer, body_format):
        EscrowFactory(id="cs_1", release_at=timezone.now() + timedelta(days=5))

        response = api_client.post(
            release_url("cs_1"), {"force": "false"}, format=body_format, **bearer
        )

        assert response.status_code == 200
        assert response.data["released"] == 0
        assert fake_stripe.transfer_calls == []

    def test_body_force_true(self, api_client, fake_stripe, seller, bearer):
        EscrowFactory(id="cs_1", release_at=timezone.now() + timedelta(days=5))

        response = api_client.post(release_url("cs_1"), {"force": True}, format="json", **bearer)

        assert response.data["released"] == 1

    @pytest.mark.parametrize("body", [["force"], {"force": "maybe"}])
    def test_invalid_body_is_400(self, api_client, fake_stripe, seller, bearer, body):
        EscrowFactory(id="cs_1")

        response = api_client.post(release_url("cs_1"), body, format="json", **bearer)

        assert response.status_code == 400
        assert fake_stripe.transfer_calls == []


# =============================================================================
# Refund
# =============================================================================


@pytest.mark.django_db
class TestRefundOrderView:
    """POST /orders/<order_id>/refund/"""

    def test_requires_staff(self, api_client, fake_stripe, paid_order, django_user_model):
        user = django_user_model.objects.create_user(username="buyer", password="x")
        api_client.force_authenticate(user)

        response = api_client.post(refund_url(paid_order.id), {}, format="json")

        assert response.status_code == 403
        assert fake_stripe.refund_calls == []

    def test_anonymous_is_rejected(self, api_client, fake_stripe, paid_order):
        response = api_client.post(refund_url(paid_order.id), {}, format="json")

        assert response.status_code in (401, 403)

    def test_full_refund(self, api_client, fake_stripe, paid_order, staff_user):
        EscrowFactory(id=paid_order.id, order=paid_order)
        api_client.force_authenticate(staff_user)

        response = api_client.post(refund_url(paid_order.id), {}, format="json")

        assert response.status_code == 200
        assert response.data == {
            "success": True,
            "order_id": paid_order.id,
            "refund_id": "re_000001",
            "amount": 10000,
            "escrow_held": True,
        }

    def test_partial_refund(self, api_client, fake_stripe, paid_order, staff_user):
        api_client.force_authenticate(staff_user)

        response = api_client.post(refund_url(paid_order.id), {"amount": 2500}, format="json")

        assert response.status_code == 200
        assert response.data["amount"] == 2500

    def test_unknown_order_is_404(self, api_client, fake_stripe, staff_user):
        api_client.force_authenticate(staff_user)

        response = api_client.post(refund_url("cs_missing"), {}, format="json")

        assert response.status_code == 404
        assert response.data["error_code"] == "PAYMENT_NOT_FOUND"

    def test_already_refunded_is_409(self, api_client, fake_stripe, site, staff_user):
        order = OrderFactory(status=OrderStatus.REFUNDED, refund_id="re_old")
        api_client.force_authenticate(staff_user)

        response = api_client.post(refund_url(order.id), {}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "ALREADY_REFUNDED"

    def test_excess_amount_is_400(self, api_client, fake_stripe, paid_order, staff_user):
        api_client.force_authenticate(staff_user)

        response = api_client.post(refund_url(paid_order.id), {"amount": 20000}, format="json")

        assert response.status_code == 400

    def test_site_mismatch_is_400(self, api_client, fake_stripe, paid_order, staff_user):
        api_client.force_authenticate(staff_user)

        response = api_client.post(
            refund_url(paid_order.id), {"siteKey": "shop-b"}, format="json"
        )

        assert response.status_code == 400
        assert response.data["error"] == "Site mismatch"
