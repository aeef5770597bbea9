"""
Tests for the payout trigger permission.
"""

import pytest
from rest_framework.request import Request
from rest_framework.test import APIRequestFactory

from payments.permissions import PayoutTriggerPermission, presented_secret


def make_request(path="/api/v1/payments/payouts/cron/", **headers):
    return Request(APIRequestFactory().get(path, **headers))


class TestPresentedSecret:
    def test_bearer_token(self):
        assert presented_secret(make_request(HTTP_AUTHORIZATION="Bearer abc")) == ("abc", "")

    def test_bearer_is_case_insensitive(self):
        assert presented_secret(make_request(HTTP_AUTHORIZATION="bearer abc "))[0] == "abc"

    def test_other_schemes_are_ignored(self):
        assert presented_secret(make_request(HTTP_AUTHORIZATION="Basic abc")) == ("", "")

    def test_key_parameter(self):
        assert presented_secret(make_request("/x/?key=abc")) == ("", "abc")


class TestPayoutTriggerPermission:
    """has_permission against PAYOUT_CRON_SECRET."""

    @pytest.mark.parametrize(
        "path,headers,allowed",
        [
            ("/x/", {}, False),
            ("/x/", {"HTTP_AUTHORIZATION": "Bearer s3cret"}, True),
            ("/x/", {"HTTP_AUTHORIZATION": "Bearer wrong"}, False),
            ("/x/?key=s3cret", {}, True),
            ("/x/?key=wrong", {"HTTP_AUTHORIZATION": "Bearer s3cret"}, True),
            ("/x/?key=", {"HTTP_AUTHORIZATION": "Bearer "}, False),
        ],
    )
    def test_secret_checks(self, settings, path, headers, allowed):
        settings.PAYOUT_CRON_SECRET = "s3cret"
        request = make_request(path, **headers)

        assert PayoutTriggerPermission().has_permission(request, None) is allowed

    def test_open_without_secret(self, settings):
        settings.PAYOUT_CRON_SECRET = ""
        assert PayoutTriggerPermission().has_permission(make_request(), None) is True
