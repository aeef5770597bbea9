"""
Tests for Stripe adapter.

Tests cover:
- Error translation for each exception type
- Transfer, refund and checkout read operations
- Webhook signature verification
- Configuration from settings
"""

from unittest.mock import MagicMock

import pytest
import stripe
from django.test import override_settings

from payments.adapters import PaymentIntentResult, RefundResult, StripeAdapter, TransferResult
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeIdempotencyKeyMismatchError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


def _transfer(**overrides):
    params = {
        "amount": 9000,
        "currency": "jpy",
        "destination": "acct_dest123",
        "idempotency_key": "transfer:v2:cs_1:src",
    }
    params.update(overrides)
    return StripeAdapter.create_transfer(**params)


# =============================================================================
# Error Translation
# =============================================================================


class TestStripeAdapterErrorTranslation:
    """Tests for Stripe error translation to domain exceptions."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        """Set up common mocks for all tests."""

    def test_idempotency_error(self, mock_stripe_transfer, idempotency_error):
        """Should translate IdempotencyError to StripeIdempotencyKeyMismatchError."""
        mock_stripe_transfer.create.side_effect = idempotency_error

        with pytest.raises(StripeIdempotencyKeyMismatchError) as exc_info:
            _transfer()

        assert exc_info.value.stripe_code == "idempotency_key_mismatch"

    def test_card_declined_error(self, mock_stripe_refund, card_error):
        """Should translate CardError to StripeCardDeclinedError."""
        mock_stripe_refund.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            StripeAdapter.create_refund("pi_test", idempotency_key="refund:cs_1:100")

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds_card_error(self, mock_stripe_refund, card_error):
        """Should translate an insufficient_funds decline to StripeInsufficientFundsError."""
        mock_stripe_refund.create.side_effect = card_error(decline_code="insufficient_funds")

        with pytest.raises(StripeInsufficientFundsError):
            StripeAdapter.create_refund("pi_test", idempotency_key="refund:cs_1:100")

    def test_balance_insufficient(self, mock_stripe_transfer, invalid_request_error):
        """Should translate balance_insufficient to StripeInsufficientFundsError."""
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="Insufficient funds in Stripe balance",
            code="balance_insufficient",
        )

        with pytest.raises(StripeInsufficientFundsError):
            _transfer()

    def test_invalid_request_error(self, mock_stripe_transfer, invalid_request_error):
        """Should translate InvalidRequestError to StripeInvalidRequestError."""
        mock_stripe_transfer.create.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            _transfer()

        assert exc_info.value.is_retryable is False

    def test_invalid_account_error(self, mock_stripe_transfer, invalid_request_error):
        """Should translate account-related InvalidRequestError to StripeInvalidAccountError."""
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such account: acct_invalid",
            param="destination",
            code="resource_missing",
        )

        with pytest.raises(StripeInvalidAccountError):
            _transfer(destination="acct_invalid")

    def test_rate_limit_error(self, mock_stripe_transfer, rate_limit_error):
        """Should translate RateLimitError to StripeRateLimitError."""
        mock_stripe_transfer.create.side_effect = rate_limit_error

        with pytest.raises(StripeRateLimitError) as exc_info:
            _transfer()

        assert exc_info.value.is_retryable is True

    def test_api_connection_error(self, mock_stripe_transfer, api_connection_error):
        """Should translate APIConnectionError to StripeAPIUnavailableError."""
        mock_stripe_transfer.create.side_effect = api_connection_error

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            _transfer()

        assert exc_info.value.is_retryable is True

    def test_timeout_error(self, mock_stripe_transfer):
        """Should translate a timed out connection to StripeTimeoutError."""
        mock_stripe_transfer.create.side_effect = stripe.APIConnectionError(
            message="Request timed out"
        )

        with pytest.raises(StripeTimeoutError):
            _transfer()

    def test_api_error(self, mock_stripe_transfer, api_error):
        """Should translate APIError to StripeAPIUnavailableError."""
        mock_stripe_transfer.create.side_effect = api_error

        with pytest.raises(StripeAPIUnavailableError):
            _transfer()

    def test_authentication_error(self, mock_stripe_transfer, authentication_error):
        """Should translate AuthenticationError to StripeAPIUnavailableError."""
        mock_stripe_transfer.create.side_effect = authentication_error

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            _transfer()

        assert exc_info.value.stripe_code == "authentication_error"

    def test_unknown_error(self, mock_stripe_transfer):
        """Should wrap unknown errors in StripeAPIUnavailableError."""
        mock_stripe_transfer.create.side_effect = RuntimeError("Unexpected")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            _transfer()

        assert "Unexpected" in str(exc_info.value)


# =============================================================================
# StripeAdapter API Operation Tests
# =============================================================================


class TestStripeAdapterCreateTransfer:
    """Tests for StripeAdapter.create_transfer."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        """Set up common mocks for all tests."""

    def test_create_transfer_success(self, mock_stripe_transfer, mock_transfer):
        """Should create Transfer and return result."""
        mock_stripe_transfer.create.return_value = mock_transfer(id="tr_test123")

        result = _transfer()

        assert isinstance(result, TransferResult)
        assert result.id == "tr_test123"
        assert result.amount == 9000
        assert result.destination == "acct_dest123"

    def test_passes_idempotency_key(self, mock_stripe_transfer):
        """Should pass the idempotency key as a request option."""
        _transfer(idempotency_key="transfer:v2:cs_9:plain")

        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert call_kwargs["idempotency_key"] == "transfer:v2:cs_9:plain"

    def test_source_transaction_and_group(self, mock_stripe_transfer):
        """Should send source_transaction and transfer_group when given."""
        _transfer(source_transaction="ch_source123", transfer_group="order_cs_1")

        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert call_kwargs["source_transaction"] == "ch_source123"
        assert call_kwargs["transfer_group"] == "order_cs_1"

    def test_omits_empty_optional_params(self, mock_stripe_transfer):
        """Should not send source_transaction or transfer_group when unset."""
        _transfer()

        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert "source_transaction" not in call_kwargs
        assert "transfer_group" not in call_kwargs


class TestStripeAdapterCreateRefund:
    """Tests for StripeAdapter.create_refund."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        """Set up common mocks for all tests."""

    def test_create_refund_success(self, mock_stripe_refund):
        """Should create Refund and return result."""
        result = StripeAdapter.create_refund(
            "pi_test123456",
            idempotency_key="refund:cs_1:10000",
        )

        assert isinstance(result, RefundResult)
        assert result.id == "re_test123456"
        assert result.payment_intent_id == "pi_test123456"

    def test_partial_refund_on_connected_account(self, mock_stripe_refund):
        """Should send amount and stripe_account when given."""
        StripeAdapter.create_refund(
            "pi_test123456",
            idempotency_key="refund:cs_1:2500",
            amount=2500,
            stripe_account="acct_shop",
        )

        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert call_kwargs["amount"] == 2500
        assert call_kwargs["stripe_account"] == "acct_shop"
        assert call_kwargs["idempotency_key"] == "refund:cs_1:2500"


class TestStripeAdapterCheckoutReads:
    """Tests for retrieve_payment_intent and list_checkout_line_items."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        """Set up common mocks for all tests."""

    def test_retrieve_payment_intent_card(self, mock_stripe_payment_intent):
        """Should read card details from the expanded charge."""
        result = StripeAdapter.retrieve_payment_intent("pi_test123456")

        assert isinstance(result, PaymentIntentResult)
        assert result.charge_id == "ch_test123456"
        assert result.payment_type == "card"
        assert result.card_brand == "visa"
        assert result.card_last4 == "4242"
        assert result.phone == "+81-3-0000-0000"
        assert mock_stripe_payment_intent.retrieve.call_args.kwargs["expand"] == ["latest_charge"]

    def test_retrieve_payment_intent_unexpanded(
        self, mock_stripe_payment_intent, mock_payment_intent
    ):
        """Should keep only the charge id when the charge was not expanded."""
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            latest_charge="ch_plain"
        )

        result = StripeAdapter.retrieve_payment_intent("pi_test123456")

        assert result.charge_id == "ch_plain"
        assert result.card_brand is None

    def test_list_line_items(self, mock_stripe_checkout_session):
        """Should return the data list of the line item page."""
        page = MagicMock()
        page.to_dict.return_value = {
            "data": [{"description": "Tea", "quantity": 2, "amount_total": 3000}]
        }
        mock_stripe_checkout_session.list_line_items.return_value = page

        items = StripeAdapter.list_checkout_line_items("cs_1", stripe_account="acct_shop")

        assert items == [{"description": "Tea", "quantity": 2, "amount_total": 3000}]
        call_kwargs = mock_stripe_checkout_session.list_line_items.call_args.kwargs
        assert call_kwargs["limit"] == 100
        assert call_kwargs["stripe_account"] == "acct_shop"


class TestStripeAdapterVerifyWebhookSignature:
    """Tests for StripeAdapter.verify_webhook_signature."""

    def test_verify_webhook_signature_success(self, mock_stripe_webhook):
        """Should verify and return event data."""
        result = StripeAdapter.verify_webhook_signature(
            payload=b'{"id": "evt_test"}',
            signature="test_signature",
        )

        assert result["id"] == "evt_test123"
        assert result["type"] == "checkout.session.completed"

    def test_verify_webhook_signature_invalid(
        self, mock_stripe_webhook, signature_verification_error
    ):
        """Should raise StripeInvalidRequestError for invalid signature."""
        mock_stripe_webhook.construct_event.side_effect = signature_verification_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(
                payload=b"tampered",
                signature="bad_signature",
            )

        assert "signature" in str(exc_info.value).lower()

    def test_verify_webhook_payload_invalid(self, mock_stripe_webhook):
        """Should raise StripeInvalidRequestError for unparseable payload."""
        mock_stripe_webhook.construct_event.side_effect = ValueError("bad json")

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(payload=b"{", signature="sig")

        assert exc_info.value.stripe_code == "invalid_payload"


# =============================================================================
# Configuration Tests
# =============================================================================


class TestStripeAdapterConfiguration:
    """Tests for Stripe adapter configuration."""

    @override_settings(STRIPE_SECRET_KEY="sk_test_custom")
    def test_uses_settings_api_key(self, mock_stripe_transfer, mock_stripe_http_client):
        """Should use API key from settings."""
        _transfer()

        assert stripe.api_key == "sk_test_custom"

    @override_settings(STRIPE_API_TIMEOUT_SECONDS=30)
    def test_uses_settings_timeout(self, mock_stripe_transfer, mock_stripe_http_client):
        """Should use timeout from settings."""
        _transfer()

        mock_stripe_http_client.assert_called_with(timeout=30)
