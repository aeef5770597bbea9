"""
Stripe API adapter for settlement operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls should go through this
adapter to ensure consistent error handling, timeouts, idempotency,
and observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency keys on every money-moving call
- Connect support (``stripe_account``) for reads made on behalf of a seller

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)

Usage:
    from payments.adapters import StripeAdapter

    result = StripeAdapter.create_transfer(
        amount=9000,
        currency="jpy",
        destination="acct_123",
        idempotency_key="transfer:v2:cs_123:src",
        source_transaction="ch_123",
    )
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

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


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount: Amount transferred in smallest currency unit
        currency: Currency code
        destination: Destination Stripe account ID
        raw_response: Full Stripe response dict
    """

    id: str
    amount: int
    currency: str
    destination: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount: Refunded amount in smallest currency unit
        currency: Currency code
        status: Refund status (succeeded, pending, failed)
        payment_intent_id: Original PaymentIntent ID
        raw_response: Full Stripe response dict
    """

    id: str
    amount: int
    currency: str
    status: str
    payment_intent_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentIntentResult:
    """
    Payment summary read from a PaymentIntent and its latest charge.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        charge_id: Latest charge ID (ch_xxx), if the charge was expanded
        payment_type: Payment method type (card, konbini, ...)
        card_brand: Card brand for card payments
        card_last4: Last four digits for card payments
        phone: Billing phone from the charge, used when checkout had none
        raw_response: Full Stripe response dict
    """

    id: str
    charge_id: str | None = None
    payment_type: str | None = None
    card_brand: str | None = None
    card_last4: str | None = None
    phone: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        result = StripeAdapter.create_transfer(...)
        event = StripeAdapter.verify_webhook_signature(payload, signature)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Transfer Operations
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        transfer_group: str | None = None,
        source_transaction: str | None = None,
    ) -> TransferResult:
        """
        Create a transfer from the platform balance to a connected account.

        Args:
            amount: Amount in smallest currency unit
            currency: Currency code
            destination: Stripe Connect account ID (acct_xxx)
            idempotency_key: Key that makes the transfer at-most-once
            transfer_group: Optional grouping tag
            source_transaction: Optional charge the transfer is funded by

        Returns:
            TransferResult with transfer details

        Raises:
            StripeIdempotencyKeyMismatchError: Key reused with other params
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount": amount,
            "currency": currency,
            "destination": destination,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer_params: dict[str, Any] = {
                "amount": amount,
                "currency": currency,
                "destination": destination,
            }
            if transfer_group:
                transfer_params["transfer_group"] = transfer_group
            if source_transaction:
                transfer_params["source_transaction"] = source_transaction

            transfer = stripe.Transfer.create(
                idempotency_key=idempotency_key,
                **transfer_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "transfer_id": transfer.id,
                    "duration_ms": duration_ms,
                },
            )

            return TransferResult(
                id=transfer.id,
                amount=transfer.amount,
                currency=transfer.currency,
                destination=transfer.destination,
                raw_response=transfer.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Refund Operations
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount: int | None = None,
        stripe_account: str | None = None,
    ) -> RefundResult:
        """
        Create a refund for a PaymentIntent.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            idempotency_key: Unique key for idempotent refund
            amount: Amount to refund (None for full refund)
            stripe_account: Connected account the charge lives on, if any

        Returns:
            RefundResult with refund details

        Raises:
            StripeInvalidRequestError: Refund not possible
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "amount": amount,
            "idempotency_key": idempotency_key,
            "stripe_account": stripe_account,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund_params: dict[str, Any] = {"payment_intent": payment_intent_id}
            if amount is not None:
                refund_params["amount"] = amount
            if stripe_account:
                refund_params["stripe_account"] = stripe_account

            refund = stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "refund_id": refund.id,
                    "status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return RefundResult(
                id=refund.id,
                amount=refund.amount,
                currency=refund.currency,
                status=refund.status,
                payment_intent_id=refund.payment_intent,
                raw_response=refund.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Checkout Reads
    # =========================================================================

    @classmethod
    def retrieve_payment_intent(
        cls,
        payment_intent_id: str,
        stripe_account: str | None = None,
    ) -> PaymentIntentResult:
        """
        Retrieve a PaymentIntent with its latest charge expanded.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            stripe_account: Connected account the intent lives on, if any

        Returns:
            PaymentIntentResult with the payment method summary

        Raises:
            StripeInvalidRequestError: PaymentIntent not found
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_payment_intent",
            "payment_intent_id": payment_intent_id,
            "stripe_account": stripe_account,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            request_options: dict[str, Any] = {"expand": ["latest_charge"]}
            if stripe_account:
                request_options["stripe_account"] = stripe_account

            intent = stripe.PaymentIntent.retrieve(payment_intent_id, **request_options)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        raw = intent.to_dict()
        charge = raw.get("latest_charge")
        if not isinstance(charge, dict):
            # Not expanded: only the id string (or nothing) came back
            return PaymentIntentResult(
                id=raw.get("id", payment_intent_id),
                charge_id=charge if isinstance(charge, str) else None,
                raw_response=raw,
            )

        details = charge.get("payment_method_details") or {}
        card = details.get("card") or {}
        billing = charge.get("billing_details") or {}
        return PaymentIntentResult(
            id=raw.get("id", payment_intent_id),
            charge_id=charge.get("id"),
            payment_type=details.get("type"),
            card_brand=card.get("brand"),
            card_last4=card.get("last4"),
            phone=billing.get("phone"),
            raw_response=raw,
        )

    @classmethod
    def list_checkout_line_items(
        cls,
        session_id: str,
        stripe_account: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        List the line items of a checkout session (first 100).

        Args:
            session_id: Checkout session ID (cs_xxx)
            stripe_account: Connected account the session lives on, if any

        Returns:
            Line item dicts as returned by Stripe, with price.product expanded
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_checkout_line_items",
            "session_id": session_id,
            "stripe_account": stripe_account,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            request_options: dict[str, Any] = {
                "limit": 100,
                "expand": ["data.price.product"],
            }
            if stripe_account:
                request_options["stripe_account"] = stripe_account

            line_items = stripe.checkout.Session.list_line_items(session_id, **request_options)

            items = list(line_items.to_dict().get("data") or [])
            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "count": len(items), "duration_ms": duration_ms},
            )
            return items

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event data dict

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
            return event.to_dict()
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            ) from e

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Args:
            error: The Stripe exception
            log_context: Logging context dict
            duration_ms: Operation duration for logging

        Raises:
            StripeIdempotencyKeyMismatchError: Key replayed with other params
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable
        """
        logger = cls.get_logger()

        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.IdempotencyError):
            logger.warning(
                "Idempotency key mismatch from Stripe",
                extra={**log_context, "stripe_code": getattr(error, "code", None)},
            )
            raise StripeIdempotencyKeyMismatchError(
                str(error),
                stripe_code="idempotency_key_mismatch",
            )

        elif isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                )

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if error.code == "balance_insufficient":
                raise StripeInsufficientFundsError(
                    str(error),
                    stripe_code=error.code,
                )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error),
                    stripe_code=error.code,
                )

            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            if "timed out" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out. The operation may have succeeded.",
                    stripe_code="timeout",
                )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAPIUnavailableError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            )
