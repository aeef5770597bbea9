"""
Tests for webhook Celery tasks.

Tests cover:
- process_webhook_event task
- retry_failed_webhooks task
- cleanup_stuck_webhooks task
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.test import override_settings
from django.utils import timezone

from core.services import ServiceResult
from payments.models import Escrow, WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.tasks import (
    STUCK_PROCESSING_THRESHOLD_MINUTES,
    cleanup_stuck_webhooks,
    process_webhook_event,
    retry_failed_webhooks,
)
from payments.tests.factories import WebhookEventFactory, checkout_event_payload


@pytest.fixture
def pending_webhook_event(db):
    return WebhookEventFactory(payload=checkout_event_payload("cs_task_1"))


@pytest.fixture
def failed_webhook_event(db):
    return WebhookEventFactory(
        payload=checkout_event_payload("cs_task_2"),
        status=WebhookEventStatus.FAILED,
        error_message="Previous error",
        retry_count=1,
    )


# =============================================================================
# process_webhook_event Tests
# =============================================================================


class TestProcessWebhookEvent:
    """Tests for the process_webhook_event task."""

    def test_process_pending_event_success(self, pending_webhook_event):
        """Should process pending event successfully."""
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success(None)

            result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "processed"
        assert result["stripe_event_id"] == pending_webhook_event.stripe_event_id

        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.PROCESSED
        assert pending_webhook_event.processed_at is not None
        assert pending_webhook_event.retry_count == 1

    def test_runs_real_handler(self, pending_webhook_event, fake_stripe, site, seller):
        result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "processed"
        assert Escrow.objects.filter(pk="cs_task_1").exists()

    def test_skip_already_processed_event(self, db):
        """Should skip already processed events."""
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            result = process_webhook_event(str(event.id))

        assert result["status"] == "already_processed"
        mock_dispatch.assert_not_called()

    def test_event_not_found(self, db):
        result = process_webhook_event(str(uuid4()))

        assert result["status"] == "not_found"

    def test_handler_failure_marks_event_failed(self, pending_webhook_event):
        """Should mark event as failed if handler returns failure."""
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.failure(
                "Handler error", error_code="HANDLER_ERROR"
            )

            result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "handler_failed"
        assert "Handler error" in result["error"]

        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert "Handler error" in pending_webhook_event.error_message

    def test_exception_marks_event_failed_without_raising(self, pending_webhook_event):
        """The webhook view runs this inline, so exceptions are recorded, not raised."""
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.side_effect = Exception("Database connection lost")

            result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "failed"
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert "Database connection lost" in pending_webhook_event.error_message

    def test_exception_rolls_back_handler_writes(self, pending_webhook_event, fake_stripe, site, seller):
        with patch(
            "payments.webhooks.service.CheckoutIngestionService._notify",
            side_effect=RuntimeError("boom"),
        ):
            process_webhook_event(str(pending_webhook_event.id))

        assert not Escrow.objects.filter(pk="cs_task_1").exists()

    def test_increments_retry_count(self, failed_webhook_event):
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success(None)

            process_webhook_event(str(failed_webhook_event.id))

        failed_webhook_event.refresh_from_db()
        assert failed_webhook_event.retry_count == 2
        assert failed_webhook_event.status == WebhookEventStatus.PROCESSED


# =============================================================================
# retry_failed_webhooks Tests
# =============================================================================


class TestRetryFailedWebhooks:
    """Tests for the retry_failed_webhooks task."""

    def test_queues_failed_webhooks_for_retry(self, failed_webhook_event):
        with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result["queued_count"] == 1
        mock_delay.assert_called_once_with(str(failed_webhook_event.id))

    @override_settings(MAX_WEBHOOK_RETRIES=3)
    def test_skips_webhooks_at_max_retries(self, failed_webhook_event):
        WebhookEvent.objects.filter(id=failed_webhook_event.id).update(retry_count=3)

        with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result["queued_count"] == 0
        mock_delay.assert_not_called()

    def test_only_processes_failed_status(self, pending_webhook_event, failed_webhook_event):
        with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
            retry_failed_webhooks()

        mock_delay.assert_called_once_with(str(failed_webhook_event.id))

    def test_handles_queueing_error(self, failed_webhook_event):
        with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
            mock_delay.side_effect = Exception("Broker unavailable")

            result = retry_failed_webhooks()

        assert result["queued_count"] == 0


# =============================================================================
# cleanup_stuck_webhooks Tests
# =============================================================================


class TestCleanupStuckWebhooks:
    """Tests for the cleanup_stuck_webhooks task."""

    def test_resets_stuck_processing_webhooks(self, db):
        """Should reset webhooks stuck in PROCESSING."""
        stuck_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES + 5)
        WebhookEvent.objects.filter(id=stuck_event.id).update(updated_at=threshold)

        result = cleanup_stuck_webhooks()

        assert result["reset_count"] == 1
        stuck_event.refresh_from_db()
        assert stuck_event.status == WebhookEventStatus.FAILED
        assert "timed out" in stuck_event.error_message.lower()

    def test_leaves_recent_processing_webhooks(self, db):
        recent_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)

        result = cleanup_stuck_webhooks()

        assert result["reset_count"] == 0
        recent_event.refresh_from_db()
        assert recent_event.status == WebhookEventStatus.PROCESSING

    def test_only_affects_processing_status(self, pending_webhook_event, failed_webhook_event):
        old = timezone.now() - timedelta(hours=2)
        WebhookEvent.objects.update(updated_at=old)

        result = cleanup_stuck_webhooks()

        assert result["reset_count"] == 0
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.PENDING
