"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Escrow, Order and WebhookEvent model tests
- test_views.py: Payout trigger and refund endpoint tests
- test_notifications.py: Owner and buyer notification tests
- test_permissions.py: Payout trigger secret checks
- test_integration.py: Webhook to payout flows

Subpackages (escrow, adapters, webhooks, workers, services) carry their
own tests/ packages.

Usage:
    pytest payments/ -v
"""
