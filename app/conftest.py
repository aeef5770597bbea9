"""
Project-wide pytest configuration.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures live in each app's conftest.py.
"""

import os

import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Adjust settings for the test run."""
    from django.conf import settings

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]
    # Tasks called with .delay() run inline
    settings.CELERY_TASK_ALWAYS_EAGER = True


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (webhook to payout flows)
    - test_views.py, test_tasks.py, test_orchestrator.py, etc. → integration
    - test_models.py, test_policy.py, test_adapters.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_tasks.py",
        "test_webhooks.py",
        "test_handlers.py",
        "test_orchestrator.py",
        "test_store.py",
        "test_refund_service.py",
        "test_ingestion.py",
        "test_notifications.py",
        "test_escrow_release.py",
        "test_commands.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_policy.py",
        "test_transfer.py",
        "test_adapters.py",
        "test_serializers.py",
        "test_permissions.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def api_client():
    """DRF test client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def staff_user(db, django_user_model):
    """Staff user for admin-only endpoints."""
    return django_user_model.objects.create_user(
        username="ops",
        email="ops@example.com",
        password="testpass123",
        is_staff=True,
    )
