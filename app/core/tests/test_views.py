"""
Tests for the health check endpoint.
"""

from unittest.mock import patch

import pytest
from django.db import DatabaseError


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, client):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}

    def test_database_down(self, client):
        with patch("core.views.connection") as mock_connection:
            mock_connection.cursor.side_effect = DatabaseError("down")
            response = client.get("/health/")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"
