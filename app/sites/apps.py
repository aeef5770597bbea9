"""
Sites app configuration.
"""

from django.apps import AppConfig


class SitesConfig(AppConfig):
    """Configuration for the sites application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "sites"
    verbose_name = "Sites"
