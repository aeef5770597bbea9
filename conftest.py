"""
Root pytest configuration.

Points pytest-django at the project settings when tests are collected from
the repository root. Fixtures live in app/conftest.py and each app's
tests/conftest.py.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
