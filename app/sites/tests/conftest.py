"""
Pytest fixtures for site tests.
"""

import pytest

from sites.models import PlatformSettings
from sites.tests.factories import SiteFactory, SiteSellerFactory


@pytest.fixture
def site(db):
    """Create a site with an owner e-mail."""
    return SiteFactory(site_key="shop-a")


@pytest.fixture
def site_seller(db):
    """Create a seller with a connected account and no stop flags."""
    return SiteSellerFactory(site_key="shop-a", connect_account_id="acct_shopa")


@pytest.fixture
def platform_settings(db):
    """Load the platform settings singleton."""
    return PlatformSettings.load()
