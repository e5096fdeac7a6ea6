"""Pytest configuration and shared fixtures.

Provides common fixtures for:
- Temporary database paths
- Mock environment variables
- Sample tax lines, addresses and Shopify orders
- Database fixtures
"""

import pytest
from pathlib import Path
import tempfile

from tests.fixtures.shopify_fixtures import SHOPIFY_ORDER_BC, SHOPIFY_ORDER_US


# =============================================================================
# TEMPORARY PATHS
# =============================================================================

@pytest.fixture
def temp_db_path():
    """Create a temporary database path for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_taxflow.db"


@pytest.fixture
def temp_log_path():
    """Create a temporary log file path for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.log"


# =============================================================================
# ENVIRONMENT VARIABLES
# =============================================================================

@pytest.fixture
def mock_env_vars(monkeypatch, tmp_path):
    """Set up mock environment variables for testing.

    This provides a complete set of environment variables, including
    Shopify credentials for the API client.
    """
    monkeypatch.setenv("SHOPIFY_SHOP_URL", "https://test-store.myshopify.com")
    monkeypatch.setenv("SHOPIFY_ACCESS_TOKEN", "shpat_test_token")
    monkeypatch.setenv("DEFAULT_CURRENCY", "CAD")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DRY_RUN", "false")
    monkeypatch.setenv("SHOPIFY_RATE_LIMIT_DELAY", "0")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "data" / "taxflow.db"))
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "taxflow.log"))


@pytest.fixture
def mock_env_vars_offline(monkeypatch, tmp_path):
    """Environment without Shopify credentials (file/webhook processing only)."""
    monkeypatch.delenv("SHOPIFY_SHOP_URL", raising=False)
    monkeypatch.delenv("SHOPIFY_ACCESS_TOKEN", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "data" / "taxflow.db"))
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "taxflow.log"))


# =============================================================================
# SAMPLE MODELS
# =============================================================================

@pytest.fixture
def canadian_tax_lines():
    """GST + PST tax lines for a British Columbia order."""
    from taxflow.models import TaxLine

    return [
        TaxLine(title="GST", amount="5.00", rate=0.05),
        TaxLine(title="PST", amount="7.00", rate=0.07),
    ]


@pytest.fixture
def vancouver_billing():
    """Billing address in Vancouver, BC."""
    from taxflow.models import AddressCandidate

    return AddressCandidate(city="Vancouver", province_code="BC", country_code="CA")


@pytest.fixture
def san_francisco_billing():
    """Billing address in San Francisco, CA."""
    from taxflow.models import AddressCandidate

    return AddressCandidate(city="San Francisco", province_code="CA", country_code="US")


@pytest.fixture
def sample_shopify_order():
    """Create a sample Shopify order (Vancouver, GST + PST)."""
    from taxflow.models import ShopifyOrder

    return ShopifyOrder.model_validate(SHOPIFY_ORDER_BC)


@pytest.fixture
def sample_us_order():
    """Create a sample Shopify order (San Francisco, state tax)."""
    from taxflow.models import ShopifyOrder

    return ShopifyOrder.model_validate(SHOPIFY_ORDER_US)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def database(temp_db_path):
    """Create a fresh database for testing."""
    from taxflow.database import Database

    return Database(temp_db_path)
