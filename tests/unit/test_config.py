"""Unit tests for configuration management.

Tests verify that:
- Settings load correctly from environment variables
- Validators enforce correct formats
- Default values are applied properly
- Property methods return correct URLs
"""

import pytest
from pathlib import Path
from pydantic import ValidationError

from taxflow.config import Settings, get_settings


class TestSettingsLoading:
    """Tests for loading configuration from the environment."""

    def test_all_fields_from_env(self, mock_env_vars, tmp_path):
        """Test settings load when Shopify credentials are present."""
        settings = Settings(_env_file=None)

        assert settings.shopify_shop_url == "https://test-store.myshopify.com"
        assert settings.shopify_access_token == "shpat_test_token"
        assert settings.default_currency == "CAD"
        assert settings.database_path == tmp_path / "data" / "taxflow.db"

    def test_credentials_are_optional(self, mock_env_vars_offline):
        """Test file-only processing needs no Shopify credentials."""
        settings = Settings(_env_file=None)

        assert settings.shopify_shop_url is None
        assert settings.shopify_access_token is None
        assert settings.shopify_api_url is None

    def test_get_settings(self, mock_env_vars):
        """Test get_settings returns a Settings instance."""
        settings = get_settings()

        assert isinstance(settings, Settings)
        assert settings.log_level == "DEBUG"


class TestShopifyUrlValidation:
    """Tests for Shopify shop URL validation."""

    def test_url_without_https(self, mock_env_vars, monkeypatch):
        """Test URL without https is prefixed."""
        monkeypatch.setenv("SHOPIFY_SHOP_URL", "test-store.myshopify.com")
        settings = Settings(_env_file=None)

        assert settings.shopify_shop_url == "https://test-store.myshopify.com"

    def test_url_with_trailing_slash(self, mock_env_vars, monkeypatch):
        """Test trailing slash is removed."""
        monkeypatch.setenv("SHOPIFY_SHOP_URL", "https://test-store.myshopify.com/")
        settings = Settings(_env_file=None)

        assert settings.shopify_shop_url == "https://test-store.myshopify.com"

    def test_invalid_domain(self, mock_env_vars, monkeypatch):
        """Test non-Shopify domains are rejected."""
        monkeypatch.setenv("SHOPIFY_SHOP_URL", "https://example.com")

        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None)

        assert "myshopify.com" in str(exc_info.value)

    def test_empty_url_is_none(self, mock_env_vars, monkeypatch):
        """Test an empty URL means no store configured."""
        monkeypatch.setenv("SHOPIFY_SHOP_URL", "")
        settings = Settings(_env_file=None)

        assert settings.shopify_shop_url is None


class TestCurrencyValidation:
    """Tests for default currency validation."""

    def test_lowercase_is_upper_cased(self, mock_env_vars, monkeypatch):
        """Test currency codes are normalised."""
        monkeypatch.setenv("DEFAULT_CURRENCY", " eur ")
        settings = Settings(_env_file=None)

        assert settings.default_currency == "EUR"

    @pytest.mark.parametrize("value", ["US", "DOLLARS", "12A"])
    def test_invalid_currency(self, mock_env_vars, monkeypatch, value):
        """Test non-ISO codes are rejected."""
        monkeypatch.setenv("DEFAULT_CURRENCY", value)

        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestLogLevelValidation:
    """Tests for log level validation."""

    def test_lowercase_level(self, mock_env_vars, monkeypatch):
        """Test lowercase log level is upper-cased."""
        monkeypatch.setenv("LOG_LEVEL", "warning")
        settings = Settings(_env_file=None)

        assert settings.log_level == "WARNING"

    def test_invalid_level(self, mock_env_vars, monkeypatch):
        """Test unknown log level is rejected."""
        monkeypatch.setenv("LOG_LEVEL", "VERBOSE")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self, mock_env_vars_offline, monkeypatch):
        """Test defaults when only paths are set."""
        monkeypatch.delenv("DEFAULT_CURRENCY", raising=False)
        monkeypatch.delenv("DRY_RUN", raising=False)
        monkeypatch.delenv("VALIDATION_TOLERANCE_CENTS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.default_currency == "USD"
        assert settings.validation_tolerance_cents == 1
        assert settings.import_days_back == 90
        assert settings.import_max_orders == 1000
        assert settings.dry_run is False
        assert settings.max_retries == 3
        assert settings.shopify_rate_limit_delay == 0.5

    def test_default_paths(self, monkeypatch):
        """Test default database and log paths."""
        monkeypatch.delenv("DATABASE_PATH", raising=False)
        monkeypatch.delenv("LOG_FILE", raising=False)
        settings = Settings(_env_file=None)

        assert settings.database_path == Path("data/taxflow.db")
        assert settings.log_file == Path("logs/taxflow.log")


class TestNumericBounds:
    """Tests for numeric range constraints."""

    def test_tolerance_upper_bound(self, mock_env_vars, monkeypatch):
        """Test tolerance above 100 cents is rejected."""
        monkeypatch.setenv("VALIDATION_TOLERANCE_CENTS", "101")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_tolerance_zero_allowed(self, mock_env_vars, monkeypatch):
        """Test exact reconciliation can be required."""
        monkeypatch.setenv("VALIDATION_TOLERANCE_CENTS", "0")
        settings = Settings(_env_file=None)

        assert settings.validation_tolerance_cents == 0

    def test_rate_limit_delay_bounds(self, mock_env_vars, monkeypatch):
        """Test rate limit delay must be within 0-5 seconds."""
        monkeypatch.setenv("SHOPIFY_RATE_LIMIT_DELAY", "10")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_days_back_lower_bound(self, mock_env_vars, monkeypatch):
        """Test import window must be at least one day."""
        monkeypatch.setenv("IMPORT_DAYS_BACK", "0")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestShopifyApiUrl:
    """Tests for the shopify_api_url property."""

    def test_api_url(self, mock_env_vars):
        """Test API URL includes the pinned version."""
        settings = Settings(_env_file=None)

        assert settings.shopify_api_url == "https://test-store.myshopify.com/admin/api/2024-01"
