"""Configuration management for the Shopify tax breakdown service.

Uses pydantic-settings to load configuration from environment variables
with validation and type coercion.
"""

from pathlib import Path
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Shopify Configuration
    shopify_shop_url: Optional[str] = Field(
        default=None,
        description="Shopify store URL (e.g., https://your-store.myshopify.com); "
                    "only needed for importing orders from the Admin API"
    )
    shopify_access_token: Optional[str] = Field(
        default=None,
        description="Shopify Admin API access token"
    )

    # Tax Processing
    default_currency: str = Field(
        default="USD",
        description="Currency used when an order or tax line doesn't carry one"
    )
    validation_tolerance_cents: int = Field(
        default=1,
        ge=0,
        le=100,
        description="Allowed difference between categorised and reported tax (minor units)"
    )

    # Import Settings
    import_days_back: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="How far back historical imports look (days)"
    )
    import_max_orders: int = Field(
        default=1000,
        ge=1,
        description="Maximum orders processed by one historical import"
    )

    # Application Settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    dry_run: bool = Field(
        default=False,
        description="If true, process orders without storing results"
    )
    database_path: Path = Field(
        default=Path("data/taxflow.db"),
        description="SQLite database file path"
    )
    log_file: Path = Field(
        default=Path("logs/taxflow.log"),
        description="Log file path"
    )

    # Performance Tuning
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum retry attempts for failed API calls"
    )
    shopify_rate_limit_delay: float = Field(
        default=0.5,
        ge=0.0,
        le=5.0,
        description="Delay between Shopify API calls (seconds)"
    )

    @field_validator("shopify_shop_url")
    @classmethod
    def validate_shop_url(cls, v: Optional[str]) -> Optional[str]:
        """Ensure shop URL is properly formatted."""
        if not v:
            return None
        v = v.rstrip("/")
        if not v.startswith("https://"):
            v = f"https://{v}"
        if not v.endswith(".myshopify.com"):
            raise ValueError("Shop URL must end with .myshopify.com")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        v = v.upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Ensure currency is a three-letter ISO code."""
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be a three-letter ISO code")
        return v

    @property
    def shopify_api_url(self) -> Optional[str]:
        """Get the Shopify Admin API base URL."""
        if not self.shopify_shop_url:
            return None
        return f"{self.shopify_shop_url}/admin/api/2024-01"


def get_settings() -> Settings:
    """Get application settings.

    Returns:
        Settings: Application settings loaded from environment
    """
    return Settings()
