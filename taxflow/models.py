"""Pydantic data models for Shopify orders and tax breakdowns.

These models provide validation and type safety for data moving
between Shopify, the tax processor, and the local SQLite database.
Input models are deliberately lenient: messy tax fields degrade to
empty values instead of failing validation.
"""

import math
import re
from datetime import datetime
from typing import Any, Optional, List
from pydantic import BaseModel, Field, field_validator

from .constants import TaxCategory, CATEGORY_AMOUNT_FIELDS


def parse_shopify_datetime(value):
    """Parse Shopify datetime strings, handling various formats.

    Shopify returns ISO 8601 format like: 2024-01-15T12:30:45+00:00
    Anything that cannot be parsed becomes None rather than an error.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass

        cleaned = value.strip()

        # Remove 'Z' suffix and treat as UTC
        if cleaned.endswith('Z'):
            cleaned = cleaned[:-1] + '+00:00'

        # Ensure timezone has colon (2024-01-15T12:30:45+0000 -> +00:00)
        cleaned = re.sub(r'([+-]\d{2})(\d{2})$', r'\1:\2', cleaned)

        try:
            return datetime.fromisoformat(cleaned)
        except ValueError:
            return None
    return None


def _coerce_text(value: Any) -> Optional[str]:
    """Turn numbers into strings and drop anything that isn't text."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _coerce_rate(value: Any) -> float:
    """Parse a tax rate, treating missing or garbage values as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return 0.0
    return rate if math.isfinite(rate) else 0.0


# =============================================================================
# SHOPIFY MODELS
# =============================================================================

class ShopifyAddress(BaseModel):
    """Shopify billing or shipping address."""
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    province_code: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None

    @field_validator('*', mode='before')
    @classmethod
    def coerce_text(cls, value):
        """Accept numeric zips and drop non-text values."""
        return _coerce_text(value)


class ShopifyMoney(BaseModel):
    """Amount and currency pair inside a Shopify price set."""
    amount: Optional[str] = None
    currency_code: Optional[str] = None

    @field_validator('amount', 'currency_code', mode='before')
    @classmethod
    def coerce_text(cls, value):
        return _coerce_text(value)


class ShopifyPriceSet(BaseModel):
    """Shop and presentment currency amounts for a price."""
    shop_money: Optional[ShopifyMoney] = None
    presentment_money: Optional[ShopifyMoney] = None


class ShopifyTaxLine(BaseModel):
    """Tax line as it appears on a Shopify order or line item."""
    title: str = ""
    price: Optional[str] = None
    rate: float = 0.0
    price_set: Optional[ShopifyPriceSet] = None
    channel_liable: Optional[bool] = None

    @field_validator('title', mode='before')
    @classmethod
    def coerce_title(cls, value):
        return _coerce_text(value) or ""

    @field_validator('price', mode='before')
    @classmethod
    def coerce_price(cls, value):
        return _coerce_text(value)

    @field_validator('rate', mode='before')
    @classmethod
    def coerce_rate(cls, value):
        return _coerce_rate(value)

    @property
    def shop_currency(self) -> Optional[str]:
        """Currency of the shop money amount, if Shopify sent one."""
        if self.price_set and self.price_set.shop_money:
            return self.price_set.shop_money.currency_code
        return None


class ShopifyCustomer(BaseModel):
    """Customer summary embedded in a Shopify order."""
    id: Optional[int] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Get customer's full name."""
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p) or "Unknown"


class ShopifyOrder(BaseModel):
    """Shopify order entity (REST Admin API and orders/* webhook shape)."""
    id: int
    order_number: Optional[int] = None
    name: Optional[str] = None  # e.g., "#1001"
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    currency: Optional[str] = None
    total_price: Optional[str] = "0.00"
    subtotal_price: Optional[str] = "0.00"
    total_tax: Optional[str] = "0.00"
    taxes_included: bool = False
    financial_status: Optional[str] = None
    customer: Optional[ShopifyCustomer] = None
    tax_lines: List[ShopifyTaxLine] = Field(default_factory=list)
    billing_address: Optional[ShopifyAddress] = None
    shipping_address: Optional[ShopifyAddress] = None

    @field_validator('created_at', 'updated_at', 'processed_at', mode='before')
    @classmethod
    def parse_datetime(cls, value):
        """Parse datetime fields with custom handler."""
        return parse_shopify_datetime(value)

    @field_validator('total_price', 'subtotal_price', 'total_tax', 'currency', mode='before')
    @classmethod
    def coerce_text(cls, value):
        return _coerce_text(value)

    @property
    def display_name(self) -> str:
        """Order name for logs and reports."""
        return self.name or f"#{self.order_number or self.id}"


# =============================================================================
# TAX PROCESSING MODELS
# =============================================================================

class TaxLine(BaseModel):
    """One tax entry on an order, in platform-neutral form."""
    title: str = ""
    amount: Optional[str] = None  # Major units, e.g. "8.25"
    rate: float = 0.0             # Decimal fraction, e.g. 0.0825
    currency_code: Optional[str] = None

    @field_validator('title', mode='before')
    @classmethod
    def coerce_title(cls, value):
        return _coerce_text(value) or ""

    @field_validator('amount', 'currency_code', mode='before')
    @classmethod
    def coerce_text(cls, value):
        return _coerce_text(value)

    @field_validator('rate', mode='before')
    @classmethod
    def coerce_rate(cls, value):
        return _coerce_rate(value)


class AddressCandidate(BaseModel):
    """Billing or shipping address considered for the tax jurisdiction."""
    country: Optional[str] = None
    country_code: Optional[str] = None
    province: Optional[str] = None
    province_code: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    zip: Optional[str] = None

    @field_validator('*', mode='before')
    @classmethod
    def coerce_text(cls, value):
        return _coerce_text(value)


class Jurisdiction(BaseModel):
    """Where an order's tax was levied."""
    country: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not any([self.country, self.province, self.city, self.postal_code])

    def describe(self) -> str:
        """Human readable location, most specific part first."""
        parts = [p for p in (self.city, self.province, self.country) if p]
        return ", ".join(parts) if parts else "Unknown location"


class TaxLineDetail(BaseModel):
    """Classified record of a single tax line."""
    category: TaxCategory
    title: str
    amount_cents: int
    rate: float = 0.0
    currency_code: str
    jurisdiction: Jurisdiction


class TaxBreakdown(BaseModel):
    """Per-category tax totals for one order, in minor currency units."""
    gst_amount: int = 0
    pst_amount: int = 0
    hst_amount: int = 0
    qst_amount: int = 0
    state_tax_amount: int = 0
    local_tax_amount: int = 0
    other_tax_amount: int = 0
    jurisdiction: Jurisdiction = Field(default_factory=Jurisdiction)
    detailed_lines: List[TaxLineDetail] = Field(default_factory=list)

    def amount_for(self, category: TaxCategory) -> int:
        """Get the accumulated amount for a category."""
        return getattr(self, CATEGORY_AMOUNT_FIELDS[category])

    def add_amount(self, category: TaxCategory, amount_cents: int) -> None:
        """Add an amount to the accumulator owned by a category."""
        field_name = CATEGORY_AMOUNT_FIELDS[category]
        setattr(self, field_name, getattr(self, field_name) + amount_cents)

    def category_totals(self) -> dict[TaxCategory, int]:
        """All seven accumulators keyed by category."""
        return {category: self.amount_for(category) for category in TaxCategory}

    @property
    def total_cents(self) -> int:
        """Sum of every category accumulator."""
        return sum(self.category_totals().values())


class ValidationResult(BaseModel):
    """Outcome of reconciling a breakdown against the order's reported tax."""
    is_valid: bool
    calculated_total_cents: int
    expected_total_cents: int
    difference_cents: int


class OrderTaxRecord(BaseModel):
    """Processed tax data for a single Shopify order, as stored locally."""
    order_id: str
    order_name: Optional[str] = None
    currency: str = "USD"
    total_tax_cents: int = 0
    breakdown: TaxBreakdown
    validation: ValidationResult
    checksum: Optional[str] = None
    customer_email: Optional[str] = None
    order_created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @property
    def needs_review(self) -> bool:
        """True when categorised tax doesn't reconcile with Shopify's total."""
        return not self.validation.is_valid


# =============================================================================
# IMPORT HISTORY MODELS
# =============================================================================

class ImportHistoryEntry(BaseModel):
    """Record of an import run."""
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: str  # "running", "success", "failed"
    orders_processed: int = 0
    mismatches: int = 0
    errors: List[str] = Field(default_factory=list)


# =============================================================================
# CONVERSION HELPERS
# =============================================================================

def shopify_tax_line_to_tax_line(tax_line: ShopifyTaxLine) -> TaxLine:
    """Convert a Shopify tax line to a processor TaxLine.

    Args:
        tax_line: Shopify tax line data

    Returns:
        TaxLine using the shop money currency when Shopify provides one
    """
    return TaxLine(
        title=tax_line.title,
        amount=tax_line.price,
        rate=tax_line.rate,
        currency_code=tax_line.shop_currency,
    )


def shopify_address_to_candidate(
    address: Optional[ShopifyAddress],
) -> Optional[AddressCandidate]:
    """Convert a Shopify address to a jurisdiction candidate.

    Args:
        address: Shopify billing or shipping address

    Returns:
        AddressCandidate or None if the order has no such address
    """
    if address is None:
        return None
    return AddressCandidate(
        country=address.country,
        country_code=address.country_code,
        province=address.province,
        province_code=address.province_code,
        city=address.city,
        zip=address.zip,
    )
