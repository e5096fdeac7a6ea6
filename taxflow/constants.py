"""Constants and mappings for Shopify tax breakdowns.

This file contains the tax taxonomy and the title mappings that may need to
be extended as new tax line titles show up in Shopify orders.
"""

from enum import Enum
from typing import NamedTuple


class TaxCategory(str, Enum):
    """Fixed taxonomy every Shopify tax line is classified into."""
    GST = "gst"
    PST = "pst"
    HST = "hst"
    QST = "qst"
    STATE = "state"
    LOCAL = "local"
    OTHER = "other"


class TitlePattern(NamedTuple):
    """Substring heuristic for tax titles that have no exact mapping."""
    category: TaxCategory
    any_of: tuple[str, ...]     # Match if any of these appear
    all_of: tuple[str, ...] = ()  # ...or if all of these appear


# =============================================================================
# EXACT TITLE MAPPING
# =============================================================================
# Case-sensitive lookup of tax line titles as Shopify sends them.
#
# To add a new title:
#   1. Copy the exact `title` value from the order's tax_lines payload
#   2. Add it below with its TaxCategory
#
# Anything not listed falls through to TITLE_PATTERNS.
# =============================================================================

TAX_TITLE_MAPPING: dict[str, TaxCategory] = {
    # Canadian taxes
    "GST": TaxCategory.GST,
    "HST": TaxCategory.HST,
    "PST": TaxCategory.PST,
    "QST": TaxCategory.QST,
    "Quebec Sales Tax": TaxCategory.QST,
    "Goods and Services Tax": TaxCategory.GST,
    "Harmonized Sales Tax": TaxCategory.HST,
    "Provincial Sales Tax": TaxCategory.PST,

    # US taxes
    "Sales Tax": TaxCategory.STATE,
    "State Tax": TaxCategory.STATE,
    "CA State Tax": TaxCategory.STATE,
    "NY State Tax": TaxCategory.STATE,
    "WA State Tax": TaxCategory.STATE,
    "Local Tax": TaxCategory.LOCAL,
    "City Tax": TaxCategory.LOCAL,
    "County Tax": TaxCategory.LOCAL,

    # Other common titles
    "VAT": TaxCategory.OTHER,
    "Value Added Tax": TaxCategory.OTHER,
    "Customs": TaxCategory.OTHER,
    "Import Tax": TaxCategory.OTHER,
    "Duty": TaxCategory.OTHER,
}


# =============================================================================
# TITLE PATTERNS
# =============================================================================
# Evaluated in order against the upper-cased title; first match wins.
# Order matters: "Provincial GST Adjustment" must resolve to GST, not PST.
# =============================================================================

TITLE_PATTERNS: tuple[TitlePattern, ...] = (
    TitlePattern(TaxCategory.GST, ("GST",), ("GOODS", "SERVICE")),
    TitlePattern(TaxCategory.PST, ("PST", "PROVINCIAL")),
    TitlePattern(TaxCategory.HST, ("HST", "HARMONIZED")),
    TitlePattern(TaxCategory.QST, ("QST", "QUEBEC")),
    TitlePattern(TaxCategory.STATE, ("STATE", "SALES TAX")),
    TitlePattern(TaxCategory.LOCAL, ("LOCAL", "CITY", "COUNTY")),
    TitlePattern(TaxCategory.OTHER, ("VAT", "VALUE ADDED")),
)

# Category for titles nothing above recognises
DEFAULT_TAX_CATEGORY = TaxCategory.OTHER


# =============================================================================
# BREAKDOWN FIELDS
# =============================================================================
# Each category accumulates into exactly one TaxBreakdown field.

CATEGORY_AMOUNT_FIELDS: dict[TaxCategory, str] = {
    TaxCategory.GST: "gst_amount",
    TaxCategory.PST: "pst_amount",
    TaxCategory.HST: "hst_amount",
    TaxCategory.QST: "qst_amount",
    TaxCategory.STATE: "state_tax_amount",
    TaxCategory.LOCAL: "local_tax_amount",
    TaxCategory.OTHER: "other_tax_amount",
}

# Labels used in summaries and CLI reports
CATEGORY_LABELS: dict[TaxCategory, str] = {
    TaxCategory.GST: "GST",
    TaxCategory.PST: "PST",
    TaxCategory.HST: "HST",
    TaxCategory.QST: "QST",
    TaxCategory.STATE: "State",
    TaxCategory.LOCAL: "Local",
    TaxCategory.OTHER: "Other",
}


# =============================================================================
# CURRENCY & RECONCILIATION SETTINGS
# =============================================================================

# Currency used when a tax line carries no price_set
DEFAULT_CURRENCY = "USD"

# Allowed difference between categorised and reported tax, in minor units.
# Applied to every currency as-is (JPY included).
VALIDATION_TOLERANCE_CENTS = 1

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "CAD": "$",
    "AUD": "$",
    "EUR": "€",
    "GBP": "£",
}
