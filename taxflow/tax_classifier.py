"""Tax line classification.

Maps free-text Shopify tax line titles ("GST", "CA State Tax",
"Quebec Sales Tax", ...) onto the fixed TaxCategory taxonomy.
"""

import logging

from .constants import (
    TaxCategory,
    TAX_TITLE_MAPPING,
    TITLE_PATTERNS,
    DEFAULT_TAX_CATEGORY,
    TitlePattern,
)

logger = logging.getLogger(__name__)


def _matches(pattern: TitlePattern, upper_title: str) -> bool:
    """Check a title against one substring heuristic."""
    if any(token in upper_title for token in pattern.any_of):
        return True
    return bool(pattern.all_of) and all(token in upper_title for token in pattern.all_of)


def classify_tax_title(title) -> TaxCategory:
    """Classify a tax line title into a TaxCategory.

    Resolution order:
    1. Exact (case-sensitive) match against TAX_TITLE_MAPPING
    2. Substring heuristics from TITLE_PATTERNS, first match wins
    3. DEFAULT_TAX_CATEGORY

    Never raises: None and non-string titles are treated as empty.

    Args:
        title: Tax line title as supplied by Shopify

    Returns:
        TaxCategory for the title

    Example:
        >>> classify_tax_title("Provincial GST Adjustment")
        <TaxCategory.GST: 'gst'>
        >>> classify_tax_title("Eco Fee")
        <TaxCategory.OTHER: 'other'>
    """
    if not isinstance(title, str):
        title = ""

    category = TAX_TITLE_MAPPING.get(title)
    if category is not None:
        return category

    upper_title = title.upper()
    for pattern in TITLE_PATTERNS:
        if _matches(pattern, upper_title):
            return pattern.category

    logger.debug(f"Unrecognised tax title {title!r}, using {DEFAULT_TAX_CATEGORY.value}")
    return DEFAULT_TAX_CATEGORY
