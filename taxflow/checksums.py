"""Checksum calculation for change detection.

Checksums are calculated from the tax-relevant fields of an order so
re-imported or re-delivered orders are only reprocessed when something
that affects the breakdown has changed.
"""

import hashlib
from typing import Optional

from .constants import DEFAULT_CURRENCY, VALIDATION_TOLERANCE_CENTS
from .models import ShopifyAddress, ShopifyOrder


def _address_parts(address: Optional[ShopifyAddress]) -> list[str]:
    if address is None:
        return ["-"]
    return [
        address.country_code or "",
        address.country or "",
        address.province_code or "",
        address.province or "",
        address.city or "",
        address.zip or "",
    ]


def calculate_order_tax_checksum(
    order: ShopifyOrder,
    default_currency: str = DEFAULT_CURRENCY,
    tolerance_cents: int = VALIDATION_TOLERANCE_CENTS,
) -> str:
    """Calculate checksum for the tax data of a Shopify order.

    Includes the fields the tax breakdown depends on:
    - Tax lines (title, price, rate, currency) in order
    - Reported total tax and order currency
    - Billing and shipping address jurisdiction fields
    - The default currency and tolerance the record was built with, so a
      settings change reprocesses stored orders

    Args:
        order: Shopify order entity
        default_currency: Currency used when the order has none
        tolerance_cents: Reconciliation tolerance in minor units

    Returns:
        SHA256 hex digest of the relevant fields
    """
    tax_lines_data = [
        f"{line.title}:{line.price or ''}:{line.rate}:{line.shop_currency or ''}"
        for line in order.tax_lines
    ]

    # Build checksum data string with pipe separator
    data = "|".join([
        order.total_tax or "0.00",
        order.currency or "",
        ";".join(tax_lines_data),  # Tax lines separated by semicolon
        *_address_parts(order.billing_address),
        *_address_parts(order.shipping_address),
        default_currency,
        str(tolerance_cents),
    ])

    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def has_changed(old_checksum: Optional[str], new_checksum: str) -> bool:
    """Check if an order has changed based on checksums.

    Args:
        old_checksum: Previous checksum (None if new order)
        new_checksum: Current checksum

    Returns:
        True if order has changed or is new
    """
    if old_checksum is None:
        return True
    return old_checksum != new_checksum
