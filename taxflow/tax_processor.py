"""Tax breakdown aggregation and reconciliation.

Turns the tax lines of one order into per-category totals in minor
currency units, attaches a single order-level jurisdiction, and checks
that the categorised total reconciles with the tax Shopify reported.

Everything here is pure: no I/O, no shared state, and malformed input
degrades to zero amounts or empty jurisdiction fields instead of raising.
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from .constants import (
    CATEGORY_LABELS,
    CURRENCY_SYMBOLS,
    DEFAULT_CURRENCY,
    VALIDATION_TOLERANCE_CENTS,
)
from .models import (
    AddressCandidate,
    Jurisdiction,
    OrderTaxRecord,
    ShopifyOrder,
    TaxBreakdown,
    TaxLine,
    TaxLineDetail,
    ValidationResult,
    shopify_address_to_candidate,
    shopify_tax_line_to_tax_line,
)
from .tax_classifier import classify_tax_title

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def amount_to_cents(amount) -> int:
    """Convert a major-unit amount string to integer minor units.

    Rounds half-up at two decimal places. Missing, unparsable,
    non-finite and negative amounts become 0.

    Args:
        amount: Decimal string such as "8.25" (numbers are accepted too)

    Returns:
        Amount in cents
    """
    if amount is None or isinstance(amount, bool):
        return 0
    try:
        value = Decimal(str(amount).strip())
        if not value.is_finite() or value < 0:
            return 0
        return int(value.quantize(_CENT, rounding=ROUND_HALF_UP) * 100)
    except InvalidOperation:
        # Unparsable text, or too many digits to quantize
        return 0


def extract_jurisdiction(
    billing_address: Optional[AddressCandidate],
    shipping_address: Optional[AddressCandidate],
) -> Jurisdiction:
    """Derive the order's tax jurisdiction.

    The billing address is authoritative. The shipping address is used
    only when there is no billing address at all; fields are never
    mixed between the two.

    Args:
        billing_address: Billing address, if any
        shipping_address: Shipping address, if any

    Returns:
        Jurisdiction, with every field None when neither address exists
    """
    address = billing_address or shipping_address
    if address is None:
        return Jurisdiction()

    return Jurisdiction(
        country=address.country_code or address.country or None,
        province=address.province_code or address.province or None,
        city=address.city or None,
        postal_code=address.zip or address.postal_code or None,
    )


def process_tax_breakdown(
    tax_lines: Iterable[TaxLine],
    billing_address: Optional[AddressCandidate] = None,
    shipping_address: Optional[AddressCandidate] = None,
    default_currency: str = DEFAULT_CURRENCY,
) -> TaxBreakdown:
    """Classify and total the tax lines of one order.

    Args:
        tax_lines: Tax lines in the order Shopify listed them
        billing_address: Billing address (preferred for jurisdiction)
        shipping_address: Shipping address (used only without billing)
        default_currency: Currency for lines that don't carry one

    Returns:
        TaxBreakdown with category totals and one detail per input line
    """
    jurisdiction = extract_jurisdiction(billing_address, shipping_address)
    breakdown = TaxBreakdown(jurisdiction=jurisdiction)

    for tax_line in tax_lines:
        amount_cents = amount_to_cents(tax_line.amount)
        category = classify_tax_title(tax_line.title)

        breakdown.add_amount(category, amount_cents)
        breakdown.detailed_lines.append(TaxLineDetail(
            category=category,
            title=tax_line.title,
            amount_cents=amount_cents,
            rate=tax_line.rate or 0.0,
            currency_code=tax_line.currency_code or default_currency,
            jurisdiction=jurisdiction.model_copy(),
        ))

    return breakdown


def validate_tax_breakdown(
    breakdown: TaxBreakdown,
    expected_total_cents: int,
    tolerance_cents: int = VALIDATION_TOLERANCE_CENTS,
) -> ValidationResult:
    """Check a breakdown against the order's reported total tax.

    Independently rounded lines can drift from the reported total, so
    a difference up to tolerance_cents is still valid. An invalid result
    is advisory: the breakdown is never changed here.

    Args:
        breakdown: Completed tax breakdown
        expected_total_cents: Order total tax in minor units
        tolerance_cents: Largest difference still considered valid

    Returns:
        ValidationResult with the absolute difference
    """
    calculated_total = breakdown.total_cents
    difference = abs(calculated_total - expected_total_cents)

    return ValidationResult(
        is_valid=difference <= tolerance_cents,
        calculated_total_cents=calculated_total,
        expected_total_cents=expected_total_cents,
        difference_cents=difference,
    )


def format_currency(amount_cents: int, currency: str = DEFAULT_CURRENCY) -> str:
    """Format minor units for display, e.g. 825 -> "$8.25"."""
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{symbol}{amount_cents / 100:.2f}"


def format_tax_breakdown_summary(
    breakdown: TaxBreakdown,
    currency: Optional[str] = None,
) -> str:
    """Format a breakdown as a one-line summary for logs and reports.

    Args:
        breakdown: Tax breakdown to summarise
        currency: Display currency; defaults to the first line's currency

    Returns:
        e.g. "Tax Breakdown: GST: $5.00, PST: $7.00 (Vancouver, BC, CA)"
    """
    if currency is None:
        lines = breakdown.detailed_lines
        currency = lines[0].currency_code if lines else DEFAULT_CURRENCY

    parts = [
        f"{CATEGORY_LABELS[category]}: {format_currency(amount, currency)}"
        for category, amount in breakdown.category_totals().items()
        if amount > 0
    ]
    amounts = ", ".join(parts) if parts else "No tax"

    return f"Tax Breakdown: {amounts} ({breakdown.jurisdiction.describe()})"


def process_order_taxes(
    order: ShopifyOrder,
    default_currency: str = DEFAULT_CURRENCY,
    tolerance_cents: int = VALIDATION_TOLERANCE_CENTS,
) -> OrderTaxRecord:
    """Build and reconcile the tax breakdown for a Shopify order.

    A reconciliation mismatch is logged and flagged on the record;
    it never prevents the record from being returned.

    Args:
        order: Shopify order
        default_currency: Currency used when the order has none
        tolerance_cents: Reconciliation tolerance in minor units

    Returns:
        OrderTaxRecord with breakdown and validation result
    """
    currency = order.currency or default_currency

    breakdown = process_tax_breakdown(
        [shopify_tax_line_to_tax_line(line) for line in order.tax_lines],
        billing_address=shopify_address_to_candidate(order.billing_address),
        shipping_address=shopify_address_to_candidate(order.shipping_address),
        default_currency=currency,
    )
    total_tax_cents = amount_to_cents(order.total_tax)
    validation = validate_tax_breakdown(breakdown, total_tax_cents, tolerance_cents)

    if validation.is_valid:
        logger.debug(
            f"Order {order.display_name}: {format_tax_breakdown_summary(breakdown, currency)}"
        )
    else:
        logger.warning(
            f"Order {order.display_name} tax mismatch: categorised "
            f"{format_currency(validation.calculated_total_cents, currency)}, Shopify reported "
            f"{format_currency(validation.expected_total_cents, currency)} "
            f"(difference {validation.difference_cents} cents)"
        )

    return OrderTaxRecord(
        order_id=str(order.id),
        order_name=order.display_name,
        currency=currency,
        total_tax_cents=total_tax_cents,
        breakdown=breakdown,
        validation=validation,
        customer_email=order.email or (order.customer.email if order.customer else None),
        order_created_at=order.created_at,
    )

