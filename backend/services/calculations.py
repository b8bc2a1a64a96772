# backend/services/calculations.py
"""
Monetary calculations for estimates and invoices.

Every function here is pure: it reads the line items and the tax rate and
returns a Decimal without touching its inputs, so the builder can recompute
on every edit. Rounding to cents only happens in round_money(), which the
persistence layer applies right before a write.
"""
from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal('0')
CENT = Decimal('0.01')


def to_decimal(value, default=ZERO):
    """Convert a number or numeric string to Decimal without float noise."""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value):
    """Quantize an amount to cents, rounding half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(item):
    return to_decimal(item.quantity) * to_decimal(item.unit_price)


def subtotal(items):
    """Sum of quantity x unit price over every line, taxable or not."""
    return sum((line_total(item) for item in items), ZERO)


def taxable_subtotal(items):
    return sum((line_total(item) for item in items if item.taxable), ZERO)


def total_tax(items, tax_rate):
    """Tax on the taxable lines only."""
    return taxable_subtotal(items) * to_decimal(tax_rate)


def grand_total(items, tax_rate):
    return subtotal(items) + total_tax(items, tax_rate)


def total_margin(items):
    """Sum of (unit price - cost basis) x quantity."""
    return sum(
        ((to_decimal(item.unit_price) - to_decimal(item.our_price)) * to_decimal(item.quantity)
         for item in items),
        ZERO,
    )


def margin_percentage(items):
    """
    Margin as a fraction of the subtotal.

    Returns:
        Decimal: 0 when the subtotal is 0
    """
    base = subtotal(items)
    if base == ZERO:
        return ZERO
    return total_margin(items) / base


def document_totals(items, tax_rate):
    """
    Compute every figure shown on a document in one pass.

    Args:
        items (iterable): Line items with quantity, unit_price, our_price and taxable
        tax_rate (Decimal): Fraction applied to taxable lines (0.10 for 10%)

    Returns:
        dict: subtotal, taxable_subtotal, tax, total, margin, margin_percentage
    """
    items = list(items)
    sub = subtotal(items)
    tax = total_tax(items, tax_rate)
    return {
        'subtotal': sub,
        'taxable_subtotal': taxable_subtotal(items),
        'tax': tax,
        'total': sub + tax,
        'margin': total_margin(items),
        'margin_percentage': margin_percentage(items),
    }


def persisted_totals(items, tax_rate):
    """
    Cent-rounded totals for a write.

    The stored total is the sum of the rounded subtotal and the rounded tax so
    that subtotal + tax_amount == total also holds for stored rows.
    """
    items = list(items)
    sub = round_money(subtotal(items))
    tax = round_money(total_tax(items, tax_rate))
    return {
        'subtotal': sub,
        'tax_amount': tax,
        'total': sub + tax,
    }
