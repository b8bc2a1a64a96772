from decimal import Decimal

from services.calculations import (
    document_totals,
    grand_total,
    margin_percentage,
    persisted_totals,
    round_money,
    subtotal,
    taxable_subtotal,
    total_margin,
    total_tax,
)
from services.line_items import LineItem

RATE = Decimal('0.10')


def test_two_item_scenario(sample_items):
    assert subtotal(sample_items) == Decimal('200')
    assert taxable_subtotal(sample_items) == Decimal('100')
    assert total_tax(sample_items, RATE) == Decimal('10')
    assert grand_total(sample_items, RATE) == Decimal('210')
    assert total_margin(sample_items) == Decimal('80')
    assert margin_percentage(sample_items) == Decimal('0.4')


def test_grand_total_is_subtotal_plus_tax():
    items = [
        LineItem(quantity=3, unit_price='19.99', taxable=True),
        LineItem(quantity=7, unit_price='0.33', taxable=False),
        LineItem(quantity=1, unit_price='1250.5', taxable=True),
    ]
    for rate in ('0', '0.05', '0.0825', '0.13', '1'):
        assert grand_total(items, rate) == subtotal(items) + total_tax(items, rate)


def test_toggling_taxable_changes_tax_by_that_item_only(sample_items):
    before = total_tax(sample_items, RATE)
    springs = sample_items[1]
    springs.taxable = True
    after = total_tax(sample_items, RATE)
    assert after - before == springs.total * RATE


def test_empty_collection_has_zero_margin_percentage():
    assert subtotal([]) == 0
    assert margin_percentage([]) == 0


def test_functions_are_repeatable_and_leave_inputs_alone(sample_items):
    snapshot = [(item.quantity, item.unit_price, item.taxable) for item in sample_items]
    first = document_totals(sample_items, RATE)
    second = document_totals(sample_items, RATE)
    assert first == second
    assert [(item.quantity, item.unit_price, item.taxable) for item in sample_items] == snapshot


def test_persisted_totals_round_to_cents_and_add_up():
    items = [LineItem(quantity=3, unit_price='19.99', taxable=True)]
    totals = persisted_totals(items, '0.0825')
    assert totals['subtotal'] == Decimal('59.97')
    assert totals['tax_amount'] == Decimal('4.95')
    assert totals['total'] == Decimal('64.92')
    assert totals['subtotal'] + totals['tax_amount'] == totals['total']


def test_round_money_rounds_half_up():
    assert round_money('2.345') == Decimal('2.35')
    assert round_money('2.344') == Decimal('2.34')
