from decimal import Decimal

import pytest

from services.errors import ValidationError
from services.line_items import (
    ORIGIN_CATALOG,
    ORIGIN_CUSTOM,
    ORIGIN_WARRANTY,
    LineItemManager,
    is_temp_id,
)

OPENER = {'id': 1, 'name': 'Garage Door Opener', 'price': '50', 'cost': '30'}
WARRANTY = {'id': 5, 'name': 'Extended Warranty', 'price': '80', 'cost': '10'}


@pytest.fixture
def manager():
    return LineItemManager()


def test_add_from_catalog_seeds_from_product(manager):
    item = manager.add_from_catalog(OPENER)
    assert item.quantity == 1
    assert item.unit_price == Decimal('50')
    assert item.our_price == Decimal('30')
    assert item.total == item.unit_price
    assert item.origin == ORIGIN_CATALOG
    assert item.product_id == 1
    assert is_temp_id(item.id)


def test_add_custom_line_is_blank(manager):
    item = manager.add_custom_line()
    assert item.description == ''
    assert item.quantity == 1
    assert item.total == 0
    assert item.origin == ORIGIN_CUSTOM
    assert len(manager) == 1


def test_remove_unknown_id_is_a_noop(manager):
    manager.add_custom_line(description='Labour', unit_price='75')
    assert manager.remove('does-not-exist') is False
    assert len(manager) == 1


def test_remove_by_id(manager):
    item = manager.add_custom_line(description='Labour')
    assert manager.remove(item.id) is True
    assert len(manager) == 0


def test_quantity_and_price_updates_keep_total_consistent(manager):
    item = manager.add_from_catalog(OPENER)
    manager.update(item.id, 'quantity', '4')
    assert item.total == Decimal('200')
    manager.update(item.id, 'unitPrice', '12.50')
    assert item.quantity == 4
    assert item.total == Decimal('50.00')


@pytest.mark.parametrize('bad_quantity', ['abc', '', None, -3, 0, float('nan'), float('inf')])
def test_bad_quantity_falls_back_to_one(manager, bad_quantity):
    item = manager.add_from_catalog(OPENER)
    manager.set_quantity(item.id, bad_quantity)
    assert item.quantity == 1
    assert item.total == item.unit_price


def test_total_is_not_settable(manager):
    item = manager.add_from_catalog(OPENER)
    with pytest.raises(ValidationError):
        manager.update(item.id, 'total', 999)
    assert item.total == Decimal('50')


def test_unknown_field_is_rejected(manager):
    item = manager.add_custom_line()
    with pytest.raises(ValidationError):
        manager.update(item.id, 'colour', 'red')


def test_negative_price_is_rejected_and_line_unchanged(manager):
    item = manager.add_from_catalog(OPENER)
    with pytest.raises(ValidationError):
        manager.set_unit_price(item.id, '-5')
    assert item.unit_price == Decimal('50')


def test_discount_over_100_percent_is_rejected(manager):
    item = manager.add_custom_line()
    with pytest.raises(ValidationError):
        manager.update(item.id, 'discount', 150)


def test_warranty_lines_are_non_taxable_and_tagged(manager):
    item = manager.add_warranty(WARRANTY)
    assert item.origin == ORIGIN_WARRANTY
    assert item.taxable is False
    assert item.discount == 0
    assert item.id.startswith('warranty-5-')
    assert manager.selected_warranty_ids() == [5]


def test_selecting_a_warranty_twice_adds_one_line(manager):
    first = manager.add_warranty(WARRANTY)
    second = manager.add_warranty(WARRANTY)
    assert first is second
    assert len(manager) == 1


def test_remove_warranty_uses_origin_not_id_text(manager):
    manager.add_from_catalog({'id': 5, 'name': 'Same id, regular product', 'price': '10'})
    manager.add_warranty(WARRANTY)
    assert manager.remove_warranty(5) == 1
    assert len(manager) == 1
    assert manager.items[0].origin == ORIGIN_CATALOG
    assert manager.selected_warranty_ids() == []


def test_deep_copy_is_independent(manager):
    item = manager.add_from_catalog(OPENER)
    clone = manager.deep_copy()
    clone_item = clone.items[0]
    clone.set_quantity(clone_item.id, 10)
    assert item.quantity == 1
    assert clone_item.id != item.id
    assert clone_item.unit_price == item.unit_price


def test_assign_server_ids_replaces_temp_ids(manager):
    temp = manager.add_custom_line(description='A')
    mapping = manager.assign_server_ids()
    assert list(mapping) != []
    assert not is_temp_id(temp.id)
    assert mapping[next(iter(mapping))] == temp.id
    assert manager.assign_server_ids() == {}


def test_from_records_reads_camel_case_and_skips_bad_rows():
    manager = LineItemManager.from_records([
        {'id': 'li-1', 'name': 'Opener', 'quantity': 2, 'unitPrice': '50', 'ourPrice': '30'},
        {'id': 'li-2', 'description': 'Broken', 'quantity': 1, 'unit_price': '-1'},
        {'id': 'li-3', 'description': 'Stale total', 'quantity': 3, 'unit_price': '10', 'total': '999'},
    ])
    assert [item.id for item in manager] == ['li-1', 'li-3']
    assert manager.get('li-1').total == Decimal('100')
    assert manager.get('li-3').total == Decimal('30')


def test_mutations_bump_version(manager):
    start = manager.version
    item = manager.add_custom_line()
    manager.set_description(item.id, 'Labour')
    assert manager.version == start + 2
    manager.remove('missing')
    assert manager.version == start + 2
