# backend/services/line_items.py
"""
In-memory line items and the operations the builder performs on them.

A LineItem's total is always quantity x unit_price; it is derived on read so
no code path can hold or persist a stale value.
"""
import copy
import itertools
import logging
import math
import time
import uuid
from decimal import Decimal, InvalidOperation

from .calculations import ZERO, to_decimal
from .errors import ValidationError

logger = logging.getLogger(__name__)

ORIGIN_CATALOG = 'catalog'
ORIGIN_CUSTOM = 'custom'
ORIGIN_WARRANTY = 'warranty'
ORIGINS = (ORIGIN_CATALOG, ORIGIN_CUSTOM, ORIGIN_WARRANTY)

_id_counter = itertools.count(1)


def _now_millis():
    return int(time.time() * 1000)


def new_temp_id():
    """Client-side id for an unsaved line, replaced on persistence."""
    return f"temp-{_now_millis()}-{next(_id_counter)}"


def new_server_id():
    return f"li-{uuid.uuid4().hex[:12]}"


def is_temp_id(item_id):
    return str(item_id).startswith('temp-')


def coerce_quantity(value):
    """
    Coerce user input to a positive integer quantity.

    Non-numeric, non-finite or non-positive input falls back to 1 so a bad
    keystroke never reaches the calculation module as NaN.
    """
    if isinstance(value, bool):
        return 1
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number):
        return 1
    quantity = int(number)
    return quantity if quantity >= 1 else 1


def coerce_money(value, field='price'):
    """Parse a non-negative monetary amount or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}: {value!r}")
    try:
        amount = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field}: {value!r}")
    if amount < ZERO:
        raise ValidationError(f"{field.capitalize()} cannot be negative")
    return amount


def coerce_discount(value):
    discount = coerce_money(value, field='discount')
    if discount > Decimal('100'):
        raise ValidationError("Discount cannot exceed 100 percent")
    return discount


def coerce_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def _product_field(product, name, default=None):
    if isinstance(product, dict):
        return product.get(name, default)
    return getattr(product, name, default)


class LineItem:
    """One billable row on an estimate or invoice."""

    def __init__(self, id=None, description='', quantity=1, unit_price=ZERO,
                 our_price=ZERO, taxable=True, discount=ZERO, name=None,
                 origin=ORIGIN_CUSTOM, product_id=None):
        if origin not in ORIGINS:
            raise ValidationError(f"Unknown line item origin: {origin}")
        self.id = id or new_temp_id()
        self.description = description or ''
        self.name = name if name is not None else self.description
        self.quantity = coerce_quantity(quantity)
        self.unit_price = coerce_money(unit_price, 'unit price')
        self.our_price = coerce_money(our_price, 'cost')
        self.taxable = coerce_bool(taxable)
        self.discount = coerce_discount(discount)
        self.origin = origin
        self.product_id = product_id

    @property
    def total(self):
        return self.quantity * self.unit_price

    @property
    def is_warranty(self):
        return self.origin == ORIGIN_WARRANTY

    def copy(self, keep_id=False):
        clone = copy.copy(self)
        if not keep_id:
            clone.id = new_temp_id()
        return clone

    def to_record(self):
        """Serialize for storage inside a document's items collection."""
        return {
            'id': self.id,
            'description': self.description,
            'name': self.name,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'our_price': str(self.our_price),
            'taxable': self.taxable,
            'discount': str(self.discount),
            'total': str(self.total),
            'origin': self.origin,
            'product_id': self.product_id,
        }

    def to_dict(self, include_cost=True):
        """Serialize for API responses. Cost basis is internal only."""
        data = {
            'id': self.id,
            'description': self.description,
            'name': self.name,
            'quantity': self.quantity,
            'unit_price': float(self.unit_price),
            'taxable': self.taxable,
            'discount': float(self.discount),
            'total': float(self.total),
            'origin': self.origin,
            'product_id': self.product_id,
        }
        if include_cost:
            data['our_price'] = float(self.our_price)
        return data

    @classmethod
    def from_record(cls, record):
        """
        Rebuild a line item from a stored record.

        Accepts both snake_case keys and the camelCase keys older front-end
        builds wrote (unitPrice, ourPrice).
        """
        origin = record.get('origin') or ORIGIN_CUSTOM
        if origin not in ORIGINS:
            origin = ORIGIN_CUSTOM
        return cls(
            id=record.get('id'),
            description=record.get('description') or record.get('name') or '',
            name=record.get('name'),
            quantity=record.get('quantity', 1),
            unit_price=record.get('unit_price', record.get('unitPrice', 0)),
            our_price=record.get('our_price', record.get('ourPrice', 0)),
            taxable=record.get('taxable', True),
            discount=record.get('discount', 0),
            origin=origin,
            product_id=record.get('product_id'),
        )

    def __repr__(self):
        return f'<LineItem id={self.id} qty={self.quantity} unit_price={self.unit_price}>'


class LineItemManager:
    """
    Ordered line-item collection with the builder's mutation operations.

    The collection is the single source of truth for what will be billed,
    including which warranties are selected.
    """

    def __init__(self, items=None):
        self._items = list(items or [])
        self.version = 0

    def __iter__(self):
        return iter(list(self._items))

    def __len__(self):
        return len(self._items)

    @property
    def items(self):
        return list(self._items)

    def get(self, item_id):
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def _touch(self):
        self.version += 1

    def _append(self, item):
        self._items.append(item)
        self._touch()
        return item

    def add_from_catalog(self, product):
        """Append a line seeded from a catalog product, quantity 1."""
        name = _product_field(product, 'name', '')
        item = LineItem(
            description=name,
            name=name,
            quantity=1,
            unit_price=_product_field(product, 'price', 0) or 0,
            our_price=_product_field(product, 'cost', 0) or 0,
            taxable=True,
            origin=ORIGIN_CATALOG,
            product_id=_product_field(product, 'id'),
        )
        logger.debug(f"Added catalog product {item.product_id} as line {item.id}")
        return self._append(item)

    def add_custom_line(self, description='', quantity=1, unit_price=0, our_price=0, taxable=True):
        """Append an ad-hoc line. With no arguments the line is blank for the user to fill in."""
        item = LineItem(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            our_price=our_price,
            taxable=taxable,
            origin=ORIGIN_CUSTOM,
        )
        return self._append(item)

    def add_warranty(self, product):
        """
        Add a warranty product as a non-taxable, undiscounted line.

        Selecting a warranty that is already on the document returns the
        existing line instead of billing it twice.
        """
        product_id = _product_field(product, 'id')
        for item in self._items:
            if item.is_warranty and item.product_id == product_id:
                return item
        name = _product_field(product, 'name', '')
        item = LineItem(
            id=f"warranty-{product_id}-{_now_millis()}-{next(_id_counter)}",
            description=name,
            name=name,
            quantity=1,
            unit_price=_product_field(product, 'price', 0) or 0,
            our_price=_product_field(product, 'cost', 0) or 0,
            taxable=False,
            discount=0,
            origin=ORIGIN_WARRANTY,
            product_id=product_id,
        )
        return self._append(item)

    def remove_warranty(self, product_id):
        """Remove every warranty line for a product. Returns the number removed."""
        before = len(self._items)
        self._items = [
            item for item in self._items
            if not (item.is_warranty and item.product_id == product_id)
        ]
        removed = before - len(self._items)
        if removed:
            self._touch()
        return removed

    def selected_warranty_ids(self):
        selected = []
        for item in self._items:
            if item.is_warranty and item.product_id not in selected:
                selected.append(item.product_id)
        return selected

    def remove(self, item_id):
        """Remove a line by id. Unknown ids are ignored."""
        before = len(self._items)
        self._items = [item for item in self._items if item.id != item_id]
        if len(self._items) == before:
            logger.debug(f"remove ignored unknown line item {item_id}")
            return False
        self._touch()
        return True

    # Typed setters. Quantity and unit price are the only inputs to a
    # line total; since total is derived, each setter leaves the line
    # consistent in the same operation.

    def _set(self, item_id, attr, value):
        item = self.get(item_id)
        if item is None:
            logger.debug(f"update ignored unknown line item {item_id}")
            return None
        setattr(item, attr, value)
        self._touch()
        return item

    def set_quantity(self, item_id, value):
        return self._set(item_id, 'quantity', coerce_quantity(value))

    def set_unit_price(self, item_id, value):
        return self._set(item_id, 'unit_price', coerce_money(value, 'unit price'))

    def set_our_price(self, item_id, value):
        return self._set(item_id, 'our_price', coerce_money(value, 'cost'))

    def set_description(self, item_id, value):
        text = '' if value is None else str(value).strip()
        item = self._set(item_id, 'description', text)
        if item is not None:
            item.name = text
        return item

    def set_taxable(self, item_id, value):
        return self._set(item_id, 'taxable', coerce_bool(value))

    def set_discount(self, item_id, value):
        return self._set(item_id, 'discount', coerce_discount(value))

    FIELD_SETTERS = {
        'quantity': 'set_quantity',
        'unit_price': 'set_unit_price',
        'unitPrice': 'set_unit_price',
        'price': 'set_unit_price',
        'our_price': 'set_our_price',
        'ourPrice': 'set_our_price',
        'cost': 'set_our_price',
        'description': 'set_description',
        'name': 'set_description',
        'taxable': 'set_taxable',
        'discount': 'set_discount',
    }

    def update(self, item_id, field, value):
        """
        Set one field on a line by name.

        Raises:
            ValidationError: for unknown fields, for 'total' (it is derived),
                or for an invalid price
        """
        setter = self.FIELD_SETTERS.get(field)
        if setter is None:
            raise ValidationError(f"Field '{field}' cannot be updated")
        return getattr(self, setter)(item_id, value)

    def server_id_mapping(self):
        """{temp_id: server_id} for every unsaved line. Does not change the collection."""
        return {item.id: new_server_id() for item in self._items if is_temp_id(item.id)}

    def rename(self, mapping):
        for item in self._items:
            if item.id in mapping:
                item.id = mapping[item.id]

    def assign_server_ids(self):
        """Replace temp- ids with server ids. Returns {old_id: new_id}."""
        mapping = self.server_id_mapping()
        self.rename(mapping)
        return mapping

    def deep_copy(self):
        """Independent copy; edits to either collection never reach the other."""
        return LineItemManager(item.copy() for item in self._items)

    def to_records(self):
        return [item.to_record() for item in self._items]

    @classmethod
    def from_records(cls, records):
        items = []
        for record in records or []:
            try:
                items.append(LineItem.from_record(record))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable line item {record.get('id')}: {e}")
        return cls(items)
