import json
from decimal import Decimal

import pytest

from models import Estimate, Invoice
from services.document_store import SqlDocumentStore
from services.documents import initialize_document, load_document
from services.errors import DocumentLockedError, PersistenceError, ValidationError
from services.line_items import is_temp_id
from services.persistence import (
    CONVERTED,
    FAILED,
    PARTIALLY_CONVERTED,
    convert_estimate_by_id,
    convert_to_invoice,
    save_document,
)


class EstimateStatusFailsStore(SqlDocumentStore):
    """Writes normally except that marking an estimate converted fails."""

    def update(self, kind, document_id, record):
        if kind == 'estimate' and record.get('status') == 'converted':
            raise PersistenceError('estimate update rejected')
        return super().update(kind, document_id, record)


class InvoiceInsertFailsStore(SqlDocumentStore):
    def insert(self, kind, record):
        if kind == 'invoice':
            raise PersistenceError('store unreachable')
        return super().insert(kind, record)


class UnreachableStore(SqlDocumentStore):
    def insert(self, kind, record):
        raise PersistenceError('store unreachable')


@pytest.fixture
def estimate(app):
    """Unsaved estimate holding the two-item scenario."""
    draft = initialize_document('estimate', 'job-1')
    items = draft.line_items
    opener = items.add_custom_line(description='Opener', quantity=2, unit_price='50', our_price='30')
    springs = items.add_custom_line(description='Springs', quantity=1, unit_price='100', our_price='60')
    items.set_taxable(springs.id, False)
    assert opener.taxable
    return draft


def test_first_save_creates_a_draft_estimate(estimate, store, db):
    document_id = save_document(estimate, store)

    stored = db.session.get(Estimate, document_id)
    assert estimate.document_id == document_id
    assert stored.number == estimate.number == 'EST-0001'
    assert stored.status == 'draft'
    assert stored.subtotal == Decimal('200.00')
    assert stored.tax_amount == Decimal('10.00')
    assert stored.total == Decimal('210.00')
    assert stored.valid_until is not None
    assert not estimate.is_dirty


def test_save_replaces_temp_item_ids(estimate, store, db):
    save_document(estimate, store)
    stored_ids = [item['id'] for item in json.loads(db.session.get(Estimate, estimate.document_id).items)]
    assert stored_ids == [item.id for item in estimate.line_items]
    assert not any(is_temp_id(item_id) for item_id in stored_ids)


def test_update_recomputes_totals_and_keeps_number(estimate, store, db):
    document_id = save_document(estimate, store)
    first = estimate.line_items.items[0]
    estimate.line_items.set_quantity(first.id, 4)
    estimate.number = 'EST-9999'

    assert save_document(estimate, store) == document_id
    stored = db.session.get(Estimate, document_id)
    assert stored.number == 'EST-0001'
    assert estimate.number == 'EST-0001'
    assert stored.subtotal == Decimal('300.00')
    assert stored.total == Decimal('320.00')
    assert Estimate.query.count() == 1


def test_resaving_unchanged_state_stores_the_same_totals(estimate, store, db):
    save_document(estimate, store)
    save_document(estimate, store)
    stored = db.session.get(Estimate, estimate.document_id)
    assert stored.total == Decimal('210.00')


def test_invoice_created_directly_starts_unpaid(app, store, db):
    draft = initialize_document('invoice', 'job-2')
    draft.line_items.add_custom_line(description='Service call', unit_price='120')
    document_id = save_document(draft, store)

    invoice = db.session.get(Invoice, document_id)
    assert invoice.number == 'INV-0001'
    assert invoice.status == 'unpaid'
    assert invoice.amount_paid == Decimal('0.00')
    assert invoice.balance == invoice.total == Decimal('132.00')
    assert invoice.due_date > invoice.issue_date


def test_failed_save_keeps_the_draft(estimate):
    ids_before = [item.id for item in estimate.line_items]
    with pytest.raises(PersistenceError):
        save_document(estimate, UnreachableStore())
    assert estimate.document_id is None
    assert len(estimate.line_items) == 2
    assert [item.id for item in estimate.line_items] == ids_before
    assert all(is_temp_id(item.id) for item in estimate.line_items)
    assert estimate.is_dirty


def test_fractional_tax_rate_survives_a_round_trip(app, store, db):
    draft = initialize_document('estimate', 'job-1')
    draft.tax_rate = '0.08875'
    draft.line_items.add_custom_line(description='Door', unit_price='1000')
    save_document(draft, store)
    first_total = db.session.get(Estimate, draft.document_id).total

    reloaded = load_document('estimate', draft.document_id, store)
    assert reloaded.tax_rate == Decimal('0.08875')
    reloaded.notes = 'Second visit'
    save_document(reloaded, store)

    stored = db.session.get(Estimate, draft.document_id)
    assert first_total == stored.total == Decimal('1088.75')
    assert stored.tax_amount == Decimal('88.75')


def test_conversion_copies_items_and_total(estimate, store, db):
    save_document(estimate, store)
    result = convert_to_invoice(estimate, store)

    assert result.outcome == CONVERTED
    assert result.succeeded
    assert result.invoice_number == 'INV-0001'

    invoice = db.session.get(Invoice, result.invoice_id)
    source = db.session.get(Estimate, estimate.document_id)
    assert invoice.status == 'draft'
    assert invoice.estimate_id == source.id
    assert invoice.tax_rate == source.tax_rate
    assert invoice.total == source.total == Decimal('210.00')
    assert invoice.balance == Decimal('210.00')
    assert source.status == 'converted'
    assert estimate.is_converted

    source_items = source.item_records()
    invoice_items = invoice.item_records()
    assert len(invoice_items) == len(source_items)
    for original, copied in zip(source_items, invoice_items):
        for field in ('quantity', 'unit_price', 'our_price', 'taxable', 'total'):
            assert copied[field] == original[field]
        assert copied['id'] != original['id']


def test_invoice_edits_do_not_touch_the_estimate(estimate, store, db):
    save_document(estimate, store)
    result = convert_to_invoice(estimate, store)

    invoice_draft = load_document('invoice', result.invoice_id, store)
    first = invoice_draft.line_items.items[0]
    invoice_draft.line_items.set_quantity(first.id, 10)
    save_document(invoice_draft, store)

    assert db.session.get(Estimate, estimate.document_id).total == Decimal('210.00')
    assert estimate.line_items.items[0].quantity == 2


def test_conversion_saves_an_unsaved_estimate_first(estimate, store, db):
    result = convert_to_invoice(estimate, store)
    assert result.outcome == CONVERTED
    assert estimate.document_id is not None
    assert db.session.get(Invoice, result.invoice_id).estimate_id == estimate.document_id


def test_converted_estimate_is_locked(estimate, store):
    convert_to_invoice(estimate, store)
    with pytest.raises(DocumentLockedError):
        save_document(estimate, store)
    with pytest.raises(ValidationError):
        convert_to_invoice(estimate, store)


def test_stale_draft_of_a_converted_estimate_cannot_be_saved(estimate, store):
    save_document(estimate, store)
    stale = load_document('estimate', estimate.document_id, store)
    convert_estimate_by_id(estimate.document_id, store)

    stale.line_items.add_custom_line(description='Late change')
    with pytest.raises(DocumentLockedError):
        save_document(stale, store)


def test_partial_conversion_is_reported_with_the_invoice_id(estimate, db):
    store = EstimateStatusFailsStore()
    save_document(estimate, store)
    result = convert_to_invoice(estimate, store)

    assert result.outcome == PARTIALLY_CONVERTED
    assert not result.succeeded
    assert db.session.get(Invoice, result.invoice_id) is not None
    assert db.session.get(Estimate, estimate.document_id).status == 'draft'
    assert not estimate.is_converted


def test_failed_conversion_writes_no_invoice(estimate, db):
    store = InvoiceInsertFailsStore()
    save_document(estimate, store)
    result = convert_to_invoice(estimate, store)

    assert result.outcome == FAILED
    assert result.invoice_id is None
    assert Invoice.query.count() == 0
    assert db.session.get(Estimate, estimate.document_id).status == 'draft'


def test_only_estimates_convert(app, store):
    draft = initialize_document('invoice', 'job-1')
    draft.line_items.add_custom_line(unit_price='5')
    with pytest.raises(ValidationError):
        convert_to_invoice(draft, store)


def test_stale_clean_draft_cannot_convert_twice(estimate, store, db):
    save_document(estimate, store)
    assert not estimate.is_dirty
    assert convert_estimate_by_id(estimate.document_id, store).outcome == CONVERTED

    with pytest.raises(ValidationError):
        convert_to_invoice(estimate, store)
    assert estimate.is_converted
    assert Invoice.query.count() == 1
