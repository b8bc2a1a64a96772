# backend/services/persistence.py
"""
Create, update and convert-to-invoice operations.

Totals are always recomputed here, from the draft's current line items,
immediately before the write that stores them.
"""
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .calculations import persisted_totals, to_decimal
from .date_utils import business_today, days_from
from .documents import load_document, validate_kind
from .errors import (
    DocumentLockedError,
    DocumentNotFoundError,
    EmptyDocumentError,
    PersistenceError,
    ValidationError,
)
from .numbering import generate_document_number
from .settings import app_setting

logger = logging.getLogger(__name__)

CONVERTED = 'converted'
PARTIALLY_CONVERTED = 'partially_converted'
FAILED = 'failed'

DOCUMENT_STATUSES = {
    'estimate': ('draft', 'sent', 'converted'),
    'invoice': ('draft', 'sent', 'unpaid', 'paid'),
}


@dataclass
class ConversionResult:
    """Outcome of turning an estimate into an invoice."""
    outcome: str
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    message: str = ''

    @property
    def succeeded(self) -> bool:
        return self.outcome == CONVERTED

    def to_dict(self):
        return {
            'outcome': self.outcome,
            'invoice_id': self.invoice_id,
            'invoice_number': self.invoice_number,
            'message': self.message,
        }


def _serialize_items(line_items, renamed=None):
    records = line_items.to_records()
    if renamed:
        for record in records:
            record['id'] = renamed.get(record['id'], record['id'])
    return json.dumps(records)


def _apply_server_ids(draft, renamed):
    if renamed:
        draft.line_items.rename(renamed)
        logger.debug(f"Assigned server ids to {len(renamed)} line items on {draft.number}")


def _invoice_status(current, balance, amount_paid):
    """Keep paid/unpaid in step with the balance after an edit."""
    if amount_paid > 0 and balance == 0:
        return 'paid'
    if current == 'paid':
        return 'unpaid'
    return current


def save_document(draft, store):
    """
    Persist a draft, creating it on first save.

    Args:
        draft (DocumentDraft): the document being edited
        store (DocumentStore): where to write it

    Returns:
        int: the document's server id (also set on the draft)

    Raises:
        DocumentLockedError: if the estimate has been converted
        PersistenceError: if the store rejects the write; the draft is kept
    """
    if draft.is_converted:
        raise DocumentLockedError(f"Estimate {draft.number} has been converted and can no longer be edited")

    # Server ids reach the draft only once the write has succeeded
    renamed = draft.line_items.server_id_mapping()

    totals = persisted_totals(draft.line_items, draft.tax_rate)
    record = {
        'number': draft.number,
        'job_id': draft.job_id,
        'items': _serialize_items(draft.line_items, renamed),
        'tax_rate': draft.tax_rate,
        'notes': draft.notes,
        **totals,
    }

    if draft.is_persisted:
        current = store.fetch(draft.kind, draft.document_id)
        if draft.kind == 'estimate' and current.get('status') == 'converted':
            draft.status = 'converted'
            raise DocumentLockedError(f"Estimate {draft.number} has been converted and can no longer be edited")
        # number is immutable once assigned
        record['number'] = current.get('number') or draft.number
        draft.number = record['number']

        if draft.kind == 'invoice':
            amount_paid = to_decimal(current.get('amount_paid'))
            balance = totals['total'] - amount_paid
            if balance < 0:
                raise ValidationError("Invoice total cannot be less than the amount already paid")
            record['balance'] = balance
            record['status'] = _invoice_status(current.get('status'), balance, amount_paid)

        store.update(draft.kind, draft.document_id, record)
        _apply_server_ids(draft, renamed)
        if draft.kind == 'invoice':
            draft.amount_paid = to_decimal(current.get('amount_paid'))
            draft.status = record['status']
        draft.mark_saved(draft.document_id, totals)
        logger.info(f"Saved {draft.kind} {draft.number} (id {draft.document_id}), total {totals['total']}")
        return draft.document_id

    today = business_today()
    if draft.kind == 'estimate':
        record['status'] = 'draft'
        record['valid_until'] = days_from(today, app_setting('ESTIMATE_VALID_DAYS', 30))
    else:
        record['status'] = 'unpaid'
        record['estimate_id'] = draft.estimate_id
        record['issue_date'] = today
        record['due_date'] = days_from(today, app_setting('INVOICE_DUE_DAYS', 30))
        record['amount_paid'] = Decimal('0.00')
        record['balance'] = totals['total']

    document_id = store.insert(draft.kind, record)
    _apply_server_ids(draft, renamed)
    draft.status = record['status']
    draft.mark_saved(document_id, totals)
    logger.info(f"Created {draft.kind} {draft.number} (id {document_id}), total {totals['total']}")
    return document_id


def set_document_status(kind, document_id, status, store):
    """Move a stored document to another status without touching its items."""
    validate_kind(kind)
    if status not in DOCUMENT_STATUSES[kind]:
        raise ValidationError(f"Invalid {kind} status: {status}")
    store.update(kind, document_id, {'status': status})
    logger.info(f"{kind.capitalize()} {document_id} status -> {status}")


def convert_to_invoice(draft, store, numbering=None):
    """
    Create a new invoice from an estimate and mark the estimate converted.

    The estimate is saved first when it has never been saved or has unsaved
    edits, so the invoice always reflects what the user sees.

    Returns:
        ConversionResult: converted, partially_converted (invoice written but
            the estimate status update failed) or failed (nothing written)

    Raises:
        ValidationError: if the draft is not an estimate, is empty, or has
            already been converted
    """
    if draft.kind != 'estimate':
        raise ValidationError("Only estimates can be converted to invoices")
    if draft.is_converted:
        raise ValidationError(f"Estimate {draft.number} has already been converted")
    if len(draft.line_items) == 0:
        raise EmptyDocumentError("Add at least one line item before converting")

    if not draft.is_persisted or draft.is_dirty:
        try:
            save_document(draft, store)
        except (PersistenceError, DocumentNotFoundError) as e:
            logger.error(f"Error saving estimate {draft.number} before conversion: {str(e)}")
            return ConversionResult(FAILED, message=f"Could not save estimate before converting: {e}")

    # A clean draft may be stale; the stored status decides
    try:
        stored = store.fetch('estimate', draft.document_id)
    except (PersistenceError, DocumentNotFoundError) as e:
        logger.error(f"Error reading estimate {draft.number} before conversion: {str(e)}")
        return ConversionResult(FAILED, message=f"Could not read estimate before converting: {e}")
    if stored.get('status') == 'converted':
        draft.status = 'converted'
        raise ValidationError(f"Estimate {draft.number} has already been converted")

    invoice_items = draft.line_items.deep_copy()
    invoice_items.assign_server_ids()
    totals = persisted_totals(invoice_items, draft.tax_rate)
    invoice_number = (numbering or generate_document_number)('invoice')
    today = business_today()

    record = {
        'number': invoice_number,
        'job_id': draft.job_id,
        'items': _serialize_items(invoice_items),
        'tax_rate': draft.tax_rate,
        'notes': draft.notes,
        'status': 'draft',
        'estimate_id': draft.document_id,
        'amount_paid': Decimal('0.00'),
        'balance': totals['total'],
        'issue_date': today,
        'due_date': days_from(today, app_setting('INVOICE_DUE_DAYS', 30)),
        **totals,
    }

    try:
        invoice_id = store.insert('invoice', record)
    except PersistenceError as e:
        logger.error(f"Error creating invoice from estimate {draft.number}: {str(e)}")
        return ConversionResult(FAILED, message=f"Could not create invoice: {e}")

    try:
        store.update('estimate', draft.document_id, {'status': 'converted'})
    except (PersistenceError, DocumentNotFoundError) as e:
        logger.error(
            f"Invoice {invoice_number} (id {invoice_id}) created but estimate {draft.number} "
            f"could not be marked converted: {str(e)}"
        )
        return ConversionResult(
            PARTIALLY_CONVERTED,
            invoice_id=invoice_id,
            invoice_number=invoice_number,
            message=(f"Invoice {invoice_number} was created, but estimate {draft.number} "
                     f"is still marked {draft.status}. Please check both documents."),
        )

    draft.status = 'converted'
    logger.info(f"Converted estimate {draft.number} to invoice {invoice_number} (id {invoice_id})")
    return ConversionResult(
        CONVERTED,
        invoice_id=invoice_id,
        invoice_number=invoice_number,
        message=f"Estimate {draft.number} converted to invoice {invoice_number}",
    )


def convert_estimate_by_id(estimate_id, store, numbering=None):
    draft = load_document('estimate', estimate_id, store)
    return convert_to_invoice(draft, store, numbering=numbering)
