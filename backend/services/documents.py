# backend/services/documents.py
"""
Editable in-memory documents and their initialization.

A DocumentDraft is what the builder mutates. It becomes durable only when
persistence.save_document() is called on it.
"""
import json
import logging
from decimal import Decimal, InvalidOperation

from models import TAX_RATE_PLACES
from .calculations import document_totals, to_decimal
from .errors import ValidationError
from .line_items import LineItem, LineItemManager
from .numbering import generate_document_number
from .settings import app_setting

logger = logging.getLogger(__name__)

DOCUMENT_KINDS = ('estimate', 'invoice')
FALLBACK_TAX_RATE = '0.10'
RATE_STEP = Decimal(1).scaleb(-TAX_RATE_PLACES)


def validate_kind(kind):
    if kind not in DOCUMENT_KINDS:
        raise ValidationError(f"Unknown document kind: {kind}")
    return kind


def coerce_tax_rate(value):
    """Tax rate as a fraction between 0 and 1."""
    try:
        rate = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid tax rate: {value!r}")
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError("Tax rate must be a fraction between 0 and 1")
    if rate != rate.quantize(RATE_STEP):
        raise ValidationError(f"Tax rate cannot have more than {TAX_RATE_PLACES} decimal places")
    return rate.quantize(RATE_STEP)


def default_tax_rate():
    return coerce_tax_rate(app_setting('DEFAULT_TAX_RATE', FALLBACK_TAX_RATE))


def decode_items(raw):
    """Turn a stored items value (JSON text or list) into a list of records."""
    if raw is None or raw == '':
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON in stored line items, starting with none")
            return []
    return raw if isinstance(raw, list) else []


class DocumentDraft:
    """Editable state of one estimate or invoice."""

    def __init__(self, kind, job_id, number, line_items=None, tax_rate=None, notes='',
                 status='draft', document_id=None, estimate_id=None, stored_totals=None,
                 amount_paid=None):
        self.kind = validate_kind(kind)
        self.job_id = job_id
        self.number = number
        self.line_items = line_items if line_items is not None else LineItemManager()
        self._tax_rate = coerce_tax_rate(tax_rate) if tax_rate is not None else default_tax_rate()
        self._notes = notes or ''
        self.status = status
        self.document_id = document_id
        self.estimate_id = estimate_id
        self.amount_paid = to_decimal(amount_paid) if amount_paid is not None else Decimal('0.00')
        self.stored_totals = stored_totals
        self._mark_clean()

    def _snapshot(self):
        return (self.line_items.version, self._tax_rate, self._notes)

    def _mark_clean(self):
        self._clean_state = self._snapshot()

    def mark_saved(self, document_id, stored_totals):
        self.document_id = document_id
        self.stored_totals = stored_totals
        self._mark_clean()

    @property
    def is_dirty(self):
        return self._snapshot() != self._clean_state

    @property
    def is_persisted(self):
        return self.document_id is not None

    @property
    def is_converted(self):
        return self.kind == 'estimate' and self.status == 'converted'

    def replace_line_items(self, records):
        """Swap in a full set of lines from client records; any bad record is rejected."""
        if not isinstance(records, list) or not all(isinstance(record, dict) for record in records):
            raise ValidationError("Line items must be a list of objects")
        items = [LineItem.from_record(record) for record in records]
        version = self.line_items.version + 1
        self.line_items = LineItemManager(items)
        self.line_items.version = version

    @property
    def tax_rate(self):
        return self._tax_rate

    @tax_rate.setter
    def tax_rate(self, value):
        self._tax_rate = coerce_tax_rate(value)

    @property
    def notes(self):
        return self._notes

    @notes.setter
    def notes(self, value):
        self._notes = '' if value is None else str(value)

    def totals(self):
        """Live totals from the current line items."""
        return document_totals(self.line_items, self._tax_rate)

    def display_totals(self):
        """
        Totals to show the user.

        A freshly loaded document shows its stored totals; the first edit
        switches to live recomputation.
        """
        if self.stored_totals is not None and not self.is_dirty:
            live = self.totals()
            live.update({
                'subtotal': self.stored_totals['subtotal'],
                'tax': self.stored_totals['tax_amount'],
                'total': self.stored_totals['total'],
            })
            return live
        return self.totals()

    def to_dict(self):
        totals = self.display_totals()
        data = {
            'kind': self.kind,
            'id': self.document_id,
            'number': self.number,
            'job_id': self.job_id,
            'status': self.status,
            'tax_rate': float(self._tax_rate),
            'notes': self._notes,
            'items': [item.to_dict() for item in self.line_items],
            'selected_warranty_ids': self.line_items.selected_warranty_ids(),
            'totals': {key: float(value) for key, value in totals.items()},
            'is_dirty': self.is_dirty,
        }
        if self.kind == 'invoice':
            data['estimate_id'] = self.estimate_id
            data['amount_paid'] = float(self.amount_paid)
            data['balance'] = float(to_decimal(totals['total']) - self.amount_paid)
        return data


def initialize_document(kind, job_id, existing=None, numbering=None):
    """
    Build the editable state for the builder.

    Args:
        kind (str): 'estimate' or 'invoice'
        job_id (str): owning job
        existing (dict): stored record to edit, or None for a new document
        numbering (callable): number generator, defaults to generate_document_number

    Returns:
        DocumentDraft: loaded verbatim from the record (stored totals trusted),
            or empty with the house tax rate and a freshly issued number
    """
    validate_kind(kind)

    if existing:
        if job_id and existing.get('job_id') and str(existing['job_id']) != str(job_id):
            logger.warning(f"{kind} {existing.get('id')} belongs to job {existing['job_id']}, not {job_id}")
        stored_totals = {
            'subtotal': to_decimal(existing.get('subtotal')),
            'tax_amount': to_decimal(existing.get('tax_amount')),
            'total': to_decimal(existing.get('total')),
        }
        return DocumentDraft(
            kind=kind,
            job_id=existing.get('job_id') or job_id,
            number=existing.get('number'),
            line_items=LineItemManager.from_records(decode_items(existing.get('items'))),
            tax_rate=existing.get('tax_rate'),
            notes=existing.get('notes') or '',
            status=existing.get('status') or 'draft',
            document_id=existing.get('id'),
            estimate_id=existing.get('estimate_id'),
            stored_totals=stored_totals,
            amount_paid=existing.get('amount_paid'),
        )

    generate = numbering or generate_document_number
    number = generate(kind)
    logger.info(f"Initialized new {kind} {number} for job {job_id}")
    return DocumentDraft(
        kind=kind,
        job_id=job_id,
        number=number,
        status='draft',
    )


def load_document(kind, document_id, store):
    """Fetch a stored document and initialize a draft from it."""
    validate_kind(kind)
    record = store.fetch(kind, document_id)
    return initialize_document(kind, record.get('job_id'), existing=record)
