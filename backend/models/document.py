# backend/models/document.py

import json
import logging
from datetime import datetime
from decimal import Decimal

from .base import db

# Decimal places kept for tax rates (0.08875 == 8.875%)
TAX_RATE_PLACES = 6

logger = logging.getLogger(__name__)


def _money(value):
    return float(value) if value is not None else 0.0


class DocumentMixin:
    """Columns shared by estimates and invoices."""

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(40), unique=True, nullable=False, index=True)
    job_id = db.Column(db.String(64), nullable=False, index=True)

    # Serialized line-item collection, owned by the billing engine
    items = db.Column(db.Text, nullable=False, default='[]')
    tax_rate = db.Column(db.Numeric(8, TAX_RATE_PLACES), nullable=False, default=Decimal('0.10'))
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))

    status = db.Column(db.String(20), nullable=False, default='draft')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    RECORD_FIELDS = (
        'id', 'number', 'job_id', 'items', 'tax_rate', 'notes',
        'subtotal', 'tax_amount', 'total', 'status',
    )

    def item_records(self):
        """Decode the stored items collection; bad JSON yields an empty list."""
        if not self.items:
            return []
        try:
            records = json.loads(self.items)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON in items for {self.__tablename__} {self.id}")
            return []
        return records if isinstance(records, list) else []

    def to_record(self):
        """Plain mapping handed to the engine by the document store."""
        return {field: getattr(self, field) for field in self.RECORD_FIELDS}

    def base_dict(self):
        return {
            'id': self.id,
            'number': self.number,
            'job_id': self.job_id,
            'items': self.item_records(),
            'tax_rate': float(self.tax_rate) if self.tax_rate is not None else None,
            'notes': self.notes,
            'subtotal': _money(self.subtotal),
            'tax_amount': _money(self.tax_amount),
            'total': _money(self.total),
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
