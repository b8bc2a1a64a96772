# backend/models/invoice.py

from decimal import Decimal

from .base import db
from .document import DocumentMixin, _money

INVOICE_STATUSES = ('draft', 'sent', 'unpaid', 'paid')


class Invoice(DocumentMixin, db.Model):
    __tablename__ = 'invoices'

    estimate_id = db.Column(db.Integer, db.ForeignKey('estimates.id'), nullable=True)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    issue_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    estimate = db.relationship('Estimate', backref=db.backref('invoices', lazy=True))
    payments = db.relationship('Payment', backref='invoice', lazy='dynamic',
                               cascade="all, delete-orphan", order_by='Payment.id')

    RECORD_FIELDS = DocumentMixin.RECORD_FIELDS + (
        'estimate_id', 'amount_paid', 'balance', 'issue_date', 'due_date', 'paid_at',
    )

    def recalc_balance(self):
        """Balance is always total minus what has been paid."""
        self.balance = (self.total or Decimal('0.00')) - (self.amount_paid or Decimal('0.00'))
        return self.balance

    def to_dict(self):
        """Serializes the Invoice object to a dictionary."""
        data = self.base_dict()
        data.update({
            'kind': 'invoice',
            'invoice_number': self.number,
            'estimate_id': self.estimate_id,
            'amount_paid': _money(self.amount_paid),
            'balance': _money(self.balance),
            'issue_date': self.issue_date.isoformat() if self.issue_date else None,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
        })
        return data

    def __repr__(self):
        return f'<Invoice id={self.id} number={self.number} status={self.status}>'
