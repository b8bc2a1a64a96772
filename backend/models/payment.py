# backend/models/payment.py

from datetime import datetime

from .base import db

PAYMENT_METHODS = (
    'cash',
    'credit-card',
    'debit',
    'cheque',
    'e-transfer',
    'bank-transfer',
    'other',
)


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=False, index=True)
    payment_number = db.Column(db.String(40), unique=True, nullable=False)
    # Refunds are stored as negative amounts pointing at the original payment
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    method = db.Column(db.String(20), nullable=False, default='cash')
    reference = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='completed')
    paid_on = db.Column(db.Date, nullable=False)
    refund_of_id = db.Column(db.Integer, db.ForeignKey('payments.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    refund_of = db.relationship('Payment', remote_side=[id],
                                backref=db.backref('refunds', lazy='dynamic'))

    @property
    def is_refund(self):
        return self.refund_of_id is not None

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'payment_number': self.payment_number,
            'amount': float(self.amount),
            'method': self.method,
            'reference': self.reference,
            'notes': self.notes,
            'status': self.status,
            'date': self.paid_on.isoformat() if self.paid_on else None,
            'refund_of_id': self.refund_of_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
