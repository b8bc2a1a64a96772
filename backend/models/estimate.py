# backend/models/estimate.py

from .base import db
from .document import DocumentMixin

ESTIMATE_STATUSES = ('draft', 'sent', 'converted')


class Estimate(DocumentMixin, db.Model):
    __tablename__ = 'estimates'

    valid_until = db.Column(db.Date, nullable=True)

    RECORD_FIELDS = DocumentMixin.RECORD_FIELDS + ('valid_until',)

    @property
    def is_converted(self):
        return self.status == 'converted'

    def to_dict(self):
        """Serializes the Estimate object to a dictionary."""
        data = self.base_dict()
        data.update({
            'kind': 'estimate',
            'estimate_number': self.number,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'invoice_ids': [invoice.id for invoice in self.invoices],
        })
        return data

    def __repr__(self):
        return f'<Estimate id={self.id} number={self.number} status={self.status}>'
