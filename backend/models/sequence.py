# backend/models/sequence.py

from .base import db


class DocumentSequence(db.Model):
    """Monotonic counter per document kind, backing human-readable numbers."""
    __tablename__ = 'document_sequences'

    kind = db.Column(db.String(20), primary_key=True)
    last_value = db.Column(db.Integer, nullable=False, default=0)
