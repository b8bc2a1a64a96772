# backend/models/communication.py

from datetime import datetime

from .base import db


class DocumentCommunication(db.Model):
    """Outbound send request for an estimate or invoice, picked up by the delivery service."""
    __tablename__ = 'document_communications'

    id = db.Column(db.Integer, primary_key=True)
    document_kind = db.Column(db.String(20), nullable=False)
    document_id = db.Column(db.Integer, nullable=False, index=True)
    document_number = db.Column(db.String(40), nullable=False)
    communication_type = db.Column(db.String(10), nullable=False)  # 'email' or 'sms'
    recipient = db.Column(db.String(200), nullable=False)
    subject = db.Column(db.String(200), nullable=True)
    content = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'document_kind': self.document_kind,
            'document_id': self.document_id,
            'document_number': self.document_number,
            'communication_type': self.communication_type,
            'recipient': self.recipient,
            'subject': self.subject,
            'content': self.content,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
