# backend/services/dispatch.py
"""
Hand-off of finalized documents to the delivery service.

The engine only needs to know whether the hand-off succeeded. Actual email
and SMS delivery happens elsewhere and reads the pending outbox rows.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from models import db, DocumentCommunication

logger = logging.getLogger(__name__)

DISPATCH_METHODS = ('email', 'sms')


class Dispatcher:
    """Sends a saved document to a recipient. Returns True on success."""

    def send(self, record, method, recipient, message=None):
        raise NotImplementedError


class OutboxDispatcher(Dispatcher):
    """Queues a pending DocumentCommunication row for the delivery service."""

    def send(self, record, method, recipient, message=None):
        if method not in DISPATCH_METHODS:
            logger.warning(f"Unsupported dispatch method '{method}' for {record.get('number')}")
            return False
        if not recipient:
            logger.warning(f"No recipient given for {record.get('number')}")
            return False

        kind = record.get('kind', 'estimate')
        subject = f"{kind.capitalize()} {record.get('number')}"
        try:
            communication = DocumentCommunication(
                document_kind=kind,
                document_id=record['id'],
                document_number=record.get('number'),
                communication_type=method,
                recipient=recipient,
                subject=subject if method == 'email' else None,
                content=message or f"Your {kind} {record.get('number')} is ready.",
                status='pending',
            )
            db.session.add(communication)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error queueing {kind} {record.get('number')} for {method}: {str(e)}")
            return False

        logger.info(f"Queued {kind} {record.get('number')} for {method} delivery to {recipient}")
        return True
