# backend/services/document_store.py
"""
The engine's storage boundary.

Records are plain dicts keyed by column name; the engine serializes the
line-item collection into the 'items' key itself. There is no version check
on update: the last write wins.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from models import db, Estimate, Invoice
from .errors import DocumentNotFoundError, PersistenceError

logger = logging.getLogger(__name__)

KIND_MODELS = {
    'estimate': Estimate,
    'invoice': Invoice,
}


def model_for(kind):
    try:
        return KIND_MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown document kind: {kind}")


class DocumentStore:
    """Interface the persistence operations write through."""

    def insert(self, kind, record):
        raise NotImplementedError

    def update(self, kind, document_id, record):
        raise NotImplementedError

    def fetch(self, kind, document_id):
        raise NotImplementedError


class SqlDocumentStore(DocumentStore):
    """DocumentStore backed by the Flask-SQLAlchemy session. Each call is its own transaction."""

    def _columns(self, model, record):
        allowed = set(model.RECORD_FIELDS) - {'id'}
        unknown = set(record) - allowed
        if unknown:
            logger.debug(f"Ignoring unknown {model.__tablename__} fields: {sorted(unknown)}")
        return {key: value for key, value in record.items() if key in allowed}

    def insert(self, kind, record):
        model = model_for(kind)
        try:
            document = model(**self._columns(model, record))
            db.session.add(document)
            db.session.commit()
            logger.info(f"Inserted {kind} {document.id} ({document.number})")
            return document.id
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error inserting {kind}: {str(e)}")
            raise PersistenceError(f"Failed to create {kind}") from e

    def update(self, kind, document_id, record):
        model = model_for(kind)
        try:
            document = db.session.get(model, document_id)
            if document is None:
                raise DocumentNotFoundError(f"{kind.capitalize()} {document_id} not found")
            for key, value in self._columns(model, record).items():
                setattr(document, key, value)
            db.session.commit()
            logger.info(f"Updated {kind} {document_id}")
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error updating {kind} {document_id}: {str(e)}")
            raise PersistenceError(f"Failed to update {kind}") from e

    def fetch(self, kind, document_id):
        model = model_for(kind)
        try:
            document = db.session.get(model, document_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error fetching {kind} {document_id}: {str(e)}")
            raise PersistenceError(f"Failed to load {kind}") from e
        if document is None:
            raise DocumentNotFoundError(f"{kind.capitalize()} {document_id} not found")
        return document.to_record()
