# backend/routes/document_api.py
"""
Request handling shared by the estimate and invoice blueprints.

Both kinds go through the same draft -> save_document path as the builder,
so totals are always recomputed server-side.
"""
import logging

from flask import jsonify, request

from models import db
from services.document_store import SqlDocumentStore, model_for
from services.documents import initialize_document, load_document
from services.errors import BillingError, ValidationError
from services.persistence import save_document
from .responses import billing_error_response, get_json_body

logger = logging.getLogger(__name__)


def _apply_changes(draft, data):
    if 'items' in data:
        draft.replace_line_items(data['items'])
    if 'tax_rate' in data:
        draft.tax_rate = data['tax_rate']
    if 'notes' in data:
        draft.notes = data['notes']


def _stored(kind, document_id):
    return db.session.get(model_for(kind), document_id)


def list_documents(kind):
    try:
        model = model_for(kind)
        query = model.query
        job_id = request.args.get('job_id')
        if job_id:
            query = query.filter_by(job_id=job_id)
        status = request.args.get('status')
        if status:
            query = query.filter_by(status=status)
        documents = query.order_by(model.created_at.desc(), model.id.desc()).all()
        return jsonify([document.to_dict() for document in documents])
    except Exception as e:
        logger.error(f"Error retrieving {kind}s: {str(e)}")
        return jsonify({'error': f'Failed to retrieve {kind}s'}), 500


def get_document(kind, document_id):
    try:
        document = _stored(kind, document_id)
        if document is None:
            return jsonify({'error': f'{kind.capitalize()} not found'}), 404
        return jsonify(document.to_dict())
    except Exception as e:
        logger.error(f"Error retrieving {kind} {document_id}: {str(e)}")
        return jsonify({'error': f'Failed to retrieve {kind}'}), 500


def create_document(kind):
    try:
        data = get_json_body()
        job_id = data.get('job_id')
        if not job_id:
            raise ValidationError('Job ID is required')

        draft = initialize_document(kind, str(job_id))
        _apply_changes(draft, data)
        document_id = save_document(draft, SqlDocumentStore())
        return jsonify(_stored(kind, document_id).to_dict()), 201

    except BillingError as e:
        db.session.rollback()
        return billing_error_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating {kind}: {str(e)}")
        return jsonify({'error': f'Failed to create {kind}'}), 500


def update_document(kind, document_id):
    try:
        data = get_json_body()
        store = SqlDocumentStore()
        draft = load_document(kind, document_id, store)
        _apply_changes(draft, data)
        save_document(draft, store)
        return jsonify(_stored(kind, document_id).to_dict())

    except BillingError as e:
        db.session.rollback()
        return billing_error_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating {kind} {document_id}: {str(e)}")
        return jsonify({'error': f'Failed to update {kind}'}), 500
