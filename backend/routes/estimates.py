# backend/routes/estimates.py
from flask import Blueprint, jsonify
from flask_login import login_required
from models import db
from services.document_store import SqlDocumentStore
from services.errors import BillingError
from services.persistence import convert_estimate_by_id
from .document_api import create_document, get_document, list_documents, update_document
from .responses import billing_error_response, conversion_response
import logging

estimates_bp = Blueprint('estimates', __name__)
logger = logging.getLogger(__name__)


@estimates_bp.route('', methods=['GET'])
@login_required
def get_estimates():
    """Get all estimates, optionally filtered by job_id and status"""
    return list_documents('estimate')


@estimates_bp.route('/<int:estimate_id>', methods=['GET'])
@login_required
def get_estimate(estimate_id):
    return get_document('estimate', estimate_id)


@estimates_bp.route('', methods=['POST'])
@login_required
def create_estimate():
    """Create a new estimate with a fresh EST number"""
    return create_document('estimate')


@estimates_bp.route('/<int:estimate_id>', methods=['PUT'])
@login_required
def update_estimate(estimate_id):
    """Replace an estimate's line items, tax rate or notes. Converted estimates are read-only."""
    return update_document('estimate', estimate_id)


@estimates_bp.route('/<int:estimate_id>/convert', methods=['POST'])
@login_required
def convert_estimate(estimate_id):
    """Create an invoice from an estimate and mark the estimate converted"""
    try:
        result = convert_estimate_by_id(estimate_id, SqlDocumentStore())
        return conversion_response(result, estimate_id=estimate_id)

    except BillingError as e:
        db.session.rollback()
        return billing_error_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error converting estimate {estimate_id}: {str(e)}")
        return jsonify({'error': 'Failed to convert estimate'}), 500
