# backend/routes/builder.py
"""
Builder session endpoints.

A session wraps one BuilderWorkflow held in the app's session registry.
Edits stay in memory until the workflow saves (next/save/send/convert).
"""
from flask import Blueprint, current_app, jsonify
from flask_login import login_required
from models import db
from services.builder_workflow import BuilderWorkflow, THREE_STEP
from services.catalog import get_product, is_warranty_product
from services.dispatch import OutboxDispatcher
from services.document_store import SqlDocumentStore
from services.errors import BillingError, ValidationError
from .responses import billing_error_response, conversion_response, get_json_body
import logging

builder_bp = Blueprint('builder', __name__)
logger = logging.getLogger(__name__)


def _registry():
    return current_app.extensions['builder_sessions']


def _state(workflow, status_code=200):
    if workflow.is_closed:
        _registry().discard(workflow.session_id)
    return jsonify(workflow.to_dict()), status_code


def _save_failed(workflow):
    """Response for a transition that stayed put because its save failed."""
    body = workflow.to_dict()
    body['error'] = str(workflow.last_error) if workflow.last_error else 'Save failed'
    body['code'] = getattr(workflow.last_error, 'code', 'PERSISTENCE_FAILED')
    return jsonify(body), 500


def _run(session_id, description, action):
    """Look up the session, run the action, and map engine errors to JSON."""
    try:
        workflow = _registry().get(session_id)
        return action(workflow)
    except BillingError as e:
        db.session.rollback()
        return billing_error_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error during builder {description} for session {session_id}: {str(e)}")
        return jsonify({'error': f'Failed to {description}'}), 500


@builder_bp.route('/sessions', methods=['POST'])
@login_required
def open_session():
    """
    Open a builder.

    Body: kind ('estimate' or 'invoice'), job_id, document_id (to edit an
    existing document), variant ('three_step' or 'two_pane')
    """
    try:
        data = get_json_body()
        kind = data.get('kind', 'estimate')
        job_id = data.get('job_id')
        document_id = data.get('document_id')
        if not job_id and document_id is None:
            raise ValidationError('Job ID is required for a new document')

        workflow = BuilderWorkflow(
            kind,
            str(job_id) if job_id else None,
            SqlDocumentStore(),
            document_id=document_id,
            variant=data.get('variant', THREE_STEP),
        )
        _registry().open(workflow)
        return _state(workflow, 201)

    except BillingError as e:
        db.session.rollback()
        return billing_error_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error opening builder session: {str(e)}")
        return jsonify({'error': 'Failed to open builder'}), 500


@builder_bp.route('/sessions/<session_id>', methods=['GET'])
@login_required
def get_session(session_id):
    return _run(session_id, 'load session', _state)


@builder_bp.route('/sessions/<session_id>', methods=['PATCH'])
@login_required
def update_session(session_id):
    """Update tax_rate and/or notes"""
    data = get_json_body()

    def action(workflow):
        if 'tax_rate' in data:
            workflow.set_tax_rate(data['tax_rate'])
        if 'notes' in data:
            workflow.set_notes(data['notes'])
        return _state(workflow)

    return _run(session_id, 'update document', action)


@builder_bp.route('/sessions/<session_id>', methods=['DELETE'])
@login_required
def close_session(session_id):
    """Close the builder, discarding unsaved changes"""
    def action(workflow):
        _registry().close(session_id)
        return jsonify({'closed': True, 'session_id': session_id})

    return _run(session_id, 'close session', action)


@builder_bp.route('/sessions/<session_id>/items', methods=['POST'])
@login_required
def add_item(session_id):
    """Add a catalog product (product_id) or a custom line (description, quantity, unit_price, ...)"""
    data = get_json_body()

    def action(workflow):
        if data.get('product_id') is not None:
            workflow.add_catalog_item(get_product(data['product_id']))
        else:
            fields = {key: data[key] for key in
                      ('description', 'quantity', 'unit_price', 'our_price', 'taxable') if key in data}
            workflow.add_custom_line(**fields)
        return _state(workflow, 201)

    return _run(session_id, 'add line item', action)


@builder_bp.route('/sessions/<session_id>/items/<item_id>', methods=['PUT'])
@login_required
def update_item(session_id, item_id):
    """Body is either {field, value} or a mapping of field names to values"""
    data = get_json_body()

    def action(workflow):
        if 'field' in data:
            changes = {data['field']: data.get('value')}
        else:
            changes = data
        if not changes:
            raise ValidationError('No changes supplied')
        for field, value in changes.items():
            workflow.update_item(item_id, field, value)
        return _state(workflow)

    return _run(session_id, 'update line item', action)


@builder_bp.route('/sessions/<session_id>/items/<item_id>', methods=['DELETE'])
@login_required
def remove_item(session_id, item_id):
    def action(workflow):
        workflow.remove_item(item_id)
        return _state(workflow)

    return _run(session_id, 'remove line item', action)


@builder_bp.route('/sessions/<session_id>/warranties', methods=['GET'])
@login_required
def get_warranties(session_id):
    """Warranty products on offer and which of them are on the document"""
    def action(workflow):
        return jsonify({
            'products': [product.to_dict() for product in workflow.available_warranties()],
            'selected_ids': workflow.selected_warranty_ids(),
        })

    return _run(session_id, 'load warranties', action)


@builder_bp.route('/sessions/<session_id>/warranties', methods=['POST'])
@login_required
def add_warranty(session_id):
    data = get_json_body()

    def action(workflow):
        if data.get('product_id') is None:
            raise ValidationError('Product ID is required')
        product = get_product(data['product_id'])
        if not is_warranty_product(product):
            raise ValidationError(f"{product.name} is not a warranty product")
        workflow.add_warranty(product)
        return _state(workflow, 201)

    return _run(session_id, 'add warranty', action)


@builder_bp.route('/sessions/<session_id>/warranties/<int:product_id>', methods=['DELETE'])
@login_required
def remove_warranty(session_id, product_id):
    def action(workflow):
        workflow.remove_warranty(product_id)
        return _state(workflow)

    return _run(session_id, 'remove warranty', action)


@builder_bp.route('/sessions/<session_id>/next', methods=['POST'])
@login_required
def next_step(session_id):
    def action(workflow):
        if not workflow.next():
            return _save_failed(workflow)
        return _state(workflow)

    return _run(session_id, 'advance', action)


@builder_bp.route('/sessions/<session_id>/back', methods=['POST'])
@login_required
def previous_step(session_id):
    def action(workflow):
        workflow.back()
        return _state(workflow)

    return _run(session_id, 'go back', action)


@builder_bp.route('/sessions/<session_id>/save', methods=['POST'])
@login_required
def save_for_later(session_id):
    """Save the draft and close the builder"""
    def action(workflow):
        if not workflow.save_for_later():
            return _save_failed(workflow)
        return _state(workflow)

    return _run(session_id, 'save', action)


@builder_bp.route('/sessions/<session_id>/send', methods=['POST'])
@login_required
def send_document(session_id):
    """
    Send the document.

    Body: method ('email' or 'sms'), recipient, message
    """
    data = get_json_body()

    def action(workflow):
        if not data.get('recipient'):
            raise ValidationError('Recipient is required')
        sent = workflow.send(
            OutboxDispatcher(),
            data.get('method', 'email'),
            data['recipient'],
            data.get('message'),
        )
        if sent:
            return _state(workflow)
        if workflow.last_error is not None:
            return _save_failed(workflow)
        body = workflow.to_dict()
        body['error'] = 'Failed to send document'
        body['code'] = 'DISPATCH_FAILED'
        return jsonify(body), 502

    return _run(session_id, 'send', action)


@builder_bp.route('/sessions/<session_id>/convert', methods=['POST'])
@login_required
def convert_session(session_id):
    """Convert the estimate being built into an invoice"""
    def action(workflow):
        result = workflow.convert_to_invoice()
        response = conversion_response(result, session=workflow.to_dict())
        if workflow.is_closed:
            _registry().discard(session_id)
        return response

    return _run(session_id, 'convert', action)
