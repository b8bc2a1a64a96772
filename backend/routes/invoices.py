# backend/routes/invoices.py
from flask import Blueprint, jsonify
from flask_login import current_user, login_required
from middleware.auth import admin_required
from models import db
from services.errors import BillingError
from services.payments import list_payments, record_payment, refund_payment
from .document_api import create_document, get_document, list_documents, update_document
from .responses import billing_error_response, get_json_body
import logging

invoices_bp = Blueprint('invoices', __name__)
logger = logging.getLogger(__name__)


@invoices_bp.route('', methods=['GET'])
@login_required
def get_invoices():
    """Get all invoices, optionally filtered by job_id and status"""
    return list_documents('invoice')


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@login_required
def get_invoice(invoice_id):
    return get_document('invoice', invoice_id)


@invoices_bp.route('', methods=['POST'])
@login_required
def create_invoice():
    """Create an invoice directly (not from an estimate); it starts unpaid"""
    return create_document('invoice')


@invoices_bp.route('/<int:invoice_id>', methods=['PUT'])
@login_required
def update_invoice(invoice_id):
    return update_document('invoice', invoice_id)


@invoices_bp.route('/<int:invoice_id>/payments', methods=['GET'])
@login_required
def get_invoice_payments(invoice_id):
    try:
        payments = list_payments(invoice_id)
        return jsonify([payment.to_dict() for payment in payments])
    except BillingError as e:
        return billing_error_response(e)
    except Exception as e:
        logger.error(f"Error retrieving payments for invoice {invoice_id}: {str(e)}")
        return jsonify({'error': 'Failed to retrieve payments'}), 500


@invoices_bp.route('/<int:invoice_id>/payments', methods=['POST'])
@login_required
def create_invoice_payment(invoice_id):
    """
    Record a payment against an invoice.

    Body: amount (required), method (required), reference, notes, date
    """
    try:
        data = get_json_body()
        if data.get('amount') is None:
            return jsonify({'error': 'Amount is required', 'code': 'VALIDATION_ERROR'}), 400

        payment, invoice = record_payment(
            invoice_id,
            data.get('amount'),
            data.get('method'),
            reference=data.get('reference'),
            notes=data.get('notes'),
            paid_on=data.get('date'),
        )
        logger.info(f"User {current_user.username} recorded payment {payment.payment_number}")
        return jsonify({
            'payment': payment.to_dict(),
            'invoice': invoice.to_dict(),
        }), 201

    except BillingError as e:
        db.session.rollback()
        return billing_error_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error recording payment for invoice {invoice_id}: {str(e)}")
        return jsonify({'error': 'Failed to record payment'}), 500


@invoices_bp.route('/payments/<int:payment_id>/refund', methods=['POST'])
@login_required
@admin_required
def refund_invoice_payment(payment_id):
    """Refund all of a payment, or part of it when the body carries an amount (admin only)"""
    try:
        data = get_json_body()
        refund, invoice = refund_payment(payment_id, amount=data.get('amount'), notes=data.get('notes'))
        logger.info(f"User {current_user.username} refunded payment {payment_id}")
        return jsonify({
            'payment': refund.to_dict(),
            'invoice': invoice.to_dict(),
        }), 201

    except BillingError as e:
        db.session.rollback()
        return billing_error_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error refunding payment {payment_id}: {str(e)}")
        return jsonify({'error': 'Failed to refund payment'}), 500
