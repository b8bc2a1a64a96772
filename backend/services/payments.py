# backend/services/payments.py
"""
Payment application against invoice balances.

Amounts are validated before anything is written. The invoice row is locked
(SELECT ... FOR UPDATE where the database supports it) while its balance is
changed.
"""
import logging
from datetime import datetime
from decimal import InvalidOperation

from sqlalchemy.exc import SQLAlchemyError

from models import db, Invoice, Payment, PAYMENT_METHODS
from .calculations import ZERO, round_money, to_decimal
from .date_utils import business_today, parse_date
from .errors import DocumentNotFoundError, PersistenceError, ValidationError
from .numbering import generate_document_number

logger = logging.getLogger(__name__)


def _parse_amount(amount):
    if isinstance(amount, bool):
        raise ValidationError("Payment amount must be a number")
    try:
        value = to_decimal(amount, default=None)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Payment amount must be a number")
    if value is None or not value.is_finite():
        raise ValidationError("Payment amount must be a number")
    if value <= ZERO:
        raise ValidationError("Payment amount must be greater than zero")
    if round_money(value) != value:
        raise ValidationError("Payment amount cannot include fractions of a cent")
    return round_money(value)


def _parse_paid_on(paid_on):
    if paid_on is None or paid_on == '':
        return business_today()
    if isinstance(paid_on, str):
        try:
            return parse_date(paid_on)
        except ValueError as e:
            raise ValidationError(str(e))
    return paid_on


def _get_invoice(invoice_id, lock=False):
    invoice = db.session.get(Invoice, invoice_id, with_for_update=lock)
    if invoice is None:
        raise DocumentNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def _outstanding(invoice):
    return to_decimal(invoice.total) - to_decimal(invoice.amount_paid)


def _check_amount(invoice, amount):
    balance = _outstanding(invoice)
    if amount > balance:
        raise ValidationError(
            f"Payment of {amount} exceeds the outstanding balance of {balance} on invoice {invoice.number}"
        )


def record_payment(invoice_id, amount, method, reference=None, notes=None, paid_on=None):
    """
    Apply a payment to an invoice.

    Args:
        invoice_id (int): invoice to pay
        amount: payment amount, 0 < amount <= outstanding balance
        method (str): one of PAYMENT_METHODS
        reference (str): cheque number, transaction id, ...
        notes (str): free text
        paid_on (date or str): payment date, defaults to today

    Returns:
        tuple: (Payment, Invoice)

    Raises:
        ValidationError: bad amount or method, or amount over the balance
        DocumentNotFoundError: unknown invoice
        PersistenceError: the write failed and was rolled back
    """
    amount = _parse_amount(amount)
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {', '.join(PAYMENT_METHODS)}")
    paid_on = _parse_paid_on(paid_on)

    # Reject over-payments before the payment counter is touched
    _check_amount(_get_invoice(invoice_id), amount)
    payment_number = generate_document_number('payment')

    try:
        invoice = _get_invoice(invoice_id, lock=True)
        _check_amount(invoice, amount)

        payment = Payment(
            invoice_id=invoice.id,
            payment_number=payment_number,
            amount=amount,
            method=method,
            reference=reference,
            notes=notes,
            paid_on=paid_on,
        )
        db.session.add(payment)

        invoice.amount_paid = to_decimal(invoice.amount_paid) + amount
        invoice.recalc_balance()
        if invoice.balance == ZERO:
            invoice.status = 'paid'
            invoice.paid_at = datetime.utcnow()
        elif invoice.status in ('draft', 'sent'):
            # Money received means the invoice is no longer just a draft
            invoice.status = 'unpaid'

        db.session.commit()
    except (ValidationError, DocumentNotFoundError):
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error recording payment on invoice {invoice_id}: {str(e)}")
        raise PersistenceError("Failed to record payment") from e

    logger.info(
        f"Recorded payment {payment.payment_number} of {amount} on invoice {invoice.number}, "
        f"balance now {invoice.balance}"
    )
    return payment, invoice


def _refunded_so_far(payment):
    return -sum((to_decimal(refund.amount) for refund in payment.refunds), ZERO)


def _refundable(payment):
    """What is left to refund on a payment, or raise if nothing is."""
    if payment.is_refund:
        raise ValidationError("A refund cannot itself be refunded")
    remaining = to_decimal(payment.amount) - _refunded_so_far(payment)
    if payment.status == 'refunded' or remaining <= ZERO:
        raise ValidationError(f"Payment {payment.payment_number} has already been refunded")
    return remaining


def _check_refund(payment, amount):
    """Returns (refund amount, amount refundable before this refund)."""
    remaining = _refundable(payment)
    if amount is None:
        return remaining, remaining
    if amount > remaining:
        raise ValidationError(
            f"Refund of {amount} exceeds the {remaining} still refundable on payment {payment.payment_number}"
        )
    return amount, remaining


def refund_payment(payment_id, amount=None, notes=None):
    """
    Reverse all or part of a payment by recording a negative payment against
    the same invoice.

    Args:
        payment_id (int): payment to refund
        amount: refund amount, defaults to everything not yet refunded
        notes (str): free text

    A payment can be refunded in several parts until nothing is left. A paid
    invoice is reopened as unpaid.
    """
    if amount is not None:
        amount = _parse_amount(amount)

    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise DocumentNotFoundError(f"Payment {payment_id} not found")
    _check_refund(payment, amount)

    refund_number = generate_document_number('payment')

    try:
        invoice = _get_invoice(payment.invoice_id, lock=True)
        refund_amount, remaining = _check_refund(payment, amount)
        refund = Payment(
            invoice_id=invoice.id,
            payment_number=refund_number,
            amount=-refund_amount,
            method=payment.method,
            reference=payment.payment_number,
            notes=notes or f"Refund of {payment.payment_number}",
            paid_on=business_today(),
            refund_of_id=payment.id,
        )
        db.session.add(refund)
        payment.status = 'refunded' if refund_amount == remaining else 'partially_refunded'

        invoice.amount_paid = to_decimal(invoice.amount_paid) - refund_amount
        invoice.recalc_balance()
        if invoice.status == 'paid' and invoice.balance > ZERO:
            invoice.status = 'unpaid'
            invoice.paid_at = None

        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error refunding payment {payment_id}: {str(e)}")
        raise PersistenceError("Failed to refund payment") from e

    logger.info(
        f"Refunded {refund_amount} of payment {payment.payment_number} as {refund.payment_number} "
        f"on invoice {invoice.number}"
    )
    return refund, invoice


def list_payments(invoice_id):
    invoice = _get_invoice(invoice_id)
    return invoice.payments.all()
