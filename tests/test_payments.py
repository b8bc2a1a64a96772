from decimal import Decimal

import pytest

from models import Invoice, Payment
from services.documents import initialize_document
from services.errors import DocumentNotFoundError, ValidationError
from services.payments import list_payments, record_payment, refund_payment
from services.persistence import save_document, set_document_status


@pytest.fixture
def invoice_id(app, store):
    """Unpaid invoice with a total of 210.00."""
    draft = initialize_document('invoice', 'job-1')
    draft.line_items.add_custom_line(description='Opener', quantity=2, unit_price='50')
    springs = draft.line_items.add_custom_line(description='Springs', unit_price='100')
    draft.line_items.set_taxable(springs.id, False)
    return save_document(draft, store)


def _invoice(db, invoice_id):
    return db.session.get(Invoice, invoice_id)


def test_payment_over_balance_is_rejected(db, invoice_id):
    with pytest.raises(ValidationError):
        record_payment(invoice_id, '210.01', 'cash')
    invoice = _invoice(db, invoice_id)
    assert invoice.balance == Decimal('210.00')
    assert invoice.amount_paid == Decimal('0.00')
    assert Payment.query.count() == 0


def test_exact_balance_marks_invoice_paid(db, invoice_id):
    payment, invoice = record_payment(invoice_id, '210.00', 'credit-card', reference='AUTH-1')
    assert payment.payment_number == 'PAY-0001'
    assert invoice.balance == Decimal('0.00')
    assert invoice.status == 'paid'
    assert invoice.paid_at is not None


def test_sequential_payments_accumulate(db, invoice_id):
    _, invoice = record_payment(invoice_id, 100, 'cheque')
    assert invoice.balance == Decimal('110.00')
    assert invoice.status == 'unpaid'

    _, invoice = record_payment(invoice_id, '110', 'e-transfer')
    assert invoice.amount_paid == Decimal('210.00')
    assert invoice.balance == Decimal('0.00')
    assert invoice.status == 'paid'

    with pytest.raises(ValidationError):
        record_payment(invoice_id, '0.01', 'cash')


@pytest.mark.parametrize('amount', [0, '-5', 'ten', None, True, '1.005'])
def test_invalid_amounts_are_rejected(invoice_id, amount):
    with pytest.raises(ValidationError):
        record_payment(invoice_id, amount, 'cash')


def test_unknown_method_is_rejected(invoice_id):
    with pytest.raises(ValidationError):
        record_payment(invoice_id, 10, 'bitcoin')


def test_unknown_invoice(app):
    with pytest.raises(DocumentNotFoundError):
        record_payment(404, 10, 'cash')


def test_payment_date_is_parsed(invoice_id):
    payment, _ = record_payment(invoice_id, 10, 'debit', paid_on='2026-03-14')
    assert payment.paid_on.isoformat() == '2026-03-14'
    with pytest.raises(ValidationError):
        record_payment(invoice_id, 10, 'debit', paid_on='14th of March')


def test_refund_reopens_a_paid_invoice(db, invoice_id):
    payment, _ = record_payment(invoice_id, '210.00', 'cash')
    refund, invoice = refund_payment(payment.id)

    assert refund.amount == Decimal('-210.00')
    assert refund.refund_of_id == payment.id
    assert invoice.amount_paid == Decimal('0.00')
    assert invoice.balance == Decimal('210.00')
    assert invoice.status == 'unpaid'
    assert invoice.paid_at is None


def test_payments_cannot_be_refunded_twice(invoice_id):
    payment, _ = record_payment(invoice_id, 50, 'cash')
    refund, _ = refund_payment(payment.id)
    with pytest.raises(ValidationError):
        refund_payment(payment.id)
    with pytest.raises(ValidationError):
        refund_payment(refund.id)


def test_list_payments_in_order(invoice_id):
    record_payment(invoice_id, 10, 'cash')
    record_payment(invoice_id, 20, 'debit')
    payments = list_payments(invoice_id)
    assert [p.amount for p in payments] == [Decimal('10.00'), Decimal('20.00')]
    assert [p.payment_number for p in payments] == ['PAY-0001', 'PAY-0002']


def test_first_payment_moves_a_draft_invoice_to_unpaid(db, store, invoice_id):
    set_document_status('invoice', invoice_id, 'draft', store)
    _, invoice = record_payment(invoice_id, 10, 'cash')
    assert invoice.status == 'unpaid'
    assert invoice.balance == Decimal('200.00')


def test_partial_refunds_until_nothing_is_left(db, invoice_id):
    payment, _ = record_payment(invoice_id, '210.00', 'cash')

    refund, invoice = refund_payment(payment.id, amount='60')
    assert refund.amount == Decimal('-60.00')
    assert payment.status == 'partially_refunded'
    assert invoice.amount_paid == Decimal('150.00')
    assert invoice.balance == Decimal('60.00')
    assert invoice.status == 'unpaid'

    with pytest.raises(ValidationError):
        refund_payment(payment.id, amount='150.01')

    rest, invoice = refund_payment(payment.id)
    assert rest.amount == Decimal('-150.00')
    assert payment.status == 'refunded'
    assert invoice.amount_paid == Decimal('0.00')
    assert invoice.balance == Decimal('210.00')

    with pytest.raises(ValidationError):
        refund_payment(payment.id, amount='1')


@pytest.mark.parametrize('amount', [0, '-5', 'all', '0.005'])
def test_invalid_refund_amounts_are_rejected(invoice_id, amount):
    payment, _ = record_payment(invoice_id, 50, 'cash')
    with pytest.raises(ValidationError):
        refund_payment(payment.id, amount=amount)
    assert payment.refunds.count() == 0
