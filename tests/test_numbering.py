import re

import pytest

from models import DocumentSequence
from services.numbering import fallback_number, generate_document_number


def offline(kind):
    raise ConnectionError('sequence store unreachable')


def test_numbers_come_from_the_counter_per_kind(db):
    assert generate_document_number('estimate') == 'EST-0001'
    assert generate_document_number('estimate') == 'EST-0002'
    assert generate_document_number('invoice') == 'INV-0001'
    assert generate_document_number('payment') == 'PAY-0001'
    assert db.session.get(DocumentSequence, 'estimate').last_value == 2


def test_padding_is_configurable(app):
    app.config['NUMBER_PADDING'] = 6
    assert generate_document_number('invoice', sequence=lambda kind: 42) == 'INV-000042'


def test_offline_provider_falls_back_to_time_based_number():
    number = generate_document_number('estimate', sequence=offline)
    assert re.fullmatch(r'EST-\d{13,}', number)


def test_fallback_numbers_are_unique_within_the_process():
    numbers = {fallback_number('invoice') for _ in range(50)}
    assert len(numbers) == 50


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        generate_document_number('receipt', sequence=lambda kind: 1)
