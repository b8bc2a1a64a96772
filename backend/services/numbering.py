# backend/services/numbering.py
"""
Human-readable numbers for estimates, invoices and payments.

Numbers come from a per-kind counter row in the database. If the counter
cannot be read or written, a time-based number is returned instead so that
creating a document never blocks on numbering.
"""
import logging
import threading
import time

from models import db, DocumentSequence
from .settings import app_setting

logger = logging.getLogger(__name__)

KIND_PREFIXES = {
    'estimate': 'EST',
    'invoice': 'INV',
    'payment': 'PAY',
}

_fallback_lock = threading.Lock()
_last_fallback_millis = 0


def prefix_for(kind):
    try:
        return KIND_PREFIXES[kind]
    except KeyError:
        raise ValueError(f"Unknown document kind: {kind}")


def next_sequence_value(kind):
    """
    Increment and return the counter for a kind.

    Runs in its own transaction: the row is locked, bumped and committed
    before the number is handed out.
    """
    try:
        sequence = db.session.get(DocumentSequence, kind, with_for_update=True)
        if sequence is None:
            sequence = DocumentSequence(kind=kind, last_value=0)
            db.session.add(sequence)
        sequence.last_value = (sequence.last_value or 0) + 1
        value = sequence.last_value
        db.session.commit()
        return value
    except Exception:
        db.session.rollback()
        raise


def fallback_number(kind):
    """
    {PREFIX}-{epochMillis}, unique within this process even when two
    fallbacks are requested in the same millisecond.
    """
    global _last_fallback_millis
    with _fallback_lock:
        millis = max(int(time.time() * 1000), _last_fallback_millis + 1)
        _last_fallback_millis = millis
    return f"{prefix_for(kind)}-{millis}"


def generate_document_number(kind, sequence=None):
    """
    Produce a new number such as EST-0042 for the given kind.

    Args:
        kind (str): 'estimate', 'invoice' or 'payment'
        sequence (callable): counter provider taking the kind, defaults to
            the database counter

    Returns:
        str: the formatted number, or a time-based fallback if the counter failed
    """
    prefix = prefix_for(kind)
    provider = sequence or next_sequence_value
    try:
        value = provider(kind)
    except Exception as e:
        number = fallback_number(kind)
        logger.warning(f"Numbering provider unavailable for {kind}, using fallback {number}: {e}")
        return number

    padding = app_setting('NUMBER_PADDING', 4)
    return f"{prefix}-{int(value):0{padding}d}"
