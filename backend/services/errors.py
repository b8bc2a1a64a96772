# backend/services/errors.py
"""
Error taxonomy for the billing document engine.

Validation errors are raised before any write and leave state untouched.
Persistence errors wrap store failures; the caller's in-memory draft is kept
so the user can retry.
"""


class BillingError(Exception):
    """Base class for all engine errors."""
    code = 'BILLING_ERROR'
    status_code = 500


class ValidationError(BillingError):
    """Raised when user input is rejected before any network or database call."""
    code = 'VALIDATION_ERROR'
    status_code = 400


class EmptyDocumentError(ValidationError):
    """Raised when a step boundary requires at least one line item."""
    code = 'EMPTY_DOCUMENT'


class DocumentLockedError(ValidationError):
    """Raised when a converted estimate is edited for billing purposes."""
    code = 'DOCUMENT_LOCKED'


class DocumentNotFoundError(BillingError):
    code = 'NOT_FOUND'
    status_code = 404


class PersistenceError(BillingError):
    """Raised when the document store is unreachable or rejects a write."""
    code = 'PERSISTENCE_FAILED'
    status_code = 500


class WorkflowStateError(BillingError):
    """Raised when a builder operation is not allowed in the current step."""
    code = 'INVALID_STEP'
    status_code = 409


class WorkflowConflictError(WorkflowStateError):
    """Raised when a second builder is opened on an already open document."""
    code = 'WORKFLOW_CONFLICT'
