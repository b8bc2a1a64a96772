# backend/services/builder_workflow.py
"""
The estimate/invoice builder as a state machine.

Three-step variant:  items -> warranties -> send
Two-pane variant:    items -> preview

A workflow starts in 'loading' until its document has been initialized
(including the numbering call) and ends in 'closed'. Failures of a save or a
send are recorded as notifications and leave the workflow on its current
step; validation problems are recorded and raised to the caller.
"""
import logging
import threading
import time
import uuid

from . import catalog
from .documents import initialize_document, load_document, validate_kind
from .errors import (
    DocumentNotFoundError,
    EmptyDocumentError,
    PersistenceError,
    ValidationError,
    WorkflowConflictError,
    WorkflowStateError,
)
from .persistence import (
    CONVERTED,
    FAILED,
    PARTIALLY_CONVERTED,
    convert_to_invoice,
    save_document,
    set_document_status,
)

logger = logging.getLogger(__name__)

STEP_LOADING = 'loading'
STEP_ITEMS = 'items'
STEP_WARRANTIES = 'warranties'
STEP_SEND = 'send'
STEP_PREVIEW = 'preview'
STEP_CLOSED = 'closed'

THREE_STEP = 'three_step'
TWO_PANE = 'two_pane'

VARIANT_STEPS = {
    THREE_STEP: (STEP_ITEMS, STEP_WARRANTIES, STEP_SEND),
    TWO_PANE: (STEP_ITEMS, STEP_PREVIEW),
}

# Steps whose forward transition saves the draft first
SAVE_BEFORE = {
    (STEP_WARRANTIES, STEP_SEND),
    (STEP_ITEMS, STEP_PREVIEW),
}

EDITABLE_STEPS = (STEP_ITEMS, STEP_WARRANTIES)
FINAL_STEPS = (STEP_SEND, STEP_PREVIEW)


class BuilderWorkflow:
    """One user's pass through the builder for a single document."""

    def __init__(self, kind, job_id, store, document_id=None, variant=THREE_STEP, numbering=None):
        if variant not in VARIANT_STEPS:
            raise ValidationError(f"Unknown builder variant: {variant}")
        self.kind = validate_kind(kind)
        self.job_id = job_id
        self.store = store
        self.variant = variant
        self.steps = VARIANT_STEPS[variant]
        self.numbering = numbering
        self.session_id = None
        self.step = STEP_LOADING
        self.draft = None
        self.notifications = []
        self.last_error = None
        self.is_saving = False
        self._document_id = document_id
        self._lock = threading.Lock()
        self.last_activity = time.monotonic()

    # --- State ---

    @property
    def document_id(self):
        if self.draft is not None:
            return self.draft.document_id
        return self._document_id

    @property
    def is_ready(self):
        return self.step not in (STEP_LOADING, STEP_CLOSED)

    @property
    def is_closed(self):
        return self.step == STEP_CLOSED

    @property
    def can_go_back(self):
        return self.is_ready and self.step != self.steps[0]

    @property
    def can_advance(self):
        if not self.is_ready or self.is_saving:
            return False
        index = self.steps.index(self.step)
        if index == len(self.steps) - 1:
            return False
        if self.step == STEP_ITEMS and self.steps[1] == STEP_WARRANTIES:
            return len(self.draft.line_items) > 0
        return True

    def touch(self):
        self.last_activity = time.monotonic()

    def idle_for(self, now=None):
        """Seconds since the session was last used."""
        return (now if now is not None else time.monotonic()) - self.last_activity

    def _notify(self, level, message):
        self.notifications.append({'level': level, 'message': message})
        log = logger.error if level == 'error' else logger.info
        log(f"[builder {self.session_id}] {message}")

    def _require_ready(self):
        if self.step == STEP_LOADING:
            raise WorkflowStateError("The builder is still loading")
        if self.step == STEP_CLOSED:
            raise WorkflowStateError("The builder has been closed")

    def _require_editable(self):
        self._require_ready()
        if self.step not in EDITABLE_STEPS:
            raise WorkflowStateError(f"Line items cannot be changed on the {self.step} step")
        if self.draft.is_converted:
            raise WorkflowStateError(f"Estimate {self.draft.number} has been converted and is read-only")

    # --- Lifecycle ---

    def start(self):
        """Initialize the document; the workflow accepts no edits until this returns."""
        if self.step != STEP_LOADING:
            raise WorkflowStateError("The builder has already been started")
        if self._document_id is not None:
            self.draft = load_document(self.kind, self._document_id, self.store)
        else:
            self.draft = initialize_document(self.kind, self.job_id, numbering=self.numbering)
        self.step = self.steps[0]
        logger.info(f"Builder opened for {self.kind} {self.draft.number} ({self.variant})")
        return self

    def close(self):
        """Close the builder. Unsaved changes are discarded."""
        if self.step == STEP_CLOSED:
            return
        if self.draft is not None and self.draft.is_dirty:
            logger.info(f"Discarding unsaved changes to {self.kind} {self.draft.number}")
        self.step = STEP_CLOSED

    # --- Line items ---

    def add_catalog_item(self, product):
        self._require_editable()
        return self.draft.line_items.add_from_catalog(product)

    def add_custom_line(self, **fields):
        self._require_editable()
        return self.draft.line_items.add_custom_line(**fields)

    def remove_item(self, item_id):
        self._require_editable()
        return self.draft.line_items.remove(item_id)

    def update_item(self, item_id, field, value):
        self._require_editable()
        return self.draft.line_items.update(item_id, field, value)

    def set_tax_rate(self, value):
        self._require_editable()
        self.draft.tax_rate = value

    def set_notes(self, value):
        self._require_editable()
        self.draft.notes = value

    # --- Warranties ---

    def available_warranties(self):
        return catalog.warranty_products()

    def add_warranty(self, product):
        self._require_editable()
        return self.draft.line_items.add_warranty(product)

    def remove_warranty(self, product_id):
        self._require_editable()
        return self.draft.line_items.remove_warranty(product_id)

    def selected_warranty_ids(self):
        self._require_ready()
        return self.draft.line_items.selected_warranty_ids()

    # --- Navigation ---

    def _save(self):
        """Save the draft, recording the outcome. Returns True on success."""
        with self._lock:
            if self.is_saving:
                raise WorkflowStateError("A save is already in progress")
            self.is_saving = True
        try:
            save_document(self.draft, self.store)
        except (PersistenceError, DocumentNotFoundError) as e:
            self.last_error = e
            self._notify('error', f"Could not save {self.kind} {self.draft.number}: {e}")
            return False
        except ValidationError as e:
            self.last_error = e
            self._notify('error', str(e))
            raise
        finally:
            self.is_saving = False
        self.last_error = None
        return True

    def next(self):
        """
        Advance one step.

        Returns:
            bool: True if the step changed; False if the save that guards
                the transition failed (an error notification is recorded)
        """
        self._require_ready()
        if self.is_saving:
            raise WorkflowStateError("Please wait for the current save to finish")

        index = self.steps.index(self.step)
        if index == len(self.steps) - 1:
            raise WorkflowStateError(f"There is no step after {self.step}")
        target = self.steps[index + 1]

        if self.step == STEP_ITEMS and len(self.draft.line_items) == 0:
            self._notify('error', "Add at least one line item before continuing")
            raise EmptyDocumentError("Add at least one line item before continuing")

        # Converted estimates are read-only, so there is nothing to save
        if (self.step, target) in SAVE_BEFORE and not self.draft.is_converted:
            if not self._save():
                return False

        self.step = target
        return True

    def back(self):
        """Go back one step. Allowed while a save is in flight."""
        self._require_ready()
        index = self.steps.index(self.step)
        if index == 0:
            raise WorkflowStateError("Already on the first step")
        self.step = self.steps[index - 1]
        return True

    # --- Terminal operations ---

    def save(self):
        self._require_ready()
        saved = self._save()
        if saved:
            self._notify('success', f"{self.kind.capitalize()} {self.draft.number} saved")
        return saved

    def save_for_later(self):
        """Save and close. On failure the builder stays open with the draft intact."""
        saved = self.save()
        if saved:
            self.close()
        return saved

    def send(self, dispatcher, method, recipient, message=None):
        """
        Hand the saved document to the dispatcher.

        Closes the workflow when dispatch succeeds; stays on the final step
        otherwise.
        """
        self._require_ready()
        if self.step not in FINAL_STEPS:
            raise WorkflowStateError(f"Documents can only be sent from the {self.steps[-1]} step")
        if self.is_saving:
            raise WorkflowStateError("Please wait for the current save to finish")
        self.last_error = None

        if (not self.draft.is_persisted or self.draft.is_dirty) and not self.draft.is_converted:
            if not self._save():
                return False

        record = dict(self.store.fetch(self.kind, self.draft.document_id))
        record['kind'] = self.kind
        if not dispatcher.send(record, method, recipient, message):
            self._notify('error', f"Failed to send {self.kind} {self.draft.number} to {recipient}")
            return False

        if self.draft.status == 'draft':
            try:
                set_document_status(self.kind, self.draft.document_id, 'sent', self.store)
                self.draft.status = 'sent'
            except (PersistenceError, DocumentNotFoundError) as e:
                self._notify('warning', f"{self.kind.capitalize()} was sent but its status could not be updated: {e}")

        self._notify('success', f"{self.kind.capitalize()} {self.draft.number} sent to {recipient}")
        self.close()
        return True

    def convert_to_invoice(self):
        """Convert the estimate being edited. Returns the ConversionResult."""
        self._require_ready()
        if self.kind != 'estimate':
            raise WorkflowStateError("Only estimates can be converted to invoices")
        if self.is_saving:
            raise WorkflowStateError("Please wait for the current save to finish")

        result = convert_to_invoice(self.draft, self.store, numbering=self.numbering)
        if result.outcome == CONVERTED:
            self._notify('success', result.message)
            self.close()
        elif result.outcome == PARTIALLY_CONVERTED:
            self._notify('warning', result.message)
            self.close()
        elif result.outcome == FAILED:
            self._notify('error', result.message)
        return result

    def to_dict(self):
        return {
            'session_id': self.session_id,
            'kind': self.kind,
            'variant': self.variant,
            'steps': list(self.steps),
            'step': self.step,
            'is_saving': self.is_saving,
            'can_go_back': self.can_go_back,
            'can_advance': self.can_advance,
            'document': self.draft.to_dict() if self.draft is not None else None,
            'notifications': list(self.notifications),
        }


class BuilderSessionRegistry:
    """
    Open builder workflows, keyed by session id. Lives in app.extensions.

    A session that sees no activity for idle_timeout seconds is closed
    (unsaved changes discarded) and dropped, so an abandoned builder does
    not hold its document forever.
    """

    def __init__(self, idle_timeout=None):
        self.idle_timeout = idle_timeout
        self._sessions = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._sessions)

    def _is_expired(self, workflow, now):
        return self.idle_timeout is not None and workflow.idle_for(now) > self.idle_timeout

    def _prune(self):
        now = time.monotonic()
        for session_id, workflow in list(self._sessions.items()):
            if workflow.is_closed:
                del self._sessions[session_id]
            elif self._is_expired(workflow, now):
                logger.info(f"Builder session {session_id} for {workflow.kind} {workflow.document_id} expired")
                workflow.close()
                del self._sessions[session_id]

    def open(self, workflow):
        """
        Register and start a workflow.

        Raises:
            WorkflowConflictError: another open workflow is editing the same document
        """
        with self._lock:
            self._prune()
            if workflow.document_id is not None:
                for other in self._sessions.values():
                    if other.kind == workflow.kind and other.document_id == workflow.document_id:
                        raise WorkflowConflictError(
                            f"{workflow.kind.capitalize()} {workflow.document_id} is already open in another builder"
                        )
            workflow.session_id = uuid.uuid4().hex
            workflow.touch()
            self._sessions[workflow.session_id] = workflow

        try:
            workflow.start()
        except Exception:
            self.discard(workflow.session_id)
            raise
        return workflow

    def get(self, session_id):
        """Look up an open session and mark it as used."""
        with self._lock:
            self._prune()
            workflow = self._sessions.get(session_id)
            if workflow is not None:
                workflow.touch()
        if workflow is None or workflow.is_closed:
            raise DocumentNotFoundError(f"Builder session {session_id} not found")
        return workflow

    def discard(self, session_id):
        with self._lock:
            self._sessions.pop(session_id, None)

    def close(self, session_id):
        workflow = self.get(session_id)
        workflow.close()
        self.discard(session_id)
        return workflow
