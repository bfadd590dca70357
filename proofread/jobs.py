"""Document correction lifecycle.

Every status change goes through :func:`apply_transition`, which both the
Redis and the in-memory store call inside their atomic update. The table
below is the whole state machine::

    pending ──claim──> in-progress ──> complete | failed | canceled
       ^                    │
       └── stalled / retry ─┘

``complete``, ``failed`` and ``canceled`` are terminal for one attempt; a new
correction request (or a rollback) puts the document back to ``pending``.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from .errors import DocumentBusyError, InvalidTransitionError, StaleClaimError
from .models import Document

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"
STATUS_CANCELED = "canceled"

ALL_STATUSES = {
    STATUS_PENDING,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_CANCELED,
}
TERMINAL_STATUSES = {STATUS_COMPLETE, STATUS_FAILED, STATUS_CANCELED}

TRANSITIONS = {
    STATUS_PENDING: {STATUS_PENDING, STATUS_IN_PROGRESS},
    STATUS_IN_PROGRESS: {STATUS_COMPLETE, STATUS_FAILED, STATUS_CANCELED, STATUS_PENDING},
    STATUS_COMPLETE: {STATUS_PENDING},
    STATUS_FAILED: {STATUS_PENDING},
    STATUS_CANCELED: {STATUS_PENDING},
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def check_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def check_claim(document: Document, claim_id: Optional[str]) -> None:
    """Writes made on behalf of a worker must come from the current claim."""
    if document.status != STATUS_IN_PROGRESS or document.claim_id != claim_id:
        raise StaleClaimError(
            f"Claim {claim_id} no longer owns document {document.document_id}"
        )


def apply_transition(
    document: Document,
    target: str,
    *,
    claim_id: Optional[str] = None,
    now: Optional[float] = None,
    **changes: Any,
) -> Document:
    """Move ``document`` to ``target`` in place and return it.

    Leaving ``in-progress`` requires the matching ``claim_id``, except for a
    stalled-claim reset, which passes the stale token it observed.
    """
    if target not in ALL_STATUSES:
        raise InvalidTransitionError(document.status, target)
    if claim_id is not None and target != STATUS_IN_PROGRESS:
        # A worker write: the claim must still own the document, whatever
        # state a reset or a newer claim has moved it to.
        check_claim(document, claim_id)
    if document.status == STATUS_IN_PROGRESS and target == STATUS_PENDING and claim_id is None:
        raise DocumentBusyError(
            f"Document {document.document_id} is being corrected; try again when it finishes"
        )
    check_transition(document.status, target)
    if document.status == STATUS_IN_PROGRESS:
        check_claim(document, claim_id)

    now = time.time() if now is None else now
    for key, value in changes.items():
        setattr(document, key, value)

    if target == STATUS_IN_PROGRESS:
        document.claim_id = claim_id
        document.claimed_at = now
    else:
        document.claim_id = None
        document.claimed_at = None

    if target == STATUS_PENDING:
        document.requested_at = now
    document.status = target
    document.last_update = now
    return document


def status_payload(document: Document) -> Dict[str, Any]:
    """What a polling client sees for one document."""
    return {
        "document_id": document.document_id,
        "status": document.status,
        "cancellation_requested": document.cancellation_requested,
        "version_number": document.version_number,
        "finished": document.status in TERMINAL_STATUSES,
        "error": document.error,
    }
