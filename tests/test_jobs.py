from __future__ import annotations

import pytest

from proofread import jobs
from proofread.errors import DocumentBusyError, InvalidTransitionError, StaleClaimError
from proofread.models import Document


def _document(status=jobs.STATUS_PENDING, claim_id=None):
    return Document(
        document_id="doc-1",
        file_name="a.txt",
        file_type="txt",
        file_path="x/a.txt",
        original_text="text",
        current_text="text",
        status=status,
        claim_id=claim_id,
    )


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("pending", "in-progress", True),
        ("pending", "pending", True),
        ("pending", "complete", False),
        ("in-progress", "complete", True),
        ("in-progress", "failed", True),
        ("in-progress", "canceled", True),
        ("in-progress", "pending", True),
        ("complete", "pending", True),
        ("complete", "in-progress", False),
        ("failed", "pending", True),
        ("failed", "complete", False),
        ("canceled", "pending", True),
        ("canceled", "failed", False),
    ],
)
def test_transition_table(current, target, allowed):
    assert jobs.can_transition(current, target) is allowed


def test_claim_records_token_and_time():
    document = jobs.apply_transition(_document(), jobs.STATUS_IN_PROGRESS, claim_id="c1", now=100.0)

    assert document.status == "in-progress"
    assert document.claim_id == "c1"
    assert document.claimed_at == 100.0
    assert document.last_update == 100.0


def test_leaving_in_progress_clears_claim_and_applies_changes():
    document = _document(jobs.STATUS_IN_PROGRESS, claim_id="c1")
    jobs.apply_transition(document, jobs.STATUS_FAILED, claim_id="c1", now=5.0, error="boom")

    assert document.status == "failed"
    assert document.error == "boom"
    assert document.claim_id is None
    assert document.claimed_at is None


def test_wrong_claim_cannot_finish():
    document = _document(jobs.STATUS_IN_PROGRESS, claim_id="c1")
    with pytest.raises(StaleClaimError):
        jobs.apply_transition(document, jobs.STATUS_COMPLETE, claim_id="other")
    assert document.status == "in-progress"


def test_requeue_while_in_progress_is_busy():
    document = _document(jobs.STATUS_IN_PROGRESS, claim_id="c1")
    with pytest.raises(DocumentBusyError):
        jobs.apply_transition(document, jobs.STATUS_PENDING)


def test_invalid_transitions_rejected():
    with pytest.raises(InvalidTransitionError):
        jobs.apply_transition(_document(jobs.STATUS_COMPLETE), jobs.STATUS_IN_PROGRESS, claim_id="c1")
    with pytest.raises(InvalidTransitionError):
        jobs.apply_transition(_document(), "archived")


def test_requeue_sets_request_time():
    document = jobs.apply_transition(_document(jobs.STATUS_COMPLETE), jobs.STATUS_PENDING, now=42.0)
    assert document.requested_at == 42.0
    assert document.status == "pending"


def test_status_payload_fields():
    payload = jobs.status_payload(_document())
    assert payload == {
        "document_id": "doc-1",
        "status": "pending",
        "cancellation_requested": False,
        "version_number": 0,
        "finished": False,
        "error": None,
    }


def test_status_payload_marks_terminal_states():
    for status in ("complete", "failed", "canceled"):
        assert jobs.status_payload(_document(status))["finished"] is True
    assert jobs.status_payload(_document(jobs.STATUS_IN_PROGRESS, claim_id="c1"))["finished"] is False


def test_write_from_replaced_claim_is_stale_not_invalid():
    # the claim was reset to pending before the worker finished
    with pytest.raises(StaleClaimError):
        jobs.apply_transition(_document(jobs.STATUS_PENDING), jobs.STATUS_COMPLETE, claim_id="c1")
    with pytest.raises(StaleClaimError):
        jobs.apply_transition(_document(jobs.STATUS_PENDING), jobs.STATUS_FAILED, claim_id="c1")
    # a newer claim owns the document
    with pytest.raises(StaleClaimError):
        jobs.apply_transition(_document(jobs.STATUS_IN_PROGRESS, claim_id="c2"), jobs.STATUS_FAILED, claim_id="c1")
