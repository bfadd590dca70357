from __future__ import annotations

import threading

import pytest
import redis

from job_storage import DocumentThreadPool, PersistentDocumentStorage
from proofread import jobs
from proofread.errors import DocumentNotFoundError, StaleClaimError
from proofread.models import CorrectionLogEntry, new_id


class DownRedis:
    def ping(self):
        raise redis.ConnectionError("connection refused")


def _entry(document_id, text):
    return CorrectionLogEntry(
        entry_id=new_id(),
        document_id=document_id,
        raw_corrected_text=text,
        highlighted_text=text,
    )


def test_unreachable_redis_falls_back_to_memory():
    store = PersistentDocumentStorage(prefix="t", redis_client=DownRedis())
    assert store.redis_available is False
    assert store.redis_client is None


def test_key_prefixes_are_namespaced():
    store = PersistentDocumentStorage(prefix="ns", in_memory=True)
    assert store._get_doc_key("1") == "ns_doc:1"
    assert store._get_log_key("1") == "ns_log:1"
    assert store.PENDING_KEY == "ns_pending"


def test_create_and_get(store, add_document):
    document = add_document("Some text.")

    loaded = store.get_document(document.document_id)
    assert loaded == document
    assert store.get_document("missing") is None
    with pytest.raises(DocumentNotFoundError):
        store.require_document("missing")


def test_update_missing_document_raises(store):
    with pytest.raises(DocumentNotFoundError):
        store.update_document("missing", lambda document: document)


def test_claim_is_exclusive(store, add_document):
    document = add_document()

    first = store.claim(document.document_id)
    second = store.claim(document.document_id)

    assert first is not None
    assert second is None
    assert store.require_document(document.document_id).claim_id == first.claim_id


def test_concurrent_claims_have_one_winner(store, add_document):
    document = add_document()
    barrier = threading.Barrier(8)
    results = []
    results_lock = threading.Lock()

    def contender():
        barrier.wait()
        claim = store.claim(document.document_id)
        with results_lock:
            results.append(claim)

    threads = [threading.Thread(target=contender) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [claim for claim in results if claim is not None]
    assert len(winners) == 1
    assert store.require_document(document.document_id).status == "in-progress"


def test_claim_next_takes_oldest_request(store, add_document):
    newer = add_document(requested_at=200.0)
    older = add_document(requested_at=100.0)

    assert store.claim_next().document_id == older.document_id
    assert store.claim_next().document_id == newer.document_id
    assert store.claim_next() is None


def test_commit_publishes_text_and_log_together(store, add_document):
    document = add_document("helo")
    claim = store.claim(document.document_id)

    committed = store.commit_correction(claim, _entry(document.document_id, "hello"))

    assert committed.status == "complete"
    assert committed.current_text == "hello"
    assert committed.original_text == "helo"
    assert committed.version_number == 1
    assert committed.claim_id is None
    assert [e.raw_corrected_text for e in store.get_log_entries(document.document_id)] == ["hello"]
    assert store.get_latest_log_entry(document.document_id).raw_corrected_text == "hello"


def test_version_number_tracks_log_length(store, add_document):
    document = add_document("v0")
    for text in ("v1", "v2", "v3"):
        claim = store.claim(document.document_id)
        store.commit_correction(claim, _entry(document.document_id, text))
        store.update_document(
            document.document_id, lambda d: jobs.apply_transition(d, jobs.STATUS_PENDING)
        )

    loaded = store.require_document(document.document_id)
    assert loaded.version_number == len(store.get_log_entries(document.document_id)) == 3


def test_stale_claim_cannot_commit(store, add_document):
    document = add_document()
    claim = store.claim(document.document_id)
    store.recover_stalled_claims(threshold_s=-1)

    with pytest.raises(StaleClaimError):
        store.commit_correction(claim, _entry(document.document_id, "late"))
    with pytest.raises(StaleClaimError):
        store.touch_claim(claim)

    loaded = store.require_document(document.document_id)
    assert loaded.status == "pending"
    assert loaded.version_number == 0
    assert store.get_log_entries(document.document_id) == []


def test_touch_claim_refreshes_heartbeat(store, add_document):
    document = add_document()
    claim = store.claim(document.document_id)
    store.update_document(document.document_id, lambda d: setattr(d, "last_update", 0.0) or d)

    touched = store.touch_claim(claim)
    assert touched.last_update > 0.0


def test_recover_stalled_claims(store, add_document):
    stalled = add_document()
    fresh = add_document()
    store.claim(stalled.document_id)
    store.claim(fresh.document_id)
    store.update_document(stalled.document_id, lambda d: setattr(d, "last_update", 1000.0) or d)
    now = store.require_document(fresh.document_id).last_update

    recovered = store.recover_stalled_claims(threshold_s=60, now=now)

    assert recovered == [stalled.document_id]
    reset = store.require_document(stalled.document_id)
    assert reset.status == "pending"
    assert reset.claim_id is None
    assert "stalled" in reset.error
    assert store.require_document(fresh.document_id).status == "in-progress"


def test_heartbeat_after_listing_keeps_claim(store, add_document, monkeypatch):
    document = add_document()
    claim = store.claim(document.document_id)
    store.update_document(document.document_id, lambda d: setattr(d, "last_update", 0.0) or d)
    snapshot = store.list_documents()

    # the worker checks in after recovery has listed the documents
    store.touch_claim(claim)
    monkeypatch.setattr(store, "list_documents", lambda: snapshot)

    assert store.recover_stalled_claims(threshold_s=60) == []
    live = store.require_document(document.document_id)
    assert live.status == "in-progress"
    assert live.claim_id == claim.claim_id


def test_list_documents_oldest_first(store, add_document):
    first = add_document(created_at=1.0)
    second = add_document(created_at=2.0)
    assert [d.document_id for d in store.list_documents()] == [first.document_id, second.document_id]


def test_thread_pool_tracks_and_forgets_job_futures():
    pool = DocumentThreadPool(max_workers=2)
    try:
        futures = [pool.submit_chunk("job", index, lambda value: value * 2, index) for index in range(3)]
        assert [future.result() for future in futures] == [0, 2, 4]
        assert sorted(pool.active_futures) == ["job:0", "job:1", "job:2"]

        pool.cleanup_job("job")
        assert pool.active_futures == {}
    finally:
        pool.shutdown()
