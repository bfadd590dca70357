"""
Persistent Document Storage for the proofreading service
--------------------------------------------------------
Provides Redis-based persistent storage for documents and their correction
logs, with an in-memory fallback for development and tests.

Every status change is a single conditional write: Redis updates run inside
WATCH/MULTI on the document key, the in-memory backend under one lock. That
is what makes claiming a pending document exclusive across workers.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import redis
from dotenv import load_dotenv

from proofread import jobs
from proofread.errors import (
    DocumentNotFoundError,
    InvalidTransitionError,
    PersistenceError,
    StaleClaimError,
)
from proofread.models import Claim, CorrectionLogEntry, Document, new_id

load_dotenv()

logger = logging.getLogger(__name__)

Mutation = Callable[[Document], Document]


class PersistentDocumentStorage:
    """Redis-based persistent storage for documents and correction logs."""

    def __init__(
        self,
        prefix: str = "proof",
        redis_url: Optional[str] = None,
        redis_client: Optional[redis.Redis] = None,
        in_memory: bool = False,
    ):
        """Create a storage helper scoped by a namespace prefix.

        Pass ``in_memory=True`` to skip Redis entirely; otherwise a failed
        connection falls back to in-memory storage with a warning.
        """
        self.redis_available = False
        self.redis_client = None
        if not in_memory:
            try:
                self.redis_client = redis_client or redis.from_url(
                    redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0"),
                    decode_responses=True,
                )
                self.redis_client.ping()
                self.redis_available = True
                logger.info("Redis connected successfully")
            except (redis.ConnectionError, redis.RedisError) as e:
                logger.warning("Redis not available, falling back to in-memory storage: %s", e)
                self.redis_client = None

        self._lock = threading.RLock()
        self._memory_documents: Dict[str, Dict[str, Any]] = {}
        self._memory_logs: Dict[str, List[Dict[str, Any]]] = {}

        # Key prefixes (scoped by namespace)
        namespace = prefix.strip() or "proof"
        self.DOC_PREFIX = f"{namespace}_doc:"
        self.LOG_PREFIX = f"{namespace}_log:"
        self.DOC_LIST_KEY = f"{namespace}_docs"
        self.PENDING_KEY = f"{namespace}_pending"

    def _get_doc_key(self, document_id: str) -> str:
        return f"{self.DOC_PREFIX}{document_id}"

    def _get_log_key(self, document_id: str) -> str:
        return f"{self.LOG_PREFIX}{document_id}"

    def _serialize(self, data: Any) -> str:
        return json.dumps(data, default=str, ensure_ascii=False)

    def _deserialize(self, data: str) -> Any:
        return json.loads(data)

    # Document Management
    def create_document(self, document: Document) -> Document:
        """Store a new document; a pending one is queued for correction."""
        data = document.to_dict()
        try:
            if self.redis_available:
                with self.redis_client.pipeline() as pipe:
                    pipe.set(self._get_doc_key(document.document_id), self._serialize(data))
                    pipe.sadd(self.DOC_LIST_KEY, document.document_id)
                    if document.status == jobs.STATUS_PENDING:
                        pipe.zadd(self.PENDING_KEY, {document.document_id: document.requested_at})
                    pipe.execute()
            else:
                with self._lock:
                    self._memory_documents[document.document_id] = data
                    self._memory_logs.setdefault(document.document_id, [])
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to create document {document.document_id}: {e}") from e
        return document

    def get_document(self, document_id: str) -> Optional[Document]:
        """Get a document by ID, or None."""
        try:
            if self.redis_available:
                data = self.redis_client.get(self._get_doc_key(document_id))
                return Document.from_dict(self._deserialize(data)) if data else None
            with self._lock:
                data = self._memory_documents.get(document_id)
                return Document.from_dict(dict(data)) if data else None
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to get document {document_id}: {e}") from e

    def require_document(self, document_id: str) -> Document:
        document = self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def list_documents(self) -> List[Document]:
        """All documents, oldest first."""
        try:
            if self.redis_available:
                ids = sorted(self.redis_client.smembers(self.DOC_LIST_KEY))
                documents = [self.get_document(document_id) for document_id in ids]
            else:
                with self._lock:
                    documents = [Document.from_dict(dict(d)) for d in self._memory_documents.values()]
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to list documents: {e}") from e
        return sorted((d for d in documents if d), key=lambda d: d.created_at)

    def update_document(
        self,
        document_id: str,
        mutate: Mutation,
        log_entry: Optional[CorrectionLogEntry] = None,
    ) -> Document:
        """Apply ``mutate`` to the stored document as one atomic write.

        ``mutate`` receives the current document and may raise to abort the
        update. ``log_entry``, when given, is appended in the same write.
        """
        if self.redis_available:
            return self._update_redis(document_id, mutate, log_entry)
        return self._update_memory(document_id, mutate, log_entry)

    def _update_memory(
        self,
        document_id: str,
        mutate: Mutation,
        log_entry: Optional[CorrectionLogEntry],
    ) -> Document:
        with self._lock:
            data = self._memory_documents.get(document_id)
            if data is None:
                raise DocumentNotFoundError(document_id)
            updated = mutate(Document.from_dict(dict(data)))
            self._memory_documents[document_id] = updated.to_dict()
            if log_entry is not None:
                self._memory_logs.setdefault(document_id, []).append(log_entry.to_dict())
            return updated

    def _update_redis(
        self,
        document_id: str,
        mutate: Mutation,
        log_entry: Optional[CorrectionLogEntry],
    ) -> Document:
        doc_key = self._get_doc_key(document_id)
        try:
            with self.redis_client.pipeline() as pipe:
                while True:
                    try:
                        pipe.watch(doc_key)
                        data = pipe.get(doc_key)
                        if data is None:
                            raise DocumentNotFoundError(document_id)
                        updated = mutate(Document.from_dict(self._deserialize(data)))

                        pipe.multi()
                        pipe.set(doc_key, self._serialize(updated.to_dict()))
                        if updated.status == jobs.STATUS_PENDING:
                            pipe.zadd(self.PENDING_KEY, {document_id: updated.requested_at})
                        else:
                            pipe.zrem(self.PENDING_KEY, document_id)
                        if log_entry is not None:
                            pipe.rpush(self._get_log_key(document_id), self._serialize(log_entry.to_dict()))
                        pipe.execute()
                        return updated
                    except redis.WatchError:
                        # Someone else wrote the document; re-read and re-check.
                        continue
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to update document {document_id}: {e}") from e

    def _pending_ids(self) -> List[str]:
        """Pending document IDs, oldest request first."""
        try:
            if self.redis_available:
                return list(self.redis_client.zrange(self.PENDING_KEY, 0, -1))
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to list pending documents: {e}") from e
        with self._lock:
            pending = [d for d in self._memory_documents.values() if d["status"] == jobs.STATUS_PENDING]
            return [d["document_id"] for d in sorted(pending, key=lambda d: d["requested_at"])]

    # Claims
    def claim(self, document_id: str) -> Optional[Claim]:
        """Atomically move one pending document to in-progress.

        Returns None when the document is no longer pending, i.e. another
        worker got there first.
        """
        claim_id = new_id()

        def _claim(document: Document) -> Document:
            return jobs.apply_transition(document, jobs.STATUS_IN_PROGRESS, claim_id=claim_id, error=None)

        try:
            document = self.update_document(document_id, _claim)
        except (InvalidTransitionError, DocumentNotFoundError):
            return None
        return Claim(document_id=document_id, claim_id=claim_id, claimed_at=document.claimed_at)

    def claim_next(self) -> Optional[Claim]:
        """Claim the oldest pending document, if any."""
        for document_id in self._pending_ids():
            claim = self.claim(document_id)
            if claim is not None:
                return claim
        return None

    def touch_claim(self, claim: Claim) -> Document:
        """Refresh the heartbeat of a live claim; raises StaleClaimError otherwise."""

        def _touch(document: Document) -> Document:
            jobs.check_claim(document, claim.claim_id)
            document.last_update = time.time()
            return document

        return self.update_document(claim.document_id, _touch)

    def finish_claim(self, claim: Claim, target: str, **changes: Any) -> Document:
        """Leave in-progress for ``target`` on behalf of the claim holder."""
        return self.update_document(
            claim.document_id,
            lambda document: jobs.apply_transition(document, target, claim_id=claim.claim_id, **changes),
        )

    def commit_correction(self, claim: Claim, entry: CorrectionLogEntry) -> Document:
        """Append the log entry and publish the corrected text in one write."""

        def _commit(document: Document) -> Document:
            return jobs.apply_transition(
                document,
                jobs.STATUS_COMPLETE,
                claim_id=claim.claim_id,
                current_text=entry.raw_corrected_text,
                version_number=document.version_number + 1,
                error=None,
            )

        return self.update_document(claim.document_id, _commit, log_entry=entry)

    def recover_stalled_claims(self, threshold_s: float, now: Optional[float] = None) -> List[str]:
        """Return claims with no heartbeat for ``threshold_s`` seconds to pending."""
        now = time.time() if now is None else now
        recovered: List[str] = []
        for document in self.list_documents():
            if document.status != jobs.STATUS_IN_PROGRESS:
                continue
            if now - document.last_update <= threshold_s:
                continue
            stale_claim = document.claim_id

            def _reset(current: Document, stale_claim=stale_claim) -> Document:
                # The snapshot may be old; a heartbeat since then keeps the claim.
                if now - current.last_update <= threshold_s:
                    raise StaleClaimError(f"Claim {stale_claim} sent a heartbeat; not stalled")
                return jobs.apply_transition(
                    current,
                    jobs.STATUS_PENDING,
                    claim_id=stale_claim,
                    now=now,
                    error="No heartbeat from worker (stalled).",
                )

            try:
                self.update_document(document.document_id, _reset)
            except (StaleClaimError, InvalidTransitionError):
                continue
            logger.warning("Recovered stalled claim for document %s", document.document_id)
            recovered.append(document.document_id)
        return recovered

    # Correction Log
    def get_log_entries(self, document_id: str) -> List[CorrectionLogEntry]:
        """All log entries for a document in creation order."""
        try:
            if self.redis_available:
                raw_entries = self.redis_client.lrange(self._get_log_key(document_id), 0, -1)
                entries = [self._deserialize(raw) for raw in raw_entries]
            else:
                with self._lock:
                    entries = [dict(e) for e in self._memory_logs.get(document_id, [])]
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to get log entries for {document_id}: {e}") from e
        return [CorrectionLogEntry.from_dict(entry) for entry in entries]

    def get_latest_log_entry(self, document_id: str) -> Optional[CorrectionLogEntry]:
        entries = self.get_log_entries(document_id)
        return entries[-1] if entries else None


class DocumentThreadPool:
    """Manages the ThreadPool used for concurrent chunk correction."""

    def __init__(self, max_workers: int = 2, thread_name_prefix: str = "proof_worker"):
        self.max_workers = max_workers
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self.active_futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit_chunk(self, job_id: str, chunk_index: int, func, *args, **kwargs) -> Future:
        """Submit chunk processing task."""
        future = self.executor.submit(func, *args, **kwargs)
        with self._lock:
            self.active_futures[f"{job_id}:{chunk_index}"] = future
        return future

    def cleanup_job(self, job_id: str) -> None:
        """Forget every future of a job."""
        with self._lock:
            for key in [k for k in self.active_futures if k.startswith(f"{job_id}:")]:
                del self.active_futures[key]

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the executor."""
        self.executor.shutdown(wait=wait)
