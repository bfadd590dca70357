"""Document operations used by the HTTP API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from job_storage import PersistentDocumentStorage

from . import jobs
from .diff import highlight
from .errors import DocumentBusyError, RollbackError, UnsupportedFileTypeError
from .extract import extract_text, file_type_from_name, is_supported
from .models import Document, new_id
from .storage import LocalFileStorage

logger = logging.getLogger(__name__)

ROLLBACK_TARGETS = {"original", "previous"}


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class DocumentService:
    def __init__(self, store: PersistentDocumentStorage, file_storage: LocalFileStorage):
        self.store = store
        self.file_storage = file_storage

    def register_upload(self, file_name: str, data: bytes) -> Document:
        """Store an upload, extract its text and queue its first correction."""
        file_type = file_type_from_name(file_name)
        if not is_supported(file_type):
            raise UnsupportedFileTypeError(file_type or file_name)

        text = extract_text(data, file_type)
        path = self.file_storage.upload(file_name, data)
        document = Document(
            document_id=new_id(),
            file_name=file_name,
            file_type=file_type,
            file_path=path,
            original_text=text,
            current_text=text,
            status=jobs.STATUS_PENDING,
        )
        try:
            self.store.create_document(document)
        except Exception:
            self.file_storage.delete(path)
            raise
        logger.info("Registered document %s (%s, %d characters)", document.document_id, file_type, len(text))
        return document

    def request_correction(self, document_id: str) -> Document:
        """Start a fresh correction cycle; rejected while one is running."""

        def _enqueue(document: Document) -> Document:
            return jobs.apply_transition(
                document, jobs.STATUS_PENDING, cancellation_requested=False, error=None
            )

        document = self.store.update_document(document_id, _enqueue)
        logger.info("Correction requested for document %s", document_id)
        return document

    def request_cancellation(self, document_id: str) -> Document:
        """Raise the cancellation flag; the worker notices it at its next checkpoint."""

        def _flag(document: Document) -> Document:
            document.cancellation_requested = True
            return document

        document = self.store.update_document(document_id, _flag)
        logger.info("Cancellation requested for document %s", document_id)
        return document

    def get_status(self, document_id: str) -> Dict[str, Any]:
        return jobs.status_payload(self.store.require_document(document_id))

    def list_versions(self, document_id: str) -> List[Dict[str, Any]]:
        self.store.require_document(document_id)
        return [
            {
                "id": entry.entry_id,
                "version_number": position,
                "created_at": _iso(entry.created_at),
                "description": "Proofreading revision",
            }
            for position, entry in enumerate(self.store.get_log_entries(document_id), start=1)
        ]

    def get_details(self, document_id: str) -> Dict[str, Any]:
        document = self.store.require_document(document_id)
        return {
            "document_id": document.document_id,
            "file_name": document.file_name,
            "status": document.status,
            "version_number": document.version_number,
            "original_text": document.original_text,
            "current_text": document.current_text,
            "highlighted_text": highlight(document.original_text, document.current_text),
        }

    def rollback(self, document_id: str, target: str) -> Document:
        """Point ``current_text`` at the original or the latest correction.

        The log is left untouched and the document goes back to pending.
        """
        if target not in ROLLBACK_TARGETS:
            raise RollbackError(f"Unknown rollback target: {target!r}. Use 'original' or 'previous'")

        document = self.store.require_document(document_id)
        if document.status == jobs.STATUS_IN_PROGRESS:
            raise DocumentBusyError(f"Document {document_id} is being corrected; rollback rejected")

        if target == "original":
            new_text = document.original_text
        else:
            entry = self.store.get_latest_log_entry(document_id)
            if entry is None:
                raise RollbackError("No corrections found. Cannot rollback to previous version.")
            new_text = entry.raw_corrected_text

        # apply_transition refuses in-progress -> pending without a claim, so a
        # claim taken since the check above still wins.
        def _rollback(current: Document) -> Document:
            return jobs.apply_transition(
                current,
                jobs.STATUS_PENDING,
                current_text=new_text,
                cancellation_requested=False,
                error=None,
            )

        document = self.store.update_document(document_id, _rollback)
        logger.info("Rollback to %s successful for document %s", target, document_id)
        return document
