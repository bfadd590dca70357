"""Error types raised by the proofreading pipeline."""

from __future__ import annotations

from typing import Optional


class ProofreadError(Exception):
    """Base class for every pipeline error."""


class CorrectionServiceError(ProofreadError):
    """The correction service kept failing until the retry budget ran out."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[str] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class CorrectionCancelled(ProofreadError):
    """Raised when a cancellation request is observed at a checkpoint."""

    def __init__(self, message: str = "Correction cancelled by request.", completed_chunks: int = 0):
        super().__init__(message)
        self.completed_chunks = completed_chunks


class ExtractionError(ProofreadError):
    pass


class UnsupportedFileTypeError(ExtractionError):
    def __init__(self, file_type: str):
        super().__init__(f"Unsupported file type: {file_type}")
        self.file_type = file_type


class PersistenceError(ProofreadError):
    pass


class DocumentNotFoundError(ProofreadError):
    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class InvalidTransitionError(ProofreadError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid status transition: {current} -> {target}")
        self.current = current
        self.target = target


class DocumentBusyError(ProofreadError):
    """The document is being corrected and cannot be changed right now."""


class StaleClaimError(ProofreadError):
    """A worker wrote with a claim token that no longer owns the document."""


class RollbackError(ProofreadError):
    pass
