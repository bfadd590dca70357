"""Chunk orchestration for whole-document correction."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Protocol

from job_storage import DocumentThreadPool

from .chunker import build_chunker, count_tokens
from .config import CHUNK_JOIN_SEPARATOR, CorrectionConfig
from .errors import CorrectionCancelled
from .models import ChunkOutcome, CorrectionMetadata, CorrectionResult, new_id

logger = logging.getLogger(__name__)


class ChunkCorrector(Protocol):
    def correct_chunk(self, chunk: str) -> str: ...


def never_cancelled() -> bool:
    return False


class BatchCorrector:
    """Drives a :class:`ChunkCorrector` over every chunk of a document.

    Chunks run sequentially when ``batch_size`` is 1, otherwise in batches
    of ``batch_size`` on the thread pool. ``is_cancelled`` is polled before
    every batch; a chunk already sent is allowed to finish. Any failure or
    cancellation discards the chunks corrected so far.
    """

    def __init__(
        self,
        client: ChunkCorrector,
        config: CorrectionConfig,
        chunker: Optional[Callable[[str], List[str]]] = None,
        thread_pool: Optional[DocumentThreadPool] = None,
    ):
        self.client = client
        self.config = config
        self.chunker = chunker or build_chunker(config)
        self.counts_tokens = chunker is None and config.chunk_strategy == "tokens"
        self.batch_size = max(1, config.batch_size)
        self.thread_pool = thread_pool
        if self.thread_pool is None and self.batch_size > 1:
            self.thread_pool = DocumentThreadPool(max_workers=self.batch_size)

    def _total_tokens(self, text: str) -> int:
        if not self.counts_tokens:
            return 0
        return count_tokens(text, self.config.model)

    def _correct_one(self, index: int, chunk: str, total: int) -> tuple:
        started = time.monotonic()
        logger.info("Sending chunk %d/%d: %d characters", index + 1, total, len(chunk))
        corrected = self.client.correct_chunk(chunk)
        duration = time.monotonic() - started
        logger.info("Chunk %d/%d corrected in %.0fms", index + 1, total, duration * 1000)
        return corrected, ChunkOutcome(index, len(chunk), len(corrected), duration)

    def _run_batch(self, job_id: str, batch: List[tuple], total: int) -> List[tuple]:
        if len(batch) == 1 or self.thread_pool is None:
            return [self._correct_one(index, chunk, total) for index, chunk in batch]

        futures = [
            self.thread_pool.submit_chunk(job_id, index, self._correct_one, index, chunk, total)
            for index, chunk in batch
        ]
        # Wait for every sibling before raising so no chunk outlives its job.
        errors = [future.exception() for future in futures]
        for error in errors:
            if error is not None:
                raise error
        return [future.result() for future in futures]

    def correct_document(
        self,
        text: str,
        is_cancelled: Callable[[], bool] = never_cancelled,
    ) -> CorrectionResult:
        started = time.monotonic()
        logger.info("Starting document correction: %d characters", len(text))

        chunks = self.chunker(text)
        total = len(chunks)
        total_tokens = self._total_tokens(text)
        logger.info("Document split into %d chunk(s), ~%d tokens", total, total_tokens)

        job_id = new_id()
        indexed = list(enumerate(chunks))
        corrected_chunks: List[str] = []
        outcomes: List[ChunkOutcome] = []
        try:
            for start in range(0, total, self.batch_size):
                if is_cancelled():
                    logger.info("Cancellation observed before chunk %d/%d", start + 1, total)
                    raise CorrectionCancelled(completed_chunks=len(corrected_chunks))
                batch = indexed[start : start + self.batch_size]
                for corrected, outcome in self._run_batch(job_id, batch, total):
                    corrected_chunks.append(corrected)
                    outcomes.append(outcome)
        finally:
            if self.thread_pool is not None:
                self.thread_pool.cleanup_job(job_id)

        duration = time.monotonic() - started
        logger.info("Document corrected in %.0fms (%d chunks)", duration * 1000, total)
        corrected_text = corrected_chunks[0] if total == 1 else CHUNK_JOIN_SEPARATOR.join(corrected_chunks)
        metadata = CorrectionMetadata(
            model=self.config.model,
            total_tokens=total_tokens,
            chunk_count=total,
            duration_s=duration,
            chunks=outcomes,
        )
        return CorrectionResult(corrected_text=corrected_text, metadata=metadata)
