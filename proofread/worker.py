"""Background worker that drives pending documents through correction.

The worker polls for a pending document, claims it (an atomic
pending -> in-progress write, so two workers never share a document) and runs
extract -> correct -> highlight -> commit. Cancellation is cooperative: the
flag is read at every checkpoint and before every chunk batch. Nothing but
the status changes until the final commit, which appends the log entry and
publishes the corrected text in one write.

Failures land in ``failed`` or back in ``pending`` according to
``CorrectionConfig.failure_policy``; one policy covers every failure class.
"""

from __future__ import annotations

import argparse
import logging
import os
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv

from job_storage import PersistentDocumentStorage

from . import jobs
from .batch import BatchCorrector
from .config import CorrectionConfig, load_config
from .diff import highlight
from .errors import CorrectionCancelled, PersistenceError, ProofreadError, StaleClaimError
from .extract import extract_text
from .llm import CorrectionClient
from .logging_utils import setup_logging
from .models import Claim, CorrectionLogEntry, new_id
from .storage import LocalFileStorage

logger = logging.getLogger(__name__)


class Worker:
    def __init__(
        self,
        store: PersistentDocumentStorage,
        file_storage: LocalFileStorage,
        corrector: BatchCorrector,
        config: CorrectionConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.file_storage = file_storage
        self.corrector = corrector
        self.config = config
        self.sleep = sleep

    def _is_cancelled(self, claim: Claim) -> bool:
        # Reading the flag doubles as the claim heartbeat.
        return self.store.touch_claim(claim).cancellation_requested

    def _checkpoint(self, claim: Claim, step: str) -> None:
        if self._is_cancelled(claim):
            logger.info("Cancellation observed for document %s before %s", claim.document_id, step)
            raise CorrectionCancelled()

    def _extract(self, claim: Claim) -> str:
        document = self.store.require_document(claim.document_id)
        data = self.file_storage.download(document.file_path)
        logger.info("File downloaded for document %s", claim.document_id)
        text = extract_text(data, document.file_type)
        logger.info("Text extraction successful for document %s", claim.document_id)
        return text

    def _finish(self, claim: Claim, target: str, error: Optional[str] = None) -> str:
        try:
            self.store.finish_claim(claim, target, error=error)
        except StaleClaimError:
            logger.warning("Lost claim on document %s before marking it %s", claim.document_id, target)
        except PersistenceError as exc:
            # The claim stays in-progress until stalled-claim recovery resets it.
            logger.error("Could not mark document %s %s: %s", claim.document_id, target, exc)
        return target

    def process_claim(self, claim: Claim) -> str:
        """Run one correction cycle for a claimed document; return its final status."""
        document_id = claim.document_id
        document = self.store.require_document(document_id)
        if document.cancellation_requested:
            logger.info("Job cancelled at claim time for document %s", document_id)
            return self._finish(claim, jobs.STATUS_CANCELED)

        try:
            text = self._extract(claim)
            self._checkpoint(claim, "correction")
            result = self.corrector.correct_document(text, lambda: self._is_cancelled(claim))
            self._checkpoint(claim, "highlighting")
            highlighted = highlight(text, result.corrected_text)
            self._checkpoint(claim, "commit")
        except CorrectionCancelled:
            logger.info("Job cancelled for document %s", document_id)
            return self._finish(claim, jobs.STATUS_CANCELED)
        except StaleClaimError:
            logger.warning("Claim on document %s was taken over; dropping work", document_id)
            return jobs.STATUS_PENDING
        except Exception as exc:
            logger.error("Correction failed for document %s: %s", document_id, exc)
            return self._finish(claim, self.config.failure_policy, error=str(exc))

        entry = CorrectionLogEntry(
            entry_id=new_id(),
            document_id=document_id,
            raw_corrected_text=result.corrected_text,
            highlighted_text=highlighted,
            metadata=result.metadata.to_dict() if result.metadata else {},
        )
        try:
            document = self.store.commit_correction(claim, entry)
        except StaleClaimError:
            logger.warning("Claim on document %s was taken over before commit", document_id)
            return jobs.STATUS_PENDING
        except PersistenceError as exc:
            logger.error("Failed to persist correction for document %s: %s", document_id, exc)
            return self._finish(claim, self.config.failure_policy, error=str(exc))

        logger.info(
            "Proofreading completed for document %s (version %d)", document_id, document.version_number
        )
        return document.status

    def process_next(self) -> bool:
        """Claim and process one pending document; False when there is none."""
        claim = self.store.claim_next()
        if claim is None:
            return False
        logger.info("Claimed pending document %s", claim.document_id)
        self.process_claim(claim)
        return True

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info("Worker started (poll interval %.1fs)", self.config.poll_interval_s)
        while not stop_event.is_set():
            try:
                self.store.recover_stalled_claims(self.config.stall_threshold_s)
                processed = self.process_next()
            except ProofreadError as exc:
                logger.error("Error in worker loop: %s", exc)
                processed = False
            if not processed:
                self.sleep(self.config.poll_interval_s)


def build_worker(config: Optional[CorrectionConfig] = None) -> Worker:
    config = config or load_config()
    store = PersistentDocumentStorage(prefix="proof")
    file_storage = LocalFileStorage(os.getenv("UPLOAD_FOLDER", "uploads"))
    corrector = BatchCorrector(CorrectionClient.from_config(config), config)
    return Worker(store, file_storage, corrector, config)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(prog="proofread-worker", description="Proofreading job worker")
    parser.add_argument("--once", action="store_true", help="Process at most one pending document and exit")
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between polls when idle")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", default=None, help="Optional log file path")
    args = parser.parse_args(argv)

    setup_logging(
        log_path=Path(args.log_file) if args.log_file else None,
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
    )
    config = load_config()
    if args.poll_interval is not None:
        config = replace(config, poll_interval_s=args.poll_interval)

    worker = build_worker(config)
    if args.once:
        worker.process_next()
        return 0
    try:
        worker.run_forever()
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
