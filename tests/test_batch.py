from __future__ import annotations

import threading
import time

import pytest

from proofread.batch import BatchCorrector
from proofread.config import CorrectionConfig
from proofread.errors import CorrectionCancelled, CorrectionServiceError


def split_on_pipes(text):
    return text.split("|")


class TaggingClient:
    """Wraps every chunk in a tag; ``delays`` lets early chunks finish last."""

    def __init__(self, delays=None, fail_on=None):
        self.delays = delays or {}
        self.fail_on = fail_on
        self.calls = []
        self._lock = threading.Lock()

    def correct_chunk(self, chunk):
        with self._lock:
            self.calls.append(chunk)
        time.sleep(self.delays.get(chunk, 0))
        if chunk == self.fail_on:
            raise CorrectionServiceError("service down", attempts=3, last_error="service down")
        return f"<{chunk}>"


def _corrector(client, batch_size=2):
    return BatchCorrector(client, CorrectionConfig(batch_size=batch_size), chunker=split_on_pipes)


def test_single_chunk_returned_without_separator():
    client = TaggingClient()
    result = _corrector(client).correct_document("only")

    assert result.corrected_text == "<only>"
    assert client.calls == ["only"]
    assert result.metadata.chunk_count == 1


def test_chunks_joined_with_newline_in_order():
    result = _corrector(TaggingClient(), batch_size=1).correct_document("a|b|c")
    assert result.corrected_text == "<a>\n<b>\n<c>"


def test_concurrent_batches_keep_input_order():
    # the first chunk of each batch is the slowest to come back
    client = TaggingClient(delays={"c1": 0.05, "c3": 0.05})
    result = _corrector(client, batch_size=2).correct_document("c1|c2|c3|c4|c5")

    assert result.corrected_text == "<c1>\n<c2>\n<c3>\n<c4>\n<c5>"
    assert [outcome.index for outcome in result.metadata.chunks] == [0, 1, 2, 3, 4]
    assert sorted(client.calls) == ["c1", "c2", "c3", "c4", "c5"]


def test_cancellation_stops_before_next_batch():
    client = TaggingClient()

    def cancelled_after_two():
        return len(client.calls) >= 2

    with pytest.raises(CorrectionCancelled) as excinfo:
        _corrector(client, batch_size=1).correct_document("c1|c2|c3|c4|c5", cancelled_after_two)

    assert client.calls == ["c1", "c2"]
    assert excinfo.value.completed_chunks == 2


def test_cancelled_before_start_sends_nothing():
    client = TaggingClient()
    with pytest.raises(CorrectionCancelled):
        _corrector(client).correct_document("a|b", lambda: True)
    assert client.calls == []


def test_failed_chunk_aborts_document():
    client = TaggingClient(fail_on="c2")
    with pytest.raises(CorrectionServiceError):
        _corrector(client, batch_size=1).correct_document("c1|c2|c3")
    assert client.calls == ["c1", "c2"]


def test_failure_in_concurrent_batch_waits_for_sibling():
    client = TaggingClient(delays={"c2": 0.05}, fail_on="c1")
    corrector = _corrector(client, batch_size=2)

    with pytest.raises(CorrectionServiceError):
        corrector.correct_document("c1|c2|c3")

    assert sorted(client.calls) == ["c1", "c2"]
    assert corrector.thread_pool.active_futures == {}


def test_metadata_describes_run():
    result = _corrector(TaggingClient(), batch_size=1).correct_document("ab|cde")
    metadata = result.metadata

    assert metadata.model == CorrectionConfig().model
    assert metadata.chunk_count == 2
    assert metadata.total_tokens == 0
    assert [(c.input_chars, c.output_chars) for c in metadata.chunks] == [(2, 4), (3, 5)]
    assert metadata.to_dict()["chunks"][0]["index"] == 0
