"""Chunking of document text for the correction service."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Callable, List, Optional

import tiktoken

from .config import CorrectionConfig, DEFAULT_MODEL

PARAGRAPH_RE = re.compile(r"\n\s*\n")
SENTENCE_RE = re.compile(r"(?<=[.!?…])\s+")
PARAGRAPH_SEPARATOR = "\n\n"


@lru_cache(maxsize=8)
def get_encoding(model: str = DEFAULT_MODEL) -> tiktoken.Encoding:
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str, model: str = DEFAULT_MODEL) -> int:
    return len(get_encoding(model).encode(text, disallowed_special=()))


def _decodes(encoding: tiktoken.Encoding, tokens: List[int]) -> bool:
    try:
        encoding.decode_bytes(tokens).decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def _window_end(encoding: tiktoken.Encoding, tokens: List[int], start: int, end: int) -> int:
    # A window may not end inside a multi-byte character. Shrink it until the
    # bytes decode; only a budget smaller than one character grows it instead.
    limit = end
    while end > start + 1 and not _decodes(encoding, tokens[start:end]):
        end -= 1
    if _decodes(encoding, tokens[start:end]):
        return end
    end = limit
    while end < len(tokens) and not _decodes(encoding, tokens[start:end]):
        end += 1
    return end


def chunk_by_tokens(
    text: str,
    max_tokens: int,
    model: str = DEFAULT_MODEL,
    encoding: Optional[tiktoken.Encoding] = None,
) -> List[str]:
    """Split ``text`` into contiguous windows of at most ``max_tokens`` tokens.

    Text that fits in one window comes back unchanged as a single chunk, the
    empty string included. Concatenating the chunks reproduces ``text``.
    """
    if max_tokens < 1:
        raise ValueError("max_tokens must be >= 1")

    encoding = encoding or get_encoding(model)
    tokens = encoding.encode(text, disallowed_special=())
    if len(tokens) <= max_tokens:
        return [text]

    chunks: List[str] = []
    start = 0
    while start < len(tokens):
        end = _window_end(encoding, tokens, start, min(start + max_tokens, len(tokens)))
        chunks.append(encoding.decode_bytes(tokens[start:end]).decode("utf-8", errors="replace"))
        start = end
    return chunks


def _split_long(sentence: str, max_chars: int) -> List[str]:
    return [sentence[i : i + max_chars] for i in range(0, len(sentence), max_chars)]


def chunk_by_sentences(text: str, max_chars: int) -> List[str]:
    """Greedy paragraph/sentence packing up to ``max_chars`` characters.

    Paragraphs (blank-line separated) are packed whole when they fit. A
    paragraph that does not fit is split into sentences; a sentence longer
    than the budget is cut at the budget boundary.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")
    if len(text) <= max_chars:
        return [text]

    pieces: List[tuple] = []
    for paragraph in PARAGRAPH_RE.split(text.strip()):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= max_chars:
            pieces.append((paragraph, PARAGRAPH_SEPARATOR))
            continue
        separator = PARAGRAPH_SEPARATOR
        for sentence in SENTENCE_RE.split(paragraph):
            if not sentence:
                continue
            for part in _split_long(sentence, max_chars):
                pieces.append((part, separator))
                separator = ""
            separator = " "

    chunks: List[str] = []
    buffer = ""
    for piece, separator in pieces:
        if not buffer:
            buffer = piece
            continue
        if len(buffer) + len(separator) + len(piece) > max_chars:
            chunks.append(buffer)
            buffer = piece
            continue
        buffer = f"{buffer}{separator}{piece}"
    if buffer:
        chunks.append(buffer)
    return chunks or [text]


def build_chunker(config: CorrectionConfig) -> Callable[[str], List[str]]:
    if config.chunk_strategy == "sentences":
        return lambda text: chunk_by_sentences(text, config.max_chars_per_chunk)
    return lambda text: chunk_by_tokens(text, config.max_tokens_per_chunk, config.model)
