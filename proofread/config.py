"""Configuration for the proofreading pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"

MAX_TOKENS_PER_CHUNK = 3000
MAX_CHARS_PER_CHUNK = 12000
CHUNK_JOIN_SEPARATOR = "\n"
CHUNK_STRATEGIES = {"tokens", "sentences"}

MAX_RETRIES = 3
RETRY_DELAY = 1.0
REQUEST_TIMEOUT = 120
TEMPERATURE = 0.2

DEFAULT_BATCH_SIZE = 2
MAX_BATCH_SIZE = 4

POLL_INTERVAL = 5.0
STALL_THRESHOLD = 1800
FAILURE_POLICIES = {"failed", "pending"}

SUPPORTED_FILE_TYPES = {"docx", "txt", "odt", "odf", "pptx"}
KNOWN_UNSUPPORTED_FILE_TYPES = {"doc"}

HIGHLIGHT_TAG = "mark"

EXPORT_HEADERS = ["Version", "Created", "Description", "Corrected text"]


@dataclass(frozen=True)
class CorrectionConfig:
    model: str = DEFAULT_MODEL
    max_tokens_per_chunk: int = MAX_TOKENS_PER_CHUNK
    chunk_strategy: str = "tokens"
    max_chars_per_chunk: int = MAX_CHARS_PER_CHUNK
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = MAX_RETRIES
    retry_delay_s: float = RETRY_DELAY
    request_timeout_s: float = REQUEST_TIMEOUT
    temperature: float = TEMPERATURE
    poll_interval_s: float = POLL_INTERVAL
    stall_threshold_s: float = STALL_THRESHOLD
    failure_policy: str = "failed"


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def _as_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}. Expected an integer") from None
    if value < minimum:
        raise ValueError(f"Invalid value for {name}: {value}. Must be >= {minimum}")
    return value


def _as_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}. Expected a number") from None
    if value < 0:
        raise ValueError(f"Invalid value for {name}: {value}. Must be >= 0")
    return value


def _as_choice(env: Mapping[str, str], name: str, allowed: set, default: str) -> str:
    raw = (_get(env, name) or default).lower()
    if raw not in allowed:
        allowed_list = ", ".join(sorted(allowed))
        raise ValueError(f"Invalid value for {name}: {raw!r}. Allowed: {allowed_list}")
    return raw


def load_config(env: Optional[Mapping[str, str]] = None) -> CorrectionConfig:
    """Build a :class:`CorrectionConfig` from environment variables."""
    env = os.environ if env is None else env

    batch_size = _as_int(env, "PROOFREAD_BATCH_SIZE", DEFAULT_BATCH_SIZE)
    if batch_size > MAX_BATCH_SIZE:
        raise ValueError(
            f"Invalid value for PROOFREAD_BATCH_SIZE: {batch_size}. Must be <= {MAX_BATCH_SIZE}"
        )

    return CorrectionConfig(
        model=_get(env, "PROOFREAD_MODEL") or DEFAULT_MODEL,
        max_tokens_per_chunk=_as_int(env, "PROOFREAD_MAX_TOKENS", MAX_TOKENS_PER_CHUNK),
        chunk_strategy=_as_choice(env, "PROOFREAD_CHUNK_STRATEGY", CHUNK_STRATEGIES, "tokens"),
        max_chars_per_chunk=_as_int(env, "PROOFREAD_MAX_CHARS", MAX_CHARS_PER_CHUNK),
        batch_size=batch_size,
        max_retries=_as_int(env, "PROOFREAD_MAX_RETRIES", MAX_RETRIES),
        retry_delay_s=_as_float(env, "PROOFREAD_RETRY_DELAY", RETRY_DELAY),
        request_timeout_s=_as_float(env, "PROOFREAD_REQUEST_TIMEOUT", REQUEST_TIMEOUT),
        temperature=TEMPERATURE,
        poll_interval_s=_as_float(env, "PROOFREAD_POLL_INTERVAL", POLL_INTERVAL),
        stall_threshold_s=_as_float(env, "PROOFREAD_STALL_THRESHOLD", STALL_THRESHOLD),
        failure_policy=_as_choice(env, "PROOFREAD_FAILURE_POLICY", FAILURE_POLICIES, "failed"),
    )
