"""Typed models used by the proofreading pipeline."""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Document:
    document_id: str
    file_name: str
    file_type: str
    file_path: str
    original_text: str
    current_text: str
    status: str = "pending"
    version_number: int = 0
    cancellation_requested: bool = False
    created_at: float = field(default_factory=time.time)
    requested_at: float = field(default_factory=time.time)
    last_update: float = field(default_factory=time.time)
    claim_id: Optional[str] = None
    claimed_at: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass
class CorrectionLogEntry:
    entry_id: str
    document_id: str
    raw_corrected_text: str
    highlighted_text: str
    created_at: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorrectionLogEntry":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(frozen=True)
class Claim:
    document_id: str
    claim_id: str
    claimed_at: float


@dataclass(frozen=True)
class ChunkOutcome:
    index: int
    input_chars: int
    output_chars: int
    duration_s: float


@dataclass(frozen=True)
class CorrectionMetadata:
    model: str
    total_tokens: int
    chunk_count: int
    duration_s: float
    chunks: List[ChunkOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CorrectionResult:
    corrected_text: str
    metadata: Optional[CorrectionMetadata] = None
