"""File storage for uploaded documents."""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Union

from werkzeug.utils import secure_filename

from .errors import PersistenceError


class LocalFileStorage:
    """Keeps uploaded bytes under ``root``; paths handed out are relative."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if self.root.resolve() not in full.parents:
            raise PersistenceError(f"Path escapes storage root: {path}")
        return full

    def upload(self, file_name: str, data: bytes) -> str:
        safe_name = secure_filename(file_name) or "upload"
        path = f"{uuid.uuid4().hex}/{safe_name}"
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            data = target.read_bytes()
        except OSError as exc:
            raise PersistenceError(f"Failed to download {path}: {exc}") from exc
        if not data:
            raise PersistenceError(f"Stored file is empty: {path}")
        return data

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.exists():
            os.unlink(target)
