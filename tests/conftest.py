from __future__ import annotations

import pytest

from job_storage import PersistentDocumentStorage
from proofread.documents import DocumentService
from proofread.models import Document, new_id
from proofread.storage import LocalFileStorage


@pytest.fixture
def store() -> PersistentDocumentStorage:
    return PersistentDocumentStorage(prefix="test", in_memory=True)


@pytest.fixture
def file_storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "uploads")


@pytest.fixture
def service(store, file_storage) -> DocumentService:
    return DocumentService(store, file_storage)


@pytest.fixture
def add_document(store):
    """Create a pending text document straight in the store."""

    def _add(text: str = "Helo world.", **overrides) -> Document:
        document = Document(
            document_id=new_id(),
            file_name="sample.txt",
            file_type="txt",
            file_path="",
            original_text=text,
            current_text=text,
            **overrides,
        )
        return store.create_document(document)

    return _add
