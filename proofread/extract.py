"""Plain-text extraction for uploaded documents."""

from __future__ import annotations

import io
import re
import zipfile
from typing import Callable, Dict, List

from docx import Document as DocxDocument
from pptx import Presentation

from .config import KNOWN_UNSUPPORTED_FILE_TYPES, SUPPORTED_FILE_TYPES
from .errors import ExtractionError, UnsupportedFileTypeError

XML_TAG_RE = re.compile(r"<[^>]+>")
WHITESPACE_RE = re.compile(r"\s+")


def normalize_file_type(file_type: str) -> str:
    return (file_type or "").strip().lower().lstrip(".")


def file_type_from_name(file_name: str) -> str:
    if "." not in file_name:
        return ""
    return normalize_file_type(file_name.rsplit(".", 1)[1])


def is_supported(file_type: str) -> bool:
    return normalize_file_type(file_type) in SUPPORTED_FILE_TYPES


def _split_lines(text: str) -> List[str]:
    if not text:
        return []
    cleaned = text.replace("\u000b", "\n")
    return [line.strip() for line in cleaned.splitlines() if line.strip()]


def extract_txt(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def extract_docx(data: bytes) -> str:
    document = DocxDocument(io.BytesIO(data))
    parts: List[str] = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append("\t".join(cells))
    return "\n".join(parts)


def extract_odt(data: bytes) -> str:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        try:
            content = archive.read("content.xml").decode("utf-8")
        except KeyError:
            raise ExtractionError("content.xml not found in ODT/ODF file.") from None
    return WHITESPACE_RE.sub(" ", XML_TAG_RE.sub(" ", content)).strip()


def extract_pptx(data: bytes) -> str:
    presentation = Presentation(io.BytesIO(data))
    lines: List[str] = []
    for slide in presentation.slides:
        for shape in slide.shapes:
            if getattr(shape, "has_text_frame", False) and shape.text_frame and shape.text_frame.text:
                lines.extend(_split_lines(shape.text_frame.text))
            if getattr(shape, "has_table", False) and shape.has_table:
                for row in shape.table.rows:
                    for cell in row.cells:
                        lines.extend(_split_lines(cell.text))
    return "\n".join(lines)


EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    "txt": extract_txt,
    "docx": extract_docx,
    "odt": extract_odt,
    "odf": extract_odt,
    "pptx": extract_pptx,
}


def extract_text(data: bytes, file_type: str) -> str:
    """Extract plain text from ``data``.

    Raises UnsupportedFileTypeError for formats outside the supported set
    (legacy ``.doc`` included) and ExtractionError for corrupt or empty files.
    """
    kind = normalize_file_type(file_type)
    extractor = EXTRACTORS.get(kind)
    if extractor is None:
        error = UnsupportedFileTypeError(file_type)
        if kind in KNOWN_UNSUPPORTED_FILE_TYPES:
            error.args = (f"Extraction for .{kind} files is not supported yet.",)
        raise error
    try:
        text = extractor(data)
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(f"Error extracting text from {kind.upper()} file: {exc}") from exc
    if not text.strip():
        raise ExtractionError(f"No text found in {kind.upper()} file.")
    return text
