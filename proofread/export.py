"""Export helpers for proofread documents and their version history."""

from __future__ import annotations

import csv
import io
import re
from datetime import datetime, timezone
from typing import List

import openpyxl
from docx import Document as DocxDocument
from openpyxl.utils import get_column_letter

from .config import EXPORT_HEADERS
from .models import CorrectionLogEntry

LINE_SPLIT_RE = re.compile(r"\r?\n")


def _history_rows(entries: List[CorrectionLogEntry]) -> List[list]:
    return [
        [
            position,
            datetime.fromtimestamp(entry.created_at, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            "Proofreading revision",
            entry.raw_corrected_text,
        ]
        for position, entry in enumerate(entries, start=1)
    ]


def to_docx(text: str) -> bytes:
    document = DocxDocument()
    for line in LINE_SPLIT_RE.split(text):
        document.add_paragraph(line)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def to_txt(text: str) -> bytes:
    return text.encode("utf-8")


def history_to_csv(entries: List[CorrectionLogEntry]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(_history_rows(entries))
    return buffer.getvalue().encode("utf-8-sig")


def history_to_xlsx(entries: List[CorrectionLogEntry]) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Version history"

    sheet.append(EXPORT_HEADERS)
    for row in _history_rows(entries):
        sheet.append(row)

    for index, column_title in enumerate(EXPORT_HEADERS, start=1):
        column = sheet.column_dimensions[get_column_letter(index)]
        column.width = max(len(column_title) + 2, 18)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def download_name(file_name: str, extension: str) -> str:
    stem = file_name.rsplit(".", 1)[0] if "." in file_name else file_name
    return f"proofread-{stem}.{extension}"
