"""
Text extraction for uploaded requirement files.

Returns one segment per page (PDF), per sheet (XLSX) or per document (DOCX, plain text)
so the validator can apply batch keyword semantics across them.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Callable
from io import BytesIO

import docx
import openpyxl
import pdfplumber

from .errors import ExtractionError

logger = logging.getLogger(__name__)


def _extract_pdf(data: bytes) -> list[str]:
    with pdfplumber.open(BytesIO(data)) as pdf:
        return [page.extract_text() or "" for page in pdf.pages]


def _extract_docx(data: bytes) -> list[str]:
    document = docx.Document(BytesIO(data))
    lines = [p.text for p in document.paragraphs if p.text and p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text and c.text.strip()]
            if cells:
                lines.append(" ".join(cells))
    return ["\n".join(lines)]


def _extract_xlsx(data: bytes) -> list[str]:
    wb = openpyxl.load_workbook(BytesIO(data), read_only=True, data_only=True)
    try:
        segments = []
        for ws in wb.worksheets:
            rows = []
            for row in ws.iter_rows(values_only=True):
                values = [str(v) for v in row if v is not None and str(v).strip()]
                if values:
                    rows.append(",".join(values))
            segments.append("\n".join(rows))
        return segments
    finally:
        wb.close()


def _extract_plain(data: bytes) -> list[str]:
    return [data.decode("utf-8", errors="replace")]


_EXTRACTORS: dict[str, Callable[[bytes], list[str]]] = {
    ".pdf": _extract_pdf,
    ".docx": _extract_docx,
    ".xlsx": _extract_xlsx,
    ".txt": _extract_plain,
    ".csv": _extract_plain,
    ".json": _extract_plain,
}


def supported_extensions() -> set[str]:
    return set(_EXTRACTORS)


def extract_text(filename: str, data: bytes) -> list[str]:
    ext = os.path.splitext(filename or "")[1].lower()
    extractor = _EXTRACTORS.get(ext)
    if extractor is None:
        # Images and other formats carry no extractable text here.
        logger.info("No text extractor for %s (%s)", filename, ext or "no extension")
        return []
    try:
        return extractor(data)
    except Exception as e:
        raise ExtractionError(f"text extraction failed for {filename}: {e}") from e
