import asyncio
import logging
from pathlib import Path

import pandas as pd
from docx import Document as DocxDocument
from pypdf import PdfReader

from docchat.errors import DocumentReadError


logger = logging.getLogger("docchat.parsers")

PLAIN_TEXT_EXTS = {".txt", ".md", ".csv"}
SPREADSHEET_EXTS = {".xlsx", ".xls"}

DOC_PLACEHOLDER = "[DOC file detected - full text extraction not supported in this implementation]"


def file_extension(display_name: str) -> str:
    return Path(display_name or "").suffix.lower()


def parse_document(file_path: str | Path, display_name: str) -> str:
    """Return the text of a stored upload, dispatching on the display name's extension.

    The stored file name is arbitrary, so the extension always comes from the
    name the user uploaded. Raises ``DocumentReadError`` when the file cannot
    be read or decoded.
    """
    path = Path(file_path)
    ext = file_extension(display_name)
    try:
        if ext == ".pdf":
            return parse_pdf(path)
        if ext == ".docx":
            return parse_docx(path)
        if ext == ".doc":
            return DOC_PLACEHOLDER
        if ext in PLAIN_TEXT_EXTS:
            return path.read_text(encoding="utf-8")
        if ext in SPREADSHEET_EXTS:
            return parse_spreadsheet(path, ext)
        return f"[Unsupported file format: {ext}]"
    except Exception as exc:
        raise DocumentReadError(str(exc)) from exc


def read_error_text(exc: Exception) -> str:
    return f"[Error reading file: {exc}]"


def extract_text(file_path: str | Path, display_name: str) -> str:
    try:
        return parse_document(file_path, display_name)
    except DocumentReadError as exc:
        logger.warning("failed to read %s (%s): %s", display_name, file_path, exc)
        return read_error_text(exc)


async def read_document(file_path: str | Path, display_name: str) -> str:
    """Run ``parse_document`` in a worker thread; raises ``DocumentReadError``."""
    return await asyncio.to_thread(parse_document, file_path, display_name)


def parse_pdf(path: Path) -> str:
    reader = PdfReader(str(path))
    pages: list[str] = []
    for page in reader.pages:
        pages.append(page.extract_text() or "")
    return "\n".join(pages)


def parse_docx(path: Path) -> str:
    doc = DocxDocument(str(path))
    return "\n".join(para.text for para in doc.paragraphs)


def parse_spreadsheet(path: Path, ext: str) -> str:
    engine = "xlrd" if ext == ".xls" else "openpyxl"
    sheets = pd.read_excel(path, sheet_name=None, header=None, dtype=str, na_filter=False, engine=engine)
    parts: list[str] = []
    for sheet_name, frame in sheets.items():
        parts.append(f"\nSheet: {sheet_name}\n")
        parts.append(frame.to_csv(index=False, header=False))
    return "".join(parts)
