import asyncio

import pandas as pd
import pytest
from docx import Document as DocxDocument
from pypdf import PdfWriter

from docchat.errors import DocumentReadError
from docchat.parsers import DOC_PLACEHOLDER, extract_text, parse_document, read_document


def test_plain_text_formats_are_read_verbatim(tmp_path):
    path = tmp_path / "stored-upload"
    path.write_text("name,days\nAnnual,20\n", encoding="utf-8")
    for display in ("leave.csv", "leave.TXT", "leave.md"):
        assert extract_text(path, display) == "name,days\nAnnual,20\n"


def test_extension_comes_from_display_name(tmp_path):
    path = tmp_path / "upload.bin"
    path.write_text("hello", encoding="utf-8")
    assert extract_text(path, "notes.txt") == "hello"


def test_doc_files_get_a_placeholder(tmp_path):
    path = tmp_path / "legacy.doc"
    path.write_bytes(b"\xd0\xcf\x11\xe0")
    assert extract_text(path, "legacy.doc") == DOC_PLACEHOLDER


def test_unsupported_extension_is_named(tmp_path):
    path = tmp_path / "slides.pptx"
    path.write_bytes(b"PK")
    assert extract_text(path, "slides.pptx") == "[Unsupported file format: .pptx]"


def test_docx_paragraphs_are_joined(tmp_path):
    path = tmp_path / "guide.docx"
    doc = DocxDocument()
    doc.add_paragraph("Welcome aboard.")
    doc.add_paragraph("Leave requests go to your manager.")
    doc.save(str(path))

    text = extract_text(path, "Guide.docx")
    assert "Welcome aboard.\nLeave requests go to your manager." in text


def test_spreadsheet_sheets_are_rendered_as_csv(tmp_path):
    path = tmp_path / "claims.xlsx"
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame({"item": ["Taxi"], "amount": [25]}).to_excel(writer, sheet_name="Travel", index=False)
        pd.DataFrame({"item": ["Lunch"], "amount": [12]}).to_excel(writer, sheet_name="Meals", index=False)

    text = extract_text(path, "Claims.xlsx")
    assert "Sheet: Travel\n" in text
    assert "Taxi,25" in text
    assert "Sheet: Meals\n" in text
    assert text.index("Sheet: Travel") < text.index("Sheet: Meals")


def test_blank_pdf_yields_empty_text(tmp_path):
    path = tmp_path / "blank.pdf"
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    with path.open("wb") as f:
        writer.write(f)
    assert extract_text(path, "blank.pdf").strip() == ""


def test_corrupt_pdf_becomes_error_placeholder(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")
    assert extract_text(path, "broken.pdf").startswith("[Error reading file:")


def test_missing_file_becomes_error_placeholder(tmp_path):
    assert extract_text(tmp_path / "nope.txt", "nope.txt").startswith("[Error reading file:")


def test_async_reader_matches_sync_extraction(tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("async body", encoding="utf-8")
    assert asyncio.run(read_document(path, "a.txt")) == "async body"


def test_strict_parse_raises_document_read_error(tmp_path):
    path = tmp_path / "broken.docx"
    path.write_bytes(b"not a zip")
    with pytest.raises(DocumentReadError):
        parse_document(path, "broken.docx")
