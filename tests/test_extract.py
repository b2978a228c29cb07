"""Tests for document text extraction."""
import io
import zipfile

import docx
import pytest
from pypdf import PdfWriter

from aionus.errors import ExtractionError, UnsupportedTypeError
from aionus.rag.extract import DOCX, PDF, extract_text, supported_types


def build_docx():
    document = docx.Document()
    document.add_paragraph("Payment plan")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Booking"
    table.cell(0, 1).text = "10%"
    table.cell(1, 0).text = "On possession"
    table.cell(1, 1).text = "90%"
    document.add_paragraph("Registration charges are extra.")
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def test_plain_text_and_markdown():
    """Test UTF-8 decoding, with and without a BOM."""
    assert extract_text("Prix: 1,2 Cr".encode(), "text/plain") == "Prix: 1,2 Cr"
    assert extract_text(b"\xef\xbb\xbf# FAQ", "text/markdown") == "# FAQ"


def test_content_type_parameters_ignored():
    """Test that charset and casing do not affect dispatch."""
    assert extract_text(b"hello", "Text/Plain; charset=UTF-8") == "hello"


def test_docx_paragraphs_and_tables():
    """Test that paragraphs and table rows come out in document order."""
    text = extract_text(build_docx(), DOCX)

    assert text == (
        "Payment plan\n\n"
        "Booking\t10%\n\n"
        "On possession\t90%\n\n"
        "Registration charges are extra."
    )


def test_docx_merged_cells_read_once():
    """Test that a merged cell's text is not repeated per grid column."""
    document = docx.Document()
    table = document.add_table(rows=1, cols=3)
    merged = table.cell(0, 0).merge(table.cell(0, 1))
    merged.text = "Tower A"
    table.cell(0, 2).text = "Sold out"
    buffer = io.BytesIO()
    document.save(buffer)

    assert extract_text(buffer.getvalue(), DOCX) == "Tower A\tSold out"


def test_corrupt_docx_raises_extraction_error():
    """Test that a non-zip body is reported as unreadable."""
    with pytest.raises(ExtractionError):
        extract_text(b"definitely not a zip", DOCX)


def test_docx_without_document_part():
    """Test a zip that is not a word document."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as package:
        package.writestr("readme.txt", "hi")

    with pytest.raises(ExtractionError):
        extract_text(buffer.getvalue(), DOCX)


def test_blank_pdf_has_no_text():
    """Test that a PDF without text yields an empty string."""
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)

    assert extract_text(buffer.getvalue(), PDF).strip() == ""


def test_corrupt_pdf_raises_extraction_error():
    """Test that garbage bytes labelled as PDF fail cleanly."""
    with pytest.raises(ExtractionError):
        extract_text(b"%PDF-1.4 truncated", PDF)


@pytest.mark.parametrize("content_type", ["image/png", "", "application/msword"])
def test_unsupported_types(content_type):
    """Test that unknown formats raise UnsupportedTypeError."""
    with pytest.raises(UnsupportedTypeError):
        extract_text(b"data", content_type)


def test_supported_types_listed():
    """Test the advertised formats."""
    assert supported_types() == sorted([PDF, DOCX, "text/plain", "text/markdown"])
