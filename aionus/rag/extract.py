"""Plain-text extraction from uploaded documents.

Supports PDF (via pypdf), DOCX (via python-docx) and plain text or markdown.
"""
import io
import zipfile
from typing import Callable, Dict

import structlog
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from aionus.errors import ExtractionError, UnsupportedTypeError

logger = structlog.get_logger()

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = []
    for page in reader.pages:
        pages.append(page.extract_text() or "")
    return "\n\n".join(pages)


def _table_rows(table: Table) -> list:
    rows = []
    for row in table.rows:
        cells = []
        seen = set()
        for cell in row.cells:
            # merged cells are repeated once per grid column
            if id(cell._tc) in seen:
                continue
            seen.add(id(cell._tc))
            cells.append(cell.text.strip())
        line = "\t".join(c for c in cells if c)
        if line:
            rows.append(line)
    return rows


def _extract_docx(data: bytes) -> str:
    document = Document(io.BytesIO(data))

    # Walk the body so tables keep their place between paragraphs
    blocks = []
    for child in document.element.body.iterchildren():
        if child.tag == qn("w:p"):
            blocks.append(Paragraph(child, document).text)
        elif child.tag == qn("w:tbl"):
            blocks.extend(_table_rows(Table(child, document)))
    return "\n\n".join(blocks)


def _extract_plain(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    PDF: _extract_pdf,
    DOCX: _extract_docx,
    "text/plain": _extract_plain,
    "text/markdown": _extract_plain,
}


def supported_types() -> list:
    return sorted(EXTRACTORS)


def extract_text(data: bytes, content_type: str) -> str:
    """Extract plain text from a document.

    Args:
        data: Raw document bytes
        content_type: MIME type, parameters such as charset are ignored

    Returns:
        Extracted text, not yet normalized

    Raises:
        UnsupportedTypeError: If no extractor handles the content type
        ExtractionError: If the document cannot be parsed
    """
    mime = (content_type or "").split(";")[0].strip().lower()
    extractor = EXTRACTORS.get(mime)
    if extractor is None:
        raise UnsupportedTypeError(f"Unsupported file type: {content_type or 'unknown'}")

    try:
        text = extractor(data)
    except (PdfReadError, PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        logger.error("text_extraction_failed", content_type=mime, error=str(e))
        raise ExtractionError(f"Could not extract text from {mime} document: {e}") from e

    logger.info("text_extracted", content_type=mime, text_length=len(text))
    return text
