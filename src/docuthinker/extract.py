from __future__ import annotations

import asyncio
import io
import logging

import docx
from docx.table import Table
from pypdf import PasswordType, PdfReader

from docuthinker.errors import ParseError
from docuthinker.models import DocumentFormat, ExtractionResult, UploadableFile

log = logging.getLogger(__name__)


def _page_text(page) -> str:
    """Space-join the text runs of one page."""
    raw = page.extract_text() or ""
    return " ".join(line.strip() for line in raw.splitlines() if line.strip())


def extract_pdf_text(pdf_bytes: bytes) -> tuple[str, int]:
    """Return (text, page_count). Each page contributes one newline-terminated line."""
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        # Owner-password-only PDFs open with an empty user password.
        if reader.is_encrypted and reader.decrypt("") == PasswordType.NOT_DECRYPTED:
            raise ParseError("PDF is password protected")
        parts = [_page_text(page) + "\n" for page in reader.pages]
    except ParseError:
        raise
    except Exception as e:
        raise ParseError(str(e) or type(e).__name__) from e
    return "".join(parts), len(parts)


def _docx_blocks(document):
    # Body paragraphs and table cells, in document order.
    for block in document.iter_inner_content():
        if isinstance(block, Table):
            for row in block.rows:
                for cell in row.cells:
                    for paragraph in cell.paragraphs:
                        yield paragraph.text
        else:
            yield block.text


def extract_docx_text(docx_bytes: bytes) -> str:
    """Raw text of the document body, paragraphs separated by a blank line."""
    try:
        document = docx.Document(io.BytesIO(docx_bytes))
        return "".join(f"{text}\n\n" for text in _docx_blocks(document))
    except Exception as e:
        raise ParseError(str(e) or type(e).__name__) from e


async def extract_text(file: UploadableFile) -> ExtractionResult:
    """Extract plain text from a picked file without blocking the event loop.

    Raises:
        UnsupportedFormat: If the declared media type is not PDF or DOCX.
            Raised before any parsing is attempted.
        ParseError: If the underlying library rejects the file.
    """
    fmt = DocumentFormat.from_declared(file.media_type)
    if fmt is DocumentFormat.PDF:
        text, pages = await asyncio.to_thread(extract_pdf_text, file.content)
    else:
        text = await asyncio.to_thread(extract_docx_text, file.content)
        pages = None
    log.info("Extracted %d chars from %s (%s)", len(text), file.name, fmt.value)
    return ExtractionResult(text=text, source_name=file.name, format=fmt, page_count=pages)
