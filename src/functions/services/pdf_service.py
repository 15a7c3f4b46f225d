"""PDF service for checking renderer output.

The renderer answers 200 with whatever it produced; this service makes sure
it is an actual, readable PDF before anything is persisted.
"""

import io
import logging
from dataclasses import dataclass

from pypdf import PdfReader

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


@dataclass(frozen=True)
class PdfInfo:
    """Basic facts about a generated PDF."""

    page_count: int
    size_bytes: int


class PdfValidationError(Exception):
    """Raised when bytes are not a readable PDF."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid PDF: {reason}")


class PdfService:
    """Service for PDF inspection."""

    def inspect(self, pdf_content: bytes) -> PdfInfo:
        """Verify ``pdf_content`` is a PDF with at least one page.

        Args:
            pdf_content: PDF file content as bytes.

        Returns:
            PdfInfo: Page count and size.

        Raises:
            PdfValidationError: If the content is empty, not a PDF or unreadable.
        """
        if not pdf_content:
            raise PdfValidationError("renderer returned an empty body")

        if pdf_content.lstrip()[:5] != PDF_MAGIC:
            raise PdfValidationError("content does not start with a PDF header")

        try:
            reader = PdfReader(io.BytesIO(pdf_content))
            page_count = len(reader.pages)
        except Exception as e:
            logger.error(f"Failed to read PDF: {e}")
            raise PdfValidationError(f"failed to read PDF: {e}") from e

        if page_count < 1:
            raise PdfValidationError("PDF has no pages")

        info = PdfInfo(page_count=page_count, size_bytes=len(pdf_content))
        logger.info(f"PDF validated: {info.page_count} pages, {info.size_bytes} bytes")
        return info
