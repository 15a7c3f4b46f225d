"""Unit tests for the PDF service."""

import pytest

from services.pdf_service import PdfInfo, PdfService, PdfValidationError


class TestPdfValidationError:
    """Tests for PdfValidationError exception."""

    def test_error_creation(self):
        """Test PdfValidationError creation."""
        error = PdfValidationError("no pages")

        assert error.reason == "no pages"
        assert "no pages" in str(error)


class TestPdfService:
    """Tests for PdfService.inspect."""

    @pytest.fixture
    def pdf_service(self):
        """Create a PdfService instance."""
        return PdfService()

    def test_inspect_valid_pdf(self, pdf_service, pdf_bytes):
        """Test page count and size of a valid PDF."""
        info = pdf_service.inspect(pdf_bytes)

        assert info == PdfInfo(page_count=2, size_bytes=len(pdf_bytes))

    def test_empty_body(self, pdf_service):
        """Test an empty renderer response is rejected."""
        with pytest.raises(PdfValidationError) as exc_info:
            pdf_service.inspect(b"")

        assert "empty" in exc_info.value.reason

    def test_not_a_pdf(self, pdf_service):
        """Test an HTML error page is rejected."""
        with pytest.raises(PdfValidationError) as exc_info:
            pdf_service.inspect(b"<html>error</html>")

        assert "PDF header" in exc_info.value.reason

    def test_truncated_pdf(self, pdf_service, pdf_bytes):
        """Test a PDF cut short is rejected."""
        with pytest.raises(PdfValidationError):
            pdf_service.inspect(pdf_bytes[:20])
