"""Unit tests for job payload and result models."""

import json

import pytest

from models import (
    DataverseRouting,
    ErrorCode,
    ErrorDetail,
    ImageSummary,
    JobPayload,
    JobResult,
    JobStage,
    JobStatus,
    PayloadError,
    PdfLocation,
)


class TestJobPayloadFromMessage:
    """Tests for JobPayload.from_message."""

    def test_wrapped_payload(self):
        """Test the wrapped shape with identifiers at top level."""
        payload = JobPayload.from_message(
            {
                "reportId": "R1",
                "templateName": "Preventiva",
                "logoUrl": "https://example.com/logo.png",
                "data": {"maoObra": "a;b"},
            }
        )

        assert payload.report_id == "R1"
        assert payload.template_name == "Preventiva"
        assert payload.logo_url == "https://example.com/logo.png"
        assert payload.data == {"maoObra": "a;b"}

    def test_flat_payload(self):
        """Test report fields at the top level are used as data."""
        payload = JobPayload.from_message({"reportId": "R2", "maoObra": "x"})

        assert payload.report_id == "R2"
        assert payload.data["maoObra"] == "x"

    def test_top_level_identifiers_win_over_data(self):
        """Test top-level keys take precedence over the same keys in data."""
        payload = JobPayload.from_message(
            {
                "reportId": "TOP",
                "data": {"reportId": "INNER", "templateName": "Orcamento"},
            }
        )

        assert payload.report_id == "TOP"
        assert payload.template_name == "Orcamento"

    def test_accepts_bytes_and_str(self):
        """Test JSON text and bytes are decoded."""
        body = json.dumps({"reportId": "R3", "data": {}})

        assert JobPayload.from_message(body).report_id == "R3"
        assert JobPayload.from_message(body.encode("utf-8")).report_id == "R3"

    def test_default_template(self):
        """Test the default template is used when none is named."""
        payload = JobPayload.from_message({"reportId": "R1"}, default_template="Corretiva")

        assert payload.template_name == "Corretiva"

    def test_report_id_from_header_report_number(self):
        """Test reportId falls back to header.reportNumber."""
        payload = JobPayload.from_message({"data": {"header": {"reportNumber": 4521}}})

        assert payload.report_id == "4521"

    def test_report_id_synthesized(self):
        """Test a report id is generated when none is given."""
        payload = JobPayload.from_message({"data": {}})

        assert payload.report_id.startswith("report_")
        assert len(payload.report_id) == len("report_") + 12

    def test_numeric_report_id(self):
        """Test numeric report ids become strings."""
        assert JobPayload.from_message({"reportId": 77}).report_id == "77"

    def test_report_id_is_stripped(self):
        """Test surrounding whitespace is removed."""
        assert JobPayload.from_message({"reportId": "  R9 "}).report_id == "R9"

    @pytest.mark.parametrize("report_id", ["../etc", "a/b", "a\\b"])
    def test_report_id_with_path_rejected(self, report_id):
        """Test report ids that would escape the blob prefix are rejected."""
        with pytest.raises(PayloadError) as exc_info:
            JobPayload.from_message({"reportId": report_id})

        assert "reportId" in exc_info.value.reason

    @pytest.mark.parametrize("folder", ["..", "../x", "a/../b", "a\\..\\b", "x/.."])
    def test_output_folder_with_parent_segment_rejected(self, folder):
        """Test output folders that would climb out of the blob prefix are rejected."""
        with pytest.raises(PayloadError) as exc_info:
            JobPayload.from_message({"reportId": "R1", "outputFolder": folder})

        assert "outputFolder" in exc_info.value.reason

    @pytest.mark.parametrize("folder", ["2024/05", "clientes/acme", "v1..2"])
    def test_nested_output_folder_accepted(self, folder):
        """Test nested folders and dots inside a segment are allowed."""
        payload = JobPayload.from_message({"reportId": "R1", "outputFolder": folder})

        assert payload.output_folder == folder

    def test_boolean_report_id_rejected(self):
        """Test a boolean reportId is rejected."""
        with pytest.raises(PayloadError):
            JobPayload.from_message({"reportId": True})

    def test_malformed_json(self):
        """Test invalid JSON raises PayloadError."""
        with pytest.raises(PayloadError) as exc_info:
            JobPayload.from_message("{not json")

        assert "malformed JSON" in exc_info.value.reason

    def test_invalid_utf8(self):
        """Test undecodable bytes raise PayloadError."""
        with pytest.raises(PayloadError):
            JobPayload.from_message(b"\xff\xfe\x00")

    def test_non_object_payload(self):
        """Test JSON arrays are rejected."""
        with pytest.raises(PayloadError) as exc_info:
            JobPayload.from_message("[1, 2]")

        assert "JSON object" in exc_info.value.reason

    def test_non_object_data(self):
        """Test a non-object data field is rejected."""
        with pytest.raises(PayloadError):
            JobPayload.from_message({"reportId": "R1", "data": "oops"})

    def test_non_object_dataverse(self):
        """Test a non-object dataverse field is rejected."""
        with pytest.raises(PayloadError):
            JobPayload.from_message({"reportId": "R1", "dataverse": "row"})

    def test_dataverse_routing(self):
        """Test dataverse routing is parsed with aliases."""
        payload = JobPayload.from_message(
            {"reportId": "R1", "dataverse": {"rowId": 42, "fileName": "custom.pdf"}}
        )

        assert payload.dataverse.row_id == "42"
        assert payload.dataverse.file_name == "custom.pdf"
        assert payload.dataverse.table == "cra4d_pedidosnovos"


class TestDataverseRouting:
    """Tests for DataverseRouting."""

    def test_defaults_in_message(self):
        """Test defaults fill the result message."""
        message = DataverseRouting().to_message("R1")

        assert message == {
            "table": "cra4d_pedidosnovos",
            "rowId": None,
            "fileColumn": "cra4d_relatorio_pdf_relatorio",
            "fileName": "R1.pdf",
        }


class TestJobResult:
    """Tests for JobResult serialization."""

    def test_success_message(self):
        """Test a successful result message shape."""
        result = JobResult(
            report_id="R1",
            template_name="Preventiva",
            status=JobStatus.SUCCEEDED,
            dataverse=DataverseRouting().to_message("R1"),
            pdf=PdfLocation(
                container_name="pdf-reports",
                blob_name="relatorios/R1.pdf",
                blob_url="https://acct.blob.core.windows.net/pdf-reports/relatorios/R1.pdf",
                size_bytes=1024,
                page_count=2,
            ),
            images=ImageSummary(count=3, skipped=1),
        )

        message = result.to_message()

        assert result.succeeded
        assert message["version"] == 1
        assert message["reportId"] == "R1"
        assert message["status"] == "SUCCEEDED"
        assert message["source"]["dataverse"]["fileName"] == "R1.pdf"
        assert message["pdf"]["blobName"] == "relatorios/R1.pdf"
        assert message["pdf"]["sizeBytes"] == 1024
        assert "sasUrl" not in message["pdf"]
        assert message["images"] == {"count": 3, "skipped": 1}
        assert "error" not in message
        assert "dataverse" not in message
        assert "createdAtUtc" in message

    def test_failure_message(self):
        """Test a failed result carries error details and no pdf."""
        result = JobResult(
            report_id="R1",
            status=JobStatus.FAILED,
            error=ErrorDetail(
                code=ErrorCode.RENDERER_ERROR,
                message="status 500",
                stage=JobStage.CONVERTING_PDF,
            ),
            retryable=True,
        )

        message = result.to_message()

        assert not result.succeeded
        assert message["error"] == {
            "code": "RENDERER_ERROR",
            "message": "status 500",
            "stage": "CONVERTING_PDF",
        }
        assert "pdf" not in message
        assert "retryable" not in message
