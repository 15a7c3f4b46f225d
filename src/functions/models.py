"""Pydantic models for job payloads, results and API responses.

The job payload is validated and canonicalized once, here, so the rest of
the pipeline never has to guess which alias or nesting a front end used.
"""

import json
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator


class PayloadError(Exception):
    """Raised when a job payload cannot be parsed or is structurally invalid."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid job payload: {reason}")


class JobStatus(str, Enum):
    """Final status reported for a job."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class JobStage(str, Enum):
    """Pipeline stages, in execution order."""

    RECEIVED = "RECEIVED"
    NORMALIZING = "NORMALIZING"
    IMAGES_RESOLVING = "IMAGES_RESOLVING"
    RENDERING_HTML = "RENDERING_HTML"
    CONVERTING_PDF = "CONVERTING_PDF"
    UPLOADING = "UPLOADING"
    NOTIFYING = "NOTIFYING"
    DONE = "DONE"
    FAILED = "FAILED"


class ErrorCode(str, Enum):
    """Error codes carried by FAILED results."""

    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    RENDERER_ERROR = "RENDERER_ERROR"
    INVALID_PDF = "INVALID_PDF"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# Job Payload
# ============================================================================


class DataverseRouting(BaseModel):
    """Where the upstream flow should attach the generated PDF."""

    table: str = "cra4d_pedidosnovos"
    row_id: str | None = Field(default=None, alias="rowId")
    file_column: str = Field(default="cra4d_relatorio_pdf_relatorio", alias="fileColumn")
    file_name: str | None = Field(default=None, alias="fileName")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("row_id", mode="before")
    @classmethod
    def coerce_row_id(cls, v: Any) -> str | None:
        """Row ids may arrive as numbers."""
        return None if v is None else str(v)

    def to_message(self, report_id: str) -> dict[str, Any]:
        """Render routing metadata for the result message."""
        return {
            "table": self.table,
            "rowId": self.row_id,
            "fileColumn": self.file_column,
            "fileName": self.file_name or f"{report_id}.pdf",
        }


class JobPayload(BaseModel):
    """Canonical form of one document-generation request."""

    report_id: str = Field(..., alias="reportId", min_length=1)
    template_name: str = Field(..., alias="templateName", min_length=1)
    logo_url: str | None = Field(default=None, alias="logoUrl")
    output_folder: str | None = Field(default=None, alias="outputFolder")
    dataverse: DataverseRouting = Field(default_factory=DataverseRouting)
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @field_validator("report_id")
    @classmethod
    def validate_report_id(cls, v: str) -> str:
        """Report ids become blob names, so they must not escape the prefix."""
        v = v.strip()
        if not v:
            raise ValueError("reportId must not be blank")
        if "/" in v or "\\" in v or ".." in v:
            raise ValueError("reportId must not contain path separators or '..'")
        return v

    @field_validator("output_folder")
    @classmethod
    def validate_output_folder(cls, v: str | None) -> str | None:
        """Subfolders may nest but must stay under the blob prefix."""
        if v is None:
            return v
        if ".." in re.split(r"[\\/]", v):
            raise ValueError("outputFolder must not contain '..' segments")
        return v

    @classmethod
    def from_message(
        cls,
        raw: bytes | str | dict[str, Any],
        default_template: str = "Preventiva",
    ) -> "JobPayload":
        """Parse a queue message or HTTP body into a canonical payload.

        Accepts both the wrapped shape ``{"reportId": ..., "data": {...}}``
        and the flat shape where report fields sit at the top level.
        Top-level identifiers win over the same keys inside ``data``.

        Args:
            raw: JSON text/bytes or an already-decoded object.
            default_template: Template used when the payload names none.

        Returns:
            JobPayload: Canonical payload.

        Raises:
            PayloadError: If the input is not a JSON object or fails validation.
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise PayloadError(f"message is not UTF-8: {e}") from e

        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise PayloadError(f"malformed JSON: {e.msg}") from e

        if not isinstance(raw, dict):
            raise PayloadError("payload must be a JSON object")

        data = raw["data"] if raw.get("data") is not None else raw
        if not isinstance(data, dict):
            raise PayloadError("'data' must be a JSON object")

        def pick(key: str) -> Any:
            value = raw.get(key)
            return value if value is not None else data.get(key)

        header = data.get("header")
        report_id = pick("reportId")
        if report_id is None and isinstance(header, dict):
            report_id = header.get("reportNumber")
        if report_id is None or (isinstance(report_id, str) and not report_id.strip()):
            report_id = f"report_{uuid.uuid4().hex[:12]}"
        if isinstance(report_id, bool) or not isinstance(report_id, (str, int)):
            raise PayloadError("reportId must be a string or number")

        dataverse = pick("dataverse")
        if dataverse is not None and not isinstance(dataverse, dict):
            raise PayloadError("'dataverse' must be a JSON object")

        try:
            return cls(
                report_id=str(report_id),
                template_name=pick("templateName") or default_template,
                logo_url=pick("logoUrl"),
                output_folder=pick("outputFolder"),
                dataverse=DataverseRouting.model_validate(dataverse or {}),
                data=data,
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(loc) for loc in first["loc"])
            raise PayloadError(f"{field}: {first['msg']}") from e


# ============================================================================
# Job Result
# ============================================================================


class PdfLocation(BaseModel):
    """Where the generated PDF was stored."""

    container_name: str = Field(..., alias="containerName")
    blob_name: str = Field(..., alias="blobName")
    blob_url: str = Field(..., alias="blobUrl")
    sas_url: str | None = Field(default=None, alias="sasUrl")
    size_bytes: int = Field(..., alias="sizeBytes")
    page_count: int | None = Field(default=None, alias="pageCount")

    model_config = {"populate_by_name": True}


class ErrorDetail(BaseModel):
    """Failure detail carried by FAILED results."""

    code: ErrorCode
    message: str
    stage: JobStage


class ImageSummary(BaseModel):
    """How many images were embedded and how many were skipped."""

    count: int = 0
    skipped: int = 0


class JobResult(BaseModel):
    """Outcome of one job, written once to the result queue."""

    version: int = 1
    report_id: str = Field(..., alias="reportId")
    template_name: str | None = Field(default=None, alias="templateName")
    status: JobStatus
    created_at_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAtUtc"
    )
    dataverse: dict[str, Any] | None = None
    pdf: PdfLocation | None = None
    images: ImageSummary | None = None
    error: ErrorDetail | None = None
    retryable: bool = Field(default=False, exclude=True)

    model_config = {"populate_by_name": True}

    @property
    def succeeded(self) -> bool:
        """True when the PDF was produced and stored."""
        return self.status == JobStatus.SUCCEEDED

    def to_message(self) -> dict[str, Any]:
        """Serialize for the result queue / HTTP response."""
        message = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        dataverse = message.pop("dataverse", None)
        if dataverse is not None:
            message["source"] = {"dataverse": dataverse}
        return message


# ============================================================================
# HTTP Response Models
# ============================================================================


class HealthResponse(BaseModel):
    """Response for GET /api/health endpoint."""

    status: str
    timestamp: datetime
    version: str = Field(default="1.0.0")
    services: dict[str, str] = Field(default_factory=dict)
    templates: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Standard error response."""

    status: str = "error"
    error: str
    details: dict[str, Any] | None = None
