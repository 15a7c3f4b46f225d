"""Report generation pipeline.

Runs one job end to end:

    RECEIVED -> NORMALIZING -> IMAGES_RESOLVING -> RENDERING_HTML
             -> CONVERTING_PDF -> UPLOADING -> NOTIFYING -> DONE

Any stage may end in FAILED. ``run`` always returns a ``JobResult``; the
triggers decide whether a failure should be retried.
"""

import asyncio
import json
import time
from typing import Any

from config import Config
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

from .blob_service import BlobService, BlobServiceError, build_blob_name
from .logging_service import StructuredLogger, get_structured_logger
from .pdf_service import PdfService, PdfValidationError
from .renderer_service import RendererError, RendererService
from .report_builder import ReportBuilder
from .result_service import ResultNotifier
from .telemetry_service import TelemetryService
from .template_service import TemplateNotFoundError, TemplateService

UNKNOWN_REPORT_ID = "unknown"


def classify_error(error: Exception) -> tuple[ErrorCode, bool]:
    """Map an exception to its error code and whether a retry could help."""
    if isinstance(error, (PayloadError, TemplateNotFoundError)):
        return ErrorCode.INVALID_PAYLOAD, False
    if isinstance(error, RendererError):
        # 4xx means the renderer rejected this document; resending it won't help
        client_error = error.status_code is not None and 400 <= error.status_code < 500
        return ErrorCode.RENDERER_ERROR, not client_error
    if isinstance(error, PdfValidationError):
        return ErrorCode.INVALID_PDF, True
    if isinstance(error, BlobServiceError):
        return ErrorCode.STORAGE_ERROR, True
    return ErrorCode.INTERNAL_ERROR, True


def _peek_report_id(raw: Any) -> str:
    """Best-effort report id from a payload that failed validation."""
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return UNKNOWN_REPORT_ID
    if not isinstance(raw, dict):
        return UNKNOWN_REPORT_ID
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    report_id = raw.get("reportId") or data.get("reportId")
    return str(report_id) if isinstance(report_id, (str, int)) and report_id else UNKNOWN_REPORT_ID


class ReportPipeline:
    """Orchestrates payload parsing, rendering, storage and notification."""

    def __init__(
        self,
        config: Config,
        builder: ReportBuilder,
        templates: TemplateService,
        renderer: RendererService,
        pdf_service: PdfService,
        blob_service: BlobService,
        notifier: ResultNotifier,
        telemetry: TelemetryService,
    ) -> None:
        self.config = config
        self.builder = builder
        self.templates = templates
        self.renderer = renderer
        self.pdf_service = pdf_service
        self.blob_service = blob_service
        self.notifier = notifier
        self.telemetry = telemetry

    async def run(self, raw: bytes | str | dict[str, Any]) -> JobResult:
        """Process one job.

        Args:
            raw: Queue message body, HTTP body or decoded payload.

        Returns:
            JobResult: SUCCEEDED with the PDF location, or FAILED with the
                error code, message and stage. ``retryable`` tells the caller
                whether redelivery could succeed.
        """
        start_time = time.perf_counter()
        stage = JobStage.RECEIVED
        log = get_structured_logger(__name__, stage=stage.value)
        payload: JobPayload | None = None
        template_name: str | None = None
        image_count = 0

        try:
            payload = JobPayload.from_message(raw, self.config.default_template)
            log = log.with_context(reportId=payload.report_id, templateName=payload.template_name)
            log.info("Job received")

            stage = JobStage.NORMALIZING
            with self.telemetry.track_stage(stage.value):
                prepared = self.builder.normalize(payload)
                template_name = prepared.template_name

            stage = JobStage.IMAGES_RESOLVING
            with self.telemetry.track_stage(stage.value):
                resolution = await self.builder.images.resolve(prepared.image_urls)
                image_count = len(resolution.assets)
                log.info(
                    f"Images resolved: {image_count} embedded, "
                    f"{resolution.skipped_count} skipped",
                    stage=stage.value,
                )

            stage = JobStage.RENDERING_HTML
            with self.telemetry.track_stage(stage.value):
                view_model = self.builder.assemble(prepared, resolution)
                html = self.templates.render(template_name, view_model)

            stage = JobStage.CONVERTING_PDF
            with self.telemetry.track_stage(stage.value):
                pdf_bytes = await self.renderer.convert(html, resolution.assets)
                pdf_info = self.pdf_service.inspect(pdf_bytes)

            stage = JobStage.UPLOADING
            with self.telemetry.track_stage(stage.value):
                location = await self._store(payload, pdf_bytes, pdf_info.page_count)
                log.info(f"PDF stored at {location.blob_url}", stage=stage.value)

        except Exception as e:
            return await self._fail(
                raw, payload, template_name, stage, e, log, start_time, image_count
            )

        result = JobResult(
            report_id=payload.report_id,
            template_name=template_name,
            status=JobStatus.SUCCEEDED,
            dataverse=payload.dataverse.to_message(payload.report_id),
            pdf=location,
            images=ImageSummary(count=image_count, skipped=resolution.skipped_count),
        )

        stage = JobStage.NOTIFYING
        with self.telemetry.track_stage(stage.value):
            await asyncio.to_thread(self.notifier.send_result, result)

        log.info(
            f"PDF generated: {location.blob_name} ({location.size_bytes} bytes, "
            f"{location.page_count} pages)",
            stage=JobStage.DONE.value,
        )
        self.telemetry.track_job(
            template_name=template_name,
            status=result.status.value,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            image_count=image_count,
            pdf_size_bytes=location.size_bytes,
        )
        return result

    async def _store(self, payload: JobPayload, pdf_bytes: bytes, page_count: int) -> PdfLocation:
        container = self.config.pdf_container
        blob_name = build_blob_name(
            self.config.blob_prefix, payload.report_id, payload.output_folder
        )
        blob_url = await asyncio.to_thread(
            self.blob_service.upload_pdf, container, blob_name, pdf_bytes
        )

        sas_url = None
        if self.config.result_sas_expiry_hours > 0:
            # The PDF is already stored; a missing link must not fail the job
            try:
                sas_url = self.blob_service.generate_sas_url(
                    blob_url, self.config.result_sas_expiry_hours
                )
            except BlobServiceError as e:
                get_structured_logger(
                    __name__, reportId=payload.report_id, stage=JobStage.UPLOADING.value
                ).warning(f"SAS URL not generated for {blob_name}: {e.reason}")

        return PdfLocation(
            container_name=container,
            blob_name=blob_name,
            blob_url=blob_url,
            sas_url=sas_url,
            size_bytes=len(pdf_bytes),
            page_count=page_count,
        )

    async def _fail(
        self,
        raw: Any,
        payload: JobPayload | None,
        template_name: str | None,
        stage: JobStage,
        error: Exception,
        log: StructuredLogger,
        start_time: float,
        image_count: int,
    ) -> JobResult:
        code, retryable = classify_error(error)
        message = getattr(error, "reason", None) or str(error) or error.__class__.__name__

        if code == ErrorCode.INTERNAL_ERROR:
            log.exception(f"Job failed with unexpected error: {message}", stage=stage.value)
        else:
            log.error(f"Job failed ({code.value}): {message}", stage=stage.value)

        report_id = payload.report_id if payload else _peek_report_id(raw)
        dataverse = payload.dataverse if payload else DataverseRouting()
        result = JobResult(
            report_id=report_id,
            template_name=template_name or (payload.template_name if payload else None),
            status=JobStatus.FAILED,
            dataverse=dataverse.to_message(report_id),
            error=ErrorDetail(code=code, message=message, stage=stage),
            retryable=retryable,
        )

        await asyncio.to_thread(self.notifier.send_result, result)
        self.telemetry.track_job(
            template_name=result.template_name or "unknown",
            status=result.status.value,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            image_count=image_count,
        )
        return result
