"""Azure Functions main entry point.

Generates report and quote PDFs from JSON jobs: the payload is shaped into a
view-model, rendered through a Mustache template, converted to PDF by an
external renderer and stored in Blob Storage. A result message is published
for every finished job.

Endpoints:
- Queue trigger - Process jobs from the PDF generation queue
- POST /api/reports - Generate a PDF synchronously
- GET /api/templates - List available templates
- GET /api/health - Health check endpoint
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

import azure.functions as func

from config import ConfigurationError, get_config
from middleware import RequestValidationError, read_json_object, require_auth
from models import ErrorCode, HealthResponse
from services import (
    configure_json_logging,
    get_pipeline,
    get_template_service,
    strategy_for,
)

configure_json_logging(os.getenv("LOG_LEVEL", "INFO"))

# Initialize function app
app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

logger = logging.getLogger(__name__)

# Queue binding settings are read when the functions are indexed
JOBS_QUEUE_NAME = os.getenv("PDF_QUEUE_NAME", "pdf-generation-jobs")
JOBS_QUEUE_CONNECTION = os.getenv("PDF_QUEUE_CONNECTION", "PDF_QUEUE_STORAGE")

HTTP_STATUS_BY_ERROR_CODE = {
    ErrorCode.INVALID_PAYLOAD: 400,
    ErrorCode.CONFIGURATION_ERROR: 500,
    ErrorCode.RENDERER_ERROR: 502,
    ErrorCode.INVALID_PDF: 502,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


class RetryableJobError(Exception):
    """Raised from the queue trigger so the host redelivers the message."""

    def __init__(self, report_id: str, code: str, reason: str) -> None:
        self.report_id = report_id
        self.code = code
        self.reason = reason
        super().__init__(f"Job {report_id} failed ({code}): {reason}")


def create_response(
    data: dict[str, Any],
    status_code: int = 200,
) -> func.HttpResponse:
    """Create JSON HTTP response."""
    return func.HttpResponse(
        body=json.dumps(data, default=str, ensure_ascii=False),
        status_code=status_code,
        mimetype="application/json",
    )


def create_error_response(
    error: str,
    status_code: int = 500,
    details: dict[str, Any] | None = None,
) -> func.HttpResponse:
    """Create error JSON response."""
    body: dict[str, Any] = {
        "status": "error",
        "error": error,
    }
    if details:
        body["details"] = details

    return create_response(body, status_code=status_code)


# ============================================================================
# Queue Trigger
# ============================================================================


@app.function_name(name="GeneratePdfFromQueue")
@app.queue_trigger(
    arg_name="msg",
    queue_name=JOBS_QUEUE_NAME,
    connection=JOBS_QUEUE_CONNECTION,
)
async def generate_pdf_from_queue(msg: func.QueueMessage) -> None:
    """Generate a PDF for one queued job.

    Invalid payloads are logged and dropped; other failures are raised so
    the message is redelivered (and eventually moved to the poison queue).
    """
    logger.info(
        f"GeneratePdfFromQueue triggered: id={msg.id}, dequeue_count={msg.dequeue_count}"
    )

    try:
        pipeline = get_pipeline()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        raise

    result = await pipeline.run(msg.get_body())

    if result.succeeded:
        logger.info(f"Job {result.report_id} completed: {result.pdf.blob_name}")
        return

    if not result.retryable:
        logger.error(
            f"Dropping job {result.report_id}: {result.error.code.value} "
            f"at {result.error.stage.value}: {result.error.message}"
        )
        return

    raise RetryableJobError(result.report_id, result.error.code.value, result.error.message)


# ============================================================================
# HTTP Triggers
# ============================================================================


@app.function_name(name="GeneratePdfHttp")
@app.route(route="reports", methods=["POST"])
@require_auth()
async def generate_pdf_http(req: func.HttpRequest) -> func.HttpResponse:
    """Generate a PDF synchronously.

    Request body: a job payload, either wrapped or flat:
        {
            "reportId": "R1",
            "templateName": "Preventiva",
            "logoUrl": "https://example.com/logo.png",  // optional
            "outputFolder": "2024",  // optional
            "dataverse": {"rowId": "..."},  // optional
            "data": {"cliente": {...}, "maoObra": "a;b", "fotos": [...]}
        }

    Responds 200 with the job result, 400 for malformed payloads, 502 when
    the renderer fails and 500 for configuration or storage failures.
    """
    logger.info("GeneratePdfHttp trigger invoked")

    try:
        body = read_json_object(req)
    except RequestValidationError as e:
        return e.to_response()

    try:
        pipeline = get_pipeline()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return create_error_response(
            "Service not configured",
            status_code=500,
            details={"code": ErrorCode.CONFIGURATION_ERROR.value, "missing": e.missing_vars},
        )

    result = await pipeline.run(body)
    status_code = 200 if result.succeeded else HTTP_STATUS_BY_ERROR_CODE[result.error.code]
    return create_response(result.to_message(), status_code=status_code)


@app.function_name(name="ListTemplates")
@app.route(route="templates", methods=["GET"])
async def list_templates(req: func.HttpRequest) -> func.HttpResponse:
    """List loaded templates and how each one is shaped."""
    try:
        templates = get_template_service()
    except ConfigurationError as e:
        return create_error_response(
            "Service not configured",
            status_code=500,
            details={"code": ErrorCode.CONFIGURATION_ERROR.value, "missing": e.missing_vars},
        )

    return create_response(
        {
            "templates": [
                {"name": name, "strategy": strategy_for(name).value}
                for name in templates.template_names
            ],
            "count": len(templates.template_names),
        }
    )


@app.function_name(name="Health")
@app.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
async def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint with configuration status."""
    services: dict[str, str] = {}
    templates: list[str] = []

    try:
        config = get_config()
        services["config"] = "healthy"
        services["renderer"] = "configured" if config.gotenberg_url else "not_configured"
        services["storage"] = "configured"
        services["results_queue"] = (
            "configured" if config.results_connection_string else "not_configured"
        )
    except ConfigurationError as e:
        logger.warning(f"Health check: {e}")
        services["config"] = "unhealthy"

    if services["config"] == "healthy":
        try:
            templates = get_template_service().template_names
            services["templates"] = "healthy" if templates else "unhealthy"
        except OSError as e:
            logger.error(f"Failed to load templates: {e}")
            services["templates"] = "unhealthy"

    overall_status = "degraded" if "unhealthy" in services.values() else "healthy"

    response = HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        services=services,
        templates=templates,
    )
    return create_response(response.model_dump(mode="json"))
