"""Service factory module.

Implements pseudo-dependency injection with singleton pattern.
Services are initialized once and reused for the function lifetime.
"""

from .blob_service import BlobService, BlobServiceError, build_blob_name
from .image_service import ImageProcessingError, ImageResolution, ImageService, PhotoAsset
from .logging_service import (
    JsonFormatter,
    StructuredLogger,
    configure_json_logging,
    get_structured_logger,
)
from .pdf_service import PdfInfo, PdfService, PdfValidationError
from .pipeline import ReportPipeline, classify_error
from .renderer_service import RendererError, RendererService
from .report_builder import BuiltReport, ReportBuilder, ShapingStrategy, strategy_for
from .result_service import ResultNotifier
from .telemetry_service import TelemetryService, get_telemetry_service, reset_telemetry_service
from .template_service import TemplateNotFoundError, TemplateService

# Global service instances
_template_service: TemplateService | None = None
_image_service: ImageService | None = None
_blob_service: BlobService | None = None
_renderer_service: RendererService | None = None
_result_notifier: ResultNotifier | None = None
_pipeline: ReportPipeline | None = None


def get_template_service() -> TemplateService:
    """Get or create TemplateService singleton (templates are read once)."""
    global _template_service
    if _template_service is None:
        from config import get_config

        _template_service = TemplateService.from_directory(get_config().template_dir)
    return _template_service


def get_image_service() -> ImageService:
    """Get or create ImageService singleton."""
    global _image_service
    if _image_service is None:
        from config import get_config

        config = get_config()
        _image_service = ImageService(
            timeout=config.image_fetch_timeout,
            max_width=config.image_max_width,
            quality=config.image_jpeg_quality,
            max_concurrent=config.image_fetch_concurrency,
        )
    return _image_service


def get_blob_service() -> BlobService:
    """Get or create BlobService singleton."""
    global _blob_service
    if _blob_service is None:
        from config import get_config

        _blob_service = BlobService(connection_string=get_config().storage_connection_string)
    return _blob_service


def get_renderer_service() -> RendererService:
    """Get or create RendererService singleton."""
    global _renderer_service
    if _renderer_service is None:
        from config import get_config

        config = get_config()
        _renderer_service = RendererService(
            url=config.gotenberg_url,
            timeout=config.render_timeout,
            pdf_format=config.pdf_format,
        )
    return _renderer_service


def get_result_notifier() -> ResultNotifier:
    """Get or create ResultNotifier singleton."""
    global _result_notifier
    if _result_notifier is None:
        from config import get_config

        config = get_config()
        _result_notifier = ResultNotifier(
            connection_string=config.results_connection_string,
            queue_name=config.results_queue_name,
        )
    return _result_notifier


def get_pipeline() -> ReportPipeline:
    """Get or create the ReportPipeline singleton, wired from configuration.

    Raises:
        ConfigurationError: If required settings are missing.
    """
    global _pipeline
    if _pipeline is None:
        from config import get_config

        config = get_config()
        templates = get_template_service()
        _pipeline = ReportPipeline(
            config=config,
            builder=ReportBuilder(
                templates=templates,
                images=get_image_service(),
                product_image_base_url=config.product_image_base_url,
            ),
            templates=templates,
            renderer=get_renderer_service(),
            pdf_service=PdfService(),
            blob_service=get_blob_service(),
            notifier=get_result_notifier(),
            telemetry=get_telemetry_service(),
        )
    return _pipeline


def reset_services() -> None:
    """Reset service instances (for testing).

    This allows tests to re-initialize services with different configurations.
    """
    global _template_service, _image_service, _blob_service
    global _renderer_service, _result_notifier, _pipeline
    _template_service = None
    _image_service = None
    _blob_service = None
    _renderer_service = None
    _result_notifier = None
    _pipeline = None
    reset_telemetry_service()


__all__ = [
    "BlobService",
    "BlobServiceError",
    "BuiltReport",
    "ImageProcessingError",
    "ImageResolution",
    "ImageService",
    "JsonFormatter",
    "PdfInfo",
    "PdfService",
    "PdfValidationError",
    "PhotoAsset",
    "RendererError",
    "RendererService",
    "ReportBuilder",
    "ReportPipeline",
    "ResultNotifier",
    "ShapingStrategy",
    "StructuredLogger",
    "TelemetryService",
    "TemplateNotFoundError",
    "TemplateService",
    "build_blob_name",
    "classify_error",
    "configure_json_logging",
    "get_blob_service",
    "get_image_service",
    "get_pipeline",
    "get_renderer_service",
    "get_result_notifier",
    "get_structured_logger",
    "get_telemetry_service",
    "get_template_service",
    "reset_services",
    "strategy_for",
]
