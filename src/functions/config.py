"""Configuration module for Azure Functions.

Loads configuration from environment variables with validation.
"""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TEMPLATE_DIR = str(Path(__file__).parent / "templates")


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""

    def __init__(self, missing_vars: list[str]) -> None:
        self.missing_vars = missing_vars
        super().__init__(f"Missing required environment variables: {', '.join(missing_vars)}")


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    # Renderer (HTML -> PDF) settings
    gotenberg_url: str
    render_timeout: float
    pdf_format: str | None

    # Storage settings
    storage_connection_string: str
    pdf_container: str
    blob_prefix: str
    result_sas_expiry_hours: int

    # Queue settings
    jobs_queue_name: str
    queue_connection: str  # App setting name used by the queue trigger binding
    results_queue_name: str
    results_connection_string: str | None

    # Image settings
    image_fetch_timeout: float
    image_max_width: int
    image_jpeg_quality: int
    image_fetch_concurrency: int
    product_image_base_url: str | None

    # Templates
    template_dir: str
    default_template: str

    # Optional settings
    log_level: str
    api_key: str | None

    @classmethod
    def from_environment(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config: Validated configuration instance.

        Raises:
            ConfigurationError: If required variables are missing.
        """
        gotenberg_url = os.getenv("GOTENBERG_URL")

        # Storage connection string - the functions host setting is an accepted fallback
        storage_conn_str = os.getenv("AZURE_STORAGE_CONNECTION_STRING") or os.getenv(
            "AzureWebJobsStorage"
        )

        missing = []
        if not gotenberg_url:
            missing.append("GOTENBERG_URL")
        if not storage_conn_str:
            missing.append("AZURE_STORAGE_CONNECTION_STRING")
        if missing:
            raise ConfigurationError(missing)

        queue_connection = os.getenv("PDF_QUEUE_CONNECTION", "PDF_QUEUE_STORAGE")
        # Result queue defaults to the connection used by the jobs queue
        results_conn_str = os.getenv("PDF_RESULTS_CONNECTION_STRING") or os.getenv(
            queue_connection
        )

        return cls(
            gotenberg_url=gotenberg_url,
            render_timeout=float(os.getenv("RENDER_TIMEOUT", "120")),
            pdf_format=os.getenv("PDF_FORMAT", "PDF/A-1b") or None,
            storage_connection_string=storage_conn_str,
            pdf_container=os.getenv("PDF_BLOB_CONTAINER", "pdf-reports"),
            blob_prefix=os.getenv("PDF_BLOB_PREFIX", "relatorios/"),
            result_sas_expiry_hours=int(os.getenv("RESULT_SAS_EXPIRY_HOURS", "0")),
            jobs_queue_name=os.getenv("PDF_QUEUE_NAME", "pdf-generation-jobs"),
            queue_connection=queue_connection,
            results_queue_name=os.getenv("PDF_RESULTS_QUEUE_NAME", "pdf-results"),
            results_connection_string=results_conn_str,
            image_fetch_timeout=float(os.getenv("IMAGE_FETCH_TIMEOUT", "60")),
            image_max_width=int(os.getenv("IMAGE_MAX_WIDTH", "1280")),
            image_jpeg_quality=int(os.getenv("IMAGE_JPEG_QUALITY", "65")),
            image_fetch_concurrency=int(os.getenv("IMAGE_FETCH_CONCURRENCY", "4")),
            product_image_base_url=os.getenv("PRODUCT_IMAGE_BASE_URL") or None,
            template_dir=os.getenv("TEMPLATE_DIR", DEFAULT_TEMPLATE_DIR),
            default_template=os.getenv("DEFAULT_TEMPLATE", "Preventiva"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            api_key=os.getenv("API_KEY") or None,
        )


# Global config instance (initialized on first access)
_config: Config | None = None


def get_config() -> Config:
    """Get the application configuration (singleton).

    Returns:
        Config: Application configuration instance.
    """
    global _config
    if _config is None:
        _config = Config.from_environment()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (for testing)."""
    global _config
    _config = None
