"""Application Insights telemetry for PDF generation jobs.

Stage timings and job outcomes are always logged; when an Application
Insights connection string is configured they are also recorded as metrics.
"""

import logging
import os
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


class TelemetryService:
    """Service for tracking job metrics in Application Insights."""

    def __init__(self, connection_string: str | None = None) -> None:
        """Initialize telemetry service.

        Args:
            connection_string: Application Insights connection string. Read
                from ``APPLICATIONINSIGHTS_CONNECTION_STRING`` when omitted.
        """
        self._enabled = False
        self._initialize_client(
            connection_string or os.environ.get("APPLICATIONINSIGHTS_CONNECTION_STRING")
        )

    @property
    def enabled(self) -> bool:
        """True when metrics are exported to Application Insights."""
        return self._enabled

    def _initialize_client(self, connection_string: str | None) -> None:
        if not connection_string:
            logger.info("Application Insights not configured, telemetry disabled")
            return

        try:
            from opencensus.ext.azure import metrics_exporter
            from opencensus.stats import stats

            self._metrics_exporter = metrics_exporter.new_metrics_exporter(
                connection_string=connection_string
            )
            self._stats_recorder = stats.stats.stats_recorder
            self._setup_measures(stats.stats.view_manager)
            self._enabled = True
            logger.info("Application Insights telemetry initialized")
        except ImportError:
            logger.warning(
                "opencensus-ext-azure not installed. "
                "Install with: pip install opencensus-ext-azure"
            )
        except Exception as e:
            logger.warning(f"Failed to initialize Application Insights: {e}")

    def _setup_measures(self, view_manager: Any) -> None:
        from opencensus.stats import aggregation, measure, view
        from opencensus.tags import tag_key

        self._tag_template = tag_key.TagKey("template")
        self._tag_status = tag_key.TagKey("status")
        self._tag_stage = tag_key.TagKey("stage")

        self._measure_jobs = measure.MeasureInt("pdf_jobs", "PDF generation jobs", "jobs")
        self._measure_job_duration = measure.MeasureFloat(
            "pdf_job_duration_ms", "End-to-end job duration in milliseconds", "ms"
        )
        self._measure_stage_duration = measure.MeasureFloat(
            "pdf_stage_duration_ms", "Pipeline stage duration in milliseconds", "ms"
        )
        self._measure_pdf_size = measure.MeasureInt(
            "pdf_size_bytes", "Size of generated PDFs", "By"
        )
        self._measure_images = measure.MeasureInt(
            "pdf_images_embedded", "Images embedded per PDF", "images"
        )

        duration_buckets = [0, 500, 1000, 5000, 10000, 30000, 60000, 120000]
        for v in (
            view.View(
                "pdf_jobs_total",
                "PDF jobs by template and status",
                [self._tag_template, self._tag_status],
                self._measure_jobs,
                aggregation.CountAggregation(),
            ),
            view.View(
                "pdf_job_duration_distribution",
                "Distribution of job durations",
                [self._tag_template],
                self._measure_job_duration,
                aggregation.DistributionAggregation(duration_buckets),
            ),
            view.View(
                "pdf_stage_duration_distribution",
                "Distribution of stage durations",
                [self._tag_stage],
                self._measure_stage_duration,
                aggregation.DistributionAggregation(duration_buckets),
            ),
            view.View(
                "pdf_size_distribution",
                "Distribution of PDF sizes",
                [self._tag_template],
                self._measure_pdf_size,
                aggregation.DistributionAggregation([0, 100_000, 500_000, 1_000_000, 5_000_000]),
            ),
            view.View(
                "pdf_images_embedded_total",
                "Images embedded in PDFs",
                [self._tag_template],
                self._measure_images,
                aggregation.SumAggregation(),
            ),
        ):
            view_manager.register_view(v)

    def _record(self, tags: dict[Any, str], ints: dict[Any, int], floats: dict[Any, float]) -> None:
        from opencensus.tags import tag_map, tag_value

        tmap = tag_map.TagMap()
        for key, value in tags.items():
            tmap.insert(key, tag_value.TagValue(value[:50]))

        mmap = self._stats_recorder.new_measurement_map()
        for m, value in ints.items():
            mmap.measure_int_put(m, value)
        for m, value in floats.items():
            mmap.measure_float_put(m, value)
        mmap.record(tmap)

    def track_stage_duration(self, stage: str, duration_ms: float, status: str) -> None:
        """Record how long a pipeline stage took."""
        logger.debug(f"Stage {stage} {status} in {duration_ms:.0f}ms")

        if not self._enabled:
            return

        try:
            self._record(
                {self._tag_stage: stage, self._tag_status: status},
                {},
                {self._measure_stage_duration: duration_ms},
            )
        except Exception as e:
            logger.warning(f"Failed to track stage {stage}: {e}")

    @contextmanager
    def track_stage(self, stage: str) -> Generator[None, None, None]:
        """Context manager timing one pipeline stage.

        Example:
            with telemetry.track_stage("CONVERTING_PDF"):
                pdf = await renderer.convert(html, assets)
        """
        start_time = time.perf_counter()
        status = "failed"
        try:
            yield
            status = "completed"
        finally:
            self.track_stage_duration(stage, (time.perf_counter() - start_time) * 1000, status)

    def track_job(
        self,
        template_name: str,
        status: str,
        duration_ms: float,
        image_count: int = 0,
        pdf_size_bytes: int = 0,
    ) -> None:
        """Track a finished job.

        Args:
            template_name: Template used (``unknown`` if the payload was invalid).
            status: Final status (SUCCEEDED or FAILED).
            duration_ms: End-to-end duration in milliseconds.
            image_count: Number of images embedded.
            pdf_size_bytes: Size of the generated PDF.
        """
        logger.info(
            f"Job finished: template={template_name}, status={status}, "
            f"duration_ms={duration_ms:.0f}, images={image_count}, size={pdf_size_bytes}"
        )

        if not self._enabled:
            return

        try:
            ints = {self._measure_jobs: 1}
            if pdf_size_bytes > 0:
                ints[self._measure_pdf_size] = pdf_size_bytes
            if image_count > 0:
                ints[self._measure_images] = image_count
            self._record(
                {self._tag_template: template_name, self._tag_status: status},
                ints,
                {self._measure_job_duration: duration_ms},
            )
        except Exception as e:
            logger.warning(f"Failed to track job: {e}")


# Singleton instance
_telemetry_service: TelemetryService | None = None


def get_telemetry_service() -> TelemetryService:
    """Get or create the telemetry service singleton."""
    global _telemetry_service
    if _telemetry_service is None:
        _telemetry_service = TelemetryService()
    return _telemetry_service


def reset_telemetry_service() -> None:
    """Drop the cached telemetry service (for testing)."""
    global _telemetry_service
    _telemetry_service = None
