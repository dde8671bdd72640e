"""
OpenTelemetry metrics configuration for the league history pipeline.

Counters and histograms for API calls, scraped divisions, reconciled teams
and run durations, with an optional OTLP exporter.
"""

import logging
import os
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import Counter, Histogram, MeterProvider
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource

logger = logging.getLogger(__name__)


class LeagueHistoryMetrics:
    """
    Centralized metrics collection for the league history pipeline.

    Metrics are always collected; they are only exported when
    OTEL_EXPORTER_OTLP_ENDPOINT is configured.
    """

    def __init__(
        self, service_name: str = "league-history", service_version: str = "1.0.0"
    ):
        """
        Initialize OpenTelemetry metrics with OTLP exporter configuration.

        Args:
            service_name: Name of the service for metric identification
            service_version: Version of the service
        """
        self.service_name = service_name
        self.service_version = service_version

        resource = Resource.create(
            {
                "service.name": service_name,
                "service.version": service_version,
                "service.instance.id": os.getenv("HOSTNAME", "local"),
                "deployment.environment": os.getenv("DEPLOYMENT_ENV", "production"),
            }
        )

        metric_readers = []
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

        if otlp_endpoint:
            try:
                otlp_exporter = OTLPMetricExporter(
                    endpoint=otlp_endpoint,
                    headers=self._parse_otlp_headers(),
                    timeout=30,
                    preferred_temporality={
                        Counter: AggregationTemporality.DELTA,
                        Histogram: AggregationTemporality.DELTA,
                    },
                )
                metric_readers.append(
                    PeriodicExportingMetricReader(
                        exporter=otlp_exporter,
                        export_interval_millis=int(
                            os.getenv("OTEL_METRIC_EXPORT_INTERVAL", "5000")
                        ),
                    )
                )
                logger.info(
                    "OpenTelemetry metrics configured",
                    extra={"endpoint": otlp_endpoint},
                )
            except Exception as e:
                logger.warning(
                    f"Failed to configure OTLP metrics exporter: {e}",
                    extra={"error": str(e), "endpoint": otlp_endpoint},
                    exc_info=True,
                )
        else:
            logger.debug(
                "OTEL_EXPORTER_OTLP_ENDPOINT not configured. Metrics will not be exported."
            )

        self.meter_provider = MeterProvider(
            resource=resource, metric_readers=metric_readers
        )
        metrics.set_meter_provider(self.meter_provider)
        self.metric_readers = metric_readers

        self.meter = metrics.get_meter(service_name, service_version)

        self._init_counters()
        self._init_histograms()

    def _parse_otlp_headers(self) -> dict[str, str]:
        """Parse OTLP headers from OTEL_EXPORTER_OTLP_HEADERS (k=v,k=v)."""
        headers_str = os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "")
        headers = {}

        if headers_str:
            for header in headers_str.split(","):
                if "=" in header:
                    key, value = header.strip().split("=", 1)
                    headers[key] = value

        return headers

    def _init_counters(self) -> None:
        """Initialize counter metrics."""
        self.api_calls_counter = self.meter.create_counter(
            name="api_calls_total",
            description="Total number of calls made to the league source API",
            unit="1",
        )

        self.divisions_counter = self.meter.create_counter(
            name="divisions_scraped_total",
            description="Divisions scraped, by outcome",
            unit="1",
        )

        self.teams_counter = self.meter.create_counter(
            name="teams_reconciled_total",
            description="Scraped teams reconciled, by action",
            unit="1",
        )

        self.errors_counter = self.meter.create_counter(
            name="pipeline_errors_total",
            description="Pipeline errors by type",
            unit="1",
        )

    def _init_histograms(self) -> None:
        """Initialize histogram metrics."""
        self.api_call_duration_histogram = self.meter.create_histogram(
            name="api_call_duration_seconds",
            description="Distribution of API call response times",
            unit="s",
        )

        self.scrape_duration_histogram = self.meter.create_histogram(
            name="scrape_duration_seconds",
            description="Distribution of per-division scrape times",
            unit="s",
        )

        self.run_duration_histogram = self.meter.create_histogram(
            name="run_duration_seconds",
            description="Distribution of full pipeline run times",
            unit="s",
        )

    def record_api_call(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_seconds: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """
        Record an API call with timing and status information.

        Args:
            endpoint: API endpoint called
            method: HTTP method used
            status_code: HTTP response status code (0 for network errors)
            duration_seconds: Request duration in seconds
            labels: Additional labels for the metric
        """
        attributes = dict(labels or {})
        attributes.update(
            {
                "service": self.service_name,
                "endpoint": endpoint,
                "method": method,
                "status_code": str(status_code),
                "status_class": f"{status_code // 100}xx",
            }
        )

        self.api_calls_counter.add(1, attributes)
        self.api_call_duration_histogram.record(duration_seconds, attributes)

    def record_division(self, outcome: str, season_id: str) -> None:
        """Record one scraped division by outcome (success/failure)."""
        self.divisions_counter.add(
            1,
            {"service": self.service_name, "outcome": outcome, "season_id": season_id},
        )

    def record_teams(self, action: str, count: int) -> None:
        """Record reconciled teams by action (created/updated)."""
        if count:
            self.teams_counter.add(
                count, {"service": self.service_name, "action": action}
            )

    def record_error(self, error_type: str) -> None:
        """Record a pipeline error by type."""
        self.errors_counter.add(
            1, {"service": self.service_name, "error_type": error_type}
        )

    @contextmanager
    def time_scrape(
        self, labels: Optional[dict[str, str]] = None
    ) -> Generator[None, None, None]:
        """Context manager timing one division scrape."""
        start_time = time.time()
        try:
            yield
        finally:
            attributes = dict(labels or {})
            attributes["service"] = self.service_name
            self.scrape_duration_histogram.record(time.time() - start_time, attributes)

    @contextmanager
    def time_run(self) -> Generator[None, None, None]:
        """Context manager timing a full pipeline run."""
        start_time = time.time()
        try:
            yield
        finally:
            self.run_duration_histogram.record(
                time.time() - start_time,
                {
                    "service": self.service_name,
                    "instance": os.getenv("HOSTNAME", "local"),
                },
            )

    def shutdown(self, timeout_seconds: int = 30) -> bool:
        """
        Shutdown metrics collection and force flush all pending metrics.

        Args:
            timeout_seconds: Maximum time to wait for export completion

        Returns:
            True if shutdown succeeded, False otherwise
        """
        try:
            for reader in self.metric_readers:
                reader.force_flush(timeout_millis=timeout_seconds * 1000)
            self.meter_provider.shutdown()
            logger.info("Metrics shutdown completed successfully")
            return True

        except Exception as e:
            logger.error(f"Error during metrics shutdown: {e}", exc_info=True)
            return False


# Global metrics instance
pipeline_metrics = LeagueHistoryMetrics()


def get_metrics() -> LeagueHistoryMetrics:
    """Get the global metrics instance."""
    return pipeline_metrics
