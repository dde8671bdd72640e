"""
Structured logger configuration for the league history pipeline.

This module provides a centralized logger configuration with structured JSON logging
and consistent context fields across discovery, scraping and reconciliation.

Environment-aware logging:
- In Kubernetes: Writes JSON logs to /var/log/league-history/app.log
- Locally: Writes JSON logs to stdout for interactive debugging
"""

import logging
import os
import sys
from typing import Any, Optional

from aws_lambda_powertools import Logger

LOG_FILE_PATH = "/var/log/league-history/app.log"


class LeagueHistoryLogger:
    """
    Centralized logger for the league history pipeline.

    Wraps a structured Logger and adds helpers for the events every run
    emits: run start/complete, API calls and per-division outcomes.
    """

    def __init__(self, service_name: str = "league-history"):
        """
        Initialize the logger with service configuration.

        Args:
            service_name: Name of the service for log identification
        """
        self.service_name = service_name
        self.is_kubernetes = self._detect_kubernetes()

        self._logger = Logger(
            service=service_name,
            level=os.getenv("LOG_LEVEL", "INFO"),
            use_datetime_directive=True,
            json_default=self._custom_serializer,
        )

        self._configure_handler()

    @staticmethod
    def _detect_kubernetes() -> bool:
        """Return True when running inside a Kubernetes pod."""
        return os.getenv("KUBERNETES_SERVICE_HOST") is not None

    def _configure_handler(self) -> None:
        """
        Configure the appropriate log handler based on environment.

        In Kubernetes: FileHandler for the collector plus WARNING+ on stderr.
        Locally: keep the default stdout handler.
        """
        if not self.is_kubernetes:
            return

        try:
            os.makedirs(os.path.dirname(LOG_FILE_PATH), exist_ok=True)

            underlying_logger = logging.getLogger(self._logger.name)
            underlying_logger.handlers.clear()

            file_handler = logging.FileHandler(LOG_FILE_PATH)
            file_handler.setFormatter(self._logger._get_log_formatter())
            underlying_logger.addHandler(file_handler)

            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setLevel(logging.WARNING)
            stderr_handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
            underlying_logger.addHandler(stderr_handler)

        except (PermissionError, OSError) as e:
            import warnings

            warnings.warn(
                f"Cannot write to {LOG_FILE_PATH}: {e}. Falling back to stdout.",
                stacklevel=2,
            )

    def get_logger(self) -> Logger:
        """Get the configured structured Logger instance."""
        return self._logger

    def log_run_start(self, config: dict[str, Any]) -> None:
        """
        Log the start of a pipeline run with configuration details.

        Args:
            config: Run configuration with secrets already removed
        """
        self._logger.info(
            "Starting historical league data run",
            extra={
                "operation": "run_start",
                "config": config,
                "service": self.service_name,
            },
        )

    def log_run_complete(self, summary: dict[str, Any]) -> None:
        """
        Log the completion of a pipeline run with its summary.

        Args:
            summary: Serialized run summary
        """
        self._logger.info(
            "Historical league data run completed",
            extra={
                "operation": "run_complete",
                "summary": summary,
                "service": self.service_name,
            },
        )

    def log_api_call(
        self,
        endpoint: str,
        method: str,
        status_code: Optional[int] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        Log API call details with timing and status information.

        Args:
            endpoint: API endpoint called
            method: HTTP method used
            status_code: HTTP response status code
            duration_ms: Request duration in milliseconds
            error: Error message if call failed
        """
        log_data: dict[str, Any] = {
            "operation": "api_call",
            "endpoint": endpoint,
            "method": method,
            "service": self.service_name,
        }

        if status_code is not None:
            log_data["status_code"] = status_code
        if duration_ms is not None:
            log_data["duration_ms"] = duration_ms
        if error is not None:
            log_data["error"] = error

        if error or (status_code and status_code >= 400):
            self._logger.error(f"API call failed: {method} {endpoint}", extra=log_data)
        else:
            self._logger.debug(
                f"API call successful: {method} {endpoint}", extra=log_data
            )

    def log_division_outcome(
        self,
        season_id: str,
        division_id: str,
        success: bool,
        teams_created: int = 0,
        teams_updated: int = 0,
        error: Optional[str] = None,
    ) -> None:
        """
        Log the outcome of scraping and reconciling one division.

        Args:
            season_id: Season the division belongs to
            division_id: Division that was scraped
            success: Whether the division was scraped and reconciled
            teams_created: Teams created for this division
            teams_updated: Teams updated for this division
            error: Failure reason when unsuccessful
        """
        log_data: dict[str, Any] = {
            "operation": "division_outcome",
            "season_id": season_id,
            "division_id": division_id,
            "success": success,
            "service": self.service_name,
        }

        if success:
            log_data["teams_created"] = teams_created
            log_data["teams_updated"] = teams_updated
            self._logger.info(
                f"Division {division_id} scraped for season {season_id}",
                extra=log_data,
            )
        else:
            log_data["error"] = error
            self._logger.warning(
                f"Division {division_id} failed for season {season_id}",
                extra=log_data,
            )

    @staticmethod
    def _custom_serializer(obj: Any) -> Any:
        """
        Custom JSON serializer for complex objects including Pydantic models.

        Args:
            obj: Object to serialize

        Returns:
            Serializable representation of the object
        """
        if hasattr(obj, "isoformat"):
            return obj.isoformat()
        elif hasattr(obj, "model_dump"):
            return obj.model_dump()
        elif hasattr(obj, "__dict__"):
            return obj.__dict__
        else:
            return str(obj)


# Global logger instance
pipeline_logger = LeagueHistoryLogger()


def get_logger() -> Logger:
    """Get the global structured logger."""
    return pipeline_logger.get_logger()
