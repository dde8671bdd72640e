"""
Utility modules for the league history pipeline.

Structured logging and OpenTelemetry metrics shared by every component.
"""

from .logger import LeagueHistoryLogger, get_logger, pipeline_logger
from .metrics import LeagueHistoryMetrics, get_metrics, pipeline_metrics

__all__ = [
    "get_logger",
    "pipeline_logger",
    "LeagueHistoryLogger",
    "get_metrics",
    "pipeline_metrics",
    "LeagueHistoryMetrics",
]
