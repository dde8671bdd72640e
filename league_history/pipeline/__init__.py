"""
Historical acquisition pipeline.

Configuration, hierarchy discovery, paced scraping, run aggregation and the
run orchestrator.
"""

from .aggregator import RunAggregator
from .config import PipelineConfig, load_config
from .discovery import DiscoveryFailure, HierarchyDiscoverer
from .invoker import ScrapeInvoker
from .runner import HistoricalRun, exit_code, main, run_pipeline
from .scheduler import CancellationToken, Pacer, RateLimitedScheduler

__all__ = [
    "CancellationToken",
    "DiscoveryFailure",
    "exit_code",
    "HierarchyDiscoverer",
    "HistoricalRun",
    "load_config",
    "main",
    "Pacer",
    "PipelineConfig",
    "RateLimitedScheduler",
    "RunAggregator",
    "run_pipeline",
    "ScrapeInvoker",
]
