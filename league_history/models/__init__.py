"""
Pydantic models for data validation and serialization.
"""

from .hierarchy import Division, Season, unwrap_list
from .records import (
    IdentityHistory,
    LeagueTableRecord,
    ReconcileResult,
    ResolutionReport,
    ScrapedTeamRecord,
    TeamIdentityRecord,
    UpsertAction,
    UpsertResult,
)
from .scrape import (
    DatabaseResult,
    LeagueTableRow,
    ScrapeFailure,
    ScrapeOutcome,
    ScrapeRequest,
    ScrapeResponse,
    ScrapeSuccess,
)
from .summary import RunOutcome, RunState, RunSummary, SeasonSummary, SnapshotDelta

__all__ = [
    "Division",
    "Season",
    "unwrap_list",
    "IdentityHistory",
    "LeagueTableRecord",
    "ReconcileResult",
    "ResolutionReport",
    "ScrapedTeamRecord",
    "TeamIdentityRecord",
    "UpsertAction",
    "UpsertResult",
    "DatabaseResult",
    "LeagueTableRow",
    "ScrapeFailure",
    "ScrapeOutcome",
    "ScrapeRequest",
    "ScrapeResponse",
    "ScrapeSuccess",
    "RunOutcome",
    "RunState",
    "RunSummary",
    "SeasonSummary",
    "SnapshotDelta",
]
