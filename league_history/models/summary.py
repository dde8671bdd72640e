"""Run state and summary models produced once per pipeline execution."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class RunState(str, Enum):
    """Pipeline run states."""

    NOT_STARTED = "not_started"
    AUTHENTICATING = "authenticating"
    DISCOVERING_SEASONS = "discovering_seasons"
    DISCOVERING_DIVISIONS = "discovering_divisions"
    SCRAPING = "scraping"
    RECONCILING = "reconciling"
    SUMMARIZING = "summarizing"
    DONE = "done"
    ABORTED = "aborted"


class RunOutcome(str, Enum):
    """How a run ended."""

    COMPLETED = "completed"
    NOTHING_TO_DO = "nothing_to_do"
    DISCOVERY_FAILED = "discovery_failed"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class SeasonSummary(BaseModel):
    """Per-season counters."""

    season_id: str
    season_name: str = ""
    divisions_found: int = 0
    divisions_attempted: int = 0
    divisions_succeeded: int = 0
    divisions_failed: int = 0
    teams_created: int = 0
    teams_updated: int = 0
    discovery_error: Optional[str] = None


class SnapshotDelta(BaseModel):
    """Team count for one season before and after the run."""

    season_id: str
    before: int = 0
    after: int = 0

    @computed_field
    @property
    def change(self) -> int:
        return self.after - self.before


class RunSummary(BaseModel):
    """Everything a caller needs to report a run."""

    outcome: RunOutcome = RunOutcome.COMPLETED
    started_at: datetime
    finished_at: Optional[datetime] = None
    seasons: list[SeasonSummary] = Field(default_factory=list)
    before: dict[str, int] = Field(default_factory=dict)
    after: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def divisions_attempted(self) -> int:
        return sum(s.divisions_attempted for s in self.seasons)

    @computed_field
    @property
    def divisions_succeeded(self) -> int:
        return sum(s.divisions_succeeded for s in self.seasons)

    @computed_field
    @property
    def divisions_failed(self) -> int:
        return sum(s.divisions_failed for s in self.seasons)

    @computed_field
    @property
    def teams_created(self) -> int:
        return sum(s.teams_created for s in self.seasons)

    @computed_field
    @property
    def teams_updated(self) -> int:
        return sum(s.teams_updated for s in self.seasons)

    def diff(self) -> list[SnapshotDelta]:
        """Per-season change in stored team counts, ordered by season id."""
        season_ids = sorted(set(self.before) | set(self.after))
        return [
            SnapshotDelta(
                season_id=season_id,
                before=self.before.get(season_id, 0),
                after=self.after.get(season_id, 0),
            )
            for season_id in season_ids
        ]
