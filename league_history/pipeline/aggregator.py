"""Run aggregation: per-season counters plus before/after store snapshots."""

from collections.abc import Callable
from datetime import datetime
from typing import Optional

from ..models.hierarchy import Division, Season
from ..models.summary import RunOutcome, RunSummary, SeasonSummary
from ..store.reconciliation import ReconciliationStore, StoreFailure
from ..store.schema import utcnow
from ..utils.logger import get_logger
from ..utils.metrics import get_metrics

logger = get_logger()
metrics = get_metrics()


class RunAggregator:
    """Collects counters for one run and produces its RunSummary."""

    def __init__(
        self, store: ReconciliationStore, clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self._clock = clock
        self.started_at = clock()
        self._seasons: dict[str, SeasonSummary] = {}
        self._before: dict[str, int] = {}
        self._after: dict[str, int] = {}
        self._errors: list[str] = []

    def _season(self, season: Season) -> SeasonSummary:
        if season.id not in self._seasons:
            self._seasons[season.id] = SeasonSummary(
                season_id=season.id, season_name=season.name
            )
        return self._seasons[season.id]

    def _snapshot(self, label: str) -> dict[str, int]:
        try:
            counts = self.store.count_teams_by_season()
        except StoreFailure as e:
            self.record_error(f"{label} snapshot unavailable: {e}")
            return {}
        logger.info(f"{label.capitalize()} snapshot", extra={"teams_by_season": counts})
        return counts

    def before_snapshot(self) -> dict[str, int]:
        self._before = self._snapshot("before")
        return self._before

    def after_snapshot(self) -> dict[str, int]:
        self._after = self._snapshot("after")
        return self._after

    def start_season(self, season: Season, division_count: int) -> None:
        self._season(season).divisions_found = division_count

    def record_season_failure(self, season: Season, reason: str) -> None:
        self._season(season).discovery_error = reason
        self.record_error(f"season {season.id}: {reason}")

    def record_success(
        self, season: Season, division: Division, teams_created: int, teams_updated: int
    ) -> None:
        summary = self._season(season)
        summary.divisions_attempted += 1
        summary.divisions_succeeded += 1
        summary.teams_created += teams_created
        summary.teams_updated += teams_updated

        metrics.record_division("success", season.id)
        metrics.record_teams("created", teams_created)
        metrics.record_teams("updated", teams_updated)

    def record_failure(self, season: Season, division: Division, reason: str) -> None:
        summary = self._season(season)
        summary.divisions_attempted += 1
        summary.divisions_failed += 1
        self.record_error(f"season {season.id} division {division.id}: {reason}")

        metrics.record_division("failure", season.id)

    def record_error(self, message: str) -> None:
        self._errors.append(message)

    def summary(self, outcome: RunOutcome, seasons: Optional[list[Season]] = None) -> RunSummary:
        """
        Build the run summary.

        Every season passed in gets an entry, even if nothing was attempted
        for it.
        """
        for season in seasons or []:
            self._season(season)

        return RunSummary(
            outcome=outcome,
            started_at=self.started_at,
            finished_at=self._clock(),
            seasons=list(self._seasons.values()),
            before=dict(self._before),
            after=dict(self._after),
            errors=list(self._errors),
        )
