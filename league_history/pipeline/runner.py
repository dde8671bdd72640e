"""
Historical run orchestration.

A run authenticates, discovers seasons, walks every division through the
rate-limited scheduler, reconciles returned standings into the local store
and reports a summary. The state history of each run is kept so callers
can see where an aborted run stopped.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional

from ..api.client import AuthFailure, LeagueAPIClient, LeagueAPIError
from ..api.session import Session, SessionAuthenticator
from ..models.hierarchy import Division, Season
from ..models.scrape import ScrapeFailure, ScrapeOutcome
from ..models.summary import RunOutcome, RunState, RunSummary
from ..store.reconciliation import ReconciliationStore, StoreFailure
from ..utils.logger import get_logger, pipeline_logger
from ..utils.metrics import get_metrics
from .aggregator import RunAggregator
from .config import PipelineConfig, load_config
from .discovery import DiscoveryFailure, HierarchyDiscoverer
from .invoker import ScrapeInvoker
from .scheduler import CancellationToken, Pacer, RateLimitedScheduler

logger = get_logger()
metrics = get_metrics()


class HistoricalRun:
    """One execution of the historical acquisition pipeline."""

    def __init__(
        self,
        config: PipelineConfig,
        client: Optional[LeagueAPIClient] = None,
        store: Optional[ReconciliationStore] = None,
        cancel_token: Optional[CancellationToken] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        pipeline_logger.get_logger().setLevel(config.log_level)
        self.client = client or LeagueAPIClient(
            config.api_base_url, timeout=config.request_timeout
        )
        self.store = store or ReconciliationStore.from_url(config.database_url)
        self.cancel_token = cancel_token or CancellationToken()

        self.authenticator = SessionAuthenticator(
            self.client, config.api_email, config.api_password.get_secret_value()
        )
        self.discoverer = HierarchyDiscoverer(self.client)
        self.scheduler = RateLimitedScheduler(
            discoverer=self.discoverer,
            invoker=ScrapeInvoker(self.client),
            pacer=Pacer(
                config.request_delay_seconds,
                config.request_jitter_seconds,
                sleep=sleep,
                rng=rng,
            ),
            league_id=config.league_id,
            max_attempts=config.max_attempts,
            cancel_token=self.cancel_token,
        )
        self.aggregator = RunAggregator(self.store)

        self.state = RunState.NOT_STARTED
        self.state_history: list[RunState] = [RunState.NOT_STARTED]
        self.summary: Optional[RunSummary] = None

    def on_state(self, state: RunState) -> None:
        if state != self.state:
            logger.debug(f"Run state: {self.state.value} -> {state.value}")
            self.state = state
            self.state_history.append(state)

    # Scheduler callbacks

    def on_season_discovered(self, season: Season, divisions: Sequence[Division]) -> None:
        self.aggregator.start_season(season, len(divisions))

    def on_season_failed(self, season: Season, error: DiscoveryFailure) -> None:
        self.aggregator.record_season_failure(season, str(error))

    async def on_outcome(
        self, season: Season, division: Division, outcome: ScrapeOutcome
    ) -> None:
        if isinstance(outcome, ScrapeFailure):
            self._fail_division(season, division, outcome.reason)
            return

        self.on_state(RunState.RECONCILING)
        teams_created, teams_updated = outcome.teams_created, outcome.teams_updated

        if outcome.rows:
            try:
                result = self.store.reconcile_division(
                    season, division, self.config.league_id, outcome.rows
                )
            except (StoreFailure, ValueError) as e:
                metrics.record_error("store")
                self._fail_division(season, division, f"store: {e}")
                return
            teams_created, teams_updated = result.teams_created, result.teams_updated

        self.aggregator.record_success(season, division, teams_created, teams_updated)
        pipeline_logger.log_division_outcome(
            season.id,
            division.id,
            success=True,
            teams_created=teams_created,
            teams_updated=teams_updated,
        )

    def on_division_error(
        self, season: Season, division: Division, error: Exception
    ) -> None:
        metrics.record_error("division")
        self._fail_division(season, division, f"{type(error).__name__}: {error}")

    def _fail_division(self, season: Season, division: Division, reason: str) -> None:
        self.aggregator.record_failure(season, division, reason)
        pipeline_logger.log_division_outcome(
            season.id, division.id, success=False, error=reason
        )

    # Safe mode

    async def _disable_safe_mode(self, session: Session) -> bool:
        """Turn remote safe mode off if it is on. Returns True if it must be restored."""
        if not self.config.manage_safe_mode:
            return False

        try:
            enabled = await self.client.get_safe_mode(session)
        except AuthFailure:
            raise
        except LeagueAPIError as e:
            logger.warning(
                f"Could not read safe mode status, continuing without toggling: {e}"
            )
            return False

        if not enabled:
            return False

        logger.info("Safe mode is on, disabling it for this run")
        try:
            await self.client.set_safe_mode(session, False)
        except AuthFailure:
            raise
        except LeagueAPIError as e:
            logger.warning(f"Could not disable safe mode, continuing with it on: {e}")
            self.aggregator.record_error(f"safe mode not disabled: {e}")
            return False
        return True

    async def _restore_safe_mode(self, session: Session) -> None:
        try:
            await self.client.set_safe_mode(session, True)
        except LeagueAPIError as e:
            logger.error(f"Failed to restore safe mode: {e}")
            self.aggregator.record_error(f"safe mode not restored: {e}")

    # Run

    async def run(self) -> RunSummary:
        """
        Execute the run.

        Returns:
            The run summary

        Raises:
            AuthFailure: If authentication fails or the session is rejected
                mid-run. The partial summary is left on self.summary.
        """
        pipeline_logger.log_run_start(self.config.safe_dict())

        with metrics.time_run():
            self.on_state(RunState.AUTHENTICATING)
            try:
                session = await self.authenticator.acquire()
            except AuthFailure as e:
                self._abort(str(e))
                raise

            self.aggregator.before_snapshot()
            seasons: list[Season] = []
            restore_safe_mode = False

            try:
                restore_safe_mode = await self._disable_safe_mode(session)

                self.on_state(RunState.DISCOVERING_SEASONS)
                try:
                    seasons = await self.discoverer.list_seasons(session)
                except DiscoveryFailure as e:
                    self.aggregator.record_error(str(e))
                    outcome = RunOutcome.DISCOVERY_FAILED
                else:
                    if not seasons:
                        logger.warning("No seasons found, nothing to do")
                        outcome = RunOutcome.NOTHING_TO_DO
                    else:
                        await self.scheduler.run(session, seasons, self)
                        outcome = (
                            RunOutcome.CANCELLED
                            if self.cancel_token.cancelled
                            else RunOutcome.COMPLETED
                        )
            except AuthFailure as e:
                self._abort(str(e), seasons)
                raise
            finally:
                if restore_safe_mode:
                    await self._restore_safe_mode(session)

            self.on_state(RunState.SUMMARIZING)
            self.aggregator.after_snapshot()
            self.summary = self.aggregator.summary(outcome, seasons)
            self.on_state(RunState.DONE)

        pipeline_logger.log_run_complete(self.summary.model_dump(mode="json"))
        return self.summary

    def _abort(self, reason: str, seasons: Optional[list[Season]] = None) -> None:
        logger.error(f"Run aborted: {reason}")
        metrics.record_error("auth")
        self.aggregator.record_error(f"aborted: {reason}")
        self.on_state(RunState.ABORTED)
        self.summary = self.aggregator.summary(RunOutcome.ABORTED, seasons)


async def run_pipeline(
    config: PipelineConfig,
    client: Optional[LeagueAPIClient] = None,
    store: Optional[ReconciliationStore] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> RunSummary:
    """Run the pipeline once with the given configuration."""
    run = HistoricalRun(config, client=client, store=store, cancel_token=cancel_token)
    return await run.run()


def exit_code(summary: Optional[RunSummary]) -> int:
    """Non-zero only when the run could not authenticate or list seasons."""
    if summary is None:
        return 1
    if summary.outcome in (RunOutcome.ABORTED, RunOutcome.DISCOVERY_FAILED):
        return 1
    return 0


def main() -> int:
    """Load configuration from the environment, run once, return an exit code."""
    try:
        config = load_config()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    try:
        summary = asyncio.run(run_pipeline(config))
    except AuthFailure as e:
        logger.error(f"Authentication failed: {e}")
        return 1

    return exit_code(summary)
