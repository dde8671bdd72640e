"""Rate-limited scrape scheduler.

Walks seasons in discovery order, discovers each season's divisions, and
scrapes every division exactly once with one request in flight at a time.
Consecutive scrape requests (retries included) are separated by at least
the configured base delay plus random jitter, measured from the end of the
previous request.
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional, Protocol

from ..api.client import AuthFailure
from ..api.session import Session
from ..models.hierarchy import Division, Season
from ..models.scrape import ScrapeFailure, ScrapeOutcome, ScrapeSuccess
from ..models.summary import RunState
from ..utils.logger import get_logger
from ..utils.metrics import get_metrics
from .discovery import DiscoveryFailure, HierarchyDiscoverer
from .invoker import ScrapeInvoker

logger = get_logger()
metrics = get_metrics()


class CancellationToken:
    """Cooperative stop signal checked before every division."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Pacer:
    """Enforces the minimum spacing between scrape requests."""

    def __init__(
        self,
        base_delay: float,
        jitter: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.base_delay = base_delay
        self.jitter = jitter
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self._last_finished: Optional[float] = None

    def next_gap(self) -> float:
        return self.base_delay + self._rng.uniform(0, self.jitter)

    async def wait(self) -> None:
        """Sleep until the next request is allowed. The first request never waits."""
        if self._last_finished is None:
            return
        remaining = self._last_finished + self.next_gap() - self._clock()
        if remaining > 0:
            logger.debug(f"Pacing: waiting {remaining:.2f}s before next scrape")
            await self._sleep(remaining)

    def mark(self) -> None:
        """Record that a request has just finished."""
        self._last_finished = self._clock()


class TraversalHandler(Protocol):
    """Receives everything the scheduler observes during a run."""

    def on_state(self, state: RunState) -> None: ...

    def on_season_discovered(self, season: Season, divisions: Sequence[Division]) -> None: ...

    def on_season_failed(self, season: Season, error: DiscoveryFailure) -> None: ...

    async def on_outcome(
        self, season: Season, division: Division, outcome: ScrapeOutcome
    ) -> None: ...

    def on_division_error(
        self, season: Season, division: Division, error: Exception
    ) -> None: ...


class RateLimitedScheduler:
    """Sequences ScrapeInvoker calls across the season x division set."""

    def __init__(
        self,
        discoverer: HierarchyDiscoverer,
        invoker: ScrapeInvoker,
        pacer: Pacer,
        league_id: str,
        max_attempts: int = 1,
        cancel_token: Optional[CancellationToken] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.discoverer = discoverer
        self.invoker = invoker
        self.pacer = pacer
        self.league_id = league_id
        self.max_attempts = max_attempts
        self.cancel_token = cancel_token or CancellationToken()

    async def run(
        self, session: Session, seasons: Sequence[Season], handler: TraversalHandler
    ) -> None:
        """
        Visit every (season, division) pair once.

        Raises:
            AuthFailure: If the session is rejected at any point
        """
        for season in seasons:
            if self.cancel_token.cancelled:
                logger.warning("Run cancelled before season", extra={"season_id": season.id})
                return

            handler.on_state(RunState.DISCOVERING_DIVISIONS)
            try:
                divisions = await self.discoverer.list_divisions(session, season.id)
            except DiscoveryFailure as e:
                logger.warning(
                    f"Skipping season {season.id}: {e}",
                    extra={"season_id": season.id, "error": str(e)},
                )
                handler.on_season_failed(season, e)
                continue

            handler.on_season_discovered(season, divisions)
            if not divisions:
                logger.warning(
                    f"No divisions found for season {season.name or season.id}, skipping",
                    extra={"season_id": season.id},
                )
                continue

            for division in divisions:
                if self.cancel_token.cancelled:
                    logger.warning(
                        "Run cancelled before division",
                        extra={"season_id": season.id, "division_id": division.id},
                    )
                    return
                await self._visit(session, season, division, handler)

    async def _visit(
        self,
        session: Session,
        season: Season,
        division: Division,
        handler: TraversalHandler,
    ) -> None:
        handler.on_state(RunState.SCRAPING)
        try:
            outcome = await self.scrape_division(session, season, division)
            await handler.on_outcome(season, division, outcome)
        except AuthFailure:
            raise
        except Exception as e:
            logger.exception(
                f"Unexpected error processing division {division.id}",
                extra={"season_id": season.id, "division_id": division.id},
            )
            handler.on_division_error(season, division, e)

    async def scrape_division(
        self, session: Session, season: Season, division: Division
    ) -> ScrapeOutcome:
        """Scrape one division, retrying failures up to max_attempts, always paced."""
        outcome: ScrapeOutcome = ScrapeFailure(reason="not attempted")

        for attempt in range(1, self.max_attempts + 1):
            await self.pacer.wait()
            try:
                with metrics.time_scrape({"season_id": season.id}):
                    outcome = await self.invoker.scrape(
                        session, division.id, season.id, self.league_id
                    )
            finally:
                self.pacer.mark()

            if isinstance(outcome, ScrapeSuccess):
                return outcome

            if attempt < self.max_attempts:
                logger.warning(
                    f"Scrape attempt {attempt} failed for division {division.id}, retrying",
                    extra={
                        "season_id": season.id,
                        "division_id": division.id,
                        "attempt": attempt,
                        "reason": outcome.reason,
                    },
                )

        return outcome
