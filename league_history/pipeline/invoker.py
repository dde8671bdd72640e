"""Scrape invoker.

Issues one scrape-table request and folds every possible reply (success
envelope, failure envelope, non-2xx, malformed body, network error) into a
ScrapeSuccess or a ScrapeFailure. Only an auth rejection escapes as an
exception, since nothing after it can succeed.
"""

from pydantic import ValidationError

from ..api.client import AuthFailure, LeagueAPIClient, LeagueAPIError
from ..api.session import Session
from ..models.scrape import (
    ScrapeFailure,
    ScrapeOutcome,
    ScrapeRequest,
    ScrapeResponse,
    ScrapeSuccess,
)
from ..utils.logger import get_logger

logger = get_logger()


class ScrapeInvoker:
    """Calls the remote scrape-table endpoint for one division."""

    def __init__(self, client: LeagueAPIClient):
        self.client = client

    async def scrape(
        self, session: Session, division_id: str, season_id: str, league_id: str
    ) -> ScrapeOutcome:
        """
        Scrape one division of one season.

        Raises:
            AuthFailure: If the session was rejected
        """
        request = ScrapeRequest(
            division_id=division_id, season_id=season_id, league_id=league_id
        )
        logger.info(
            f"Scraping division {division_id} for season {season_id}",
            extra={"division_id": division_id, "season_id": season_id},
        )

        try:
            payload = await self.client.scrape_table(
                session, request.model_dump(by_alias=True)
            )
        except AuthFailure:
            raise
        except LeagueAPIError as e:
            return ScrapeFailure(reason=str(e), status_code=e.status_code)

        try:
            response = ScrapeResponse.model_validate(payload)
        except ValidationError as e:
            return ScrapeFailure(
                reason=f"Malformed scrape response: {e.error_count()} validation errors"
            )

        if not response.success:
            return ScrapeFailure(reason=response.error or "Scrape reported failure")

        counts = response.database_result
        return ScrapeSuccess(
            teams_created=counts.teams_created if counts else 0,
            teams_updated=counts.teams_updated if counts else 0,
            rows=response.data or [],
        )
