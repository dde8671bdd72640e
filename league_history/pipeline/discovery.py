"""Hierarchy discovery module.

Lists the seasons offered by the league source, then the divisions within
one season. Nothing is cached: every run re-discovers the hierarchy.
"""

from typing import Any, Optional

from pydantic import ValidationError

from ..api.client import AuthFailure, LeagueAPIClient, LeagueAPIError
from ..api.session import Session
from ..models.hierarchy import Division, Season, unwrap_list
from ..utils.logger import get_logger
from ..utils.metrics import get_metrics

logger = get_logger()
metrics = get_metrics()


class DiscoveryFailure(Exception):
    """Seasons or divisions could not be listed or parsed."""

    def __init__(self, message: str, season_id: Optional[str] = None):
        super().__init__(message)
        self.season_id = season_id


class HierarchyDiscoverer:
    """Discovers seasons and divisions from the league source."""

    def __init__(self, client: LeagueAPIClient):
        self.client = client

    async def list_seasons(self, session: Session) -> list[Season]:
        """
        List seasons in source order.

        Returns:
            Seasons, possibly empty

        Raises:
            AuthFailure: If the session was rejected
            DiscoveryFailure: On transport or parse errors
        """
        logger.info("Discovering seasons")

        try:
            payload = await self.client.get_seasons(session)
            seasons = [Season.model_validate(item) for item in unwrap_list(payload, "seasons")]
        except AuthFailure:
            raise
        except (LeagueAPIError, ValueError, ValidationError) as e:
            metrics.record_error("season_discovery")
            raise DiscoveryFailure(f"Failed to discover seasons: {e}") from e

        logger.info(
            f"Found {len(seasons)} seasons",
            extra={
                "seasons": [
                    {"id": s.id, "name": s.name, "is_live": s.is_live} for s in seasons
                ]
            },
        )
        return seasons

    async def list_divisions(self, session: Session, season_id: str) -> list[Division]:
        """
        List divisions of one season in source order.

        Raises:
            AuthFailure: If the session was rejected
            DiscoveryFailure: On transport or parse errors
        """
        logger.info(f"Discovering divisions for season {season_id}")

        try:
            payload = await self.client.get_divisions(session, season_id)
            divisions = [
                Division.model_validate(_with_season(item, season_id))
                for item in unwrap_list(payload, "divisions")
            ]
        except AuthFailure:
            raise
        except (LeagueAPIError, ValueError, ValidationError) as e:
            metrics.record_error("division_discovery")
            raise DiscoveryFailure(
                f"Failed to discover divisions for season {season_id}: {e}",
                season_id=season_id,
            ) from e

        logger.info(
            f"Found {len(divisions)} divisions for season {season_id}",
            extra={"divisions": [{"id": d.id, "name": d.name} for d in divisions]},
        )
        return divisions


def _with_season(item: Any, season_id: str) -> Any:
    """Pin a division to the season it was discovered under."""
    if isinstance(item, dict):
        return {**item, "season_id": season_id}
    return item
