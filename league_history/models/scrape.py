"""
Scrape endpoint models.

The scrape-table endpoint replies with an envelope:
{success, databaseResult?: {teamsCreated, teamsUpdated}, error?, data?}.
ScrapeInvoker normalizes every reply into a ScrapeSuccess or a ScrapeFailure.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LeagueTableRow(BaseModel):
    """One standings row as parsed by the remote scraper."""

    model_config = ConfigDict(populate_by_name=True)

    team_name: str = Field(..., min_length=1, alias="teamName")
    position: int = Field(..., ge=0)
    played: int = Field(default=0, ge=0)
    won: int = Field(default=0, ge=0)
    drawn: int = Field(default=0, ge=0)
    lost: int = Field(default=0, ge=0)
    goals_for: int = Field(default=0, ge=0, alias="goalsFor")
    goals_against: int = Field(default=0, ge=0, alias="goalsAgainst")
    goal_difference: int = Field(default=0, alias="goalDifference")
    points: int = Field(default=0)
    form: list[str] = Field(default_factory=list, description="Last results, e.g. W/D/L")

    @field_validator("team_name")
    @classmethod
    def strip_team_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("team_name cannot be blank")
        return stripped


class ScrapeRequest(BaseModel):
    """Body of POST scraping/scrape-table."""

    model_config = ConfigDict(populate_by_name=True)

    division_id: str = Field(..., alias="divisionId")
    season_id: str = Field(..., alias="seasonId")
    league_id: str = Field(..., alias="leagueId")


class DatabaseResult(BaseModel):
    """Remote persistence counts reported by the scrape endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    teams_created: int = Field(default=0, ge=0, alias="teamsCreated")
    teams_updated: int = Field(default=0, ge=0, alias="teamsUpdated")


class ScrapeResponse(BaseModel):
    """Raw scrape-table envelope."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    database_result: Optional[DatabaseResult] = Field(
        default=None, alias="databaseResult"
    )
    error: Optional[str] = None
    data: Optional[list[LeagueTableRow]] = None


class ScrapeSuccess(BaseModel):
    """A division was scraped."""

    kind: Literal["success"] = "success"
    teams_created: int = Field(default=0, ge=0)
    teams_updated: int = Field(default=0, ge=0)
    rows: list[LeagueTableRow] = Field(default_factory=list)


class ScrapeFailure(BaseModel):
    """A division could not be scraped; reason is human readable."""

    kind: Literal["failure"] = "failure"
    reason: str
    status_code: Optional[int] = None


ScrapeOutcome = Union[ScrapeSuccess, ScrapeFailure]
