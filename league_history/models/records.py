"""
Read models returned by the reconciliation store.

Store methods return these detached records rather than ORM instances so
callers never hold a database session open.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UpsertAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


class UpsertResult(BaseModel):
    """Result of upserting one scraped team."""

    scraped_team_id: int
    action: UpsertAction

    @property
    def created(self) -> bool:
        return self.action is UpsertAction.CREATED


class ScrapedTeamRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_name: str
    division: str
    league_id: str
    season_id: str
    division_id: str
    is_active: bool
    team_identity_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class LeagueTableRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    season_id: str
    division_id: str
    team_name: str
    position: int
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_difference: int
    points: int
    scraped_team_id: Optional[int] = None
    scraped_at: datetime


class TeamIdentityRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    canonical_name: str
    display_name: str
    is_active: bool
    created_at: datetime


class IdentityHistory(BaseModel):
    """An identity with its linked rows, newest season first."""

    identity: TeamIdentityRecord
    teams: list[ScrapedTeamRecord] = Field(default_factory=list)

    @property
    def current(self) -> Optional[ScrapedTeamRecord]:
        return self.teams[0] if self.teams else None

    @property
    def history(self) -> list[ScrapedTeamRecord]:
        return self.teams[1:]


class ReconcileResult(BaseModel):
    """Outcome of reconciling one division's standings."""

    season_id: str
    division_id: str
    teams_created: int = 0
    teams_updated: int = 0
    table_rows: int = 0


class ResolutionReport(BaseModel):
    """Outcome of an identity resolution pass."""

    identities_created: int = 0
    teams_linked: int = 0
    unresolved: int = 0
    conflicts: list[str] = Field(default_factory=list)
