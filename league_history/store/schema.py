"""
Database schema for scraped league history.

scraped_teams carries the natural-key unique constraint
(team_name, division, league_id, season_id); it is the only on-disk
invariant other systems rely on.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

NATURAL_KEY_COLUMNS = ("team_name", "division", "league_id", "season_id")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TeamIdentity(Base):
    """Canonical cross-season grouping of scraped team rows."""

    __tablename__ = "team_identities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    canonical_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    scraped_teams: Mapped[list[ScrapedTeam]] = relationship(
        back_populates="team_identity"
    )

    def __repr__(self) -> str:
        return f"<TeamIdentity(id={self.id}, canonical_name='{self.canonical_name}')>"


class ScrapedTeam(Base):
    """One team's membership in one division of one season."""

    __tablename__ = "scraped_teams"
    __table_args__ = (
        UniqueConstraint(*NATURAL_KEY_COLUMNS, name="uq_scraped_teams_natural_key"),
        Index("ix_scraped_teams_season_division", "season_id", "division_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    division: Mapped[str] = mapped_column(String(255), nullable=False)
    league_id: Mapped[str] = mapped_column(String(64), nullable=False)
    season_id: Mapped[str] = mapped_column(String(64), nullable=False)
    division_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    team_identity_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("team_identities.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    team_identity: Mapped[Optional[TeamIdentity]] = relationship(
        back_populates="scraped_teams"
    )

    def __repr__(self) -> str:
        return (
            f"<ScrapedTeam(id={self.id}, team_name='{self.team_name}', "
            f"season_id='{self.season_id}', division_id='{self.division_id}')>"
        )


class LeagueTableEntry(Base):
    """One standings row scoped to (season_id, division_id)."""

    __tablename__ = "league_table_entries"
    __table_args__ = (
        Index("ix_league_table_scope", "season_id", "division_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    season_id: Mapped[str] = mapped_column(String(64), nullable=False)
    division_id: Mapped[str] = mapped_column(String(64), nullable=False)
    team_name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    played: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    won: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    drawn: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goals_for: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goals_against: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goal_difference: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    form: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    scraped_team_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scraped_teams.id"), nullable=True
    )
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<LeagueTableEntry(season_id='{self.season_id}', "
            f"division_id='{self.division_id}', position={self.position}, "
            f"team_name='{self.team_name}')>"
        )
