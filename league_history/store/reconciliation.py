"""
Idempotent reconciliation of scraped league data.

The natural key (team_name, division, league_id, season_id) is the single
point of mutual exclusion: upserts insert with ON CONFLICT DO NOTHING and
fall back to an update of the existing row, so retried or concurrent writes
of the same key always converge on one row.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.hierarchy import Division, Season
from ..models.records import (
    IdentityHistory,
    LeagueTableRecord,
    ReconcileResult,
    ScrapedTeamRecord,
    TeamIdentityRecord,
    UpsertAction,
    UpsertResult,
)
from ..models.scrape import LeagueTableRow
from ..utils.logger import get_logger
from .engine import create_schema, get_engine, get_session_factory
from .schema import (
    NATURAL_KEY_COLUMNS,
    LeagueTableEntry,
    ScrapedTeam,
    TeamIdentity,
    utcnow,
)

logger = get_logger()

NATIVE_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class StoreFailure(Exception):
    """A write or read against the store failed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class ReconciliationConflict(Exception):
    """A natural-key collision. Always resolved inside the store."""


class ReconciliationStore:
    """Persistence for scraped teams, league tables and team identities."""

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self._sessions = get_session_factory(engine)
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: str) -> ReconciliationStore:
        """Build a store for a database URL, creating missing tables."""
        engine = get_engine(database_url)
        create_schema(engine)
        return cls(engine)

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        session = self._sessions()
        try:
            with session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error(
                f"Store operation failed: {operation}",
                extra={"operation": operation, "error": str(e)},
            )
            raise StoreFailure(f"{operation} failed: {e}", operation=operation) from e
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Upserts
    # ------------------------------------------------------------------

    def upsert_scraped_team(
        self,
        team_name: str,
        division_label: str,
        league_id: str,
        season_id: str,
        division_id: str,
    ) -> UpsertResult:
        """
        Insert the team if its natural key is new, otherwise reactivate it.

        division_id is payload: two calls differing only in division_id
        address the same row, and the later division_id wins.

        Raises:
            StoreFailure: If the database write fails
        """
        with self._transaction("upsert_scraped_team") as session:
            return self._upsert(
                session, team_name, division_label, league_id, season_id, division_id
            )

    def _upsert(
        self,
        session: Session,
        team_name: str,
        division_label: str,
        league_id: str,
        season_id: str,
        division_id: str,
    ) -> UpsertResult:
        now = self._clock()
        key = {
            "team_name": team_name,
            "division": division_label,
            "league_id": league_id,
            "season_id": season_id,
        }

        try:
            new_id = self._insert(session, key, division_id, now)
        except ReconciliationConflict:
            new_id = None

        if new_id is not None:
            return UpsertResult(scraped_team_id=new_id, action=UpsertAction.CREATED)

        conditions = [
            getattr(ScrapedTeam, column) == key[column]
            for column in NATURAL_KEY_COLUMNS
        ]
        session.execute(
            update(ScrapedTeam)
            .where(*conditions)
            .values(is_active=True, updated_at=now, division_id=division_id)
            .execution_options(synchronize_session=False)
        )
        existing_id = session.execute(
            select(ScrapedTeam.id).where(*conditions)
        ).scalar_one()
        return UpsertResult(scraped_team_id=existing_id, action=UpsertAction.UPDATED)

    def _insert(
        self, session: Session, key: dict[str, str], division_id: str, now: datetime
    ) -> Optional[int]:
        """
        Insert a new row for the key.

        Returns the new id, or None when the key already exists.

        Raises:
            ReconciliationConflict: If the key exists (generic dialect path)
        """
        values = {
            **key,
            "division_id": division_id,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }

        native_insert = NATIVE_UPSERT_DIALECTS.get(self.engine.dialect.name)
        if native_insert is not None:
            stmt = (
                native_insert(ScrapedTeam.__table__)
                .values(**values)
                .on_conflict_do_nothing(index_elements=list(NATURAL_KEY_COLUMNS))
                .returning(ScrapedTeam.__table__.c.id)
            )
            new_id: Optional[int] = session.execute(stmt).scalar_one_or_none()
            return new_id

        savepoint = session.begin_nested()
        try:
            row = ScrapedTeam(**values)
            session.add(row)
            session.flush()
        except IntegrityError as e:
            savepoint.rollback()
            raise ReconciliationConflict(f"Natural key already stored: {key}") from e
        savepoint.commit()
        return row.id

    def replace_league_table(
        self,
        season_id: str,
        division_id: str,
        rows: Sequence[LeagueTableRow],
    ) -> int:
        """
        Replace the standings for (season_id, division_id) with rows.

        Returns:
            Number of rows written
        """
        with self._transaction("replace_league_table") as session:
            return self._replace_table(session, season_id, division_id, rows, {})

    def _replace_table(
        self,
        session: Session,
        season_id: str,
        division_id: str,
        rows: Sequence[LeagueTableRow],
        scraped_team_ids: dict[str, int],
    ) -> int:
        session.execute(
            delete(LeagueTableEntry).where(
                LeagueTableEntry.season_id == season_id,
                LeagueTableEntry.division_id == division_id,
            )
        )

        scraped_at = self._clock()
        session.add_all(
            LeagueTableEntry(
                season_id=season_id,
                division_id=division_id,
                team_name=row.team_name,
                position=row.position,
                played=row.played,
                won=row.won,
                drawn=row.drawn,
                lost=row.lost,
                goals_for=row.goals_for,
                goals_against=row.goals_against,
                goal_difference=row.goal_difference,
                points=row.points,
                form=json.dumps(row.form),
                scraped_team_id=scraped_team_ids.get(row.team_name),
                scraped_at=scraped_at,
            )
            for row in rows
        )
        return len(rows)

    def reconcile_division(
        self,
        season: Season,
        division: Division,
        league_id: str,
        rows: Sequence[LeagueTableRow],
    ) -> ReconcileResult:
        """
        Upsert every team in a division's standings and replace its table.

        Runs in one transaction; a failure leaves other divisions' committed
        data untouched.

        Raises:
            ValueError: If the division was not discovered under this season
            StoreFailure: If the database write fails
        """
        if division.season_id != season.id:
            raise ValueError(
                f"Division {division.id} belongs to season {division.season_id}, "
                f"not {season.id}"
            )

        result = ReconcileResult(season_id=season.id, division_id=division.id)

        with self._transaction("reconcile_division") as session:
            scraped_team_ids: dict[str, int] = {}
            for row in rows:
                upserted = self._upsert(
                    session,
                    team_name=row.team_name,
                    division_label=division.label,
                    league_id=league_id,
                    season_id=season.id,
                    division_id=division.id,
                )
                scraped_team_ids[row.team_name] = upserted.scraped_team_id
                if upserted.created:
                    result.teams_created += 1
                else:
                    result.teams_updated += 1

            result.table_rows = self._replace_table(
                session, season.id, division.id, rows, scraped_team_ids
            )

        logger.debug(
            "Division reconciled",
            extra=result.model_dump(),
        )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _grouped_count(self, operation: str, *columns: Any) -> list[tuple[Any, ...]]:
        with self._transaction(operation) as session:
            stmt = (
                select(*columns, func.count(ScrapedTeam.id))
                .group_by(*columns)
                .order_by(*columns)
            )
            return [tuple(row) for row in session.execute(stmt).all()]

    def count_teams_by_season(self) -> dict[str, int]:
        return {
            season_id: count
            for season_id, count in self._grouped_count(
                "count_teams_by_season", ScrapedTeam.season_id
            )
        }

    def count_teams_by_division(self) -> dict[str, int]:
        return {
            division_id: count
            for division_id, count in self._grouped_count(
                "count_teams_by_division", ScrapedTeam.division_id
            )
        }

    def count_teams_by_season_and_division(self) -> dict[tuple[str, str], int]:
        return {
            (season_id, division_id): count
            for season_id, division_id, count in self._grouped_count(
                "count_teams_by_season_and_division",
                ScrapedTeam.season_id,
                ScrapedTeam.division_id,
            )
        }

    def count_league_entries_by_season(self) -> dict[str, int]:
        with self._transaction("count_league_entries_by_season") as session:
            stmt = (
                select(LeagueTableEntry.season_id, func.count(LeagueTableEntry.id))
                .group_by(LeagueTableEntry.season_id)
                .order_by(LeagueTableEntry.season_id)
            )
            return {season_id: count for season_id, count in session.execute(stmt).all()}

    def count_identities(self) -> int:
        with self._transaction("count_identities") as session:
            return session.execute(select(func.count(TeamIdentity.id))).scalar_one()

    def find_teams_by_natural_key_prefix(
        self,
        team_name: str,
        division: Optional[str] = None,
        league_id: Optional[str] = None,
        season_id: Optional[str] = None,
    ) -> list[ScrapedTeamRecord]:
        """
        Find rows matching a leading part of the natural key.

        find_teams_by_natural_key_prefix("AFC Hammersmith Town") returns that
        team in every season; adding division, league_id and season_id
        narrows it down to at most one row.

        Raises:
            ValueError: If a key part is given while an earlier one is missing
        """
        parts = [team_name, division, league_id, season_id]
        given = [part is not None for part in parts]
        if not given[0] or given != sorted(given, reverse=True):
            raise ValueError(
                "Natural key prefix must be given in order: "
                "team_name, division, league_id, season_id"
            )

        conditions = [
            getattr(ScrapedTeam, column) == value
            for column, value in zip(NATURAL_KEY_COLUMNS, parts)
            if value is not None
        ]
        with self._transaction("find_teams_by_natural_key_prefix") as session:
            stmt = (
                select(ScrapedTeam)
                .where(*conditions)
                .order_by(ScrapedTeam.season_id, ScrapedTeam.id)
            )
            return [
                ScrapedTeamRecord.model_validate(team)
                for team in session.execute(stmt).scalars()
            ]

    def get_team(self, scraped_team_id: int) -> Optional[ScrapedTeamRecord]:
        with self._transaction("get_team") as session:
            team = session.get(ScrapedTeam, scraped_team_id)
            return ScrapedTeamRecord.model_validate(team) if team else None

    def all_teams(self) -> list[ScrapedTeamRecord]:
        with self._transaction("all_teams") as session:
            stmt = select(ScrapedTeam).order_by(ScrapedTeam.season_id, ScrapedTeam.id)
            return [
                ScrapedTeamRecord.model_validate(team)
                for team in session.execute(stmt).scalars()
            ]

    def teams_in_season(self, season_id: str) -> list[ScrapedTeamRecord]:
        with self._transaction("teams_in_season") as session:
            stmt = (
                select(ScrapedTeam)
                .where(ScrapedTeam.season_id == season_id)
                .order_by(ScrapedTeam.team_name)
            )
            return [
                ScrapedTeamRecord.model_validate(team)
                for team in session.execute(stmt).scalars()
            ]

    def recent_teams(self, limit: int = 5) -> list[ScrapedTeamRecord]:
        with self._transaction("recent_teams") as session:
            stmt = (
                select(ScrapedTeam)
                .order_by(ScrapedTeam.created_at.desc(), ScrapedTeam.id.desc())
                .limit(limit)
            )
            return [
                ScrapedTeamRecord.model_validate(team)
                for team in session.execute(stmt).scalars()
            ]

    def league_table(self, season_id: str, division_id: str) -> list[LeagueTableRecord]:
        with self._transaction("league_table") as session:
            stmt = (
                select(LeagueTableEntry)
                .where(
                    LeagueTableEntry.season_id == season_id,
                    LeagueTableEntry.division_id == division_id,
                )
                .order_by(LeagueTableEntry.position)
            )
            return [
                LeagueTableRecord.model_validate(entry)
                for entry in session.execute(stmt).scalars()
            ]

    # ------------------------------------------------------------------
    # Team identities
    # ------------------------------------------------------------------

    def create_identity(
        self, canonical_name: str, display_name: Optional[str] = None
    ) -> TeamIdentityRecord:
        """Return the identity with this canonical name, creating it if needed."""
        with self._transaction("create_identity") as session:
            identity = session.execute(
                select(TeamIdentity).where(TeamIdentity.canonical_name == canonical_name)
            ).scalar_one_or_none()

            if identity is None:
                identity = TeamIdentity(
                    canonical_name=canonical_name,
                    display_name=display_name or canonical_name,
                    is_active=True,
                    created_at=self._clock(),
                )
                session.add(identity)
                session.flush()
                logger.info(
                    "Created team identity",
                    extra={"identity_id": identity.id, "canonical_name": canonical_name},
                )

            return TeamIdentityRecord.model_validate(identity)

    def link_to_identity(self, scraped_team_id: int, identity_id: int) -> None:
        """
        Point a scraped team at an identity, replacing any previous link.

        Raises:
            ValueError: If the team or the identity does not exist
        """
        with self._transaction("link_to_identity") as session:
            team = session.get(ScrapedTeam, scraped_team_id)
            if team is None:
                raise ValueError(f"Unknown scraped team: {scraped_team_id}")
            if session.get(TeamIdentity, identity_id) is None:
                raise ValueError(f"Unknown team identity: {identity_id}")
            team.team_identity_id = identity_id

        logger.debug(
            "Linked scraped team to identity",
            extra={"scraped_team_id": scraped_team_id, "identity_id": identity_id},
        )

    def identity_for(self, scraped_team_id: int) -> Optional[TeamIdentityRecord]:
        with self._transaction("identity_for") as session:
            team = session.get(ScrapedTeam, scraped_team_id)
            if team is None or team.team_identity is None:
                return None
            return TeamIdentityRecord.model_validate(team.team_identity)

    def identities_with_history(self) -> list[IdentityHistory]:
        """Active identities with their linked rows, newest season first."""
        with self._transaction("identities_with_history") as session:
            identities = session.execute(
                select(TeamIdentity)
                .where(TeamIdentity.is_active.is_(True))
                .order_by(TeamIdentity.display_name)
            ).scalars()

            histories = []
            for identity in identities:
                teams = sorted(
                    identity.scraped_teams, key=lambda t: t.season_id, reverse=True
                )
                histories.append(
                    IdentityHistory(
                        identity=TeamIdentityRecord.model_validate(identity),
                        teams=[ScrapedTeamRecord.model_validate(t) for t in teams],
                    )
                )
            return histories
