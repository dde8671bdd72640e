"""
Team identity resolution.

Only exact recurrences are linked: rows sharing team_name, division label
and league_id in different seasons are the same team. Renamed teams, moved
divisions and near-duplicate spellings are left unresolved for an operator.
"""

from collections import defaultdict
from typing import NamedTuple, Optional

from ..models.records import ResolutionReport, ScrapedTeamRecord
from ..utils.logger import get_logger
from .reconciliation import ReconciliationStore

logger = get_logger()


class RecurrenceKey(NamedTuple):
    team_name: str
    division: str
    league_id: str

    @property
    def canonical_name(self) -> str:
        return f"{self.team_name} | {self.division} | {self.league_id}"


class LinkPlan(NamedTuple):
    """What the resolver intends to do with one recurrence group."""

    key: RecurrenceKey
    identity_id: Optional[int]
    team_ids: list[int]


def recurrence_key(team: ScrapedTeamRecord) -> RecurrenceKey:
    return RecurrenceKey(team.team_name, team.division, team.league_id)


class IdentityResolver:
    """Links scraped teams to identities by exact cross-season recurrence."""

    def __init__(self, store: ReconciliationStore):
        self.store = store

    def plan(
        self, teams: list[ScrapedTeamRecord]
    ) -> tuple[list[LinkPlan], ResolutionReport]:
        """
        Decide links without touching the store.

        A group with exactly one existing identity links its unlinked rows to
        it. A group with none and rows in two or more seasons gets a new
        identity (identity_id None in the plan). A group whose rows already
        point at different identities is a conflict and is left alone.
        Single-season groups with no identity stay unresolved.
        """
        groups: dict[RecurrenceKey, list[ScrapedTeamRecord]] = defaultdict(list)
        for team in teams:
            groups[recurrence_key(team)].append(team)

        plans: list[LinkPlan] = []
        report = ResolutionReport()

        for key in sorted(groups):
            members = groups[key]
            identity_ids = {
                t.team_identity_id for t in members if t.team_identity_id is not None
            }
            unlinked = [t.id for t in members if t.team_identity_id is None]

            if len(identity_ids) > 1:
                report.conflicts.append(
                    f"{key.canonical_name} is linked to identities "
                    f"{sorted(identity_ids)}"
                )
                report.unresolved += len(unlinked)
                continue

            if not unlinked:
                continue

            if identity_ids:
                plans.append(LinkPlan(key, identity_ids.pop(), unlinked))
            elif len({t.season_id for t in members}) > 1:
                plans.append(LinkPlan(key, None, unlinked))
            else:
                report.unresolved += len(unlinked)

        return plans, report

    def resolve(self) -> ResolutionReport:
        """Apply the plan for every stored team."""
        plans, report = self.plan(self.store.all_teams())

        for link_plan in plans:
            identity_id = link_plan.identity_id
            if identity_id is None:
                identity = self.store.create_identity(
                    link_plan.key.canonical_name, display_name=link_plan.key.team_name
                )
                identity_id = identity.id
                report.identities_created += 1

            for team_id in link_plan.team_ids:
                self.store.link_to_identity(team_id, identity_id)
                report.teams_linked += 1

        logger.info(
            "Identity resolution complete",
            extra=report.model_dump(),
        )
        return report
