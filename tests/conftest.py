"""Shared fixtures: configuration, a SQLite store and a fake league API."""

import asyncio
import json
from typing import Any, Optional, Union

import httpx
import pytest
from pydantic import SecretStr

from league_history.api.client import LeagueAPIClient
from league_history.api.session import Session
from league_history.models.hierarchy import Division, Season
from league_history.pipeline.config import PipelineConfig
from league_history.store.reconciliation import ReconciliationStore

BASE_URL = "http://league.test/api"

# A reply is either a JSON body (served with 200) or a bare error status
Reply = Union[int, dict, list]


def respond(reply: Reply) -> httpx.Response:
    if isinstance(reply, int):
        return httpx.Response(reply, json={"message": f"status {reply}"})
    return httpx.Response(200, json=reply)


class FakeLeagueAPI:
    """In-memory league source served through httpx.MockTransport."""

    def __init__(
        self,
        seasons: Reply = None,
        divisions: Optional[dict[str, Reply]] = None,
        scrape: Optional[dict[str, Reply]] = None,
        login: Reply = None,
        status: Reply = None,
        toggles: Optional[dict[str, Reply]] = None,
    ):
        self.seasons = [] if seasons is None else seasons
        self.divisions = divisions or {}
        self.scrape = scrape or {}
        self.login = {"access_token": "token-123"} if login is None else login
        self.status = {"safeMode": False} if status is None else status
        self.toggles = toggles or {}
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/")

        if path == "auth/login":
            return respond(self.login)
        if path == "scraping/seasons":
            return respond(self.seasons)
        if path.startswith("scraping/divisions/"):
            season_id = path.rsplit("/", 1)[1]
            return respond(self.divisions.get(season_id, []))
        if path == "scraping/scrape-table":
            body = json.loads(request.content)
            return respond(self.scrape.get(body["divisionId"], 500))
        if path == "scraping/status":
            return respond(self.status)
        if path in ("scraping/config", "scraping/disable-safe-mode"):
            return respond(self.toggles.get(path, {"ok": True}))
        return httpx.Response(404)

    def paths(self) -> list[str]:
        return [
            f"{r.method} {r.url.path.removeprefix('/api/')}" for r in self.requests
        ]

    def scraped_divisions(self) -> list[str]:
        return [
            json.loads(r.content)["divisionId"]
            for r in self.requests
            if r.url.path.endswith("scraping/scrape-table")
        ]

    def client(self) -> LeagueAPIClient:
        return LeagueAPIClient(BASE_URL, transport=self.transport)


async def no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


def table_row(team_name: str, position: int, points: int = 0) -> dict[str, Any]:
    return {
        "teamName": team_name,
        "position": position,
        "played": 10,
        "won": 3,
        "drawn": 1,
        "lost": 6,
        "goalsFor": 12,
        "goalsAgainst": 20,
        "goalDifference": -8,
        "points": points,
        "form": ["W", "L", "D"],
    }


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(
        api_base_url=BASE_URL,
        api_email="ops@example.com",
        api_password=SecretStr("secret"),
    )


@pytest.fixture
def store(tmp_path) -> ReconciliationStore:
    return ReconciliationStore.from_url(f"sqlite:///{tmp_path / 'league.db'}")


@pytest.fixture
def session() -> Session:
    return Session(token=SecretStr("token-123"))


@pytest.fixture
def season() -> Season:
    return Season(id="S1", name="2016-17")


@pytest.fixture
def division() -> Division:
    return Division(id="D1", name="Premier Division", season_id="S1")


@pytest.fixture
def league_api() -> type[FakeLeagueAPI]:
    """The FakeLeagueAPI class; build one per test with the replies it needs."""
    return FakeLeagueAPI


@pytest.fixture
def make_row():
    return table_row


@pytest.fixture
def instant_sleep():
    return no_sleep
