"""
Unit tests for the run orchestrator.

The league source is the in-memory FakeLeagueAPI served over
httpx.MockTransport; the store is SQLite in tmp_path. Sleeps are instant.
"""

import os
from unittest.mock import patch

import pytest

from league_history.api.client import AuthFailure
from league_history.models import RunOutcome, RunState
from league_history.pipeline.runner import HistoricalRun, exit_code, main, run_pipeline
from league_history.pipeline.scheduler import CancellationToken
from league_history.store.reconciliation import StoreFailure

SEASON_S1 = {"id": "S1", "name": "2016-17", "isLive": False}
SEASON_S2 = {"id": "S2", "name": "2017-18", "isLive": True}
DIVISIONS_S1 = [{"id": "D1", "name": "Premier"}, {"id": "D2", "name": "Division One"}]


def created(count):
    return {"success": True, "databaseResult": {"teamsCreated": count, "teamsUpdated": 0}}


@pytest.fixture
def make_run(config, store, instant_sleep):
    def factory(api, **config_overrides):
        run_config = config.model_copy(update=config_overrides)
        return HistoricalRun(
            run_config, client=api.client(), store=store, sleep=instant_sleep
        )

    return factory


class TestHistoricalRun:
    """Test cases for HistoricalRun."""

    @pytest.mark.asyncio
    async def test_one_division_succeeds_one_fails(self, league_api, make_run):
        """Test the S1 scenario: D1 creates three teams, D2 returns 500."""
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1},
            scrape={"D1": created(3), "D2": 500},
        )
        run = make_run(api)

        summary = await run.run()

        assert summary.outcome == RunOutcome.COMPLETED
        assert summary.divisions_attempted == 2
        assert summary.divisions_succeeded == 1
        assert summary.divisions_failed == 1
        assert summary.teams_created == 3
        assert summary.teams_updated == 0
        assert exit_code(summary) == 0
        assert api.scraped_divisions() == ["D1", "D2"]

    @pytest.mark.asyncio
    async def test_state_history(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1[:1]},
            scrape={"D1": created(1)},
        )
        run = make_run(api)

        await run.run()

        assert run.state_history == [
            RunState.NOT_STARTED,
            RunState.AUTHENTICATING,
            RunState.DISCOVERING_SEASONS,
            RunState.DISCOVERING_DIVISIONS,
            RunState.SCRAPING,
            RunState.RECONCILING,
            RunState.SUMMARIZING,
            RunState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_auth_failure_aborts_before_discovery(self, league_api, make_run):
        api = league_api(login=401, seasons=[SEASON_S1])
        run = make_run(api)

        with pytest.raises(AuthFailure):
            await run.run()

        assert api.paths() == ["POST auth/login"]
        assert run.state == RunState.ABORTED
        assert run.summary.outcome == RunOutcome.ABORTED
        assert exit_code(run.summary) == 1

    @pytest.mark.asyncio
    async def test_auth_rejected_mid_run(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1},
            scrape={"D1": 401, "D2": created(1)},
        )
        run = make_run(api)

        with pytest.raises(AuthFailure):
            await run.run()

        assert api.scraped_divisions() == ["D1"]
        assert run.state_history[-1] == RunState.ABORTED
        assert run.summary.outcome == RunOutcome.ABORTED
        assert [s.season_id for s in run.summary.seasons] == ["S1"]

    @pytest.mark.asyncio
    async def test_season_list_failure(self, league_api, make_run):
        api = league_api(seasons=500)
        run = make_run(api)

        summary = await run.run()

        assert summary.outcome == RunOutcome.DISCOVERY_FAILED
        assert exit_code(summary) == 1
        assert api.scraped_divisions() == []

    @pytest.mark.asyncio
    async def test_no_seasons(self, league_api, make_run):
        api = league_api(seasons={"seasons": []})
        run = make_run(api)

        summary = await run.run()

        assert summary.outcome == RunOutcome.NOTHING_TO_DO
        assert summary.seasons == []
        assert exit_code(summary) == 0

    @pytest.mark.asyncio
    async def test_division_discovery_failure_skips_one_season(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1, SEASON_S2],
            divisions={"S1": 503, "S2": [{"id": "D5", "name": "Premier"}]},
            scrape={"D5": created(2)},
        )
        run = make_run(api)

        summary = await run.run()

        assert summary.outcome == RunOutcome.COMPLETED
        s1, s2 = summary.seasons
        assert s1.discovery_error is not None
        assert s1.divisions_attempted == 0
        assert s2.teams_created == 2
        assert exit_code(summary) == 0

    @pytest.mark.asyncio
    async def test_every_division_failing_still_reports(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1},
            scrape={"D1": {"success": False, "error": "No table"}, "D2": 500},
        )

        summary = await make_run(api).run()

        assert summary.outcome == RunOutcome.COMPLETED
        assert summary.divisions_failed == 2
        assert summary.seasons[0].divisions_found == 2
        assert exit_code(summary) == 0

    @pytest.mark.asyncio
    async def test_returned_rows_reconciled_locally(
        self, league_api, make_run, store, make_row
    ):
        standings = {
            "success": True,
            "databaseResult": {"teamsCreated": 99, "teamsUpdated": 99},
            "data": [make_row("Rovers", 1), make_row("United", 2), make_row("City", 3)],
        }
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1[:1]},
            scrape={"D1": standings},
        )

        first = await make_run(api).run()
        second = await make_run(api).run()

        assert (first.teams_created, first.teams_updated) == (3, 0)
        assert (second.teams_created, second.teams_updated) == (0, 3)
        assert store.count_teams_by_season() == {"S1": 3}
        assert {t.division for t in store.all_teams()} == {"Division D1"}
        assert len(store.league_table("S1", "D1")) == 3
        assert second.before == {"S1": 3}
        assert second.after == {"S1": 3}

    @pytest.mark.asyncio
    async def test_store_failure_counts_division_failed(
        self, league_api, make_run, store, make_row
    ):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1},
            scrape={
                "D1": {"success": True, "data": [make_row("Rovers", 1)]},
                "D2": {"success": True, "data": [make_row("United", 1)]},
            },
        )
        run = make_run(api)
        reconcile = store.reconcile_division

        def flaky(season, division, league_id, rows):
            if division.id == "D1":
                raise StoreFailure("disk full", "reconcile_division")
            return reconcile(season, division, league_id, rows)

        with patch.object(store, "reconcile_division", side_effect=flaky):
            summary = await run.run()

        assert summary.divisions_failed == 1
        assert summary.divisions_succeeded == 1
        assert [t.team_name for t in store.all_teams()] == ["United"]
        assert any("store: disk full" in error for error in summary.errors)

    @pytest.mark.asyncio
    async def test_retry_configured(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1[:1]},
            scrape={"D1": 500},
        )

        summary = await make_run(api, max_attempts=3).run()

        assert api.scraped_divisions() == ["D1", "D1", "D1"]
        assert summary.divisions_attempted == 1
        assert summary.divisions_failed == 1

    @pytest.mark.asyncio
    async def test_cancelled_run_still_summarizes(self, league_api, config, store, instant_sleep):
        api = league_api(
            seasons=[SEASON_S1, SEASON_S2],
            divisions={"S1": DIVISIONS_S1},
        )
        token = CancellationToken()
        token.cancel()
        run = HistoricalRun(
            config, client=api.client(), store=store, cancel_token=token, sleep=instant_sleep
        )

        summary = await run.run()

        assert summary.outcome == RunOutcome.CANCELLED
        assert [s.season_id for s in summary.seasons] == ["S1", "S2"]
        assert summary.divisions_attempted == 0
        assert api.scraped_divisions() == []


    def test_log_level_applied(self, league_api, config, store):
        with patch("league_history.pipeline.runner.pipeline_logger") as mock_logger:
            HistoricalRun(
                config.model_copy(update={"log_level": "DEBUG"}),
                client=league_api().client(),
                store=store,
            )

        mock_logger.get_logger.return_value.setLevel.assert_called_once_with("DEBUG")


class TestSafeMode:
    """Test remote safe-mode handling."""

    @pytest.mark.asyncio
    async def test_disabled_for_run_and_restored(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1[:1]},
            scrape={"D1": created(1)},
            status={"safeMode": True},
        )

        await make_run(api, manage_safe_mode=True).run()

        paths = api.paths()
        assert paths.index("PUT scraping/disable-safe-mode") < paths.index(
            "POST scraping/scrape-table"
        )
        assert paths[-1] == "PUT scraping/config"

    @pytest.mark.asyncio
    async def test_already_off_not_toggled(self, league_api, make_run):
        api = league_api(seasons=[], status={"safeMode": False})

        await make_run(api, manage_safe_mode=True).run()

        assert "GET scraping/status" in api.paths()
        assert not any(p.startswith("PUT") for p in api.paths())

    @pytest.mark.asyncio
    async def test_unreadable_status_continues(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1[:1]},
            scrape={"D1": created(1)},
            status=500,
        )

        summary = await make_run(api, manage_safe_mode=True).run()

        assert summary.divisions_succeeded == 1
        assert not any(p.startswith("PUT") for p in api.paths())

    @pytest.mark.asyncio
    async def test_disable_failure_continues(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1[:1]},
            scrape={"D1": created(1)},
            status={"safeMode": True},
            toggles={"scraping/disable-safe-mode": 500},
        )
        run = make_run(api, manage_safe_mode=True)

        summary = await run.run()

        assert summary.outcome == RunOutcome.COMPLETED
        assert summary.divisions_succeeded == 1
        assert run.state == RunState.DONE
        assert any("safe mode not disabled" in error for error in summary.errors)
        assert "PUT scraping/config" not in api.paths()
        assert exit_code(summary) == 0

    @pytest.mark.asyncio
    async def test_disable_rejected_aborts(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            status={"safeMode": True},
            toggles={"scraping/disable-safe-mode": 401},
        )
        run = make_run(api, manage_safe_mode=True)

        with pytest.raises(AuthFailure):
            await run.run()

        assert run.summary.outcome == RunOutcome.ABORTED
        assert api.scraped_divisions() == []

    @pytest.mark.asyncio
    async def test_not_managed_by_default(self, league_api, make_run):
        api = league_api(seasons=[], status={"safeMode": True})

        await make_run(api).run()

        assert "GET scraping/status" not in api.paths()

    @pytest.mark.asyncio
    async def test_restored_after_abort(self, league_api, make_run):
        api = league_api(
            seasons=[SEASON_S1],
            divisions={"S1": DIVISIONS_S1[:1]},
            scrape={"D1": 403},
            status={"safeMode": True},
        )

        with pytest.raises(AuthFailure):
            await make_run(api, manage_safe_mode=True).run()

        assert api.paths()[-1] == "PUT scraping/config"


class TestEntryPoints:
    """Test run_pipeline and main."""

    @pytest.mark.asyncio
    async def test_run_pipeline(self, league_api, config, store):
        api = league_api(seasons=[])

        summary = await run_pipeline(config, client=api.client(), store=store)

        assert summary.outcome == RunOutcome.NOTHING_TO_DO

    def test_main_missing_configuration(self):
        with patch.dict(os.environ, {}, clear=True):
            assert main() == 1

    def test_main_auth_failure(self):
        env = {
            "LEAGUE_API_BASE_URL": "http://league.test/api",
            "LEAGUE_API_EMAIL": "ops@example.com",
            "LEAGUE_API_PASSWORD": "pw",
        }
        with (
            patch.dict(os.environ, env, clear=True),
            patch(
                "league_history.pipeline.runner.run_pipeline",
                side_effect=AuthFailure("rejected", status_code=401),
            ),
        ):
            assert main() == 1

    def test_exit_code(self):
        assert exit_code(None) == 1
