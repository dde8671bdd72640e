"""
Unit tests for the metrics infrastructure.

Tests OTLP header parsing and metric recording with mocked instruments.
"""

import os
from unittest.mock import Mock, patch

import pytest

from league_history.utils.metrics import (
    LeagueHistoryMetrics,
    get_metrics,
    pipeline_metrics,
)


@pytest.fixture
def metrics_instance():
    """A metrics object with every instrument replaced by a Mock."""
    instance = LeagueHistoryMetrics.__new__(LeagueHistoryMetrics)
    instance.service_name = "league-history"
    instance.api_calls_counter = Mock()
    instance.divisions_counter = Mock()
    instance.teams_counter = Mock()
    instance.errors_counter = Mock()
    instance.api_call_duration_histogram = Mock()
    instance.scrape_duration_histogram = Mock()
    instance.run_duration_histogram = Mock()
    return instance


class TestLeagueHistoryMetrics:
    """Test cases for LeagueHistoryMetrics class."""

    @patch("league_history.utils.metrics.OTLPMetricExporter")
    @patch("league_history.utils.metrics.metrics.set_meter_provider")
    def test_init_without_endpoint(self, mock_set_provider, mock_exporter):
        """Test that no exporter is built unless an endpoint is configured."""
        with patch.dict(os.environ, {}, clear=True):
            instance = LeagueHistoryMetrics()

        assert instance.service_name == "league-history"
        assert instance.metric_readers == []
        mock_exporter.assert_not_called()
        mock_set_provider.assert_called_once()

    @patch("league_history.utils.metrics.PeriodicExportingMetricReader")
    @patch("league_history.utils.metrics.OTLPMetricExporter")
    @patch("league_history.utils.metrics.MeterProvider")
    @patch("league_history.utils.metrics.metrics.set_meter_provider")
    def test_init_with_endpoint(
        self, mock_set_provider, mock_provider, mock_exporter, mock_reader
    ):
        mock_meter = Mock()
        mock_provider.return_value.get_meter.return_value = mock_meter

        with (
            patch.dict(
                os.environ,
                {"OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318"},
                clear=True,
            ),
            patch(
                "league_history.utils.metrics.metrics.get_meter",
                return_value=mock_meter,
            ),
        ):
            instance = LeagueHistoryMetrics(service_name="svc", service_version="2.0.0")

        assert instance.service_version == "2.0.0"
        assert mock_exporter.call_args[1]["endpoint"] == "http://collector:4318"
        assert instance.metric_readers == [mock_reader.return_value]

    def test_parse_otlp_headers_empty(self):
        with patch.dict(os.environ, {}, clear=True):
            instance = LeagueHistoryMetrics.__new__(LeagueHistoryMetrics)
            assert instance._parse_otlp_headers() == {}

    def test_parse_otlp_headers_multiple(self):
        with patch.dict(
            os.environ,
            {"OTEL_EXPORTER_OTLP_HEADERS": "Authorization=Bearer a=b, X-Scope=tenant"},
        ):
            instance = LeagueHistoryMetrics.__new__(LeagueHistoryMetrics)
            assert instance._parse_otlp_headers() == {
                "Authorization": "Bearer a=b",
                "X-Scope": "tenant",
            }

    def test_record_api_call(self, metrics_instance):
        metrics_instance.record_api_call("scraping/seasons", "GET", 503, 0.25)

        attributes = metrics_instance.api_calls_counter.add.call_args[0][1]
        assert attributes["endpoint"] == "scraping/seasons"
        assert attributes["status_code"] == "503"
        assert attributes["status_class"] == "5xx"
        metrics_instance.api_call_duration_histogram.record.assert_called_once_with(
            0.25, attributes
        )

    def test_record_division(self, metrics_instance):
        metrics_instance.record_division("failure", "S1")

        metrics_instance.divisions_counter.add.assert_called_once_with(
            1, {"service": "league-history", "outcome": "failure", "season_id": "S1"}
        )

    def test_record_teams_skips_zero(self, metrics_instance):
        metrics_instance.record_teams("created", 0)
        metrics_instance.record_teams("updated", 4)

        metrics_instance.teams_counter.add.assert_called_once_with(
            4, {"service": "league-history", "action": "updated"}
        )

    def test_record_error(self, metrics_instance):
        metrics_instance.record_error("store")

        metrics_instance.errors_counter.add.assert_called_once_with(
            1, {"service": "league-history", "error_type": "store"}
        )

    def test_time_scrape_records_on_error(self, metrics_instance):
        """Test that the duration is recorded even when the block raises."""
        with pytest.raises(RuntimeError):
            with metrics_instance.time_scrape({"season_id": "S1"}):
                raise RuntimeError("boom")

        duration, attributes = (
            metrics_instance.scrape_duration_histogram.record.call_args[0]
        )
        assert duration >= 0
        assert attributes == {"season_id": "S1", "service": "league-history"}

    def test_time_run(self, metrics_instance):
        with metrics_instance.time_run():
            pass

        metrics_instance.run_duration_histogram.record.assert_called_once()

    def test_shutdown_flushes_readers(self, metrics_instance):
        reader = Mock()
        metrics_instance.metric_readers = [reader]
        metrics_instance.meter_provider = Mock()

        assert metrics_instance.shutdown(timeout_seconds=2) is True
        reader.force_flush.assert_called_once_with(timeout_millis=2000)
        metrics_instance.meter_provider.shutdown.assert_called_once()

    def test_shutdown_failure_returns_false(self, metrics_instance):
        metrics_instance.metric_readers = []
        metrics_instance.meter_provider = Mock()
        metrics_instance.meter_provider.shutdown.side_effect = RuntimeError("down")

        assert metrics_instance.shutdown() is False


class TestGlobalMetrics:
    def test_get_metrics_returns_global_instance(self):
        assert get_metrics() is pipeline_metrics
