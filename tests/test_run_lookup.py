"""
Tests for the lookup runner CLI
"""

import json
import logging
import signal
import sys

import pytest

from lookups import run_lookup
from lookups.cache import CacheScheduler, LookupEntry
from lookups.generator import SQLCacheGenerator
from tests.conftest import make_namespace


@pytest.fixture
def settings(sqlite_uri):
    return {
        "settings": {"export": {"file_format": "csv"}},
        "lookups": [
            {
                "name": "incremental",
                "table": "lookup",
                "keyColumn": "k",
                "valueColumn": "v",
                "tsColumn": "updated_at",
                "connectorConfig": {"connectURI": sqlite_uri},
            },
            {
                "name": "us_only",
                "table": "lookup",
                "filter": "region='US'",
                "keyColumn": "k",
                "valueColumn": "v",
                "connectorConfig": {"connectURI": sqlite_uri},
            },
        ],
    }


class TestRefreshAll:

    def test_rounds_of_refreshes(self, settings, run_sql, tmp_path):
        entries = run_lookup.build_entries(settings)
        generator = SQLCacheGenerator()
        scheduler = CacheScheduler()
        try:
            first = run_lookup.refresh_all(entries, generator, scheduler, export_dir=str(tmp_path))
            second = run_lookup.refresh_all(entries, generator, scheduler)
            run_sql("INSERT INTO lookup VALUES ('c', '4', 'US', '2024-01-02 00:00:00')")
            third = run_lookup.refresh_all(entries, generator, scheduler)
        finally:
            generator.connectors.close_all()

        assert [r["status"] for r in first] == ["updated", "updated"]
        assert [r["entries"] for r in first] == [2, 1]
        assert all(r["export_path"].startswith(str(tmp_path)) for r in first)

        # The incremental lookup is unchanged; the unversioned one reloads every time
        assert [r["status"] for r in second] == ["unchanged", "updated"]
        assert second[0]["new_version"] == first[0]["new_version"]
        assert int(second[1]["new_version"]) > int(first[1]["new_version"])

        assert [r["status"] for r in third] == ["updated", "updated"]
        assert [r["entries"] for r in third] == [3, 2]

    def test_failure_is_isolated(self, settings):
        settings["lookups"][0]["table"] = "missing_table"
        entries = run_lookup.build_entries(settings)
        generator = SQLCacheGenerator()
        try:
            results = run_lookup.refresh_all(entries, generator, CacheScheduler())
        finally:
            generator.connectors.close_all()

        assert results[0]["status"] == "failed"
        assert "missing_table" in results[0]["error"]
        assert results[1]["status"] == "updated"

    def test_failure_is_logged_once(self, settings, caplog):
        settings["lookups"][0]["table"] = "missing_table"
        entries = run_lookup.build_entries(settings)
        generator = SQLCacheGenerator()
        try:
            with caplog.at_level(logging.ERROR):
                run_lookup.refresh_all(entries, generator, CacheScheduler())
        finally:
            generator.connectors.close_all()

        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert len(errors) == 1
        assert "incremental" in errors[0].getMessage()


class TestDueEntries:

    def test_poll_period_is_respected(self):
        hourly = LookupEntry("hourly", make_namespace(poll_period_ms=3_600_000))
        every_round = LookupEntry("every_round", make_namespace())
        entries = [hourly, every_round]

        assert run_lookup.due_entries(entries, {}, now=100.0) == entries

        last_refreshed = {hourly: 100.0, every_round: 100.0}
        assert run_lookup.due_entries(entries, last_refreshed, now=160.0) == [every_round]
        assert run_lookup.due_entries(entries, last_refreshed, now=3700.0) == entries


class TestCommands:

    def test_run_refresh_saves_results(self, settings, tmp_path, capsys):
        results_path = tmp_path / "logs" / "results.json"

        assert run_lookup.run_refresh(settings, rounds=2, interval=0, results_path=str(results_path)) is True

        saved = json.loads(results_path.read_text())
        assert [r["lookup"] for r in saved] == ["incremental", "us_only", "incremental", "us_only"]
        assert "RESULTS SUMMARY" in capsys.readouterr().out

    def test_run_refresh_reports_failure(self, settings, tmp_path):
        settings["lookups"][1]["valueColumn"] = "no_such_column"
        assert run_lookup.run_refresh(settings, results_path=str(tmp_path / "results.json")) is False

    def test_test_connections(self, settings, capsys):
        assert run_lookup.test_connections(settings) is True
        out = capsys.readouterr().out
        assert "✓ incremental" in out
        assert "n/a (no tsColumn)" in out

    def test_main_exit_code(self, settings, tmp_path, monkeypatch):
        settings_path = tmp_path / "settings.json"
        settings_path.write_text(json.dumps(settings))
        monkeypatch.setattr(run_lookup, "setup_logging", lambda log_settings: None)
        monkeypatch.setattr(sys, "argv", ["lookup-refresh", "test", "--settings", str(settings_path)])

        with pytest.raises(SystemExit) as excinfo:
            run_lookup.main()
        assert excinfo.value.code == 0

    def test_run_refresh_skips_lookups_not_due(self, settings, tmp_path):
        settings["lookups"][0]["pollPeriod"] = 3_600_000
        results_path = tmp_path / "results.json"

        assert run_lookup.run_refresh(settings, rounds=2, interval=0, results_path=str(results_path)) is True

        saved = json.loads(results_path.read_text())
        assert [r["lookup"] for r in saved] == ["incremental", "us_only", "us_only"]

    def test_signal_stops_polling_without_waiting_interval(self, settings, tmp_path, monkeypatch):
        refresh_all = run_lookup.refresh_all
        rounds = []

        def refresh_then_signal(*args, **kwargs):
            rounds.append(1)
            results = refresh_all(*args, **kwargs)
            signal.raise_signal(signal.SIGTERM)
            return results

        monkeypatch.setattr(run_lookup, "refresh_all", refresh_then_signal)
        previous = signal.getsignal(signal.SIGTERM)

        # rounds=0 polls forever; only the signal can end this call
        assert run_lookup.run_refresh(
            settings, rounds=0, interval=3600, results_path=str(tmp_path / "results.json")
        ) is True

        assert len(rounds) == 1
        assert signal.getsignal(signal.SIGTERM) is previous
