from __future__ import annotations

import argparse
from datetime import date, datetime, timezone

import pytest

import main
from fulfillment.errors import ConfigValidationError
from fulfillment.store import InMemoryDataStore


def test_resolve_value_priority():
    section = {"seed": 7}
    assert main.resolve_value(3, section, "seed", 42) == 3
    assert main.resolve_value(None, section, "seed", 42) == 7
    assert main.resolve_value(None, {}, "seed", 42) == 42


def test_parse_start_time():
    assert main.parse_start_time("2026-02-02T08:00:00Z") == datetime(2026, 2, 2, 8, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        main.parse_start_time("yesterday")
    assert main.parse_end_date("2026-03-10") == date(2026, 3, 10)


def test_load_config_missing_file_is_empty(tmp_path):
    assert main.load_config(tmp_path / "nope.json") == {}
    assert main.load_config(None) == {}


def _args(**kw):
    return argparse.Namespace(vendors=kw.get("vendors"), store=kw.get("store", "memory"))


def test_build_components_memory(tmp_path):
    components = main.build_components(_args(), {"engine": {"events_dir": str(tmp_path / "ev")}})
    assert isinstance(components.store, InMemoryDataStore)
    assert len(components.catalog) == 5
    assert components.event_log.events_dir == tmp_path / "ev"


def test_build_components_rejects_bad_engine_config():
    with pytest.raises(ConfigValidationError):
        main.build_components(_args(), {"engine": {"batch_size": 0}})


def test_simulate_end_to_end(tmp_path, capsys):
    components = main.build_components(_args(), {"engine": {"events_dir": str(tmp_path / "ev")}})
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    main.run_backfill(components, 7, seed=1, end_date=start.date())
    main.run_simulation(components, steps=50, seed=1, start_time=start, step_minutes=60, report_every=10)
    out = capsys.readouterr().out
    assert "Simulation complete" in out
    assert components.store.get_dashboard_summary() is not None
    assert list((tmp_path / "ev").glob("*.jsonl"))


def test_load_config_rejects_bad_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{oops", encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        main.load_config(path)
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        main.load_config(path)


def test_parse_start_time_normalises_offsets():
    parsed = main.parse_start_time("2026-02-02T10:00:00+02:00")
    assert parsed == datetime(2026, 2, 2, 8, tzinfo=timezone.utc)
    assert parsed.tzinfo == timezone.utc


def test_simulate_rejects_non_positive_steps(tmp_path):
    components = main.build_components(_args(), {"engine": {"events_dir": str(tmp_path)}})
    with pytest.raises(ConfigValidationError):
        main.run_simulation(components, steps=0, seed=1, start_time=None, step_minutes=60, report_every=10)


def test_backfill_reports_use_simulated_clock(tmp_path):
    components = main.build_components(_args(), {"engine": {"events_dir": str(tmp_path)}})
    start = datetime(2026, 3, 1, 9, tzinfo=timezone.utc)
    result = main.run_backfill(components, 7, seed=1, end_date=start.date(), report_time=start)
    assert result.summary.report_date == start.date()
    assert result.orders_considered > 0
    assert components.store.get_dashboard_summary(start.date()) is not None
