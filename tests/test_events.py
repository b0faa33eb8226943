from __future__ import annotations

import json
from datetime import timedelta

import pytest

from conftest import NOW, ScriptedRandom, make_order
from fulfillment.aggregator import ReportAggregator
from fulfillment.events import EventLog, OrderChangeEvent, ReportTrigger, StatusChangeEvent
from fulfillment.models import OrderStatus
from fulfillment.state_machine import OrderStateMachine


def status_event(at=NOW):
    return StatusChangeEvent(
        order_id="ORD-1",
        vendor_id="vendor-001",
        old_status=OrderStatus.PLACED,
        new_status=OrderStatus.SHIPPING_DELAYED,
        is_delayed=True,
        occurred_at=at,
    )


def test_event_log_partitions_by_day(tmp_path):
    log = EventLog(tmp_path / "events")
    log.record_status_change(status_event())
    log.record_status_change(status_event(NOW + timedelta(days=1)))
    log.record_status_change(status_event(NOW + timedelta(days=1, hours=1)))
    log.close()

    first = (tmp_path / "events" / "2026-03-10.jsonl").read_text(encoding="utf-8").splitlines()
    second = (tmp_path / "events" / "2026-03-11.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(first) == 1
    assert len(second) == 2
    event = json.loads(first[0])
    assert event["event_type"] == "OrderStatusChanged"
    assert event["timestamp"] == "2026-03-10T12:00:00Z"
    assert event["payload"]["new_status"] == "SHIPPING_DELAYED"


def test_event_log_io_failure_is_logged_not_raised(tmp_path, caplog):
    blocker = tmp_path / "events"
    blocker.write_text("not a directory", encoding="utf-8")
    log = EventLog(blocker)
    log.record_status_change(status_event())
    assert "Failed to write event log" in caplog.text


def test_state_machine_feeds_event_log(tmp_path, catalog):
    log = EventLog(tmp_path)
    machine = OrderStateMachine(catalog, ScriptedRandom([0.99]), notify=log.record_status_change)
    machine.advance(make_order(), NOW)
    log.close()
    lines = (tmp_path / "2026-03-10.jsonl").read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["payload"]["old_status"] == "PLACED"


def test_report_trigger_coalesces_changes():
    runs = []
    trigger = ReportTrigger(lambda now: runs.append(now) or len(runs))
    assert trigger.flush(NOW) is None
    trigger(OrderChangeEvent("A", "insert"))
    trigger(OrderChangeEvent("A", "update"))
    trigger(OrderChangeEvent("B", "insert"))
    assert trigger.pending == 2
    assert trigger.flush(NOW) == 1
    assert runs == [NOW]
    assert trigger.pending == 0
    assert trigger.flush(NOW) is None


def test_report_trigger_keeps_pending_after_failed_run():
    def boom(now):
        raise RuntimeError("store down")

    trigger = ReportTrigger(boom)
    trigger(OrderChangeEvent("A", "insert"))
    with pytest.raises(RuntimeError):
        trigger.flush(NOW)
    assert trigger.pending == 1


def test_store_changes_regenerate_reports(catalog, memory_store):
    aggregator = ReportAggregator(catalog)
    trigger = ReportTrigger(lambda now: aggregator.run(memory_store, now))
    memory_store.subscribe(trigger)
    memory_store.put_order_if_absent(make_order(status=OrderStatus.ARRIVED))
    result = trigger.flush(NOW)
    assert result.summary.current_7d.overall_reliability == 100
    assert memory_store.get_dashboard_summary(NOW.date()) is not None
