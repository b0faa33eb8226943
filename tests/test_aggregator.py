from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, make_order
from fulfillment.aggregator import (
    ReportAggregator,
    ReportThresholds,
    calculate_issue_count,
    calculate_on_time_percentage,
    calculate_percentage_change,
    calculate_reliability_score,
    calculate_trend_direction,
    compute_window_metrics,
    round_half_up,
)
from fulfillment.backfill import BackfillSynthesizer
from fulfillment.config import DEFAULT_CONFIG
from fulfillment.models import OrderStatus, TrendDirection, empty_status_counts
from fulfillment.randomness import SeededRandom

S = OrderStatus


def counts(**values):
    c = empty_status_counts()
    for name, n in values.items():
        c[S[name]] = n
    return c


def test_reliability_score_example():
    assert calculate_reliability_score(counts(ARRIVED=90, LOST=5, DAMAGED=5)) == 90


def test_reliability_score_zero_when_nothing_completed():
    assert calculate_reliability_score(counts(PLACED=4, SHIPPING_DELAYED=2)) == 0


def test_reliability_score_ignores_in_flight_orders():
    assert calculate_reliability_score(counts(ARRIVED=3, LOST=1, PLACED=100)) == 75


def test_on_time_percentage():
    assert calculate_on_time_percentage(80, 90) == 89
    assert calculate_on_time_percentage(0, 0) == 0
    assert calculate_on_time_percentage(1, 8) == 13  # 12.5 rounds up


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(0.125, 2) == 0.13


def test_issue_count_sums_four_issue_statuses():
    assert calculate_issue_count(counts(LOST=1, DAMAGED=2, UNDELIVERABLE=3, RETURN_TO_SENDER=4, ARRIVED=9)) == 10


@pytest.mark.parametrize(
    "current, previous, expected",
    [
        (90, 80, TrendDirection.UP),
        (82, 80, TrendDirection.STABLE),
        (70, 80, TrendDirection.DOWN),
        (0, 0, TrendDirection.STABLE),
        (50, 0, TrendDirection.UP),
    ],
)
def test_trend_direction(current, previous, expected):
    assert calculate_trend_direction(current, previous) == expected


def test_percentage_change():
    assert calculate_percentage_change(90, 80) == pytest.approx(12.5)
    assert calculate_percentage_change(5, 0) == 100
    assert calculate_percentage_change(0, 0) == 0


def test_window_metrics():
    orders = [
        make_order("A", status=S.ARRIVED, estimated_in_days=3),  # arrives day 2, on time
        make_order(
            "B",
            status=S.ARRIVED,
            estimated_in_days=1,
            actual_delivery=NOW - timedelta(days=1) + timedelta(days=3),
            delivery_days=3,
            is_delayed=True,
        ),
        make_order("C", status=S.LOST, is_delayed=True),
        make_order("D", status=S.PLACED),
    ]
    metrics = compute_window_metrics(orders)
    assert metrics.total_orders == 4
    assert metrics.on_time_deliveries == 1
    assert metrics.on_time_percentage == 50
    assert metrics.issue_count == 1
    assert metrics.reliability_score == 67
    assert metrics.avg_delivery_time == 2.5
    assert metrics.active_orders == 1
    assert metrics.delayed_orders == 2


def test_empty_window_is_all_zero():
    metrics = compute_window_metrics([])
    assert metrics.total_orders == 0
    assert metrics.reliability_score == 0
    assert metrics.avg_delivery_time == 0.0


def test_window_partition(catalog):
    aggregator = ReportAggregator(catalog)
    orders = [
        make_order("now", status=S.ARRIVED, created_at=NOW),
        make_order("edge-current", status=S.ARRIVED, created_at=NOW - timedelta(days=7)),
        make_order("prev", status=S.LOST, created_at=NOW - timedelta(days=7, seconds=1)),
        make_order("edge-prev", status=S.LOST, created_at=NOW - timedelta(days=14)),
        make_order("too-old", status=S.LOST, created_at=NOW - timedelta(days=14, seconds=1)),
    ]
    reports, _ = aggregator.aggregate(orders, NOW)
    report = next(r for r in reports if r.vendor_id == "vendor-001")
    assert report.current_7d.total_orders == 2
    assert report.previous_7d.total_orders == 2
    assert report.current_7d.reliability_score == 100
    assert report.previous_7d.reliability_score == 0
    assert report.trends.reliability_score_delta == 100
    assert report.trends.volume_delta == 0
    assert report.trends.trend_direction == TrendDirection.UP


def test_every_vendor_gets_a_report_and_unknown_vendors_are_ignored(catalog):
    orders = [make_order("x", vendor_id="vendor-ghost", status=S.ARRIVED)]
    reports, summary = ReportAggregator(catalog).aggregate(orders, NOW)
    assert [r.vendor_id for r in reports] == catalog.vendor_ids
    assert all(r.current_7d.total_orders == 0 for r in reports)
    assert summary.current_7d.overall_reliability == 0
    assert summary.top_performing_vendors == []


def _arrived_and_lost(vendor_id, arrived, lost, created_at=NOW - timedelta(days=1)):
    orders = []
    for i in range(arrived):
        orders.append(make_order(f"{vendor_id}-a{i}", vendor_id=vendor_id, status=S.ARRIVED, created_at=created_at))
    for i in range(lost):
        orders.append(make_order(f"{vendor_id}-l{i}", vendor_id=vendor_id, status=S.LOST, created_at=created_at))
    return orders


def test_summary_is_unweighted_mean_over_vendors_with_orders(catalog):
    orders = (
        _arrived_and_lost("vendor-001", 95, 5)  # 95, many orders
        + _arrived_and_lost("vendor-002", 3, 1)  # 75, few orders
        + _arrived_and_lost("vendor-003", 8, 2)  # 80
    )
    reports, summary = ReportAggregator(catalog).aggregate(orders, NOW)
    assert summary.current_7d.overall_reliability == pytest.approx((95 + 75 + 80) / 3, abs=0.01)
    assert summary.current_7d.at_risk_vendors == 2
    assert summary.top_performing_vendors == ["vendor-001", "vendor-003", "vendor-002"]
    assert summary.underperforming_vendors == ["vendor-002"]
    # Vendors without orders are neither at risk nor ranked
    assert "vendor-004" not in summary.top_performing_vendors


def test_summary_trends(catalog):
    orders = _arrived_and_lost("vendor-001", 9, 1) + _arrived_and_lost(
        "vendor-001", 8, 2, created_at=NOW - timedelta(days=10)
    )
    _, summary = ReportAggregator(catalog).aggregate(orders, NOW)
    assert summary.current_7d.overall_reliability == 90
    assert summary.previous_7d.overall_reliability == 80
    assert summary.trends.reliability_trend == 12.5
    assert summary.trends.trend_direction == TrendDirection.UP


def test_summary_totals_sum_vendor_windows(catalog):
    orders = [
        make_order("p1", status=S.PLACED),
        make_order("p2", vendor_id="vendor-002", status=S.SHIPPING_DELAYED, is_delayed=True),
    ]
    reports, summary = ReportAggregator(catalog).aggregate(orders, NOW)
    assert summary.current_7d.total_active_orders == 2
    assert summary.current_7d.total_delayed_orders == 1


def test_thresholds_from_config():
    thresholds = ReportThresholds.from_config(DEFAULT_CONFIG)
    assert thresholds == ReportThresholds()


def test_run_is_idempotent_and_writes_reports(catalog, any_store):
    BackfillSynthesizer(catalog, SeededRandom(6)).backfill(any_store, 14, NOW.date())
    aggregator = ReportAggregator(catalog)
    first = aggregator.run(any_store, NOW)
    second = aggregator.run(any_store, NOW)
    assert first.summary.to_dict() == second.summary.to_dict()
    assert first.vendor_reports == len(catalog)
    stored = any_store.get_vendor_report("vendor-001", NOW.date())
    assert stored.to_dict() == first.reports[0].to_dict()
    assert any_store.get_dashboard_summary().to_dict() == first.summary.to_dict()
