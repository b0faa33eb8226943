"""Rolling vendor reports and the dashboard summary.

Every run is a full recompute over two windows keyed on order creation time:

    current:  [now - 7d, now]
    previous: [now - 14d, now - 7d)

Per vendor the windows yield status counts, on-time and issue figures, the
average delivery time and a reliability score; the trend block compares the
two windows. The dashboard summary is derived from the vendor reports of the
same run only.

Scoring:
    reliability_score = round(ARRIVED / (ARRIVED + issue statuses) * 100)
    on_time_percentage = round(on_time / ARRIVED * 100)
All rounding is half-up.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from fulfillment.catalog import VendorCatalog
from fulfillment.models import (
    ACTIVE_STATUSES,
    ISSUE_STATUSES,
    DashboardSummary,
    Order,
    OrderStatus,
    SummaryTrends,
    SummaryWindow,
    TrendBlock,
    TrendDirection,
    VendorReport,
    WindowMetrics,
    empty_status_counts,
)
from fulfillment.store import DataStore

_logger = logging.getLogger("simulation.reports")


@dataclass(frozen=True)
class ReportThresholds:
    window_days: int = 7
    trend_threshold: float = 0.05
    at_risk_threshold: int = 85
    underperforming_threshold: int = 80
    top_n: int = 3

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ReportThresholds:
        return cls(
            window_days=config["window_days"],
            trend_threshold=config["trend_threshold"],
            at_risk_threshold=config["at_risk_threshold"],
            underperforming_threshold=config["underperforming_threshold"],
            top_n=config["top_performers"],
        )


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with ties away from zero for positives (0.5 -> 1, 88.5 -> 89)."""
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def calculate_reliability_score(status_counts: Mapping[OrderStatus, int]) -> int:
    arrived = status_counts.get(OrderStatus.ARRIVED, 0)
    completed = arrived + calculate_issue_count(status_counts)
    if completed == 0:
        return 0
    return int(round_half_up(arrived / completed * 100))


def calculate_on_time_percentage(on_time: int, arrived: int) -> int:
    if arrived == 0:
        return 0
    return int(round_half_up(on_time / arrived * 100))


def calculate_issue_count(status_counts: Mapping[OrderStatus, int]) -> int:
    return sum(status_counts.get(status, 0) for status in ISSUE_STATUSES)


def calculate_trend_direction(current: float, previous: float, threshold: float = 0.05) -> TrendDirection:
    if previous == 0:
        if current == 0:
            return TrendDirection.STABLE
        return TrendDirection.UP if current > 0 else TrendDirection.DOWN
    change = abs(current - previous) / previous
    if change < threshold:
        return TrendDirection.STABLE
    return TrendDirection.UP if current > previous else TrendDirection.DOWN


def calculate_percentage_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def is_on_time(order: Order) -> bool:
    return (
        order.status == OrderStatus.ARRIVED
        and order.actual_delivery is not None
        and order.actual_delivery <= order.estimated_delivery
    )


def compute_window_metrics(orders: Iterable[Order]) -> WindowMetrics:
    """Metrics for one window. An empty window yields all-zero metrics."""
    counts = empty_status_counts()
    total = 0
    on_time = 0
    active = 0
    delayed = 0
    delivery_days = []
    for order in orders:
        total += 1
        counts[order.status] += 1
        if is_on_time(order):
            on_time += 1
        if order.status in ACTIVE_STATUSES:
            active += 1
        if order.is_delayed:
            delayed += 1
        if order.delivery_days is not None:
            delivery_days.append(order.delivery_days)

    avg_delivery = round_half_up(sum(delivery_days) / len(delivery_days), 2) if delivery_days else 0.0
    return WindowMetrics(
        status_counts=counts,
        total_orders=total,
        on_time_deliveries=on_time,
        on_time_percentage=calculate_on_time_percentage(on_time, counts[OrderStatus.ARRIVED]),
        issue_count=calculate_issue_count(counts),
        avg_delivery_time=avg_delivery,
        reliability_score=calculate_reliability_score(counts),
        active_orders=active,
        delayed_orders=delayed,
    )


@dataclass
class ReportRunResult:
    vendor_reports: int
    summary: DashboardSummary
    orders_considered: int = 0
    reports: list[VendorReport] = field(default_factory=list)


class ReportAggregator:
    """Computes vendor reports and the dashboard summary for one instant."""

    def __init__(self, catalog: VendorCatalog, thresholds: ReportThresholds | None = None) -> None:
        self.catalog = catalog
        self.thresholds = thresholds or ReportThresholds()

    def windows(self, now: datetime) -> tuple[datetime, datetime]:
        """Return (current_start, previous_start)."""
        span = timedelta(days=self.thresholds.window_days)
        return now - span, now - 2 * span

    def aggregate(self, orders: Iterable[Order], now: datetime) -> tuple[list[VendorReport], DashboardSummary]:
        current_start, previous_start = self.windows(now)
        current: dict[str, list[Order]] = {v.vendor_id: [] for v in self.catalog}
        previous: dict[str, list[Order]] = {v.vendor_id: [] for v in self.catalog}

        unknown = 0
        for order in orders:
            if order.vendor_id not in current:
                unknown += 1
                continue
            if current_start <= order.created_at <= now:
                current[order.vendor_id].append(order)
            elif previous_start <= order.created_at < current_start:
                previous[order.vendor_id].append(order)
        if unknown:
            _logger.warning(f"Ignored {unknown} order(s) referencing unknown vendors")

        reports = [
            self._vendor_report(vendor.vendor_id, current[vendor.vendor_id], previous[vendor.vendor_id], now)
            for vendor in self.catalog
        ]
        summary = self.summarize(reports, now)
        return reports, summary

    def _vendor_report(
        self,
        vendor_id: str,
        current_orders: list[Order],
        previous_orders: list[Order],
        now: datetime,
    ) -> VendorReport:
        cur = compute_window_metrics(current_orders)
        prev = compute_window_metrics(previous_orders)
        trends = TrendBlock(
            reliability_score_delta=cur.reliability_score - prev.reliability_score,
            volume_delta=cur.total_orders - prev.total_orders,
            on_time_percentage_delta=cur.on_time_percentage - prev.on_time_percentage,
            issue_count_delta=cur.issue_count - prev.issue_count,
            trend_direction=calculate_trend_direction(
                cur.reliability_score, prev.reliability_score, self.thresholds.trend_threshold
            ),
        )
        _logger.debug(
            f"Report {vendor_id}: {cur.total_orders} current / {prev.total_orders} previous orders, "
            f"score {cur.reliability_score} ({trends.trend_direction.value})"
        )
        return VendorReport(
            vendor_id=vendor_id,
            report_date=now.date(),
            current_7d=cur,
            previous_7d=prev,
            trends=trends,
            generated_at=now,
        )

    def _summary_window(self, windows: list[WindowMetrics]) -> SummaryWindow:
        scored = [w.reliability_score for w in windows if w.total_orders > 0]
        overall = round_half_up(sum(scored) / len(scored), 2) if scored else 0.0
        return SummaryWindow(
            overall_reliability=overall,
            total_active_orders=sum(w.active_orders for w in windows),
            total_delayed_orders=sum(w.delayed_orders for w in windows),
            at_risk_vendors=sum(1 for s in scored if s < self.thresholds.at_risk_threshold),
        )

    def summarize(self, reports: list[VendorReport], now: datetime) -> DashboardSummary:
        cur = self._summary_window([r.current_7d for r in reports])
        prev = self._summary_window([r.previous_7d for r in reports])
        trends = SummaryTrends(
            reliability_trend=round_half_up(
                calculate_percentage_change(cur.overall_reliability, prev.overall_reliability), 2
            ),
            active_orders_trend=cur.total_active_orders - prev.total_active_orders,
            delayed_orders_trend=cur.total_delayed_orders - prev.total_delayed_orders,
            at_risk_vendors_trend=cur.at_risk_vendors - prev.at_risk_vendors,
            trend_direction=calculate_trend_direction(
                cur.overall_reliability, prev.overall_reliability, self.thresholds.trend_threshold
            ),
        )

        with_orders = [r for r in reports if r.current_7d.total_orders > 0]
        # sorted() is stable, so ties keep catalog order
        ranked = sorted(with_orders, key=lambda r: r.current_7d.reliability_score, reverse=True)
        top = [r.vendor_id for r in ranked[: self.thresholds.top_n]]
        under = [
            r.vendor_id for r in with_orders
            if r.current_7d.reliability_score < self.thresholds.underperforming_threshold
        ]
        return DashboardSummary(
            report_date=now.date(),
            current_7d=cur,
            previous_7d=prev,
            trends=trends,
            top_performing_vendors=top,
            underperforming_vendors=under,
            generated_at=now,
        )

    def run(self, store: DataStore, now: datetime) -> ReportRunResult:
        """Recompute every report from the store and write the results back."""
        _, previous_start = self.windows(now)
        orders: list[Order] = []
        for vendor in self.catalog:
            orders.extend(store.query_orders_by_vendor(vendor.vendor_id, previous_start, now))

        reports, summary = self.aggregate(orders, now)
        for report in reports:
            store.put_vendor_report(report)
        store.put_dashboard_summary(summary)

        _logger.info(
            f"Generated {len(reports)} vendor reports from {len(orders)} orders; "
            f"overall reliability {summary.current_7d.overall_reliability}, "
            f"{summary.current_7d.at_risk_vendors} at-risk vendor(s)"
        )
        return ReportRunResult(
            vendor_reports=len(reports),
            summary=summary,
            orders_considered=len(orders),
            reports=reports,
        )
