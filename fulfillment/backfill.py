"""Historical order backfill.

Synthesizes a realistic population of already-resolved orders over a fixed
horizon so that reports have history to compare against from the first run.
Every synthesized order is terminal: it either ARRIVED (around its estimated
delivery) or ended in one of the issue statuses.

Volume follows a daily base count drawn from [daily_volume_min,
daily_volume_max], scaled up on weekdays and down on weekends. Vendors are
drawn with reliability weighting, so dependable vendors carry more volume.

Usage:
    synthesizer = BackfillSynthesizer(catalog, SeededRandom(7), OrderPatterns.from_config(cfg))
    summary = synthesizer.backfill(store, days=21, end_date=date.today())
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Mapping, Sequence

from fulfillment.catalog import VendorCatalog
from fulfillment.models import (
    GiftCategory,
    Order,
    OrderStatus,
    VendorProfile,
    compute_delivery_days,
)
from fulfillment.order_factory import (
    draw_gift_category,
    draw_gift_value,
    estimate_delivery,
    new_order_id,
)
from fulfillment.randomness import RandomSource, draw_int, draw_uniform
from fulfillment.selector import WeightedVendorSelector
from fulfillment.state_machine import pick_issue_status
from fulfillment.store import MAX_BATCH_SIZE, DataStore

_logger = logging.getLogger("simulation.backfill")

# Saturday and Sunday
WEEKEND_DAYS = (5, 6)


@dataclass(frozen=True)
class OrderPatterns:
    daily_volume_min: int = 50
    daily_volume_max: int = 200
    weekday_multiplier: float = 1.5
    weekend_multiplier: float = 0.6
    rush_probability: float = 0.15
    gift_category_distribution: Mapping[str, float] = field(
        default_factory=lambda: {"flowers": 0.25, "tech": 0.30, "food": 0.30, "apparel": 0.15}
    )
    gift_value_ranges: Mapping[str, Sequence[int]] = field(
        default_factory=lambda: {
            "flowers": (2500, 15000),
            "tech": (5000, 50000),
            "food": (1500, 8000),
            "apparel": (3000, 25000),
        }
    )
    success_factor: float = 0.9
    common_issue_preference: float = 0.7
    business_hours: tuple[int, int] = (6, 22)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> OrderPatterns:
        return cls(
            daily_volume_min=config["daily_volume_min"],
            daily_volume_max=config["daily_volume_max"],
            weekday_multiplier=config["weekday_multiplier"],
            weekend_multiplier=config["weekend_multiplier"],
            rush_probability=config["backfill_rush_probability"],
            gift_category_distribution=dict(config["gift_category_distribution"]),
            gift_value_ranges={k: tuple(v) for k, v in config["gift_value_ranges"].items()},
            success_factor=config["backfill_success_factor"],
            common_issue_preference=config["common_issue_preference"],
            business_hours=(config["business_hours_start"], config["business_hours_end"]),
        )


@dataclass
class BackfillSummary:
    total_orders: int = 0
    batches_written: int = 0
    start_date: date | None = None
    end_date: date | None = None
    orders_by_vendor: Counter = field(default_factory=Counter)
    arrived_by_vendor: Counter = field(default_factory=Counter)
    status_breakdown: Counter = field(default_factory=Counter)

    def add(self, order: Order) -> None:
        self.total_orders += 1
        self.orders_by_vendor[order.vendor_id] += 1
        self.status_breakdown[order.status.value] += 1
        if order.status == OrderStatus.ARRIVED:
            self.arrived_by_vendor[order.vendor_id] += 1

    def arrived_percentage(self, vendor_id: str) -> float:
        total = self.orders_by_vendor.get(vendor_id, 0)
        if total == 0:
            return 0.0
        return round(self.arrived_by_vendor.get(vendor_id, 0) / total * 100, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_orders": self.total_orders,
            "batches_written": self.batches_written,
            "date_range": {
                "from": self.start_date.isoformat() if self.start_date else None,
                "to": self.end_date.isoformat() if self.end_date else None,
            },
            "vendors": {
                vendor_id: {
                    "orders": count,
                    "arrived_percentage": self.arrived_percentage(vendor_id),
                }
                for vendor_id, count in sorted(self.orders_by_vendor.items())
            },
            "status_breakdown": dict(self.status_breakdown),
        }


class BackfillSynthesizer:
    """Generates terminal orders day by day over a historical horizon."""

    def __init__(
        self,
        catalog: VendorCatalog,
        rng: RandomSource,
        patterns: OrderPatterns | None = None,
        selector: WeightedVendorSelector | None = None,
    ) -> None:
        self.catalog = catalog
        self.rng = rng
        self.patterns = patterns or OrderPatterns()
        self.selector = selector or WeightedVendorSelector(catalog)

    def daily_order_count(self, day: date) -> int:
        """Base volume for the day scaled by the weekday/weekend multiplier."""
        base = draw_int(self.rng, self.patterns.daily_volume_min, self.patterns.daily_volume_max)
        if day.weekday() in WEEKEND_DAYS:
            multiplier = self.patterns.weekend_multiplier
        else:
            multiplier = self.patterns.weekday_multiplier
        return int(math.floor(base * multiplier))

    def _created_at(self, day: date) -> datetime:
        start, end = self.patterns.business_hours
        hour = draw_int(self.rng, start, end - 1)
        minute = draw_int(self.rng, 0, 59)
        second = draw_int(self.rng, 0, 59)
        return datetime.combine(day, time(hour, minute, second), tzinfo=timezone.utc)

    def create_order(self, day: date, vendor: VendorProfile) -> Order:
        """Create one resolved order placed on ``day`` with ``vendor``."""
        created_at = self._created_at(day)
        category: GiftCategory = draw_gift_category(self.patterns.gift_category_distribution, self.rng)
        is_rush = self.rng.next() < self.patterns.rush_probability
        gift_value = draw_gift_value(self.patterns.gift_value_ranges, category, self.rng)
        estimated = estimate_delivery(vendor, created_at, is_rush, self.rng)
        order_id = new_order_id(created_at, self.rng)

        if self.rng.next() < vendor.base_reliability * self.patterns.success_factor:
            actual = estimated + timedelta(days=draw_uniform(self.rng, -1.0, 1.0))
            return Order(
                order_id=order_id,
                vendor_id=vendor.vendor_id,
                status=OrderStatus.ARRIVED,
                created_at=created_at,
                updated_at=actual,
                estimated_delivery=estimated,
                actual_delivery=actual,
                delivery_days=compute_delivery_days(created_at, actual),
                gift_value=gift_value,
                gift_category=category,
                is_rush=is_rush,
                is_delayed=actual > estimated,
                is_backfilled=True,
            )

        issue = pick_issue_status(vendor.common_issues, self.rng, self.patterns.common_issue_preference)
        occurred_at = estimated + timedelta(days=draw_uniform(self.rng, 0.0, 3.0))
        return Order(
            order_id=order_id,
            vendor_id=vendor.vendor_id,
            status=issue,
            created_at=created_at,
            updated_at=occurred_at,
            estimated_delivery=estimated,
            gift_value=gift_value,
            gift_category=category,
            is_rush=is_rush,
            is_delayed=True,
            is_backfilled=True,
        )

    def synthesize_day(self, day: date) -> list[Order]:
        orders = []
        for _ in range(self.daily_order_count(day)):
            vendor = self.catalog.get(self.selector.select(self.rng))
            orders.append(self.create_order(day, vendor))
        return orders

    def synthesize(self, days: int, end_date: date) -> list[Order]:
        """All orders for the ``days`` calendar days before ``end_date``."""
        orders: list[Order] = []
        for day in backfill_days(days, end_date):
            orders.extend(self.synthesize_day(day))
        return orders

    def backfill(
        self,
        store: DataStore,
        days: int,
        end_date: date,
        batch_size: int = MAX_BATCH_SIZE,
    ) -> BackfillSummary:
        """Synthesize and write history one day at a time.

        Store errors abort the run; days written before the failure stay.
        """
        day_list = backfill_days(days, end_date)
        summary = BackfillSummary()
        if day_list:
            summary.start_date = day_list[0]
            summary.end_date = day_list[-1]

        _logger.info(f"Starting backfill: {days} days ending {end_date.isoformat()}")
        for day in day_list:
            orders = self.synthesize_day(day)
            batches = store.batch_write_orders(orders, batch_size)
            summary.batches_written += batches
            for order in orders:
                summary.add(order)
            _logger.info(
                f"Backfilled {day.isoformat()}: {len(orders)} orders in {batches} batch(es)"
            )

        _logger.info(
            f"Backfill complete: {summary.total_orders} orders, "
            f"{summary.batches_written} batches written"
        )
        return summary


def backfill_days(days: int, end_date: date) -> list[date]:
    """Days in [end_date - days, end_date - 1], oldest first."""
    return [end_date - timedelta(days=offset) for offset in range(days, 0, -1)]
