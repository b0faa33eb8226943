"""Typed records for vendors, orders and reports.

Records validate themselves on construction so that bad values are rejected
where they enter the system instead of being re-checked by every consumer.

Key Types:
    OrderStatus, GiftCategory: closed enums used throughout the engine
    VendorProfile: immutable catalog entry
    Order: a single fulfillment order and its derived flags
    WindowMetrics, TrendBlock, VendorReport: per-vendor rolling report
    SummaryWindow, SummaryTrends, DashboardSummary: system-wide rollup
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any

from fulfillment.errors import ValidationError


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    SHIPPING_ON_TIME = "SHIPPING_ON_TIME"
    SHIPPING_DELAYED = "SHIPPING_DELAYED"
    ARRIVED = "ARRIVED"
    LOST = "LOST"
    DAMAGED = "DAMAGED"
    UNDELIVERABLE = "UNDELIVERABLE"
    RETURN_TO_SENDER = "RETURN_TO_SENDER"


class GiftCategory(str, Enum):
    FLOWERS = "flowers"
    TECH = "tech"
    FOOD = "food"
    APPAREL = "apparel"


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


ACTIVE_STATUSES: tuple[OrderStatus, ...] = (
    OrderStatus.PLACED,
    OrderStatus.SHIPPING_ON_TIME,
    OrderStatus.SHIPPING_DELAYED,
)

ISSUE_STATUSES: tuple[OrderStatus, ...] = (
    OrderStatus.LOST,
    OrderStatus.DAMAGED,
    OrderStatus.UNDELIVERABLE,
    OrderStatus.RETURN_TO_SENDER,
)

TERMINAL_STATUSES: tuple[OrderStatus, ...] = (OrderStatus.ARRIVED, *ISSUE_STATUSES)

# Transitions the policy in state_machine can produce. Staying in the same
# status for a cycle is not a transition and is not listed.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.SHIPPING_ON_TIME, OrderStatus.SHIPPING_DELAYED}),
    OrderStatus.SHIPPING_ON_TIME: frozenset({OrderStatus.SHIPPING_DELAYED, OrderStatus.ARRIVED}),
    OrderStatus.SHIPPING_DELAYED: frozenset({OrderStatus.ARRIVED, *ISSUE_STATUSES}),
    OrderStatus.ARRIVED: frozenset(),
    OrderStatus.LOST: frozenset(),
    OrderStatus.DAMAGED: frozenset(),
    OrderStatus.UNDELIVERABLE: frozenset(),
    OrderStatus.RETURN_TO_SENDER: frozenset(),
}

RELIABILITY_TRENDS = ("improving", "declining", "stable")
VOLUME_PATTERNS = ("high", "medium", "low")


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_active(status: OrderStatus) -> bool:
    return status in ACTIVE_STATUSES


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def iso_utc(dt: datetime) -> str:
    """Convert datetime to ISO 8601 UTC string."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_iso(value: str | datetime) -> datetime:
    """Parse ISO 8601 datetime string with optional trailing 'Z'."""
    if isinstance(value, datetime):
        dt = value
    else:
        cleaned = value.strip().replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(cleaned)
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp '{value}': {e}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def compute_is_delayed(estimated_delivery: datetime, updated_at: datetime) -> bool:
    return updated_at > estimated_delivery


def compute_delivery_days(created_at: datetime, delivered_at: datetime) -> int:
    """Whole days from creation to delivery, rounded up and never negative."""
    elapsed = (delivered_at - created_at) / timedelta(days=1)
    return max(0, math.ceil(elapsed))


def _require_aware(name: str, value: datetime | None) -> None:
    if value is not None and value.tzinfo is None:
        raise ValidationError(f"{name} must be timezone-aware")


@dataclass(frozen=True)
class VendorProfile:
    vendor_id: str
    name: str
    category: GiftCategory
    base_reliability: float
    common_issues: tuple[OrderStatus, ...] = ()
    standard_sla_days: int = 3
    rush_sla_days: int = 1
    reliability_trend: str = "stable"
    volume_pattern: str = "medium"
    avg_order_value: int = 0
    support_contact: str = ""
    is_active: bool = True

    def __post_init__(self) -> None:
        errors = []
        if not self.vendor_id:
            errors.append("vendor_id must not be empty")
        if not 0.0 <= self.base_reliability <= 1.0:
            errors.append(f"base_reliability must be between 0 and 1, got {self.base_reliability}")
        if not isinstance(self.category, GiftCategory):
            errors.append(f"unknown category {self.category!r}")
        bad_issues = [s for s in self.common_issues if s not in ISSUE_STATUSES]
        if bad_issues:
            errors.append(f"common_issues must be issue statuses, got {bad_issues}")
        if self.standard_sla_days <= 0 or self.rush_sla_days <= 0:
            errors.append("SLA days must be positive")
        if self.reliability_trend not in RELIABILITY_TRENDS:
            errors.append(f"reliability_trend must be one of {RELIABILITY_TRENDS}")
        if self.volume_pattern not in VOLUME_PATTERNS:
            errors.append(f"volume_pattern must be one of {VOLUME_PATTERNS}")
        if self.avg_order_value < 0:
            errors.append("avg_order_value must not be negative")
        if errors:
            raise ValidationError(f"Invalid vendor {self.vendor_id!r}: " + "; ".join(errors))

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "name": self.name,
            "category": self.category.value,
            "base_reliability": self.base_reliability,
            "common_issues": [s.value for s in self.common_issues],
            "standard_sla_days": self.standard_sla_days,
            "rush_sla_days": self.rush_sla_days,
            "reliability_trend": self.reliability_trend,
            "volume_pattern": self.volume_pattern,
            "avg_order_value": self.avg_order_value,
            "support_contact": self.support_contact,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorProfile:
        try:
            return cls(
                vendor_id=str(data["vendor_id"]),
                name=str(data["name"]),
                category=GiftCategory(data["category"]),
                base_reliability=float(data["base_reliability"]),
                common_issues=tuple(OrderStatus(s) for s in data.get("common_issues", [])),
                standard_sla_days=int(data.get("standard_sla_days", 3)),
                rush_sla_days=int(data.get("rush_sla_days", 1)),
                reliability_trend=data.get("reliability_trend", "stable"),
                volume_pattern=data.get("volume_pattern", "medium"),
                avg_order_value=int(data.get("avg_order_value", 0)),
                support_contact=data.get("support_contact", ""),
                is_active=bool(data.get("is_active", True)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid vendor record {data!r}: {e}") from e


@dataclass(frozen=True)
class Order:
    order_id: str
    vendor_id: str
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    estimated_delivery: datetime
    gift_value: int
    gift_category: GiftCategory
    is_rush: bool = False
    is_delayed: bool = False
    actual_delivery: datetime | None = None
    delivery_days: int | None = None
    is_backfilled: bool = False

    def __post_init__(self) -> None:
        errors = []
        if not self.order_id:
            errors.append("order_id must not be empty")
        if not isinstance(self.status, OrderStatus):
            errors.append(f"unknown status {self.status!r}")
        if not isinstance(self.gift_category, GiftCategory):
            errors.append(f"unknown gift category {self.gift_category!r}")
        if not isinstance(self.gift_value, int) or self.gift_value <= 0:
            errors.append(f"gift_value must be a positive integer, got {self.gift_value!r}")
        if self.status != OrderStatus.ARRIVED:
            if self.actual_delivery is not None:
                errors.append("actual_delivery is only set on ARRIVED orders")
            if self.delivery_days is not None:
                errors.append("delivery_days is only set on ARRIVED orders")
        if self.delivery_days is not None and self.delivery_days < 0:
            errors.append("delivery_days must not be negative")
        try:
            _require_aware("created_at", self.created_at)
            _require_aware("updated_at", self.updated_at)
            _require_aware("estimated_delivery", self.estimated_delivery)
            _require_aware("actual_delivery", self.actual_delivery)
        except ValidationError as e:
            errors.append(str(e))
        if errors:
            raise ValidationError(f"Invalid order {self.order_id!r}: " + "; ".join(errors))

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def is_overdue(self, now: datetime) -> bool:
        return now > self.estimated_delivery

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "vendor_id": self.vendor_id,
            "status": self.status.value,
            "created_at": iso_utc(self.created_at),
            "updated_at": iso_utc(self.updated_at),
            "estimated_delivery": iso_utc(self.estimated_delivery),
            "actual_delivery": iso_utc(self.actual_delivery) if self.actual_delivery else None,
            "gift_value": self.gift_value,
            "gift_category": self.gift_category.value,
            "is_rush": self.is_rush,
            "is_delayed": self.is_delayed,
            "delivery_days": self.delivery_days,
            "is_backfilled": self.is_backfilled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Order:
        try:
            actual = data.get("actual_delivery")
            delivery_days = data.get("delivery_days")
            return cls(
                order_id=str(data["order_id"]),
                vendor_id=str(data["vendor_id"]),
                status=OrderStatus(data["status"]),
                created_at=parse_iso(data["created_at"]),
                updated_at=parse_iso(data["updated_at"]),
                estimated_delivery=parse_iso(data["estimated_delivery"]),
                actual_delivery=parse_iso(actual) if actual else None,
                gift_value=int(data["gift_value"]),
                gift_category=GiftCategory(data["gift_category"]),
                is_rush=bool(data.get("is_rush", False)),
                is_delayed=bool(data.get("is_delayed", False)),
                delivery_days=int(delivery_days) if delivery_days is not None else None,
                is_backfilled=bool(data.get("is_backfilled", False)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid order record: {e}") from e


def empty_status_counts() -> dict[OrderStatus, int]:
    return {status: 0 for status in OrderStatus}


@dataclass
class WindowMetrics:
    status_counts: dict[OrderStatus, int] = field(default_factory=empty_status_counts)
    total_orders: int = 0
    on_time_deliveries: int = 0
    on_time_percentage: int = 0
    issue_count: int = 0
    avg_delivery_time: float = 0.0
    reliability_score: int = 0
    active_orders: int = 0
    delayed_orders: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.reliability_score <= 100:
            raise ValidationError(f"reliability_score out of range: {self.reliability_score}")
        if sum(self.status_counts.values()) != self.total_orders:
            raise ValidationError("status counts do not add up to total_orders")

    def to_dict(self) -> dict[str, Any]:
        return {
            "status_counts": {s.value: n for s, n in self.status_counts.items()},
            "total_orders": self.total_orders,
            "on_time_deliveries": self.on_time_deliveries,
            "on_time_percentage": self.on_time_percentage,
            "issue_count": self.issue_count,
            "avg_delivery_time": self.avg_delivery_time,
            "reliability_score": self.reliability_score,
            "active_orders": self.active_orders,
            "delayed_orders": self.delayed_orders,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WindowMetrics:
        counts = empty_status_counts()
        counts.update({OrderStatus(k): int(v) for k, v in data.get("status_counts", {}).items()})
        return cls(
            status_counts=counts,
            total_orders=int(data.get("total_orders", 0)),
            on_time_deliveries=int(data.get("on_time_deliveries", 0)),
            on_time_percentage=int(data.get("on_time_percentage", 0)),
            issue_count=int(data.get("issue_count", 0)),
            avg_delivery_time=float(data.get("avg_delivery_time", 0.0)),
            reliability_score=int(data.get("reliability_score", 0)),
            active_orders=int(data.get("active_orders", 0)),
            delayed_orders=int(data.get("delayed_orders", 0)),
        )


@dataclass
class TrendBlock:
    reliability_score_delta: int
    volume_delta: int
    on_time_percentage_delta: int
    issue_count_delta: int
    trend_direction: TrendDirection

    def to_dict(self) -> dict[str, Any]:
        return {
            "reliability_score_delta": self.reliability_score_delta,
            "volume_delta": self.volume_delta,
            "on_time_percentage_delta": self.on_time_percentage_delta,
            "issue_count_delta": self.issue_count_delta,
            "trend_direction": self.trend_direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrendBlock:
        return cls(
            reliability_score_delta=int(data["reliability_score_delta"]),
            volume_delta=int(data["volume_delta"]),
            on_time_percentage_delta=int(data["on_time_percentage_delta"]),
            issue_count_delta=int(data["issue_count_delta"]),
            trend_direction=TrendDirection(data["trend_direction"]),
        )


@dataclass
class VendorReport:
    vendor_id: str
    report_date: date
    current_7d: WindowMetrics
    previous_7d: WindowMetrics
    trends: TrendBlock
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "report_date": self.report_date.isoformat(),
            "current_7d": self.current_7d.to_dict(),
            "previous_7d": self.previous_7d.to_dict(),
            "trends": self.trends.to_dict(),
            "generated_at": iso_utc(self.generated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorReport:
        return cls(
            vendor_id=data["vendor_id"],
            report_date=date.fromisoformat(data["report_date"]),
            current_7d=WindowMetrics.from_dict(data["current_7d"]),
            previous_7d=WindowMetrics.from_dict(data["previous_7d"]),
            trends=TrendBlock.from_dict(data["trends"]),
            generated_at=parse_iso(data["generated_at"]),
        )


@dataclass
class SummaryWindow:
    overall_reliability: float = 0.0
    total_active_orders: int = 0
    total_delayed_orders: int = 0
    at_risk_vendors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_reliability": self.overall_reliability,
            "total_active_orders": self.total_active_orders,
            "total_delayed_orders": self.total_delayed_orders,
            "at_risk_vendors": self.at_risk_vendors,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SummaryWindow:
        return cls(
            overall_reliability=float(data["overall_reliability"]),
            total_active_orders=int(data["total_active_orders"]),
            total_delayed_orders=int(data["total_delayed_orders"]),
            at_risk_vendors=int(data["at_risk_vendors"]),
        )


@dataclass
class SummaryTrends:
    reliability_trend: float
    active_orders_trend: int
    delayed_orders_trend: int
    at_risk_vendors_trend: int
    trend_direction: TrendDirection

    def to_dict(self) -> dict[str, Any]:
        return {
            "reliability_trend": self.reliability_trend,
            "active_orders_trend": self.active_orders_trend,
            "delayed_orders_trend": self.delayed_orders_trend,
            "at_risk_vendors_trend": self.at_risk_vendors_trend,
            "trend_direction": self.trend_direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SummaryTrends:
        return cls(
            reliability_trend=float(data["reliability_trend"]),
            active_orders_trend=int(data["active_orders_trend"]),
            delayed_orders_trend=int(data["delayed_orders_trend"]),
            at_risk_vendors_trend=int(data["at_risk_vendors_trend"]),
            trend_direction=TrendDirection(data["trend_direction"]),
        )


SUMMARY_ID = "DAILY_SUMMARY"


@dataclass
class DashboardSummary:
    report_date: date
    current_7d: SummaryWindow
    previous_7d: SummaryWindow
    trends: SummaryTrends
    top_performing_vendors: list[str]
    underperforming_vendors: list[str]
    generated_at: datetime
    summary_id: str = SUMMARY_ID

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary_id": self.summary_id,
            "report_date": self.report_date.isoformat(),
            "current_7d": self.current_7d.to_dict(),
            "previous_7d": self.previous_7d.to_dict(),
            "trends": self.trends.to_dict(),
            "top_performing_vendors": list(self.top_performing_vendors),
            "underperforming_vendors": list(self.underperforming_vendors),
            "generated_at": iso_utc(self.generated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DashboardSummary:
        return cls(
            summary_id=data.get("summary_id", SUMMARY_ID),
            report_date=date.fromisoformat(data["report_date"]),
            current_7d=SummaryWindow.from_dict(data["current_7d"]),
            previous_7d=SummaryWindow.from_dict(data["previous_7d"]),
            trends=SummaryTrends.from_dict(data["trends"]),
            top_performing_vendors=list(data.get("top_performing_vendors", [])),
            underperforming_vendors=list(data.get("underperforming_vendors", [])),
            generated_at=parse_iso(data["generated_at"]),
        )
