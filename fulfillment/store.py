"""Data store contract and the in-memory implementation.

The simulator only talks to storage through ``DataStore``. Two
implementations ship with the project: ``InMemoryDataStore`` (tests, local
runs) and ``SqlAlchemyDataStore`` in ``fulfillment.db_manager``.

Write semantics:
    - ``put_order_if_absent`` is conditional on absence (re-invocation safe)
    - ``update_order`` writes a partial field set
    - ``batch_write_orders`` writes in chunks of at most ``MAX_BATCH_SIZE``;
      a failure leaves earlier chunks in place
    - every successful order write is announced to subscribers
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Any, Callable, Iterable, Iterator, Protocol, Sequence

from fulfillment.errors import DuplicateOrderError, OrderNotFoundError
from fulfillment.events import OrderChangeEvent
from fulfillment.models import DashboardSummary, Order, OrderStatus, VendorReport

MAX_BATCH_SIZE = 25

ChangeListener = Callable[[OrderChangeEvent], None]


def chunked(items: Sequence[Any], size: int = MAX_BATCH_SIZE) -> Iterator[Sequence[Any]]:
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class DataStore(Protocol):
    def get_order(self, order_id: str) -> Order | None: ...

    def query_orders_by_vendor(self, vendor_id: str, start: datetime, end: datetime) -> list[Order]: ...

    def query_orders_by_status(self, statuses: Iterable[OrderStatus]) -> list[Order]: ...

    def scan_orders(self, predicate: Callable[[Order], bool] | None = None) -> list[Order]: ...

    def put_order_if_absent(self, order: Order) -> None: ...

    def update_order(self, order_id: str, fields: dict[str, Any]) -> Order: ...

    def batch_write_orders(self, orders: Sequence[Order], batch_size: int = MAX_BATCH_SIZE) -> int: ...

    def put_vendor_report(self, report: VendorReport) -> None: ...

    def put_dashboard_summary(self, summary: DashboardSummary) -> None: ...

    def get_vendor_report(self, vendor_id: str, report_date: date | None = None) -> VendorReport | None: ...

    def get_dashboard_summary(self, report_date: date | None = None) -> DashboardSummary | None: ...

    def subscribe(self, listener: ChangeListener) -> None: ...


class ChangeNotifier:
    """Fan-out of order change events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, order_id: str, change: str) -> None:
        event = OrderChangeEvent(order_id=order_id, change=change)
        for listener in self._listeners:
            listener(event)


def in_range(order: Order, start: datetime, end: datetime) -> bool:
    """True when the order was created within [start, end]."""
    return start <= order.created_at <= end


class InMemoryDataStore(ChangeNotifier):
    """Dict-backed store with the same semantics as the SQL store."""

    def __init__(self) -> None:
        super().__init__()
        self._orders: dict[str, Order] = {}
        self._reports: dict[tuple[str, date], VendorReport] = {}
        self._summaries: dict[date, DashboardSummary] = {}

    def __len__(self) -> int:
        return len(self._orders)

    def get_order(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    def query_orders_by_vendor(self, vendor_id: str, start: datetime, end: datetime) -> list[Order]:
        return [
            o for o in list(self._orders.values())
            if o.vendor_id == vendor_id and in_range(o, start, end)
        ]

    def query_orders_by_status(self, statuses: Iterable[OrderStatus]) -> list[Order]:
        wanted = set(statuses)
        return [o for o in list(self._orders.values()) if o.status in wanted]

    def scan_orders(self, predicate: Callable[[Order], bool] | None = None) -> list[Order]:
        if predicate is None:
            return list(self._orders.values())
        return [o for o in list(self._orders.values()) if predicate(o)]

    def put_order_if_absent(self, order: Order) -> None:
        if order.order_id in self._orders:
            raise DuplicateOrderError(order.order_id)
        self._orders[order.order_id] = order
        self._notify(order.order_id, "insert")

    def update_order(self, order_id: str, fields: dict[str, Any]) -> Order:
        current = self._orders.get(order_id)
        if current is None:
            raise OrderNotFoundError(order_id)
        updated = replace(current, **fields)
        self._orders[order_id] = updated
        self._notify(order_id, "update")
        return updated

    def batch_write_orders(self, orders: Sequence[Order], batch_size: int = MAX_BATCH_SIZE) -> int:
        batches = 0
        for batch in chunked(orders, min(batch_size, MAX_BATCH_SIZE)):
            for order in batch:
                self._orders[order.order_id] = order
            batches += 1
            for order in batch:
                self._notify(order.order_id, "insert")
        return batches

    def put_vendor_report(self, report: VendorReport) -> None:
        self._reports[(report.vendor_id, report.report_date)] = report

    def put_dashboard_summary(self, summary: DashboardSummary) -> None:
        self._summaries[summary.report_date] = summary

    def get_vendor_report(self, vendor_id: str, report_date: date | None = None) -> VendorReport | None:
        if report_date is not None:
            return self._reports.get((vendor_id, report_date))
        dates = [d for (vid, d) in self._reports if vid == vendor_id]
        return self._reports[(vendor_id, max(dates))] if dates else None

    def get_dashboard_summary(self, report_date: date | None = None) -> DashboardSummary | None:
        if report_date is not None:
            return self._summaries.get(report_date)
        return self._summaries[max(self._summaries)] if self._summaries else None
