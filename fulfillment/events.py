"""Status-change notifications, the JSONL event log and the report trigger.

Events are written to date-partitioned JSONL (``<events_dir>/YYYY-MM-DD.jsonl``),
one line per event, keyed by the day the event occurred.
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

from fulfillment.models import OrderStatus, iso_utc

_logger = logging.getLogger("simulation.events")

R = TypeVar("R")


@dataclass(frozen=True)
class StatusChangeEvent:
    order_id: str
    vendor_id: str
    old_status: OrderStatus
    new_status: OrderStatus
    is_delayed: bool
    occurred_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "vendor_id": self.vendor_id,
            "old_status": self.old_status.value,
            "new_status": self.new_status.value,
            "is_delayed": self.is_delayed,
        }


@dataclass(frozen=True)
class OrderChangeEvent:
    """Emitted by a data store after an order write succeeds."""
    order_id: str
    change: str  # "insert" | "update"


class EventLog:
    """Appends events to a JSONL file per day, reopening on day rollover."""

    def __init__(self, events_dir: Path) -> None:
        self.events_dir = events_dir
        self._current_day: date | None = None
        self._file: io.TextIOWrapper | None = None

    def log(self, event_type: str, occurred_at: datetime, payload: dict[str, Any]) -> None:
        event = {
            "timestamp": iso_utc(occurred_at),
            "event_type": event_type,
            "payload": payload,
        }
        line = json.dumps(event, ensure_ascii=False)
        try:
            self.events_dir.mkdir(parents=True, exist_ok=True)
            day = occurred_at.date()
            if self._current_day != day:
                self.close()
                self._current_day = day
                path = self.events_dir / f"{day:%Y-%m-%d}.jsonl"
                self._file = path.open("a", encoding="utf-8")
            self._file.write(line + "\n")
            self._file.flush()
        except OSError as e:
            _logger.warning(f"Failed to write event log: {e}")

    def record_status_change(self, event: StatusChangeEvent) -> None:
        self.log("OrderStatusChanged", event.occurred_at, event.to_payload())

    def close(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            except OSError as e:
                _logger.warning(f"Failed to close event log: {e}")
            self._file = None
            self._current_day = None


class ReportTrigger(Generic[R]):
    """Store subscriber that turns order changes into report runs.

    Changes only mark the reports stale; ``flush`` runs a single aggregation
    for however many changes arrived since the previous flush.
    """

    def __init__(self, run_reports: Callable[[datetime], R]) -> None:
        self._run_reports = run_reports
        self._pending: set[str] = set()

    def __call__(self, event: OrderChangeEvent) -> None:
        self._pending.add(event.order_id)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def flush(self, now: datetime) -> R | None:
        if not self._pending:
            return None
        changed = len(self._pending)
        result = self._run_reports(now)
        # Cleared only after a successful run so a failed run is retried.
        self._pending.clear()
        _logger.info(f"Reports regenerated after {changed} order change(s)")
        return result
