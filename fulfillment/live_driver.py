"""Live order driver.

Each ``step`` either places a new order or advances one in-flight order by a
single state-machine cycle, mimicking a steady trickle of marketplace traffic.
The store is the only shared state: every step reads what it needs, writes
its outcome and returns, so steps can be driven from a CLI loop or a timer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fulfillment.catalog import VendorCatalog
from fulfillment.config import DEFAULT_CONFIG
from fulfillment.errors import DuplicateOrderError
from fulfillment.models import ACTIVE_STATUSES, Order, OrderStatus, VendorProfile
from fulfillment.order_factory import draw_gift_value, estimate_delivery, new_order_id
from fulfillment.randomness import RandomSource, draw_choice
from fulfillment.selector import WeightedVendorSelector
from fulfillment.state_machine import Err, OrderStateMachine, transition_fields
from fulfillment.store import DataStore

_logger = logging.getLogger("simulation.driver")

CREATED_NEW_ORDER = "created_new_order"
UPDATED_EXISTING_ORDER = "updated_existing_order"
NO_ORDERS_TO_UPDATE = "no_orders_to_update"
SKIPPED_UNKNOWN_VENDOR = "skipped_unknown_vendor"
DUPLICATE_ORDER_SKIPPED = "duplicate_order_skipped"

DEFAULT_VALUE_RANGES = {k: tuple(v) for k, v in DEFAULT_CONFIG["gift_value_ranges"].items()}


@dataclass(frozen=True)
class LiveSettings:
    max_active_orders: int = 100
    create_probability: float = 0.4
    initial_placed_probability: float = 0.95
    rush_probability: float = 0.2
    gift_value_ranges: dict[str, tuple[int, int]] = field(default_factory=lambda: dict(DEFAULT_VALUE_RANGES))

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> LiveSettings:
        return cls(
            max_active_orders=config["max_active_orders"],
            create_probability=config["create_probability"],
            initial_placed_probability=config["initial_placed_probability"],
            rush_probability=config["live_rush_probability"],
            gift_value_ranges={k: tuple(v) for k, v in config["gift_value_ranges"].items()},
        )


@dataclass(frozen=True)
class StepResult:
    action: str
    order_id: str | None = None
    vendor_id: str | None = None
    previous_status: OrderStatus | None = None
    new_status: OrderStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "order_id": self.order_id,
            "vendor_id": self.vendor_id,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value if self.new_status else None,
        }


@dataclass
class BatchAdvanceResult:
    advanced: int = 0
    changed: int = 0
    skipped: int = 0


class LiveOrderDriver:
    """Creates and advances orders against a data store."""

    def __init__(
        self,
        catalog: VendorCatalog,
        store: DataStore,
        rng: RandomSource,
        state_machine: OrderStateMachine,
        settings: LiveSettings | None = None,
        selector: WeightedVendorSelector | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.rng = rng
        self.state_machine = state_machine
        self.settings = settings or LiveSettings()
        self.selector = selector or WeightedVendorSelector(catalog)

    def new_order(self, vendor: VendorProfile, now: datetime) -> Order:
        """Fresh order for ``vendor`` in the vendor's own gift category."""
        is_rush = self.rng.next() < self.settings.rush_probability
        if self.rng.next() < self.settings.initial_placed_probability:
            status = OrderStatus.PLACED
        else:
            status = OrderStatus.SHIPPING_ON_TIME
        return Order(
            order_id=new_order_id(now, self.rng),
            vendor_id=vendor.vendor_id,
            status=status,
            created_at=now,
            updated_at=now,
            estimated_delivery=estimate_delivery(vendor, now, is_rush, self.rng),
            gift_value=draw_gift_value(self.settings.gift_value_ranges, vendor.category, self.rng),
            gift_category=vendor.category,
            is_rush=is_rush,
        )

    def step(self, now: datetime) -> StepResult:
        active = self.store.query_orders_by_status(ACTIVE_STATUSES)
        if len(active) < self.settings.max_active_orders and self.rng.next() < self.settings.create_probability:
            return self._create(now)
        if not active:
            _logger.debug("No active orders to update")
            return StepResult(action=NO_ORDERS_TO_UPDATE)
        order = draw_choice(self.rng, active)
        return self._advance(order, now)

    def _create(self, now: datetime) -> StepResult:
        vendor = self.catalog.get(self.selector.select(self.rng))
        order = self.new_order(vendor, now)
        try:
            self.store.put_order_if_absent(order)
        except DuplicateOrderError:
            _logger.warning(f"Order {order.order_id} already exists, skipping creation")
            return StepResult(action=DUPLICATE_ORDER_SKIPPED, order_id=order.order_id, vendor_id=vendor.vendor_id)
        _logger.info(f"Created order {order.order_id} for {vendor.vendor_id} ({order.status.value})")
        return StepResult(
            action=CREATED_NEW_ORDER,
            order_id=order.order_id,
            vendor_id=vendor.vendor_id,
            new_status=order.status,
        )

    def _advance(self, order: Order, now: datetime) -> StepResult:
        result = self.state_machine.advance(order, now)
        if isinstance(result, Err):
            return StepResult(
                action=SKIPPED_UNKNOWN_VENDOR,
                order_id=order.order_id,
                vendor_id=order.vendor_id,
                previous_status=order.status,
            )
        self.store.update_order(order.order_id, transition_fields(result.order))
        if result.changed:
            _logger.info(
                f"Order {order.order_id}: {result.previous_status.value} -> {result.order.status.value}"
            )
        return StepResult(
            action=UPDATED_EXISTING_ORDER,
            order_id=order.order_id,
            vendor_id=order.vendor_id,
            previous_status=result.previous_status,
            new_status=result.order.status,
        )

    def advance_batch(self, now: datetime) -> BatchAdvanceResult:
        """Advance every active order by one cycle.

        Orders referencing an unknown vendor are counted and skipped; store
        errors propagate.
        """
        outcome = BatchAdvanceResult()
        for order in self.store.query_orders_by_status(ACTIVE_STATUSES):
            result = self.state_machine.advance(order, now)
            if isinstance(result, Err):
                outcome.skipped += 1
                continue
            self.store.update_order(order.order_id, transition_fields(result.order))
            outcome.advanced += 1
            if result.changed:
                outcome.changed += 1
        _logger.info(
            f"Batch advance: {outcome.advanced} advanced, {outcome.changed} changed, "
            f"{outcome.skipped} skipped"
        )
        return outcome
