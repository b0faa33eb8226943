"""Order status state machine and its probabilistic transition policy.

Lifecycle:
    PLACED -> SHIPPING_ON_TIME | SHIPPING_DELAYED -> ARRIVED | LOST | DAMAGED
    | UNDELIVERABLE | RETURN_TO_SENDER

``next_status`` decides the next status from (status, reliability, overdue,
draws) and nothing else. ``OrderStateMachine.advance`` looks up the vendor,
applies the decision to the order and reports the outcome as a tagged result
so batch callers can keep going when one order references an unknown vendor.

Usage:
    machine = OrderStateMachine(catalog, SeededRandom(42), notify=event_log.record_status_change)
    result = machine.advance(order, now)
    if isinstance(result, Ok):
        store.update_order(result.order.order_id, transition_fields(result.order))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Sequence, Union

from fulfillment.catalog import VendorCatalog
from fulfillment.events import StatusChangeEvent
from fulfillment.models import (
    ISSUE_STATUSES,
    Order,
    OrderStatus,
    compute_delivery_days,
    compute_is_delayed,
)
from fulfillment.randomness import RandomSource, draw_choice

_logger = logging.getLogger("simulation.state_machine")


@dataclass(frozen=True)
class TransitionPolicy:
    on_time_arrival_probability: float = 0.3
    delayed_lost_probability: float = 0.1
    delayed_arrival_probability: float = 0.4
    delayed_issue_probability: float = 0.05
    common_issue_preference: float = 0.7

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> TransitionPolicy:
        return cls(
            on_time_arrival_probability=config["on_time_arrival_probability"],
            delayed_lost_probability=config["delayed_lost_probability"],
            delayed_arrival_probability=config["delayed_arrival_probability"],
            delayed_issue_probability=config["delayed_issue_probability"],
            common_issue_preference=config["common_issue_preference"],
        )


def pick_issue_status(
    common_issues: Sequence[OrderStatus],
    rng: RandomSource,
    preference: float = 0.7,
) -> OrderStatus:
    """Pick a failure status, favouring the vendor's known failure modes."""
    if common_issues and rng.next() < preference:
        return draw_choice(rng, common_issues)
    return draw_choice(rng, ISSUE_STATUSES)


def next_status(
    status: OrderStatus,
    reliability: float,
    overdue: bool,
    common_issues: Sequence[OrderStatus],
    rng: RandomSource,
    policy: TransitionPolicy = TransitionPolicy(),
) -> OrderStatus:
    """Decide the next status for one simulation cycle.

    Returning ``status`` itself means "no change this cycle". Terminal
    statuses always return unchanged without consuming draws.
    """
    if status == OrderStatus.PLACED:
        if overdue or rng.next() > reliability:
            return OrderStatus.SHIPPING_DELAYED
        return OrderStatus.SHIPPING_ON_TIME

    if status == OrderStatus.SHIPPING_ON_TIME:
        if overdue or rng.next() > reliability:
            return OrderStatus.SHIPPING_DELAYED
        if rng.next() < policy.on_time_arrival_probability:
            return OrderStatus.ARRIVED
        return OrderStatus.SHIPPING_ON_TIME

    if status == OrderStatus.SHIPPING_DELAYED:
        if rng.next() < policy.delayed_lost_probability:
            return OrderStatus.LOST
        if rng.next() < policy.delayed_arrival_probability:
            return OrderStatus.ARRIVED
        if rng.next() < policy.delayed_issue_probability:
            # LOST already has its own path above.
            handling_issues = [s for s in common_issues if s != OrderStatus.LOST]
            return pick_issue_status(handling_issues, rng, policy.common_issue_preference)
        return OrderStatus.SHIPPING_DELAYED

    return status


def apply_transition(order: Order, new_status: OrderStatus, now: datetime) -> Order:
    """Return the order moved to ``new_status`` with its derived fields refreshed."""
    actual_delivery = order.actual_delivery
    delivery_days = order.delivery_days
    if new_status == OrderStatus.ARRIVED and order.status != OrderStatus.ARRIVED:
        actual_delivery = now
        delivery_days = compute_delivery_days(order.created_at, now)
    return replace(
        order,
        status=new_status,
        updated_at=now,
        is_delayed=compute_is_delayed(order.estimated_delivery, now),
        actual_delivery=actual_delivery,
        delivery_days=delivery_days,
    )


def transition_fields(order: Order) -> dict[str, Any]:
    """Partial field set written back to the store after a transition."""
    fields: dict[str, Any] = {
        "status": order.status,
        "updated_at": order.updated_at,
        "is_delayed": order.is_delayed,
    }
    if order.status == OrderStatus.ARRIVED:
        fields["actual_delivery"] = order.actual_delivery
        fields["delivery_days"] = order.delivery_days
    return fields


@dataclass(frozen=True)
class UnknownVendor:
    order_id: str
    vendor_id: str

    def __str__(self) -> str:
        return f"Vendor not found: {self.vendor_id} (order {self.order_id})"


@dataclass(frozen=True)
class Ok:
    order: Order
    previous_status: OrderStatus
    changed: bool


@dataclass(frozen=True)
class Err:
    error: UnknownVendor


TransitionResult = Union[Ok, Err]


class OrderStateMachine:
    """Advances orders one cycle at a time against a fixed vendor catalog."""

    def __init__(
        self,
        catalog: VendorCatalog,
        rng: RandomSource,
        policy: TransitionPolicy | None = None,
        notify: Callable[[StatusChangeEvent], None] | None = None,
    ) -> None:
        self.catalog = catalog
        self.rng = rng
        self.policy = policy or TransitionPolicy()
        self.notify = notify

    def advance(self, order: Order, now: datetime) -> TransitionResult:
        vendor = self.catalog.get(order.vendor_id)
        if vendor is None:
            error = UnknownVendor(order.order_id, order.vendor_id)
            _logger.error(f"Skipping order advancement: {error}")
            return Err(error)

        if order.is_terminal:
            return Ok(order=order, previous_status=order.status, changed=False)

        new_status = next_status(
            order.status,
            vendor.base_reliability,
            order.is_overdue(now),
            vendor.common_issues,
            self.rng,
            self.policy,
        )
        updated = apply_transition(order, new_status, now)
        changed = new_status != order.status

        if changed:
            _logger.debug(f"Order {order.order_id}: {order.status.value} -> {new_status.value}")
            if self.notify is not None:
                self.notify(
                    StatusChangeEvent(
                        order_id=order.order_id,
                        vendor_id=order.vendor_id,
                        old_status=order.status,
                        new_status=new_status,
                        is_delayed=updated.is_delayed,
                        occurred_at=now,
                    )
                )
        return Ok(order=updated, previous_status=order.status, changed=changed)
