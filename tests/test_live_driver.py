from __future__ import annotations

import re
from datetime import timedelta

from conftest import NOW, ScriptedRandom, make_order
from fulfillment.live_driver import (
    CREATED_NEW_ORDER,
    DUPLICATE_ORDER_SKIPPED,
    NO_ORDERS_TO_UPDATE,
    SKIPPED_UNKNOWN_VENDOR,
    UPDATED_EXISTING_ORDER,
    LiveOrderDriver,
    LiveSettings,
)
from fulfillment.models import OrderStatus
from fulfillment.randomness import SeededRandom
from fulfillment.state_machine import OrderStateMachine

ORDER_ID = re.compile(r"^ORD-\d{13}-[0-9A-Z]{6}$")


def make_driver(catalog, store, rng, **settings):
    machine = OrderStateMachine(catalog, rng)
    return LiveOrderDriver(catalog, store, rng, machine, LiveSettings(**settings))


def test_new_order_shape(catalog, memory_store):
    driver = make_driver(catalog, memory_store, SeededRandom(1))
    vendor = catalog.get("vendor-003")
    order = driver.new_order(vendor, NOW)
    assert ORDER_ID.match(order.order_id)
    assert order.created_at == order.updated_at == NOW
    assert order.gift_category == vendor.category
    assert 5000 <= order.gift_value <= 50000
    assert order.status in (OrderStatus.PLACED, OrderStatus.SHIPPING_ON_TIME)
    assert not order.is_backfilled
    assert order.estimated_delivery > NOW


def test_step_creates_when_below_capacity(catalog, memory_store):
    driver = make_driver(catalog, memory_store, SeededRandom(1), create_probability=1.0)
    result = driver.step(NOW)
    assert result.action == CREATED_NEW_ORDER
    assert memory_store.get_order(result.order_id) is not None


def test_step_reports_nothing_to_update(catalog, memory_store):
    driver = make_driver(catalog, memory_store, SeededRandom(1), create_probability=0.0)
    assert driver.step(NOW).action == NO_ORDERS_TO_UPDATE


def test_step_advances_when_at_capacity(catalog, memory_store):
    memory_store.put_order_if_absent(make_order(status=OrderStatus.PLACED))
    driver = make_driver(catalog, memory_store, SeededRandom(1), max_active_orders=1, create_probability=1.0)
    result = driver.step(NOW)
    assert result.action == UPDATED_EXISTING_ORDER
    assert result.previous_status == OrderStatus.PLACED
    stored = memory_store.get_order("ORD-1")
    assert stored.status == result.new_status
    assert stored.updated_at == NOW


def test_step_skips_unknown_vendor(catalog, memory_store):
    memory_store.put_order_if_absent(make_order(vendor_id="vendor-gone"))
    driver = make_driver(catalog, memory_store, SeededRandom(1), create_probability=0.0)
    result = driver.step(NOW)
    assert result.action == SKIPPED_UNKNOWN_VENDOR
    assert memory_store.get_order("ORD-1").status == OrderStatus.PLACED


def test_step_skips_duplicate_order_id(catalog, memory_store):
    # Two drivers replaying the same draws mint the same order id
    first = make_driver(catalog, memory_store, ScriptedRandom([], default=0.1), create_probability=1.0)
    second = make_driver(catalog, memory_store, ScriptedRandom([], default=0.1), create_probability=1.0)
    assert first.step(NOW).action == CREATED_NEW_ORDER
    assert second.step(NOW).action == DUPLICATE_ORDER_SKIPPED
    assert len(memory_store) == 1


def test_active_population_stays_bounded(catalog, memory_store):
    driver = make_driver(catalog, memory_store, SeededRandom(17), max_active_orders=10, create_probability=0.9)
    now = NOW
    for _ in range(300):
        driver.step(now)
        now += timedelta(hours=1)
    active = memory_store.query_orders_by_status(
        [OrderStatus.PLACED, OrderStatus.SHIPPING_ON_TIME, OrderStatus.SHIPPING_DELAYED]
    )
    assert len(active) <= 10


def test_advance_batch_counts_skips(catalog, memory_store):
    memory_store.put_order_if_absent(make_order("ORD-1", status=OrderStatus.PLACED))
    memory_store.put_order_if_absent(make_order("ORD-2", vendor_id="vendor-gone"))
    memory_store.put_order_if_absent(make_order("ORD-3", status=OrderStatus.ARRIVED))
    driver = make_driver(catalog, memory_store, SeededRandom(3))
    outcome = driver.advance_batch(NOW)
    assert outcome.advanced == 1
    assert outcome.skipped == 1
    # PLACED always leaves PLACED after one cycle
    assert outcome.changed == 1
    assert memory_store.get_order("ORD-1").status != OrderStatus.PLACED
