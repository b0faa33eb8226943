from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from fulfillment.catalog import build_vendor, default_catalog
from fulfillment.db_manager import SqlAlchemyDataStore, create_tables
from fulfillment.models import GiftCategory, Order, OrderStatus
from fulfillment.randomness import SeededRandom
from fulfillment.store import InMemoryDataStore

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


class ScriptedRandom:
    """RandomSource that replays a fixed list of draws."""

    def __init__(self, values, default: float | None = None) -> None:
        self.values = list(values)
        self.default = default
        self.calls = 0

    def next(self) -> float:
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        if self.default is None:
            raise AssertionError("ScriptedRandom ran out of values")
        return self.default


def make_order(
    order_id: str = "ORD-1",
    vendor_id: str = "vendor-001",
    status: OrderStatus = OrderStatus.PLACED,
    created_at: datetime = NOW - timedelta(days=1),
    estimated_in_days: float = 3,
    **overrides,
) -> Order:
    fields = dict(
        order_id=order_id,
        vendor_id=vendor_id,
        status=status,
        created_at=created_at,
        updated_at=created_at,
        estimated_delivery=created_at + timedelta(days=estimated_in_days),
        gift_value=5000,
        gift_category=GiftCategory.FLOWERS,
    )
    if status == OrderStatus.ARRIVED and "actual_delivery" not in overrides:
        fields["actual_delivery"] = created_at + timedelta(days=2)
        fields["delivery_days"] = 2
    fields.update(overrides)
    return Order(**fields)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def rng():
    return SeededRandom(1234)


@pytest.fixture
def scripted():
    return ScriptedRandom


@pytest.fixture
def memory_store():
    return InMemoryDataStore()


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield SqlAlchemyDataStore(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def two_vendor_catalog():
    from fulfillment.catalog import VendorCatalog

    return VendorCatalog([
        build_vendor("vendor-a", "Alpha Blooms", GiftCategory.FLOWERS, 0.9),
        build_vendor("vendor-b", "Beta Gadgets", GiftCategory.TECH, 0.45),
    ])
