from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import NOW, make_order
from fulfillment import api
from fulfillment.aggregator import ReportAggregator
from fulfillment.models import OrderStatus


@pytest.fixture
def client(catalog, memory_store):
    memory_store.put_order_if_absent(make_order("A", status=OrderStatus.ARRIVED))
    memory_store.put_order_if_absent(make_order("B", status=OrderStatus.PLACED))
    memory_store.put_order_if_absent(make_order("C", vendor_id="vendor-002", status=OrderStatus.PLACED))
    ReportAggregator(catalog).run(memory_store, NOW)
    yield TestClient(api.create_app(memory_store, catalog))
    api.set_store(None)


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["store_attached"] is True


def test_vendors(client):
    vendors = client.get("/vendors").json()
    assert [v["vendor_id"] for v in vendors][:2] == ["vendor-001", "vendor-002"]
    assert client.get("/vendors/vendor-003").json()["category"] == "tech"
    assert client.get("/vendors/vendor-999").status_code == 404


def test_orders_filters(client):
    assert len(client.get("/orders").json()) == 3
    placed = client.get("/orders", params={"status": "PLACED"}).json()
    assert sorted(o["order_id"] for o in placed) == ["B", "C"]
    by_vendor = client.get("/orders", params={"status": "PLACED", "vendor_id": "vendor-002"}).json()
    assert [o["order_id"] for o in by_vendor] == ["C"]
    assert len(client.get("/orders", params={"limit": 1}).json()) == 1
    assert client.get("/orders", params={"status": "NOPE"}).status_code == 422


def test_single_order(client):
    assert client.get("/orders/A").json()["status"] == "ARRIVED"
    assert client.get("/orders/missing").status_code == 404


def test_reports_and_dashboard(client):
    report = client.get("/reports/vendor-001").json()
    assert report["current_7d"]["total_orders"] == 2
    assert client.get("/reports/vendor-999").status_code == 404
    dashboard = client.get("/dashboard").json()
    assert dashboard["summary_id"] == "DAILY_SUMMARY"
    assert dashboard["report_date"] == "2026-03-10"
    assert client.get("/dashboard", params={"report_date": "2020-01-01"}).status_code == 404


def test_store_not_attached_returns_503():
    api.set_store(None)
    client = TestClient(api.app)
    assert client.get("/orders").status_code == 503
    assert client.get("/dashboard").status_code == 503
    assert client.get("/health").json()["store_attached"] is False
