"""Read-only API over the data store: vendors, orders, reports and the dashboard."""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query

from fulfillment.catalog import VendorCatalog, default_catalog
from fulfillment.models import OrderStatus
from fulfillment.store import DataStore

# Store reference set by main when starting run-service
_store: DataStore | None = None
_catalog: VendorCatalog = default_catalog()


def set_store(store: DataStore | None, catalog: VendorCatalog | None = None) -> None:
    global _store, _catalog
    _store = store
    if catalog is not None:
        _catalog = catalog


def get_store() -> DataStore:
    if _store is None:
        raise HTTPException(status_code=503, detail="Data store not attached")
    return _store


app = FastAPI(title="Vendor Fulfillment Simulator API", description="Read-only view of orders and vendor reports.")


def create_app(store: DataStore | None = None, catalog: VendorCatalog | None = None) -> FastAPI:
    if store is not None or catalog is not None:
        set_store(store, catalog)
    return app


@app.get("/health")
def get_health() -> dict:
    """Liveness plus whether a store is attached."""
    return {"status": "ok", "store_attached": _store is not None, "vendors": len(_catalog)}


@app.get("/vendors")
def list_vendors() -> list[dict]:
    return _catalog.to_list()


@app.get("/vendors/{vendor_id}")
def get_vendor(vendor_id: str) -> dict:
    vendor = _catalog.get(vendor_id)
    if vendor is None:
        raise HTTPException(status_code=404, detail=f"Vendor not found: {vendor_id}")
    return vendor.to_dict()


@app.get("/orders")
def list_orders(
    status: Optional[OrderStatus] = None,
    vendor_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
) -> list[dict]:
    """Orders, newest first, optionally filtered by status and vendor."""
    store = get_store()
    if status is not None:
        orders = store.query_orders_by_status([status])
    else:
        orders = store.scan_orders()
    if vendor_id is not None:
        orders = [o for o in orders if o.vendor_id == vendor_id]
    orders.sort(key=lambda o: o.created_at, reverse=True)
    return [o.to_dict() for o in orders[:limit]]


@app.get("/orders/{order_id}")
def get_order(order_id: str) -> dict:
    order = get_store().get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return order.to_dict()


@app.get("/reports/{vendor_id}")
def get_vendor_report(vendor_id: str, report_date: Optional[date] = None) -> dict[str, Any]:
    """Latest report for the vendor, or the one for ``report_date``."""
    store = get_store()
    if _catalog.get(vendor_id) is None:
        raise HTTPException(status_code=404, detail=f"Vendor not found: {vendor_id}")
    report = store.get_vendor_report(vendor_id, report_date)
    if report is None:
        raise HTTPException(status_code=404, detail=f"No report for {vendor_id}")
    return report.to_dict()


@app.get("/dashboard")
def get_dashboard(report_date: Optional[date] = None) -> dict[str, Any]:
    summary = get_store().get_dashboard_summary(report_date)
    if summary is None:
        raise HTTPException(status_code=404, detail="No dashboard summary yet")
    return summary.to_dict()
