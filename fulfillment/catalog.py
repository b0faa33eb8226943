"""Vendor catalog: the fixed set of vendor profiles the simulator works with.

The catalog is loaded once at startup and passed explicitly to the selector,
the state machine, the synthesizer and the aggregator. It is never mutated.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Iterator

from fulfillment.errors import DataLoadError, ValidationError
from fulfillment.models import GiftCategory, OrderStatus, VendorProfile

# SLA promises (standard days, rush days) by category
CATEGORY_SLA_DAYS: dict[GiftCategory, tuple[int, int]] = {
    GiftCategory.FLOWERS: (2, 1),
    GiftCategory.TECH: (5, 2),
    GiftCategory.FOOD: (3, 1),
    GiftCategory.APPAREL: (3, 1),
}

# Average order value by category (in cents)
CATEGORY_AVG_ORDER_VALUE: dict[GiftCategory, int] = {
    GiftCategory.FLOWERS: 7500,
    GiftCategory.TECH: 15000,
    GiftCategory.FOOD: 8500,
    GiftCategory.APPAREL: 12000,
}


def support_contact_for(name: str) -> str:
    return f"support@{''.join(name.lower().split())}.com"


def build_vendor(
    vendor_id: str,
    name: str,
    category: GiftCategory,
    base_reliability: float,
    common_issues: Iterable[OrderStatus] = (),
    **extra: Any,
) -> VendorProfile:
    """Build a profile, filling SLA days and order value from the category."""
    standard_days, rush_days = CATEGORY_SLA_DAYS[category]
    fields: dict[str, Any] = {
        "standard_sla_days": standard_days,
        "rush_sla_days": rush_days,
        "avg_order_value": CATEGORY_AVG_ORDER_VALUE[category],
        "support_contact": support_contact_for(name),
    }
    fields.update(extra)
    return VendorProfile(
        vendor_id=vendor_id,
        name=name,
        category=category,
        base_reliability=base_reliability,
        common_issues=tuple(common_issues),
        **fields,
    )


DEFAULT_VENDORS: tuple[VendorProfile, ...] = (
    build_vendor(
        "vendor-001", "Premium Flowers", GiftCategory.FLOWERS, 0.95,
        [OrderStatus.DAMAGED],
        reliability_trend="stable", volume_pattern="high",
    ),
    build_vendor(
        "vendor-002", "Gourmet Baskets", GiftCategory.FOOD, 0.92,
        [OrderStatus.DAMAGED, OrderStatus.UNDELIVERABLE],
        reliability_trend="improving", volume_pattern="medium",
    ),
    build_vendor(
        "vendor-003", "Tech Gadgets Co", GiftCategory.TECH, 0.87,
        [OrderStatus.LOST, OrderStatus.DAMAGED],
        reliability_trend="declining", volume_pattern="high",
    ),
    build_vendor(
        "vendor-004", "Artisan Goods", GiftCategory.APPAREL, 0.83,
        [OrderStatus.UNDELIVERABLE, OrderStatus.RETURN_TO_SENDER],
        reliability_trend="stable", volume_pattern="medium",
    ),
    build_vendor(
        "vendor-005", "Fast Fashion", GiftCategory.APPAREL, 0.72,
        [OrderStatus.LOST, OrderStatus.DAMAGED, OrderStatus.RETURN_TO_SENDER],
        reliability_trend="declining", volume_pattern="low",
    ),
)


class VendorCatalog:
    """Ordered, read-only collection of vendor profiles."""

    def __init__(self, vendors: Iterable[VendorProfile]) -> None:
        self._vendors: tuple[VendorProfile, ...] = tuple(vendors)
        self._by_id: dict[str, VendorProfile] = {}
        for vendor in self._vendors:
            if vendor.vendor_id in self._by_id:
                raise ValidationError(f"Duplicate vendor id in catalog: {vendor.vendor_id}")
            self._by_id[vendor.vendor_id] = vendor

    def __iter__(self) -> Iterator[VendorProfile]:
        return iter(self._vendors)

    def __len__(self) -> int:
        return len(self._vendors)

    def __contains__(self, vendor_id: object) -> bool:
        return vendor_id in self._by_id

    def get(self, vendor_id: str) -> VendorProfile | None:
        return self._by_id.get(vendor_id)

    @property
    def vendor_ids(self) -> list[str]:
        return [v.vendor_id for v in self._vendors]

    def to_list(self) -> list[dict[str, Any]]:
        return [v.to_dict() for v in self._vendors]


def default_catalog() -> VendorCatalog:
    return VendorCatalog(DEFAULT_VENDORS)


def load_catalog(path: Path) -> VendorCatalog:
    """Load a catalog from a JSON array of vendor records."""
    if not path.exists():
        raise DataLoadError(f"Required data file not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DataLoadError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, list) or not raw:
        raise DataLoadError(f"Expected a non-empty vendor JSON array in {path}")
    try:
        return VendorCatalog(VendorProfile.from_dict(item) for item in raw)
    except ValidationError as e:
        raise DataLoadError(f"Invalid vendor data in {path}: {e}") from e
