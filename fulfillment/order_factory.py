"""Building blocks shared by the backfill synthesizer and the live driver."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Mapping, Sequence

from fulfillment.models import GiftCategory, VendorProfile
from fulfillment.randomness import RandomSource, draw_int, draw_token


def new_order_id(now: datetime, rng: RandomSource) -> str:
    """Order id of the form ``ORD-{epoch ms}-{6 base-36 chars}``."""
    return f"ORD-{int(now.timestamp() * 1000)}-{draw_token(rng, 6)}"


def draw_gift_category(distribution: Mapping[str, float], rng: RandomSource) -> GiftCategory:
    """Pick a category from a cumulative walk over the distribution."""
    roll = rng.next()
    cumulative = 0.0
    last = None
    for category, probability in distribution.items():
        cumulative += probability
        last = category
        if roll < cumulative:
            return GiftCategory(category)
    # Float drift can leave the roll just above the final cumulative value
    return GiftCategory(last) if last is not None else GiftCategory.TECH


def draw_gift_value(
    value_ranges: Mapping[str, Sequence[int]],
    category: GiftCategory,
    rng: RandomSource,
) -> int:
    """Gift value in cents, uniform over the category range."""
    lo, hi = value_ranges[category.value]
    return draw_int(rng, int(lo), int(hi))


def estimate_delivery_days(vendor: VendorProfile, is_rush: bool, rng: RandomSource) -> int:
    """Promised delivery time from the vendor SLA.

    Rush orders get the rush SLA; standard orders get the standard SLA
    jittered by one day either way, never below one day.
    """
    if is_rush:
        return vendor.rush_sla_days
    return max(1, vendor.standard_sla_days + draw_int(rng, -1, 1))


def estimate_delivery(
    vendor: VendorProfile,
    created_at: datetime,
    is_rush: bool,
    rng: RandomSource,
) -> datetime:
    return created_at + timedelta(days=estimate_delivery_days(vendor, is_rush, rng))
