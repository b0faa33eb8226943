"""Default simulation parameters and their validation.

The engine components read their settings from one flat dict. Values from a
JSON config file section are merged over ``DEFAULT_CONFIG`` and then checked
by ``validate_config`` before any component is built.
"""

from __future__ import annotations

from typing import Any

from fulfillment.errors import ConfigValidationError
from fulfillment.models import GiftCategory

DEFAULT_CONFIG: dict[str, Any] = {
    # Backfill volume
    "backfill_days": 21,
    "daily_volume_min": 50,
    "daily_volume_max": 200,
    "weekday_multiplier": 1.5,
    "weekend_multiplier": 0.6,
    "backfill_rush_probability": 0.15,
    "backfill_success_factor": 0.9,
    "business_hours_start": 6,
    "business_hours_end": 22,
    "gift_category_distribution": {
        "flowers": 0.25,
        "tech": 0.30,
        "food": 0.30,
        "apparel": 0.15,
    },
    # Gift value ranges by category (in cents)
    "gift_value_ranges": {
        "flowers": [2500, 15000],
        "tech": [5000, 50000],
        "food": [1500, 8000],
        "apparel": [3000, 25000],
    },
    # Transition policy
    "on_time_arrival_probability": 0.3,
    "delayed_lost_probability": 0.1,
    "delayed_arrival_probability": 0.4,
    "delayed_issue_probability": 0.05,
    "common_issue_preference": 0.7,
    # Live driver
    "max_active_orders": 100,
    "create_probability": 0.4,
    "initial_placed_probability": 0.95,
    "live_rush_probability": 0.2,
    # Reports
    "window_days": 7,
    "trend_threshold": 0.05,
    "at_risk_threshold": 85,
    "underperforming_threshold": 80,
    "top_performers": 3,
    # Store / events
    "batch_size": 25,
    "events_dir": "data/events",
}

_PROBABILITY_KEYS = (
    "backfill_rush_probability",
    "backfill_success_factor",
    "on_time_arrival_probability",
    "delayed_lost_probability",
    "delayed_arrival_probability",
    "delayed_issue_probability",
    "common_issue_preference",
    "create_probability",
    "initial_placed_probability",
    "live_rush_probability",
    "trend_threshold",
)


def merge_config(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Merge overrides onto the defaults and validate the result."""
    config = {**DEFAULT_CONFIG, **(overrides or {})}
    validate_config(config)
    return config


def validate_config(cfg: dict[str, Any]) -> None:
    """Validate configuration values, reporting every problem at once."""
    errors = []

    for key in _PROBABILITY_KEYS:
        if not 0 <= cfg[key] <= 1:
            errors.append(f"{key} must be between 0 and 1")
    if cfg["daily_volume_min"] < 0:
        errors.append("daily_volume_min must not be negative")
    if cfg["daily_volume_max"] < cfg["daily_volume_min"]:
        errors.append("daily_volume_max must be >= daily_volume_min")
    if cfg["weekday_multiplier"] <= 0 or cfg["weekend_multiplier"] <= 0:
        errors.append("day-of-week multipliers must be positive")
    if not 0 <= cfg["business_hours_start"] < cfg["business_hours_end"] <= 24:
        errors.append("business hours must satisfy 0 <= start < end <= 24")
    if cfg["backfill_days"] <= 0:
        errors.append("backfill_days must be positive")
    if cfg["max_active_orders"] < 0:
        errors.append("max_active_orders must not be negative")
    if cfg["window_days"] <= 0:
        errors.append("window_days must be positive")
    if not 0 < cfg["batch_size"] <= 25:
        errors.append("batch_size must be between 1 and 25")
    if cfg["top_performers"] < 0:
        errors.append("top_performers must not be negative")

    distribution = cfg["gift_category_distribution"]
    if not distribution or any(w < 0 for w in distribution.values()):
        errors.append("gift_category_distribution must have non-negative weights")
    elif abs(sum(distribution.values()) - 1.0) > 1e-6:
        errors.append("gift_category_distribution weights must sum to 1")

    for category, bounds in cfg["gift_value_ranges"].items():
        lo, hi = bounds
        if lo <= 0 or hi < lo:
            errors.append(f"gift_value_ranges[{category}] must satisfy 0 < min <= max")
    known = {c.value for c in GiftCategory}
    unknown = (set(distribution) | set(cfg["gift_value_ranges"])) - known
    if unknown:
        errors.append(f"unknown gift categories: {', '.join(sorted(unknown))}")
    # Live orders use the vendor's own category
    missing = known - set(cfg["gift_value_ranges"])
    if missing:
        errors.append(f"gift_value_ranges missing categories: {', '.join(sorted(missing))}")

    if errors:
        raise ConfigValidationError("Invalid configuration: " + "; ".join(errors))
