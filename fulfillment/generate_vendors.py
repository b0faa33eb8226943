from __future__ import annotations

import argparse
import json
import random
from pathlib import Path

from faker import Faker

from fulfillment.catalog import build_vendor
from fulfillment.models import ISSUE_STATUSES, GiftCategory, OrderStatus, VendorProfile

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"

CATEGORY_WEIGHTS: list[tuple[GiftCategory, float]] = [
    (GiftCategory.FLOWERS, 0.25),
    (GiftCategory.TECH, 0.30),
    (GiftCategory.FOOD, 0.30),
    (GiftCategory.APPAREL, 0.15),
]

CATEGORY_CORES: dict[GiftCategory, list[str]] = {
    GiftCategory.FLOWERS: ["Blooms", "Petals", "Florals", "Stems", "Bouquets", "Garden"],
    GiftCategory.TECH: ["Gadgets", "Devices", "Electronics", "Tech", "Audio", "Labs"],
    GiftCategory.FOOD: ["Baskets", "Treats", "Pantry", "Provisions", "Confections", "Kitchen"],
    GiftCategory.APPAREL: ["Threads", "Apparel", "Outfitters", "Knitwear", "Goods", "Wardrobe"],
}

GIFT_PREFIXES = [
    "Premium",
    "Gourmet",
    "Artisan",
    "Golden",
    "Urban",
    "Harbor",
    "Maple",
    "Summit",
    "Bright",
    "Velvet",
    "Cedar",
    "Juniper",
]

GIFT_SUFFIXES = ["Co", "Co.", "Collective", "House", "Supply", "Studio"]

TRENDS = ["improving", "declining", "stable"]


def weighted_choice(rng: random.Random, items_with_weights: list[tuple[GiftCategory, float]]) -> GiftCategory:
    items = [i for i, _w in items_with_weights]
    weights = [w for _i, w in items_with_weights]
    return rng.choices(items, weights=weights, k=1)[0]


def volume_pattern_from_reliability(reliability: float) -> str:
    # More reliable vendors get routed more orders over time.
    if reliability >= 0.90:
        return "high"
    if reliability >= 0.80:
        return "medium"
    return "low"


def gift_vendor_name(fake: Faker, rng: random.Random, category: GiftCategory) -> str:
    # Blend Faker surnames with retail templates, e.g. "Maple Blooms", "Hughes Gadgets Co"
    pattern = rng.choice(
        [
            "{prefix} {core}",
            "{surname} {core}",
            "{prefix} {core} {suffix}",
            "{surname} & {surname2} {core}",
        ]
    )
    return pattern.format(
        prefix=rng.choice(GIFT_PREFIXES),
        core=rng.choice(CATEGORY_CORES[category]),
        suffix=rng.choice(GIFT_SUFFIXES),
        surname=fake.last_name(),
        surname2=fake.last_name(),
    ).strip()


def common_issues_for(rng: random.Random, reliability: float) -> list[OrderStatus]:
    # Less reliable vendors tend to have a wider set of recurring failure modes.
    count = 1 if reliability >= 0.90 else 2 if reliability >= 0.80 else 3
    return rng.sample(list(ISSUE_STATUSES), k=count)


def generate_vendors(count: int, seed: int | None = None) -> list[VendorProfile]:
    rng = random.Random(seed)
    fake = Faker()
    if seed is not None:
        Faker.seed(seed)

    vendors: list[VendorProfile] = []
    used_names: set[str] = set()
    for index in range(count):
        category = weighted_choice(rng, CATEGORY_WEIGHTS)
        reliability = round(rng.uniform(0.70, 0.98), 2)
        name = gift_vendor_name(fake, rng, category)
        while name in used_names:
            name = gift_vendor_name(fake, rng, category)
        used_names.add(name)
        vendors.append(
            build_vendor(
                f"vendor-{index + 1:03d}",
                name,
                category,
                reliability,
                common_issues_for(rng, reliability),
                reliability_trend=rng.choice(TRENDS),
                volume_pattern=volume_pattern_from_reliability(reliability),
            )
        )

    return vendors


def write_vendors(vendors: list[VendorProfile], out: Path) -> None:
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(
        json.dumps([v.to_dict() for v in vendors], indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a vendors.json catalog (gift vendor profiles).")
    parser.add_argument("--count", type=int, default=8, help="Number of vendors to generate (default: 8).")
    parser.add_argument(
        "--out",
        type=Path,
        default=DATA_DIR / "vendors.json",
        help="Output JSON path (default: data/vendors.json).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Optional RNG seed for reproducible output.",
    )

    args = parser.parse_args()

    vendors = generate_vendors(count=args.count, seed=args.seed)
    write_vendors(vendors, args.out)
    print(f"Wrote {len(vendors)} vendors to {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
