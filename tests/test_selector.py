from __future__ import annotations

from collections import Counter

import pytest

from fulfillment.catalog import VendorCatalog
from fulfillment.randomness import SeededRandom
from fulfillment.selector import WeightedVendorSelector, reliability_weight


@pytest.mark.parametrize(
    "reliability, weight",
    [(0.95, 10), (0.9, 9), (0.8, 8), (0.7, 7), (0.72, 8), (0.45, 5), (0.0, 1), (1.0, 10)],
)
def test_reliability_weight_bands(reliability, weight):
    assert reliability_weight(reliability) == weight


def test_empty_catalog_rejected():
    with pytest.raises(ValueError):
        WeightedVendorSelector(VendorCatalog([]))


def test_weights_match_catalog(catalog):
    selector = WeightedVendorSelector(catalog)
    weights = selector.weights()
    assert weights == {
        "vendor-001": 10,
        "vendor-002": 10,
        "vendor-003": 9,
        "vendor-004": 9,
        "vendor-005": 8,
    }
    assert selector.total_weight == 46


def test_selection_frequency_follows_weights(two_vendor_catalog):
    selector = WeightedVendorSelector(two_vendor_catalog)
    rng = SeededRandom(99)
    picks = Counter(selector.select(rng) for _ in range(10_000))
    ratio = picks["vendor-a"] / picks["vendor-b"]
    # Weights 9 and 5, within 10 %
    assert ratio == pytest.approx(9 / 5, rel=0.10)


def test_selection_is_reproducible(catalog):
    selector = WeightedVendorSelector(catalog)
    first = [selector.select(SeededRandom(5)) for _ in range(3)]
    assert len(set(first)) == 1
    a = SeededRandom(7)
    b = SeededRandom(7)
    assert [selector.select(a) for _ in range(50)] == [selector.select(b) for _ in range(50)]


def test_boundary_draws_hit_first_and_last_vendor(catalog, scripted):
    selector = WeightedVendorSelector(catalog)
    assert selector.select(scripted([0.0])) == "vendor-001"
    assert selector.select(scripted([0.999999])) == "vendor-005"
