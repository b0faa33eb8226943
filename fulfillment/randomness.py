"""Injectable random source.

Every probabilistic decision in the simulator draws from a ``RandomSource``
passed in explicitly, so a fixed seed reproduces a whole run.
"""

from __future__ import annotations

import math
import random
from typing import Protocol, Sequence, TypeVar

T = TypeVar("T")

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class RandomSource(Protocol):
    def next(self) -> float:
        """Return a float in [0, 1)."""
        ...


class SeededRandom:
    """RandomSource backed by ``random.Random``."""

    def __init__(self, seed: int | None = None) -> None:
        self.seed = seed
        self._rng = random.Random(seed)

    def next(self) -> float:
        return self._rng.random()


def draw_int(rng: RandomSource, lo: int, hi: int) -> int:
    """Uniform integer in [lo, hi] (inclusive)."""
    if hi < lo:
        raise ValueError(f"Invalid range [{lo}, {hi}]")
    return lo + min(int(math.floor(rng.next() * (hi - lo + 1))), hi - lo)


def draw_uniform(rng: RandomSource, lo: float, hi: float) -> float:
    return lo + (hi - lo) * rng.next()


def draw_choice(rng: RandomSource, items: Sequence[T]) -> T:
    if not items:
        raise ValueError("Cannot choose from an empty sequence")
    return items[draw_int(rng, 0, len(items) - 1)]


def draw_token(rng: RandomSource, length: int = 6) -> str:
    """Upper-case base-36 token, used as an id suffix."""
    return "".join(draw_choice(rng, _BASE36) for _ in range(length))
