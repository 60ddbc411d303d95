import random
from typing import Optional, Sequence, TypeVar

V = TypeVar("V")


def pick_weighted_variant(variants: Sequence[V], r: float) -> Optional[V]:
    """
    Walk the variants accumulating traffic percentages and return the first
    one whose cumulative share reaches ``r``.

    ``r`` is a draw from [0, 100). Falls back to the first variant when the
    shares sum to less than ``r``; returns None only for an empty sequence.
    """
    if not variants:
        return None

    cumulative = 0.0
    for variant in variants:
        cumulative += variant.traffic_percentage
        if r <= cumulative:
            return variant

    return variants[0]


def draw_traffic_point(rng: Optional[random.Random] = None) -> float:
    rng = rng or random
    return rng.random() * 100
