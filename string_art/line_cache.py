# string_art/line_cache.py
"""Precomputed rasterizations of every pin pair the optimizer may use."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .arrays import linspace, pin_distance
from .constants import MIN_DISTANCE

logger = logging.getLogger(__name__)


@dataclass
class LineCache:
    """
    Flat ``n * n`` tables indexed by ``a * n + b``. Both directions of a pair
    share the same coordinate arrays. Unpopulated pairs hold ``None``.
    """

    number_of_pins: int
    x: List[Optional[np.ndarray]]
    y: List[Optional[np.ndarray]]
    length: List[int]
    weight: List[float]

    def index(self, a: int, b: int) -> int:
        return a * self.number_of_pins + b

    def has_line(self, a: int, b: int) -> bool:
        return self.x[self.index(a, b)] is not None

    def get_line(self, a: int, b: int) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        i = self.index(a, b)
        xs = self.x[i]
        if xs is None:
            return None
        return xs, self.y[i]

    @property
    def line_count(self) -> int:
        """Number of populated unordered pairs."""
        return sum(1 for xs in self.x if xs is not None) // 2


def precalculate_line_cache(
    pin_coords: Sequence[Tuple[int, int]],
    min_distance: int = MIN_DISTANCE,
) -> LineCache:
    n = len(pin_coords)
    size = n * n
    cache = LineCache(
        number_of_pins=n,
        x=[None] * size,
        y=[None] * size,
        length=[0] * size,
        weight=[1] * size,
    )

    for a in range(n):
        x0, y0 = pin_coords[a]
        for b in range(a + min_distance, n):
            x1, y1 = pin_coords[b]
            distance = int(pin_distance(pin_coords[a], pin_coords[b]))

            xs = linspace(x0, x1, distance)
            ys = linspace(y0, y1, distance)
            xs.setflags(write=False)
            ys.setflags(write=False)

            ab = a * n + b
            ba = b * n + a
            cache.x[ab] = cache.x[ba] = xs
            cache.y[ab] = cache.y[ba] = ys
            cache.length[ab] = cache.length[ba] = distance

    logger.debug("Cached %d lines for %d pins", cache.line_count, n)
    return cache
