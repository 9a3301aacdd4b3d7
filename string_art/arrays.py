# string_art/arrays.py
"""Small numeric helpers shared by the pin layout, line cache and optimizer."""
import math
from typing import Sequence, Tuple

import numpy as np


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from -inf (0.5 -> 1, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def linspace(start: float, stop: float, num: int) -> np.ndarray:
    """
    ``num`` evenly spaced samples from start to stop (both included),
    floored to integer pixel positions.
    """
    if num <= 0:
        return np.empty(0, dtype=np.intp)
    return np.floor(np.linspace(start, stop, num)).astype(np.intp)


def pin_distance(a: Tuple[int, int], b: Tuple[int, int]) -> float:
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    return math.sqrt(dx * dx + dy * dy)


def get_sum(values) -> float:
    return float(np.sum(np.asarray(values, dtype=np.float64)))


def arg_max(values: Sequence[float]) -> int:
    """Index of the first maximum, -1 for an empty sequence."""
    arr = np.asarray(values)
    if arr.size == 0:
        return -1
    return int(np.argmax(arr))


def arg_min(values: Sequence[float]) -> int:
    """Index of the first minimum, -1 for an empty sequence."""
    arr = np.asarray(values)
    if arr.size == 0:
        return -1
    return int(np.argmin(arr))


def subtract_with_clamping(a: np.ndarray, b) -> np.ndarray:
    """Element-wise ``a - b`` clamped to [0, 255], keeping the dtype of ``a``."""
    result = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return np.clip(result, 0, 255).astype(np.asarray(a).dtype)
