"""Parameter checks reported as lists of human-readable messages."""
import math
import numbers
from dataclasses import dataclass, field
from typing import List


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def is_number(value) -> bool:
    """Finite real number; bools, strings, NaN and infinities are not."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def is_integer(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Integral):
        return True
    return isinstance(value, float) and value.is_integer()


def check_range(
    errors: List[str],
    value,
    low,
    high,
    low_msg: str,
    high_msg: str,
    type_msg: str = "Value must be a number",
) -> bool:
    """Append range messages for ``value``. Returns False if it is not a finite number."""
    if not is_number(value):
        errors.append(type_msg)
        return False
    if value < low:
        errors.append(low_msg)
    if value > high:
        errors.append(high_msg)
    return True
