# string_art/pins.py
"""
Pin layout around the frame.

Pins are integer (x, y) pixel positions in the cropped image space, ordered
around the boundary; the list index is the pin id.
"""
import math
from typing import Iterable, List, Mapping, Optional, Tuple

from .arrays import round_half_up
from .constants import DEFAULT_SHAPE, IMG_SIZE, IMG_SIZE_RANGE, N_PINS, PINS_RANGE
from .validation import ValidationResult, check_range, is_integer

PinCoordinate = Tuple[int, int]


def calculate_pixel_dimensions(
    img_size: int,
    shape: str = DEFAULT_SHAPE,
    width: Optional[float] = None,
    height: Optional[float] = None,
) -> Tuple[int, int]:
    """
    (pixel_width, pixel_height) of the processing buffer. ``img_size`` is the
    longer side; the shorter one follows the physical aspect ratio.
    """
    if shape != "rectangle" or not width or not height:
        return img_size, img_size

    aspect_ratio = width / height
    if aspect_ratio >= 1:
        pixel_width = img_size
        pixel_height = round_half_up(img_size / aspect_ratio)
    else:
        pixel_height = img_size
        pixel_width = round_half_up(img_size * aspect_ratio)
    return max(1, pixel_width), max(1, pixel_height)


def calculate_circular_pins(number_of_pins: int, img_size: int = IMG_SIZE) -> List[PinCoordinate]:
    center = img_size / 2
    radius = img_size / 2 - 0.5  # half-pixel inset keeps extreme pins in bounds

    pins = []
    for i in range(number_of_pins):
        angle = 2 * math.pi * i / number_of_pins
        pins.append((
            int(math.floor(center + radius * math.cos(angle))),
            int(math.floor(center + radius * math.sin(angle))),
        ))
    return pins


def split_rectangle_pins(number_of_pins: int, width: float, height: float) -> Tuple[int, int]:
    """Segments per horizontal side and per vertical side."""
    target_half_pins = number_of_pins / 2
    total_units = width + height

    raw_w = target_half_pins * (width / total_units)
    raw_h = target_half_pins * (height / total_units)

    base_w = math.floor(raw_w)
    base_h = math.floor(raw_h)

    remainder = round_half_up(target_half_pins - (base_w + base_h))
    if remainder > 0:
        if (raw_w % 1) >= (raw_h % 1):
            base_w += remainder
        else:
            base_h += remainder

    return max(1, base_w), max(1, base_h)


def calculate_rectangular_pins(
    number_of_pins: int,
    img_size: int,
    width: float,
    height: float,
) -> List[PinCoordinate]:
    """
    Pins on a rectangle, clockwise from the top-left corner, with a pin on
    every corner. The total is ``2 * (pins_w + pins_h)``, which can differ
    slightly from ``number_of_pins``.
    """
    pixel_width, pixel_height = calculate_pixel_dimensions(img_size, "rectangle", width, height)
    pins_w, pins_h = split_rectangle_pins(number_of_pins, width, height)

    max_x = pixel_width - 1
    max_y = pixel_height - 1
    coords: List[PinCoordinate] = []

    # top: left -> right, both corners
    for i in range(pins_w + 1):
        coords.append((round_half_up(i / pins_w * max_x), 0))
    # right: top -> bottom, interior only
    for i in range(1, pins_h):
        coords.append((max_x, round_half_up(i / pins_h * max_y)))
    # bottom: right -> left, both corners
    for i in range(pins_w + 1):
        coords.append((round_half_up((1 - i / pins_w) * max_x), max_y))
    # left: bottom -> top, interior only
    for i in range(1, pins_h):
        coords.append((0, round_half_up((1 - i / pins_h) * max_y)))

    return coords


def rectangle_corner_indices(pins_w: int, pins_h: int) -> Tuple[int, int, int, int]:
    """Indices of the top-left, top-right, bottom-right and bottom-left pins."""
    top_right = pins_w
    bottom_right = pins_w + pins_h
    bottom_left = 2 * pins_w + pins_h
    return 0, top_right, bottom_right, bottom_left


def calculate_pins(
    number_of_pins: int = N_PINS,
    img_size: int = IMG_SIZE,
    shape: str = DEFAULT_SHAPE,
    width: Optional[float] = None,
    height: Optional[float] = None,
) -> List[PinCoordinate]:
    if shape == "rectangle":
        return calculate_rectangular_pins(
            number_of_pins, img_size, width or 100, height or 100
        )
    return calculate_circular_pins(number_of_pins, img_size)


def calculate_angular_separation(number_of_pins: int) -> float:
    return 2 * math.pi / number_of_pins


def get_pin_at_offset(current_pin: int, offset: int, number_of_pins: int) -> int:
    return (current_pin + offset) % number_of_pins


def calculate_min_pin_distance(pin1: int, pin2: int, number_of_pins: int) -> int:
    """Circular distance between two pin ids."""
    direct = abs(pin2 - pin1)
    return min(direct, number_of_pins - direct)


def get_valid_target_pins(
    current_pin: int,
    min_distance: int,
    number_of_pins: int,
    exclude_pins: Iterable[int] = (),
) -> List[int]:
    """Legal next pins, in ascending offset order from ``current_pin``."""
    excluded = set(exclude_pins)
    valid = []
    for offset in range(min_distance, number_of_pins - min_distance):
        target = get_pin_at_offset(current_pin, offset, number_of_pins)
        if target not in excluded:
            valid.append(target)
    return valid


def validate_pin_parameters(params: Mapping) -> ValidationResult:
    result = ValidationResult()
    errors = result.errors

    pins = params.get("number_of_pins")
    if pins is not None:
        numeric = check_range(
            errors, pins, *PINS_RANGE,
            f"Number of pins must be at least {PINS_RANGE[0]}",
            f"Number of pins should not exceed {PINS_RANGE[1]} for performance reasons",
            "Number of pins must be a number",
        )
        if numeric and not is_integer(pins):
            errors.append("Number of pins must be an integer")

    img_size = params.get("img_size")
    if img_size is not None:
        numeric = check_range(
            errors, img_size, *IMG_SIZE_RANGE,
            f"Image size must be at least {IMG_SIZE_RANGE[0]} pixels",
            f"Image size should not exceed {IMG_SIZE_RANGE[1]} pixels for performance reasons",
            "Image size must be a number",
        )
        if numeric and not is_integer(img_size):
            errors.append("Image size must be an integer")

    return result
