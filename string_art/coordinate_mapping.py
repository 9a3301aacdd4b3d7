# string_art/coordinate_mapping.py
from dataclasses import dataclass
from typing import Optional, Tuple

from .pins import calculate_pixel_dimensions


@dataclass
class CoordinateMapping:
    pixel_width: int
    pixel_height: int
    scale_x: float
    scale_y: float
    offset_x: float
    offset_y: float

    def to_target(self, pin: Tuple[float, float]) -> Tuple[float, float]:
        return pin[0] * self.scale_x + self.offset_x, pin[1] * self.scale_y + self.offset_y


def calculate_coordinate_mapping(
    img_size: int,
    shape: str,
    width: Optional[float],
    height: Optional[float],
    target_width: float,
    target_height: float,
) -> CoordinateMapping:
    """
    Map pin pixel space onto a ``target_width x target_height`` surface so
    the outermost pins touch its edges.

    Pixel positions 0..pixel_w-1 span the target width. Circle pins sit on a
    radius inset by half a pixel, so circles are shifted back by half a scaled
    pixel.
    """
    pixel_width, pixel_height = calculate_pixel_dimensions(img_size, shape, width, height)

    scale_x = target_width / max(1, pixel_width - 1)
    scale_y = target_height / max(1, pixel_height - 1)

    offset_x = -0.5 * scale_x if shape == "circle" else 0.0
    offset_y = -0.5 * scale_y if shape == "circle" else 0.0

    return CoordinateMapping(pixel_width, pixel_height, scale_x, scale_y, offset_x, offset_y)
