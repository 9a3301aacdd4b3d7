# string_art/yarn.py
"""
Yarn model: textile count -> Tex -> diameter -> effective thickness -> ink weight.

Tex is grams per 1000 m. Diameter assumes a solid round fibre of the
material's density.
"""
import math
from dataclasses import dataclass
from typing import Optional

from .arrays import round_half_up
from .constants import DEFAULT_VISUAL_MULTIPLIER, LINE_WEIGHT_RANGE, MATERIAL_DENSITY

YARN_TYPES = ("ticket", "nm", "tex", "dtex", "denier", "length_weight", "diameter_mm")
YARN_MATERIALS = ("polyester", "cotton", "nylon", "unknown")


@dataclass
class YarnSpec:
    type: str
    material: str = "polyester"
    k: Optional[float] = None
    override_diameter_mm: Optional[float] = None

    ticket_no: Optional[float] = None
    nm: Optional[float] = None
    ply: Optional[int] = None
    tex: Optional[float] = None
    dtex: Optional[float] = None
    denier: Optional[float] = None
    meters: Optional[float] = None
    grams: Optional[float] = None
    diameter_mm: Optional[float] = None

    def __post_init__(self):
        if self.type not in YARN_TYPES:
            raise ValueError(f"Unknown yarn type {self.type!r}")


def normalize_to_tex(spec: YarnSpec) -> float:
    """Canonical linear density (Tex) of a yarn spec; 0 when it can't be derived."""
    ply = spec.ply or 1

    if spec.type == "tex":
        return spec.tex or 0
    if spec.type == "dtex":
        return (spec.dtex or 0) * ply / 10
    if spec.type == "denier":
        return (spec.denier or 0) * ply / 9
    if spec.type == "nm":
        # Nm 71/2: single-strand Nm 71, two plies
        if not spec.nm:
            return 0
        return 1000 * ply / spec.nm
    if spec.type == "length_weight":
        if not spec.meters:
            return 0
        return (spec.grams or 0) / spec.meters * 1000
    if spec.type == "ticket":
        if not spec.ticket_no:
            return 0
        return 3000 / spec.ticket_no
    return 0


def calculate_diameter_mm(spec: YarnSpec) -> float:
    if spec.override_diameter_mm and spec.override_diameter_mm > 0:
        return spec.override_diameter_mm

    if spec.type == "diameter_mm":
        return spec.diameter_mm or 0

    tex = normalize_to_tex(spec)
    if tex <= 0:
        return 0

    rho = MATERIAL_DENSITY.get(spec.material, MATERIAL_DENSITY["unknown"])
    mass_per_length = tex * 1e-6  # kg/m
    area = mass_per_length / rho
    diameter_m = 2 * math.sqrt(area / math.pi)
    return diameter_m * 1000


def calculate_thread_thickness_mm(spec: YarnSpec) -> float:
    """Diameter times the visual multiplier k, explicit diameters included."""
    k = spec.k or DEFAULT_VISUAL_MULTIPLIER
    return calculate_diameter_mm(spec) * k


def calculate_line_weight(thread_thickness_mm: float, physical_size_mm: float, img_size_px: int) -> int:
    """
    Ink weight (1..255) of a thread drawn over a buffer of ``img_size_px``
    pixels spanning ``physical_size_mm``.
    """
    if img_size_px <= 0 or physical_size_mm <= 0:
        return 1

    pixel_size_mm = physical_size_mm / img_size_px
    opacity = thread_thickness_mm / pixel_size_mm * 255
    low, high = LINE_WEIGHT_RANGE
    return max(low, min(high, round_half_up(opacity)))


def yarn_line_weight(spec: YarnSpec, physical_size_mm: float, img_size_px: int) -> int:
    return calculate_line_weight(
        calculate_thread_thickness_mm(spec), physical_size_mm, img_size_px
    )
