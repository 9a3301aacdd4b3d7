# string_art/engine.py
"""
Entry point: image + parameters -> pin sequence.

    result = generate_string_art("photo.jpg", {"number_of_pins": 240})

Pipeline: process image -> pin layout -> line cache -> error matrix ->
greedy optimisation. ``prepare_string_art`` stops before the optimisation so
the read-only parts can be reused across runs.
"""
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

import numpy as np

from .constants import (
    DEFAULT_SHAPE,
    HOOP_DIAMETER,
    IMG_SIZE,
    IMG_SIZE_RANGE,
    LINE_WEIGHT,
    LINE_WEIGHT_RANGE,
    LINES_RANGE,
    MAX_LINES,
    MIN_DISTANCE,
    MIN_DISTANCE_RANGE,
    N_PINS,
    PINS_RANGE,
    SHAPES,
    THREAD_THICKNESS_RANGE,
)
from .image_processor import ImageSource, ProcessedImage, process_image_for_string_art
from .line_cache import LineCache, precalculate_line_cache
from .optimizer import (
    OptimizerState,
    ProgressCallback,
    create_error_matrix,
    optimize_string_art,
)
from .pins import PinCoordinate, calculate_pins, calculate_pixel_dimensions
from .validation import ValidationResult, check_range, is_integer, is_number
from .yarn import YarnSpec, calculate_line_weight, yarn_line_weight

logger = logging.getLogger(__name__)


@dataclass
class StringArtParameters:
    shape: str = DEFAULT_SHAPE
    number_of_pins: int = N_PINS
    number_of_lines: int = MAX_LINES
    line_weight: int = LINE_WEIGHT
    min_distance: int = MIN_DISTANCE
    img_size: int = IMG_SIZE
    hoop_diameter: float = HOOP_DIAMETER
    width: Optional[float] = None
    height: Optional[float] = None
    thread_thickness: Optional[float] = None
    yarn_spec: Optional[YarnSpec] = None

    @property
    def physical_size(self) -> float:
        """Longer physical side in mm (hoop diameter for circles)."""
        if self.shape == "rectangle" and self.width and self.height:
            return max(self.width, self.height)
        return self.hoop_diameter

    @property
    def pixel_dimensions(self):
        return calculate_pixel_dimensions(self.img_size, self.shape, self.width, self.height)

    @property
    def scale_factor(self) -> float:
        """mm per pixel, used for thread length."""
        return self.physical_size / self.img_size


@dataclass
class StringArtResult:
    line_sequence: List[int]
    pin_coordinates: List[PinCoordinate]
    total_thread_length: float
    parameters: StringArtParameters
    processing_time_ms: float
    state: OptimizerState = OptimizerState.DONE

    @property
    def lines_drawn(self) -> int:
        return max(0, len(self.line_sequence) - 1)

    @property
    def stalled(self) -> bool:
        return self.state is OptimizerState.STALLED


@dataclass
class PreparedStringArt:
    """Read-only inputs of an optimisation; safe to share between runs."""

    parameters: StringArtParameters
    image: ProcessedImage
    pixel_buffer: np.ndarray
    pin_coordinates: List[PinCoordinate]
    line_cache: LineCache
    preparation_time_ms: float = 0.0


ParametersLike = Union[StringArtParameters, Mapping[str, Any], None]


def create_default_parameters(**overrides) -> StringArtParameters:
    return resolve_parameters(overrides)


def resolve_parameters(params: ParametersLike = None) -> StringArtParameters:
    """
    Fill in defaults and derive the line weight: a yarn spec wins over a
    thread thickness, which wins over an explicit line weight.
    """
    if params is None:
        resolved = StringArtParameters()
    elif isinstance(params, StringArtParameters):
        resolved = dataclasses.replace(params)
    else:
        known = {f.name for f in dataclasses.fields(StringArtParameters)}
        unknown = set(params) - known
        if unknown:
            raise TypeError(f"Unknown parameters: {', '.join(sorted(unknown))}")
        values = {k: v for k, v in params.items() if v is not None}
        yarn = values.get("yarn_spec")
        if isinstance(yarn, Mapping):
            values["yarn_spec"] = YarnSpec(**yarn)
        resolved = StringArtParameters(**values)

    if resolved.yarn_spec is not None:
        resolved.line_weight = yarn_line_weight(
            resolved.yarn_spec, resolved.physical_size, resolved.img_size
        )
        logger.info(
            "Calculated line weight from yarn spec (%s): %d",
            resolved.yarn_spec.type, resolved.line_weight,
        )
    elif resolved.thread_thickness:
        resolved.line_weight = calculate_line_weight(
            resolved.thread_thickness, resolved.physical_size, resolved.img_size
        )
        logger.info(
            "Calculated line weight from thread thickness: %smm -> %d",
            resolved.thread_thickness, resolved.line_weight,
        )
    return resolved


def validate_string_art_parameters(params: Mapping[str, Any]) -> ValidationResult:
    """
    Check user supplied parameters. Missing keys are not errors; values that
    are not finite numbers are reported, never raised.
    """
    result = ValidationResult()
    errors = result.errors

    shape = params.get("shape")
    if shape is not None and shape not in SHAPES:
        errors.append(f"Shape must be one of: {', '.join(SHAPES)}")

    pins = params.get("number_of_pins")
    if pins is not None:
        if check_range(errors, pins, *PINS_RANGE,
                       f"Number of pins must be at least {PINS_RANGE[0]}",
                       f"Number of pins should not exceed {PINS_RANGE[1]}",
                       "Number of pins must be a number") and not is_integer(pins):
            errors.append("Number of pins must be an integer")

    lines = params.get("number_of_lines")
    if lines is not None:
        if check_range(errors, lines, *LINES_RANGE,
                       f"Number of lines must be at least {LINES_RANGE[0]}",
                       f"Number of lines should not exceed {LINES_RANGE[1]}",
                       "Number of lines must be a number") and not is_integer(lines):
            errors.append("Number of lines must be an integer")

    weight = params.get("line_weight")
    if weight is not None:
        check_range(errors, weight, *LINE_WEIGHT_RANGE,
                    f"Line weight must be at least {LINE_WEIGHT_RANGE[0]}",
                    f"Line weight should not exceed {LINE_WEIGHT_RANGE[1]}",
                    "Line weight must be a number")

    thickness = params.get("thread_thickness")
    if thickness is not None:
        check_range(errors, thickness, *THREAD_THICKNESS_RANGE,
                    f"Thread thickness must be at least {THREAD_THICKNESS_RANGE[0]}mm",
                    f"Thread thickness should not exceed {THREAD_THICKNESS_RANGE[1]}mm",
                    "Thread thickness must be a number")

    min_distance = params.get("min_distance")
    if min_distance is not None:
        if check_range(errors, min_distance, *MIN_DISTANCE_RANGE,
                       f"Minimum distance must be at least {MIN_DISTANCE_RANGE[0]}",
                       f"Minimum distance should not exceed {MIN_DISTANCE_RANGE[1]}",
                       "Minimum distance must be a number") and not is_integer(min_distance):
            errors.append("Minimum distance must be an integer")

    img_size = params.get("img_size")
    if img_size is not None:
        if check_range(errors, img_size, *IMG_SIZE_RANGE,
                       f"Image size must be at least {IMG_SIZE_RANGE[0]}",
                       f"Image size should not exceed {IMG_SIZE_RANGE[1]}",
                       "Image size must be a number") and not is_integer(img_size):
            errors.append("Image size must be an integer")

    hoop = params.get("hoop_diameter")
    if hoop is not None:
        if not is_number(hoop):
            errors.append("Hoop diameter must be a number")
        elif hoop <= 0:
            errors.append("Hoop diameter must be positive")

    if shape == "rectangle":
        width = params.get("width")
        height = params.get("height")
        if not (is_number(width) and is_number(height)) or width <= 0 or height <= 0:
            errors.append("Rectangle shape requires a positive width and height")

    yarn = params.get("yarn_spec")
    if isinstance(yarn, Mapping):
        for key, value in yarn.items():
            if key not in ("type", "material") and value is not None and not is_number(value):
                errors.append(f"Yarn {key} must be a number")

    return result


def prepare_string_art(image: ImageSource, params: ParametersLike = None) -> PreparedStringArt:
    start = time.perf_counter()
    parameters = resolve_parameters(params)

    logger.info("Processing image...")
    processed = process_image_for_string_art(
        image,
        parameters.img_size,
        parameters.shape,
        parameters.width or 100,
        parameters.height or 100,
    )

    logger.info("Calculating pin positions...")
    pin_coordinates = calculate_pins(
        parameters.number_of_pins,
        parameters.img_size,
        parameters.shape,
        parameters.width,
        parameters.height,
    )
    if len(pin_coordinates) != parameters.number_of_pins:
        logger.info(
            "Rectangle layout uses %d pins (requested %d)",
            len(pin_coordinates), parameters.number_of_pins,
        )
        parameters.number_of_pins = len(pin_coordinates)

    logger.info("Precalculating lines...")
    line_cache = precalculate_line_cache(pin_coordinates, parameters.min_distance)

    return PreparedStringArt(
        parameters=parameters,
        image=processed,
        pixel_buffer=processed.pixel_buffer,
        pin_coordinates=pin_coordinates,
        line_cache=line_cache,
        preparation_time_ms=(time.perf_counter() - start) * 1000,
    )


def run_prepared(
    prepared: PreparedStringArt,
    number_of_lines: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> StringArtResult:
    """Optimise on a private error matrix; ``prepared`` is left untouched."""
    start = time.perf_counter()
    parameters = dataclasses.replace(prepared.parameters)
    if number_of_lines is not None:
        parameters.number_of_lines = number_of_lines

    logger.info("Creating error matrix...")
    error_matrix = create_error_matrix(prepared.pixel_buffer)

    logger.info("Optimizing string art...")
    optimization = optimize_string_art(
        error_matrix,
        prepared.pin_coordinates,
        prepared.line_cache,
        number_of_lines=parameters.number_of_lines,
        line_weight=parameters.line_weight,
        min_distance=parameters.min_distance,
        scale_factor=parameters.scale_factor,
        on_progress=on_progress,
    )

    elapsed = prepared.preparation_time_ms + (time.perf_counter() - start) * 1000
    logger.info(
        "Drew %d/%d lines, thread length %.1fmm, %.0fms",
        optimization.lines_drawn, parameters.number_of_lines,
        optimization.thread_length, elapsed,
    )
    return StringArtResult(
        line_sequence=optimization.line_sequence,
        pin_coordinates=list(prepared.pin_coordinates),
        total_thread_length=optimization.thread_length,
        parameters=parameters,
        processing_time_ms=elapsed,
        state=optimization.state,
    )


def generate_string_art(
    image: ImageSource,
    params: ParametersLike = None,
    on_progress: Optional[ProgressCallback] = None,
) -> StringArtResult:
    """
    Generate a string art pin sequence from an image path or array.

    Parameters are not validated here; run ``validate_string_art_parameters``
    (and ``validate_image_dimensions``) first.
    """
    prepared = prepare_string_art(image, params)
    return run_prepared(prepared, on_progress=on_progress)
