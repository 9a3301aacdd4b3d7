# string_art/image_processor.py
"""
Image preparation for the optimizer:
crop to the frame shape -> weighted grayscale -> circular mask (circle only).

All intermediate images are RGBA uint8 arrays of shape (height, width, 4).
The pixel buffer handed to the optimizer is the red channel of the final image.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from skimage import draw, io, transform, util

from .arrays import round_half_up
from .constants import (
    DEFAULT_SHAPE,
    GRAYSCALE_WEIGHTS,
    IMG_SIZE,
    MAX_IMAGE_ASPECT_RATIO,
    MAX_IMAGE_DIMENSION,
    MIN_IMAGE_DIMENSION,
)
from .pins import calculate_pixel_dimensions
from .validation import ValidationResult

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, np.ndarray]


@dataclass
class ProcessedImage:
    cropped: np.ndarray
    grayscale: np.ndarray
    masked: np.ndarray

    @property
    def width(self) -> int:
        return self.masked.shape[1]

    @property
    def height(self) -> int:
        return self.masked.shape[0]

    @property
    def pixel_buffer(self) -> np.ndarray:
        return image_to_pixel_buffer(self.masked)


def load_image(source: ImageSource) -> np.ndarray:
    """Read a path with scikit-image (or take an array as-is) and return RGBA uint8."""
    if isinstance(source, (str, Path)):
        img = io.imread(str(source))
    else:
        img = np.asarray(source)
    return to_rgba(img)


def to_rgba(img: np.ndarray) -> np.ndarray:
    """Normalise grayscale / RGB / RGBA images of any dtype to RGBA uint8."""
    img = np.asarray(img)
    if img.ndim not in (2, 3):
        raise ValueError(f"Unsupported image shape {img.shape}")

    if img.dtype != np.uint8:
        img = _to_ubyte(img)

    if img.ndim == 2:
        img = np.stack([img, img, img], axis=-1)

    channels = img.shape[2]
    if channels == 3:
        alpha = np.full(img.shape[:2] + (1,), 255, dtype=np.uint8)
        img = np.concatenate([img, alpha], axis=-1)
    elif channels != 4:
        raise ValueError(f"Unsupported number of channels: {channels}")
    return img


def _to_ubyte(img: np.ndarray) -> np.ndarray:
    """
    Rescale any dtype to uint8 with scikit-image. Floats above 1 and signed
    ints within 0..255 already hold byte values and are only rounded; signed
    ints up to 65535 are 16-bit samples (Pillow decodes some 16-bit PNGs as
    int32).
    """
    if img.size == 0:
        return img.astype(np.uint8)

    kind = img.dtype.kind
    low, high = img.min(), img.max()
    if (kind == "f" and high > 1.0) or (kind == "i" and low >= 0 and high <= 255):
        return np.clip(np.floor(img.astype(np.float64) + 0.5), 0, 255).astype(np.uint8)
    if kind == "i" and low >= 0 and high <= 65535:
        img = img.astype(np.uint16)
    return util.img_as_ubyte(img)


def crop_to_shape(
    img: np.ndarray,
    target_size: int = IMG_SIZE,
    shape: str = DEFAULT_SHAPE,
    width_mm: float = 100,
    height_mm: float = 100,
) -> np.ndarray:
    """
    Centre-crop ``img`` to the aspect ratio of the frame and resample it so
    the longer side is ``target_size`` pixels.
    """
    aspect_ratio = 1.0
    if shape == "rectangle" and height_mm and height_mm > 0:
        aspect_ratio = width_mm / height_mm

    target_w, target_h = calculate_pixel_dimensions(
        target_size, shape, width_mm, height_mm
    )

    img_h, img_w = img.shape[:2]
    img_aspect = img_w / img_h

    x_offset = 0.0
    y_offset = 0.0
    if img_aspect > aspect_ratio:
        # wider than the frame
        selected_h = img_h
        selected_w = img_h * aspect_ratio
        x_offset = (img_w - selected_w) / 2
    else:
        selected_w = img_w
        selected_h = img_w / aspect_ratio
        y_offset = (img_h - selected_h) / 2

    x0 = round_half_up(x_offset)
    y0 = round_half_up(y_offset)
    crop_w = min(img_w - x0, max(1, round_half_up(selected_w)))
    crop_h = min(img_h - y0, max(1, round_half_up(selected_h)))
    region = img[y0:y0 + crop_h, x0:x0 + crop_w]

    if region.shape[:2] == (target_h, target_w):
        return region.copy()

    downscaling = target_h < crop_h or target_w < crop_w
    resized = transform.resize(
        region.astype(np.float64),
        (target_h, target_w, region.shape[2]),
        order=1,
        mode="edge",
        anti_aliasing=downscaling,
        preserve_range=True,
    )
    return np.clip(np.floor(resized + 0.5), 0, 255).astype(np.uint8)


def crop_to_square(img: np.ndarray, target_size: int = IMG_SIZE) -> np.ndarray:
    return crop_to_shape(img, target_size, "circle")


def convert_to_grayscale(
    img: np.ndarray,
    weights: Tuple[float, float, float] = GRAYSCALE_WEIGHTS,
) -> np.ndarray:
    """Weighted grayscale written to R, G and B; alpha is left untouched."""
    rgba = to_rgba(img)
    red, green, blue = weights
    rgb = rgba[..., :3].astype(np.float64)
    gray = red * rgb[..., 0] + green * rgb[..., 1] + blue * rgb[..., 2]
    gray = np.clip(np.floor(gray + 0.5), 0, 255).astype(np.uint8)

    out = np.empty_like(rgba)
    out[..., 0] = gray
    out[..., 1] = gray
    out[..., 2] = gray
    out[..., 3] = rgba[..., 3]
    return out


def circular_mask(height: int, width: int) -> np.ndarray:
    """Boolean mask of the pixels whose centres fall inside the inscribed circle."""
    inside = np.zeros((height, width), dtype=bool)
    rr, cc = draw.disk(
        (height / 2 - 0.5, width / 2 - 0.5),
        min(height, width) / 2,
        shape=(height, width),
    )
    inside[rr, cc] = True
    return inside


def apply_circular_mask(img: np.ndarray) -> np.ndarray:
    """
    Make every pixel outside the inscribed circle fully transparent.
    Transparent pixels read back as (0, 0, 0, 0), like a canvas composite.
    """
    rgba = to_rgba(img)
    inside = circular_mask(*rgba.shape[:2])
    out = rgba.copy()
    out[~inside] = 0
    return out


def image_to_pixel_buffer(img: np.ndarray) -> np.ndarray:
    """Single-channel read-only pixel buffer (red channel) of an RGBA image."""
    buffer = np.ascontiguousarray(to_rgba(img)[..., 0])
    buffer.setflags(write=False)
    return buffer


def process_image_for_string_art(
    source: ImageSource,
    target_size: int = IMG_SIZE,
    shape: str = DEFAULT_SHAPE,
    width_mm: float = 100,
    height_mm: float = 100,
) -> ProcessedImage:
    """Crop -> grayscale -> mask (circle only)."""
    img = load_image(source)
    cropped = crop_to_shape(img, target_size, shape, width_mm, height_mm)
    grayscale = convert_to_grayscale(cropped)
    masked = apply_circular_mask(grayscale) if shape == "circle" else grayscale
    logger.debug(
        "Processed %dx%d image to %dx%d (%s)",
        img.shape[1], img.shape[0], masked.shape[1], masked.shape[0], shape,
    )
    return ProcessedImage(cropped=cropped, grayscale=grayscale, masked=masked)


def validate_image_dimensions(source) -> ValidationResult:
    """
    Pre-check an image before processing. Accepts an array or a
    ``(width, height)`` tuple.
    """
    if isinstance(source, tuple):
        width, height = source
    else:
        height, width = np.asarray(source).shape[:2]

    result = ValidationResult()
    if width < MIN_IMAGE_DIMENSION or height < MIN_IMAGE_DIMENSION:
        result.errors.append(
            f"Image dimensions must be at least {MIN_IMAGE_DIMENSION}x{MIN_IMAGE_DIMENSION} pixels"
        )
    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        result.errors.append(
            f"Image dimensions should not exceed {MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION} pixels for performance reasons"
        )
    if height > 0 and width > 0:
        aspect_ratio = width / height
        if aspect_ratio > MAX_IMAGE_ASPECT_RATIO or aspect_ratio < 1 / MAX_IMAGE_ASPECT_RATIO:
            result.errors.append(
                "Image aspect ratio is too extreme. Consider using a more square image"
            )
    return result
