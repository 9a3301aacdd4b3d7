# string_art/render.py
"""Raster previews of a pin sequence: final PNG, timelapse frames, MP4."""
import os
from pathlib import Path
from typing import Optional, Sequence, Tuple

import imageio.v2 as imageio
import numpy as np
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from skimage import draw

from .arrays import round_half_up

FRAME_PREFIX = "frame_"


def opacity_for_weight(line_weight: float) -> float:
    """Per-line darkening matching the ink the optimizer subtracts."""
    return min(1.0, max(0.0, line_weight / 255.0))


def render_canvas(
    line_sequence: Sequence[int],
    pin_coordinates: Sequence[Tuple[int, int]],
    pixel_width: int,
    pixel_height: int,
    scale: int = 2,
    opacity: float = 0.1,
    up_to: Optional[int] = None,
) -> np.ndarray:
    """
    White canvas (1.0) with each consecutive pin pair drawn as an
    anti-aliased semi-transparent black line. ``up_to`` limits the number of
    lines drawn.
    """
    h = pixel_height * scale
    w = pixel_width * scale
    canvas = np.ones((h, w), dtype=np.float64)

    n_lines = max(0, len(line_sequence) - 1)
    if up_to is not None:
        n_lines = min(n_lines, up_to)

    for i in range(n_lines):
        x0, y0 = pin_coordinates[line_sequence[i]]
        x1, y1 = pin_coordinates[line_sequence[i + 1]]
        rr, cc, val = draw.line_aa(
            round_half_up(y0 * scale), round_half_up(x0 * scale),
            round_half_up(y1 * scale), round_half_up(x1 * scale),
        )
        keep = (rr >= 0) & (rr < h) & (cc >= 0) & (cc < w)
        rr, cc, val = rr[keep], cc[keep], val[keep]
        canvas[rr, cc] *= 1.0 - opacity * val

    return canvas


def render_result(result, scale: int = 2, opacity: Optional[float] = None, up_to: Optional[int] = None) -> np.ndarray:
    pixel_width, pixel_height = result.parameters.pixel_dimensions
    if opacity is None:
        opacity = opacity_for_weight(result.parameters.line_weight)
    return render_canvas(
        result.line_sequence,
        result.pin_coordinates,
        pixel_width,
        pixel_height,
        scale=scale,
        opacity=opacity,
        up_to=up_to,
    )


def save_canvas_png(canvas: np.ndarray, path, dpi: int = 300, figsize=(8, 8)) -> str:
    h, w = canvas.shape[:2]
    if w >= h:
        figsize = (figsize[0], figsize[0] * h / w)
    else:
        figsize = (figsize[1] * w / h, figsize[1])

    # no pyplot: this runs concurrently in job threads
    fig = Figure(figsize=figsize)
    FigureCanvasAgg(fig)
    ax = fig.add_axes([0, 0, 1, 1])
    ax.imshow(canvas, cmap="gray", vmin=0, vmax=1)
    ax.axis("off")
    fig.savefig(path, dpi=dpi, bbox_inches="tight", pad_inches=0)
    return str(path)


def save_frame(canvas: np.ndarray, frames_dir, idx: int, dpi: int = 150) -> str:
    Path(frames_dir).mkdir(parents=True, exist_ok=True)
    fname = Path(frames_dir) / f"{FRAME_PREFIX}{idx:05d}.png"
    return save_canvas_png(canvas, fname, dpi=dpi, figsize=(6, 6))


def list_frames(frames_dir) -> list:
    if not os.path.isdir(frames_dir):
        return []
    return sorted(
        os.path.join(frames_dir, f)
        for f in os.listdir(frames_dir)
        if f.startswith(FRAME_PREFIX) and f.lower().endswith(".png")
    )


def _as_rgb_uint8(im: np.ndarray) -> np.ndarray:
    if im.ndim == 2:
        im = np.stack([im, im, im], axis=-1)
    if im.shape[-1] == 4:
        im = im[..., :3]
    if im.dtype != np.uint8:
        im = np.clip(im * 255, 0, 255).astype(np.uint8)
    return im


def _even_size(frames):
    """Crop every frame to the smallest common even size (H.264 needs it)."""
    h = min(f.shape[0] for f in frames) // 2 * 2
    w = min(f.shape[1] for f in frames) // 2 * 2
    return [f[:h, :w] for f in frames]


def make_mp4_from_frames(frames_dir, mp4_path, fps: int = 30) -> Optional[str]:
    frames = list_frames(frames_dir)
    if not frames:
        return None

    images = _even_size([_as_rgb_uint8(imageio.imread(f)) for f in frames])
    writer = imageio.get_writer(str(mp4_path), fps=fps)
    try:
        for im in images:
            writer.append_data(im)
    finally:
        writer.close()
    return str(mp4_path)
