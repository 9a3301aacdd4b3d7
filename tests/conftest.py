import numpy as np
import pytest


def make_portrait(size: int = 120) -> np.ndarray:
    """Light gradient background with a dark diagonal band and a dark disc."""
    yy, xx = np.mgrid[0:size, 0:size]
    img = 200 + 55 * xx / (size - 1)
    band = np.abs(xx - yy) < size // 10
    img[band] = 30
    disc = (xx - size * 0.3) ** 2 + (yy - size * 0.65) ** 2 < (size * 0.15) ** 2
    img[disc] = 0
    gray = img.astype(np.uint8)
    return np.stack([gray, gray, gray], axis=-1)


@pytest.fixture
def portrait():
    return make_portrait()


@pytest.fixture
def white_image():
    return np.full((120, 120, 3), 255, dtype=np.uint8)


@pytest.fixture
def gradient_buffer():
    row = np.linspace(0, 255, 100)
    return np.tile(row, (100, 1)).astype(np.uint8)
