from __future__ import annotations

import numpy as np
import pytest

from raster import RasterBuffer


def solid(width: int, height: int, rgba=(90, 160, 40, 255)) -> RasterBuffer:
    arr = np.empty((height, width, 4), np.uint8)
    arr[...] = rgba
    return RasterBuffer.from_array(arr)


def vertical_step(width: int = 6, height: int = 4, split: int = 3, left: int = 0, right: int = 255) -> RasterBuffer:
    """Left columns [0, split) one gray level, the rest another."""
    arr = np.full((height, width), left, np.uint8)
    arr[:, split:] = right
    return RasterBuffer.from_array(arr)


@pytest.fixture
def leafish() -> RasterBuffer:
    """Deterministic noisy 8x6 RGBA image with non-opaque alpha."""
    rng = np.random.default_rng(7)
    arr = rng.integers(0, 256, size=(6, 8, 4), dtype=np.uint8)
    arr[..., 3] = 40
    return RasterBuffer.from_array(arr)
