# edges.py — 3x3 neighbourhood views (registers itself)
# -----------------------------------------------------------------------------
# All windows are read through a clamp-to-edge padded luminance plane, so the
# border rows/columns behave exactly like sampling with clamped coordinates
# (a 1x1 image sees its single pixel in all nine taps).
#
# Sobel family (one shared kernel pass):
#   gradient_magnitude  sqrt(Gx^2 + Gy^2) on all channels
#   skeleton            magnitude, zeroed where <= 50
#   blueprint           white where magnitude > 30, ink blue elsewhere
#   gradient_direction  atan2(Gy, Gx) as hue (S=V=1), black where magnitude < 20
#
# Others:
#   zero_crossing       4-neighbour Laplacian, 128 + 2*L
#   feature_map         sqrt of 3x3 luminance variance, x4, pseudo-heat tint
# -----------------------------------------------------------------------------

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from raster import RasterBuffer, edge_padded, luminance_plane, opaque_gray, opaque_rgb
from registry import REGISTRY, BaseView, ViewSelector
from tonal import hsv_to_rgb

__all__ = [
    "sobel",
    "laplacian",
    "local_variance",
    "GradientMagnitudeView",
    "SkeletonView",
    "BlueprintView",
    "GradientDirectionView",
    "ZeroCrossingView",
    "FeatureMapView",
]

SKELETON_THRESHOLD = 50.0
BLUEPRINT_THRESHOLD = 30.0
DIRECTION_MIN_MAGNITUDE = 20.0
BLUEPRINT_INK = (30.0, 64.0, 175.0)
FEATURE_GAIN = 4.0


# ============================ kernels ============================

def _taps(lum: np.ndarray) -> dict:
    """The nine clamped 3x3 taps of every pixel, keyed by compass point."""
    h, w = lum.shape
    p = edge_padded(lum, 1)
    return {
        "nw": p[0:h, 0:w], "n": p[0:h, 1:w + 1], "ne": p[0:h, 2:w + 2],
        "w": p[1:h + 1, 0:w], "c": p[1:h + 1, 1:w + 1], "e": p[1:h + 1, 2:w + 2],
        "sw": p[2:h + 2, 0:w], "s": p[2:h + 2, 1:w + 1], "se": p[2:h + 2, 2:w + 2],
    }


def sobel(lum: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Horizontal and vertical Sobel responses; centre weight is 0 in both."""
    t = _taps(lum)
    # kernel taps summed row by row, left to right
    gx = -t["nw"] + t["ne"] - 2.0 * t["w"] + 2.0 * t["e"] - t["sw"] + t["se"]
    gy = -t["nw"] - 2.0 * t["n"] - t["ne"] + t["sw"] + 2.0 * t["s"] + t["se"]
    return gx, gy


def laplacian(lum: np.ndarray) -> np.ndarray:
    """[[0,1,0],[1,-4,1],[0,1,0]] over the 4-neighbours."""
    t = _taps(lum)
    return t["n"] + t["w"] + t["e"] + t["s"] - 4.0 * t["c"]


def local_variance(lum: np.ndarray) -> np.ndarray:
    """Population variance of the nine clamped samples around each pixel."""
    taps = list(_taps(lum).values())
    total = np.zeros_like(lum)
    sq_total = np.zeros_like(lum)
    for v in taps:
        total += v
        sq_total += v * v
    mean = total / len(taps)
    var = sq_total / len(taps) - mean * mean
    return np.maximum(var, 0.0)  # rounding can dip just below zero on flat areas


# ============================ Sobel views ============================

@dataclass
class SobelView(BaseView):
    def shade(self, gx: np.ndarray, gy: np.ndarray, mag: np.ndarray) -> RasterBuffer:  # pragma: no cover
        raise NotImplementedError

    def apply(self, source: RasterBuffer) -> RasterBuffer:
        gx, gy = sobel(luminance_plane(source))
        return self.shade(gx, gy, np.sqrt(gx * gx + gy * gy))


@dataclass
class GradientMagnitudeView(SobelView):
    def shade(self, gx: np.ndarray, gy: np.ndarray, mag: np.ndarray) -> RasterBuffer:
        return opaque_gray(mag)


@dataclass
class SkeletonView(SobelView):
    """Sparse edge skeleton: magnitude only where it clears the threshold."""
    def shade(self, gx: np.ndarray, gy: np.ndarray, mag: np.ndarray) -> RasterBuffer:
        return opaque_gray(np.where(mag > SKELETON_THRESHOLD, mag, 0.0))


@dataclass
class BlueprintView(SobelView):
    def shade(self, gx: np.ndarray, gy: np.ndarray, mag: np.ndarray) -> RasterBuffer:
        edge = mag > BLUEPRINT_THRESHOLD
        ink_r, ink_g, ink_b = BLUEPRINT_INK
        return opaque_rgb(
            np.where(edge, 255.0, ink_r),
            np.where(edge, 255.0, ink_g),
            np.where(edge, 255.0, ink_b),
        )


@dataclass
class GradientDirectionView(SobelView):
    """Edge orientation as hue; flat regions are masked to black."""
    def shade(self, gx: np.ndarray, gy: np.ndarray, mag: np.ndarray) -> RasterBuffer:
        hue = (np.arctan2(gy, gx) + math.pi) / (2.0 * math.pi)
        r, g, b = hsv_to_rgb(hue, 1.0, 1.0)
        keep = mag >= DIRECTION_MIN_MAGNITUDE
        return opaque_rgb(
            np.where(keep, r * 255.0, 0.0),
            np.where(keep, g * 255.0, 0.0),
            np.where(keep, b * 255.0, 0.0),
        )


# ============================ other views ============================

@dataclass
class ZeroCrossingView(BaseView):
    """Laplacian response centred on mid-gray; flat input renders as 128."""
    def apply(self, source: RasterBuffer) -> RasterBuffer:
        lap = laplacian(luminance_plane(source))
        return opaque_gray(128.0 + lap * 2.0)


@dataclass
class FeatureMapView(BaseView):
    """Local texture (3x3 standard deviation) as a blue -> orange tint."""
    def apply(self, source: RasterBuffer) -> RasterBuffer:
        display = np.minimum(255.0, np.sqrt(local_variance(luminance_plane(source))) * FEATURE_GAIN)
        return opaque_rgb(display, display * 0.8, 255.0 - display)


REGISTRY.register(ViewSelector.GRADIENT_MAGNITUDE, GradientMagnitudeView)
REGISTRY.register(ViewSelector.SKELETON, SkeletonView)
REGISTRY.register(ViewSelector.BLUEPRINT, BlueprintView)
REGISTRY.register(ViewSelector.GRADIENT_DIRECTION, GradientDirectionView)
REGISTRY.register(ViewSelector.ZERO_CROSSING, ZeroCrossingView)
REGISTRY.register(ViewSelector.FEATURE_MAP, FeatureMapView)
