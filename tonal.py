# tonal.py — per-pixel colour remaps (registers itself)
# -----------------------------------------------------------------------------
# Every view here looks at one pixel at a time: its RGB and its luminance Y.
# No neighbours, so the whole image is remapped in one vectorized pass.
#
#   grayscale   (Y, Y, Y)
#   binary      white above Y=128, black otherwise
#   heatmap     blue -> green -> red false colour on Y/255
#   xray        inverted Y, contrast x2 around mid-gray
#   eco         green-boosted tint  R*0.8, G*1.2, B*0.8
#   hsv         H, S, V written into R, G, B (diagnostic recolor)
#
# Output alpha is always 255.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from raster import RasterBuffer, luminance_plane, opaque_rgb
from registry import REGISTRY, BaseView, ViewSelector

__all__ = [
    "PointView",
    "GrayscaleView",
    "BinaryView",
    "HeatmapView",
    "XRayView",
    "EcoView",
    "HSVRecolorView",
    "rgb_to_hsv",
    "hsv_to_rgb",
]

Channels = Tuple[np.ndarray, np.ndarray, np.ndarray]

BINARY_THRESHOLD = 128.0
ECO_GAINS = (0.8, 1.2, 0.8)


# ============================ helpers ============================

def rgb_to_hsv(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> Channels:
    """Six-sector RGB -> HSV on 0..255 inputs; H, S, V all in [0, 1].

    Ties on the max channel resolve red first, then green.
    """
    rn, gn, bn = r / 255.0, g / 255.0, b / 255.0
    mx = np.maximum(np.maximum(rn, gn), bn)
    mn = np.minimum(np.minimum(rn, gn), bn)
    d = mx - mn

    s = np.where(mx == 0, 0.0, d / np.where(mx == 0, 1.0, mx))

    safe_d = np.where(d == 0, 1.0, d)
    h_r = (gn - bn) / safe_d + np.where(gn < bn, 6.0, 0.0)
    h_g = (bn - rn) / safe_d + 2.0
    h_b = (rn - gn) / safe_d + 4.0
    h = np.select([mx == rn, mx == gn], [h_r, h_g], default=h_b) / 6.0
    h = np.where(d == 0, 0.0, h)
    return h, s, mx


def hsv_to_rgb(h: np.ndarray, s: np.ndarray, v: np.ndarray) -> Channels:
    """Inverse sector formula; H, S, V and the result are in [0, 1].

    H == 1.0 wraps onto sector 0 (red).
    """
    h6 = np.asarray(h, dtype=np.float64) * 6.0
    s = np.broadcast_to(np.asarray(s, dtype=np.float64), h6.shape)
    v = np.broadcast_to(np.asarray(v, dtype=np.float64), h6.shape)
    i = np.floor(h6)
    f = h6 - i
    p = v * (1.0 - s)
    q = v * (1.0 - f * s)
    t = v * (1.0 - (1.0 - f) * s)
    sector = i.astype(np.int64) % 6
    conds = [sector == k for k in range(6)]
    r = np.select(conds, [v, q, p, p, t, v])
    g = np.select(conds, [t, v, v, q, p, p])
    b = np.select(conds, [p, p, t, v, v, q])
    return r, g, b


# ============================ base ============================

@dataclass
class PointView(BaseView):
    """Pixel-wise view: subclasses map (rgb, Y) planes to output R, G, B."""

    def remap(self, rgb: np.ndarray, lum: np.ndarray) -> Channels:  # pragma: no cover
        raise NotImplementedError

    def apply(self, source: RasterBuffer) -> RasterBuffer:
        rgb = source.pixels[..., :3].astype(np.float64)
        lum = luminance_plane(source)
        r, g, b = self.remap(rgb, lum)
        return opaque_rgb(r, g, b)


# ============================ views ============================

@dataclass
class GrayscaleView(PointView):
    """Luminance on all three channels."""
    def remap(self, rgb: np.ndarray, lum: np.ndarray) -> Channels:
        return lum, lum, lum


@dataclass
class BinaryView(PointView):
    def remap(self, rgb: np.ndarray, lum: np.ndarray) -> Channels:
        v = np.where(lum > BINARY_THRESHOLD, 255.0, 0.0)
        return v, v, v


@dataclass
class HeatmapView(PointView):
    """False colour: blue (dark) -> green (mid) -> red (bright)."""
    def remap(self, rgb: np.ndarray, lum: np.ndarray) -> Channels:
        t = lum / 255.0
        low = t < 0.5
        r = np.where(low, 0.0, 255.0 * (2.0 * t - 1.0))
        g = np.where(low, 255.0 * 2.0 * t, 255.0 * (2.0 - 2.0 * t))
        b = np.where(low, 255.0 * (1.0 - 2.0 * t), 0.0)
        return r, g, b


@dataclass
class XRayView(PointView):
    def remap(self, rgb: np.ndarray, lum: np.ndarray) -> Channels:
        inverted = 255.0 - lum
        v = (inverted - 128.0) * 2.0 + 128.0
        return v, v, v


@dataclass
class EcoView(PointView):
    """Vegetation tint. Green saturates at 255 once G > 212."""
    def remap(self, rgb: np.ndarray, lum: np.ndarray) -> Channels:
        kr, kg, kb = ECO_GAINS
        return rgb[..., 0] * kr, rgb[..., 1] * kg, rgb[..., 2] * kb


@dataclass
class HSVRecolorView(PointView):
    """Encodes hue/saturation/value as red/green/blue."""
    def remap(self, rgb: np.ndarray, lum: np.ndarray) -> Channels:
        h, s, v = rgb_to_hsv(rgb[..., 0], rgb[..., 1], rgb[..., 2])
        return h * 255.0, s * 255.0, v * 255.0


# Register with the shared registry so the views dispatch by selector
REGISTRY.register(ViewSelector.GRAYSCALE, GrayscaleView)
REGISTRY.register(ViewSelector.BINARY, BinaryView)
REGISTRY.register(ViewSelector.HEATMAP, HeatmapView)
REGISTRY.register(ViewSelector.XRAY, XRayView)
REGISTRY.register(ViewSelector.ECO, EcoView)
REGISTRY.register(ViewSelector.HSV, HSVRecolorView)
