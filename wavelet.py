# wavelet.py — single-level Haar decomposition view (registers itself)
# -----------------------------------------------------------------------------
# Each non-overlapping 2x2 luminance block
#
#     p1 p2
#     p3 p4
#
# becomes one approximation and three detail coefficients:
#
#     LL = (p1 + p2 + p3 + p4) / 4
#     LH = (p1 + p2 - p3 - p4) / 4 + 128
#     HL = (p1 - p2 + p3 - p4) / 4 + 128
#     HH = (p1 - p2 - p3 + p4) / 4 + 128
#
# and the four sub-bands are tiled over the same canvas:
#
#     +----+----+
#     | LL | LH |
#     +----+----+
#     | HL | HH |
#     +----+----+
#
# Odd widths/heights are rejected rather than truncated; callers that want a
# wavelet view of an odd-sized image should crop first (see main.ImageLoader).
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from raster import InvalidDimensions, RasterBuffer, luminance_plane, opaque_gray
from registry import REGISTRY, BaseView, ViewSelector

__all__ = ["haar_bands", "tile_bands", "WaveletView"]

DETAIL_BIAS = 128.0

Bands = Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]


def haar_bands(lum: np.ndarray) -> Bands:
    """(LL, LH, HL, HH) planes, each half the size of `lum` in both axes."""
    h, w = lum.shape
    if h % 2 or w % 2:
        raise InvalidDimensions(f"Wavelet view needs even width and height, got {w}x{h}")
    p1 = lum[0::2, 0::2]
    p2 = lum[0::2, 1::2]
    p3 = lum[1::2, 0::2]
    p4 = lum[1::2, 1::2]
    ll = (p1 + p2 + p3 + p4) / 4.0
    lh = (p1 + p2 - p3 - p4) / 4.0 + DETAIL_BIAS
    hl = (p1 - p2 + p3 - p4) / 4.0 + DETAIL_BIAS
    hh = (p1 - p2 - p3 + p4) / 4.0 + DETAIL_BIAS
    return ll, lh, hl, hh


def tile_bands(ll: np.ndarray, lh: np.ndarray, hl: np.ndarray, hh: np.ndarray) -> np.ndarray:
    qh, qw = ll.shape
    canvas = np.empty((qh * 2, qw * 2), np.float64)
    canvas[:qh, :qw] = ll
    canvas[:qh, qw:] = lh
    canvas[qh:, :qw] = hl
    canvas[qh:, qw:] = hh
    return canvas


@dataclass
class WaveletView(BaseView):
    def apply(self, source: RasterBuffer) -> RasterBuffer:
        return opaque_gray(tile_bands(*haar_bands(luminance_plane(source))))


REGISTRY.register(ViewSelector.WAVELET, WaveletView)
