# raster.py — immutable RGBA pixel storage shared by every view
# -----------------------------------------------------------------------------
# A RasterBuffer is the only thing views read from and the only thing they
# return. Pixels live in a (H, W, 4) uint8 array that is copied on the way in
# and flagged read-only, so a view can never write back into its source.
#
# Neighbour access is clamp-to-edge everywhere: `sample_clamped` for single
# lookups, `edge_padded` for whole-plane (vectorized) windows. Both pull
# out-of-range coordinates to the nearest valid row/column.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

import numpy as np
from PIL import Image

__all__ = [
    "ViewError",
    "InvalidDimensions",
    "UnknownView",
    "AllocationFailure",
    "RasterBuffer",
    "luminance",
    "luminance_plane",
    "edge_padded",
    "allocate_output",
    "to_channel",
    "opaque_gray",
    "opaque_rgb",
]

Pixel = Tuple[int, int, int, int]

# ITU-R 601 weights
LUMA_R = 0.299
LUMA_G = 0.587
LUMA_B = 0.114


# =============== Errors ===============
class ViewError(Exception):
    """Base class for everything the view pipeline raises."""


class InvalidDimensions(ViewError, ValueError):
    """Width/height are not usable for the requested operation."""


class UnknownView(ViewError, KeyError):
    """A selector that is not part of the view catalogue."""

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class AllocationFailure(ViewError, MemoryError):
    """The output buffer could not be allocated."""


# =============== RasterBuffer ===============
@dataclass(frozen=True, eq=False)
class RasterBuffer:
    width: int
    height: int
    pixels: np.ndarray  # (height, width, 4) uint8, read-only

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidDimensions(f"Raster must be at least 1x1, got {self.width}x{self.height}")
        arr = self.pixels
        if not isinstance(arr, np.ndarray) or arr.shape != (self.height, self.width, 4):
            shape = getattr(arr, "shape", None)
            raise InvalidDimensions(
                f"Pixel array shape {shape} does not match {self.width}x{self.height} RGBA"
            )
        if arr.dtype != np.uint8:
            # out-of-range values clamp, as in from_array
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        elif arr.flags.writeable:
            arr = arr.copy()
        if arr is not self.pixels:
            arr.setflags(write=False)
            object.__setattr__(self, "pixels", arr)

    # ---- constructors ----
    @classmethod
    def from_array(cls, arr: np.ndarray) -> "RasterBuffer":
        """Build from HxW gray, HxWx3 RGB or HxWx4 RGBA data (0..255)."""
        a = np.asarray(arr)
        if a.ndim == 2:
            a = np.repeat(a[..., None], 3, axis=2)
        if a.ndim != 3 or a.shape[2] not in (3, 4):
            raise InvalidDimensions(f"Expected HxW, HxWx3 or HxWx4 array, got shape {a.shape}")
        h, w = a.shape[:2]
        if h == 0 or w == 0:
            raise InvalidDimensions(f"Raster must be at least 1x1, got {w}x{h}")
        out = np.empty((h, w, 4), np.uint8)
        out[..., :3] = np.clip(a[..., :3], 0, 255)
        out[..., 3] = np.clip(a[..., 3], 0, 255) if a.shape[2] == 4 else 255
        out.setflags(write=False)
        return cls(width=w, height=h, pixels=out)

    @classmethod
    def from_pixels(cls, width: int, height: int, pixels: Iterable[Sequence[int]]) -> "RasterBuffer":
        """Build from a flat, row-major sequence of (R, G, B, A) tuples."""
        if width <= 0 or height <= 0:
            raise InvalidDimensions(f"Raster must be at least 1x1, got {width}x{height}")
        flat = np.asarray(list(pixels), dtype=np.int64)
        if flat.shape != (width * height, 4):
            raise InvalidDimensions(
                f"Expected {width * height} RGBA pixels for {width}x{height}, got shape {flat.shape}"
            )
        return cls.from_array(flat.reshape(height, width, 4))

    @classmethod
    def from_image(cls, img: Image.Image) -> "RasterBuffer":
        rgba = img if img.mode == "RGBA" else img.convert("RGBA")
        return cls.from_array(np.asarray(rgba, dtype=np.uint8))

    # ---- access ----
    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def pixel(self, x: int, y: int) -> Pixel:
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def sample_clamped(self, x: int, y: int) -> Pixel:
        """Pixel at (x, y) with each coordinate clamped into the raster."""
        cx = min(max(int(x), 0), self.width - 1)
        cy = min(max(int(y), 0), self.height - 1)
        return self.pixel(cx, cy)

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.array(self.pixels), "RGBA")

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RasterBuffer):
            return NotImplemented
        return self.size == other.size and np.array_equal(self.pixels, other.pixels)

    def __hash__(self) -> int:
        return hash((self.width, self.height, self.tobytes()))

    def __repr__(self) -> str:
        return f"RasterBuffer({self.width}x{self.height})"


# =============== Luminance ===============
def luminance(pixel: Sequence[float]) -> float:
    r, g, b = pixel[0], pixel[1], pixel[2]
    return LUMA_R * r + LUMA_G * g + LUMA_B * b


def luminance_plane(buf: RasterBuffer) -> np.ndarray:
    """(H, W) float64 luminance of every pixel; alpha is ignored."""
    rgb = buf.pixels[..., :3].astype(np.float64)
    return LUMA_R * rgb[..., 0] + LUMA_G * rgb[..., 1] + LUMA_B * rgb[..., 2]


def edge_padded(plane: np.ndarray, radius: int = 1) -> np.ndarray:
    """Pad a 2D plane by repeating its border, i.e. clamp-to-edge sampling.

    padded[y + radius, x + radius] == plane[clamp(y), clamp(x)] for every
    y, x in [-radius, size - 1 + radius].
    """
    return np.pad(plane, radius, mode="edge")


# =============== Output helpers ===============
def allocate_output(width: int, height: int) -> np.ndarray:
    """Fresh (H, W, 4) uint8 array with alpha already set to 255."""
    try:
        out = np.zeros((height, width, 4), np.uint8)
    except MemoryError as e:
        raise AllocationFailure(f"Cannot allocate {width}x{height} RGBA output") from e
    out[..., 3] = 255
    return out


def to_channel(values: np.ndarray) -> np.ndarray:
    """Narrow float values to uint8: clamp to [0, 255], round half to even."""
    return np.rint(np.clip(values, 0.0, 255.0)).astype(np.uint8)


def opaque_rgb(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> RasterBuffer:
    h, w = np.shape(r)
    out = allocate_output(w, h)
    out[..., 0] = to_channel(r)
    out[..., 1] = to_channel(g)
    out[..., 2] = to_channel(b)
    out.setflags(write=False)
    return RasterBuffer(width=w, height=h, pixels=out)


def opaque_gray(v: np.ndarray) -> RasterBuffer:
    return opaque_rgb(v, v, v)
