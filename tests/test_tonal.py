from __future__ import annotations

import numpy as np
import pytest

from conftest import solid
from raster import RasterBuffer
from registry import ViewSelector
from tonal import hsv_to_rgb, rgb_to_hsv
from views import render


def one(view, rgba) -> tuple:
    return render(solid(1, 1, rgba), view).pixel(0, 0)


def test_grayscale_is_rounded_luminance(leafish):
    assert one(ViewSelector.GRAYSCALE, (100, 150, 50, 255)) == (124, 124, 124, 255)
    out = render(leafish, ViewSelector.GRAYSCALE).pixels
    assert (out[..., 0] == out[..., 1]).all() and (out[..., 1] == out[..., 2]).all()


def test_binary_only_emits_black_or_white(leafish):
    out = render(leafish, ViewSelector.BINARY).pixels[..., :3]
    assert set(np.unique(out).tolist()) <= {0, 255}
    assert one(ViewSelector.BINARY, (200, 200, 200, 255)) == (255, 255, 255, 255)
    assert one(ViewSelector.BINARY, (10, 10, 10, 255)) == (0, 0, 0, 255)


def test_heatmap_runs_blue_green_red():
    assert one(ViewSelector.HEATMAP, (0, 0, 0, 255)) == (0, 0, 255, 255)
    assert one(ViewSelector.HEATMAP, (255, 255, 255, 255)) == (255, 0, 0, 255)
    r, g, b, _ = one(ViewSelector.HEATMAP, (127, 127, 127, 255))
    assert g > r and g > b
    r, g, b, _ = one(ViewSelector.HEATMAP, (128, 128, 128, 255))
    assert g > r and g > b


def test_xray_inverts_and_stretches():
    assert one(ViewSelector.XRAY, (0, 0, 0, 255)) == (255, 255, 255, 255)
    assert one(ViewSelector.XRAY, (255, 255, 255, 255)) == (0, 0, 0, 255)
    assert one(ViewSelector.XRAY, (100, 100, 100, 255)) == (182, 182, 182, 255)


def test_eco_tints_and_saturates_green():
    assert one(ViewSelector.ECO, (100, 200, 50, 255)) == (80, 240, 40, 255)
    assert one(ViewSelector.ECO, (10, 250, 10, 255)) == (8, 255, 8, 255)


@pytest.mark.parametrize(
    "rgba, expected",
    [
        ((255, 0, 0, 255), (0, 255, 255, 255)),
        ((0, 255, 0, 255), (85, 255, 255, 255)),
        ((0, 0, 255, 255), (170, 255, 255, 255)),
        ((0, 0, 0, 255), (0, 0, 0, 255)),
        ((128, 128, 128, 255), (0, 0, 128, 255)),
    ],
)
def test_hsv_recolor_writes_h_s_v_into_r_g_b(rgba, expected):
    assert one(ViewSelector.HSV, rgba) == expected


def test_rgb_to_hsv_ties_resolve_red_first():
    h, s, v = rgb_to_hsv(np.array([255.0]), np.array([255.0]), np.array([0.0]))
    # yellow: max shared by R and G, R branch gives (G-B)/d = 1 -> 1/6
    assert h[0] == pytest.approx(1 / 6)
    assert s[0] == pytest.approx(1.0)
    assert v[0] == pytest.approx(1.0)


def test_hsv_round_trip_on_saturated_colours():
    rgb = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255], [255, 255, 0], [40, 200, 120]], np.float64)
    h, s, v = rgb_to_hsv(rgb[:, 0], rgb[:, 1], rgb[:, 2])
    r, g, b = hsv_to_rgb(h, s, v)
    assert np.allclose(np.stack([r, g, b], axis=1) * 255.0, rgb)


def test_hsv_to_rgb_wraps_full_turn_to_red():
    r, g, b = hsv_to_rgb(np.array([1.0]), 1.0, 1.0)
    assert (r[0], g[0], b[0]) == (1.0, 0.0, 0.0)


@pytest.mark.parametrize(
    "view",
    [ViewSelector.GRAYSCALE, ViewSelector.BINARY, ViewSelector.HEATMAP,
     ViewSelector.XRAY, ViewSelector.ECO, ViewSelector.HSV],
)
def test_point_views_keep_size_and_force_opaque_alpha(view, leafish):
    out = render(leafish, view)
    assert isinstance(out, RasterBuffer)
    assert out.size == leafish.size
    assert (out.pixels[..., 3] == 255).all()
