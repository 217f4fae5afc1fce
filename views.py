"""View dispatch: one source raster in, one freshly allocated view out.

Importing this module pulls in every view module so the registry is complete
before anything is rendered. Renders are pure: the source is read-only and
each call allocates its own output, so independent views can run on a thread
pool without locking.
"""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

# Import view modules for their registration side effect
import edges  # noqa: F401
import tonal  # noqa: F401
import wavelet  # noqa: F401
from raster import InvalidDimensions, RasterBuffer
from registry import CATALOGUE_ORDER, REGISTRY, BaseView, ViewSelector

__all__ = [
    "OriginalView",
    "render",
    "render_many",
    "render_catalogue",
    "available_views",
]

log = logging.getLogger("leafviews.views")

ViewLike = Union[str, ViewSelector]


@dataclass
class OriginalView(BaseView):
    """Pass-through: same pixels, source alpha included."""
    def apply(self, source: RasterBuffer) -> RasterBuffer:
        out = np.array(source.pixels, copy=True)
        out.setflags(write=False)
        return RasterBuffer(width=source.width, height=source.height, pixels=out)


REGISTRY.register(ViewSelector.ORIGINAL, OriginalView)


def available_views() -> List[Tuple[str, str]]:
    """(slug, label) for every registered view, in catalogue order."""
    return [(s.value, s.label) for s in REGISTRY.selectors()]


def _check_source(source: RasterBuffer) -> None:
    if not isinstance(source, RasterBuffer):
        raise TypeError(f"Expected RasterBuffer, got {type(source).__name__}")
    if source.width <= 0 or source.height <= 0:
        raise InvalidDimensions(f"Raster must be at least 1x1, got {source.width}x{source.height}")


def render(source: RasterBuffer, view: ViewLike) -> RasterBuffer:
    """Run exactly one view over `source`.

    Raises UnknownView for selectors outside the catalogue, InvalidDimensions
    for unusable sizes (including odd sizes for the wavelet view) and
    AllocationFailure when the output cannot be allocated.
    """
    _check_source(source)
    impl = REGISTRY.create(view)
    t0 = time.perf_counter()
    out = impl.apply(source)
    log.debug(
        "Rendered %s on %dx%d in %.2f ms",
        impl.selector.value, source.width, source.height, (time.perf_counter() - t0) * 1000.0,
    )
    return out


def render_many(
    source: RasterBuffer,
    views: Optional[Iterable[ViewLike]] = None,
    *,
    max_workers: Optional[int] = None,
) -> "OrderedDict[ViewSelector, RasterBuffer]":
    """Render several views concurrently, one task per view.

    Results keep the requested order (catalogue order by default). The first
    failing view's exception propagates once all tasks have finished.
    """
    _check_source(source)
    selectors = [ViewSelector.parse(v) for v in (views if views is not None else CATALOGUE_ORDER)]
    workers = max_workers or max(1, len(selectors))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="view") as pool:
        futures = [(sel, pool.submit(render, source, sel)) for sel in selectors]
        results: "OrderedDict[ViewSelector, RasterBuffer]" = OrderedDict()
        for sel, fut in futures:
            results[sel] = fut.result()
    return results


def render_catalogue(
    source: RasterBuffer,
    views: Optional[Iterable[ViewLike]] = None,
    *,
    max_workers: Optional[int] = None,
) -> Tuple["OrderedDict[ViewSelector, RasterBuffer]", Dict[ViewSelector, InvalidDimensions]]:
    """Tolerant form of render_many: views that raise InvalidDimensions are skipped.

    Returns (rendered, failures). Every other error, AllocationFailure included,
    still propagates.
    """
    _check_source(source)
    selectors = [ViewSelector.parse(v) for v in (views if views is not None else CATALOGUE_ORDER)]
    workers = max_workers or max(1, len(selectors))
    rendered: "OrderedDict[ViewSelector, RasterBuffer]" = OrderedDict()
    failures: Dict[ViewSelector, InvalidDimensions] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="view") as pool:
        futures = [(sel, pool.submit(render, source, sel)) for sel in selectors]
        for sel, fut in futures:
            try:
                rendered[sel] = fut.result()
            except InvalidDimensions as e:
                log.warning("Skipped %s: %s", sel.value, e)
                failures[sel] = e
    return rendered, failures
