from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

from raster import RasterBuffer, UnknownView

__all__ = ["ViewSelector", "CATALOGUE_ORDER", "ViewRegistry", "BaseView", "REGISTRY"]


# =============== Selector ===============
class ViewSelector(Enum):
    """The closed catalogue of views. Values are stable CLI/file slugs."""

    ORIGINAL = "original"
    GRAYSCALE = "grayscale"
    SKELETON = "skeleton"
    HEATMAP = "heatmap"
    BLUEPRINT = "blueprint"
    XRAY = "xray"
    ECO = "eco"
    BINARY = "binary"
    HSV = "hsv"
    GRADIENT_MAGNITUDE = "gradient_magnitude"
    GRADIENT_DIRECTION = "gradient_direction"
    ZERO_CROSSING = "zero_crossing"
    WAVELET = "wavelet"
    FEATURE_MAP = "feature_map"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, name: Union[str, "ViewSelector"]) -> "ViewSelector":
        """Accept a selector, slug, member name or display label (any case)."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        for sel in cls:
            if key in (sel.value, sel.name.lower(), sel.label.lower()):
                return sel
        # "gradient-magnitude", "Gradient Magnitude"
        alt = key.replace("-", "_").replace(" ", "_")
        for sel in cls:
            if alt == sel.value:
                return sel
        raise UnknownView(
            f"Unknown view '{name}'. Available: {', '.join(s.value for s in cls)}"
        )


_LABELS: Dict[ViewSelector, str] = {
    ViewSelector.ORIGINAL: "Original",
    ViewSelector.GRAYSCALE: "Structure",
    ViewSelector.SKELETON: "Skeleton",
    ViewSelector.HEATMAP: "Chlorophyll Map",
    ViewSelector.BLUEPRINT: "Blueprint",
    ViewSelector.XRAY: "X-Ray",
    ViewSelector.ECO: "Eco Vision",
    ViewSelector.BINARY: "Binary Image",
    ViewSelector.HSV: "Color Image (RGB/HSV)",
    ViewSelector.GRADIENT_MAGNITUDE: "Gradient Magnitude Map",
    ViewSelector.GRADIENT_DIRECTION: "Gradient Direction Map",
    ViewSelector.ZERO_CROSSING: "Zero-Crossing Map",
    ViewSelector.WAVELET: "Multi-scale Representation (Wavelets)",
    ViewSelector.FEATURE_MAP: "Feature Map",
}

# Order of the analysis grid
CATALOGUE_ORDER: List[ViewSelector] = [
    ViewSelector.ORIGINAL,
    ViewSelector.GRAYSCALE,
    ViewSelector.SKELETON,
    ViewSelector.HEATMAP,
    ViewSelector.XRAY,
    ViewSelector.ECO,
    ViewSelector.BINARY,
    ViewSelector.HSV,
    ViewSelector.GRADIENT_MAGNITUDE,
    ViewSelector.GRADIENT_DIRECTION,
    ViewSelector.ZERO_CROSSING,
    ViewSelector.WAVELET,
    ViewSelector.FEATURE_MAP,
    ViewSelector.BLUEPRINT,
]


# =============== Registry ===============
class ViewRegistry:
    def __init__(self) -> None:
        self._by_selector: Dict[ViewSelector, type[BaseView]] = {}

    def register(self, selector: ViewSelector, cls: type["BaseView"]) -> None:
        self._by_selector[ViewSelector.parse(selector)] = cls

    def selectors(self) -> List[ViewSelector]:
        return [s for s in CATALOGUE_ORDER if s in self._by_selector]

    def names(self) -> List[str]:
        return sorted(s.value for s in self._by_selector)

    def missing(self) -> List[ViewSelector]:
        return [s for s in ViewSelector if s not in self._by_selector]

    def create(self, selector: Union[str, ViewSelector]) -> "BaseView":
        sel = ViewSelector.parse(selector)
        if sel not in self._by_selector:
            raise UnknownView(
                f"No view registered for '{sel.value}'. Available: {', '.join(self.names()) or '(none)'}"
            )
        return self._by_selector[sel](selector=sel)


REGISTRY = ViewRegistry()


# =============== Base view ===============
@dataclass
class BaseView:
    """A pure source -> output transform. Never mutates `source`."""

    selector: Optional[ViewSelector] = None

    def apply(self, source: RasterBuffer) -> RasterBuffer:  # pragma: no cover
        raise NotImplementedError
