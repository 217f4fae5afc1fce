from __future__ import annotations

import argparse
import hashlib
import io
import json
import logging
import mimetypes
import os
import sys
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import unquote, urlparse

import requests
from dotenv import load_dotenv
from PIL import Image, ImageOps

from identify import (
    NOT_A_LEAF_MESSAGE,
    ClassificationError,
    LeafClassifier,
    should_show_views,
)
from raster import AllocationFailure, RasterBuffer
from registry import CATALOGUE_ORDER, ViewSelector
from views import available_views, render, render_catalogue

# =============== Logging ===============
log = logging.getLogger("leafviews")

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def setup_logging(verbosity: int = 0) -> None:
    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(verbosity, 2)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


class ImageRejected(ValueError):
    """Input failed the upload checks (type or size)."""


# =============== Core: Fetcher & Loader ===============
class FileFetcher:
    """Fetch bytes from http(s) / file:// / local path with a tiny, safe cache."""

    def __init__(self, cache_dir: Optional[Path] = None, timeout: float = 20.0) -> None:
        self.timeout = timeout
        env_dir = os.getenv("LEAFVIEWS_CACHE_DIR")
        self.cache_dir = cache_dir or (Path(env_dir) if env_dir else Path(tempfile.gettempdir()) / "leafviews_cache")
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "leafviews/1.0 (+https://local)"})

    def fetch(self, src: str) -> Tuple[bytes, Optional[str]]:
        parsed = urlparse(src)
        scheme = (parsed.scheme or "").lower()
        if scheme in ("http", "https"):
            return self._fetch_http_cached(src)
        if scheme == "file":
            local_path = unquote(parsed.path)
            if os.name == "nt" and local_path.startswith("/"):
                local_path = local_path[1:]
            return self._fetch_local(local_path)
        if scheme == "" or (os.name == "nt" and len(scheme) == 1):
            return self._fetch_local(src)
        raise ValueError(f"Unsupported URL scheme: {scheme}")

    def _cache_key(self, url: str) -> Path:
        h = hashlib.sha256(url.encode("utf-8")).hexdigest()[:32]
        return self.cache_dir / f"{h}.bin"

    def _fetch_http_cached(self, url: str) -> Tuple[bytes, Optional[str]]:
        key = self._cache_key(url)
        type_key = key.with_suffix(".type")
        if key.exists():
            try:
                raw = key.read_bytes()
                ctype = type_key.read_text(encoding="utf-8").strip() if type_key.exists() else ""
            except OSError as e:
                log.warning("Cache read failed for %s: %s", key.name, e)
            else:
                log.info("Cache hit: %s", key.name)
                return raw, ctype or mimetypes.guess_type(url)[0]
        log.info("Fetching: %s", url)
        r = self._session.get(url, timeout=self.timeout)
        r.raise_for_status()
        raw = r.content
        ctype = (r.headers.get("Content-Type") or "").split(";")[0].strip() or mimetypes.guess_type(url)[0]
        try:
            key.write_bytes(raw)
            type_key.write_text(ctype or "", encoding="utf-8")
        except OSError as e:
            log.warning("Cache write failed for %s: %s", key.name, e)
        return raw, ctype

    def _fetch_local(self, path_str: str) -> Tuple[bytes, Optional[str]]:
        p = Path(path_str)
        if not p.exists() or not p.is_file():
            raise FileNotFoundError(f"Input file not found: {p}")
        raw = p.read_bytes()
        return raw, mimetypes.guess_type(p.name)[0]


class ImageLoader:
    """Validate + decode bytes → RGBA RasterBuffer."""

    def __init__(self, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
        self.max_bytes = max_bytes

    def validate(self, raw: bytes, content_type: Optional[str]) -> None:
        if content_type and not content_type.lower().startswith("image/"):
            raise ImageRejected("Please upload a valid image file.")
        if self.max_bytes and len(raw) > self.max_bytes:
            mb = self.max_bytes / (1024 * 1024)
            raise ImageRejected(f"File size too large. Please upload an image smaller than {mb:g}MB.")

    def load(
        self,
        raw: bytes,
        content_type: Optional[str],
        *,
        max_size: Optional[int] = None,
        crop_even: bool = False,
    ) -> RasterBuffer:
        self.validate(raw, content_type)
        try:
            img = Image.open(io.BytesIO(raw))
            img.load()
        except Exception as e:
            raise ValueError(f"Failed to decode image: {e}") from e

        img = ImageOps.exif_transpose(img).convert("RGBA")
        if max_size:
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        if crop_even:
            w, h = img.size
            if w >= 2 and h >= 2 and (w % 2 or h % 2):
                ew, eh = w - w % 2, h - h % 2
                log.info("Cropping %dx%d to %dx%d for even dimensions", w, h, ew, eh)
                img = img.crop((0, 0, ew, eh))
        return RasterBuffer.from_image(img)


# =============== Output ===============
def _infer_format_from_path(p: Path) -> str:
    ext = p.suffix.lower()
    if ext in (".jpg", ".jpeg"):
        return "JPEG"
    if ext == ".png":
        return "PNG"
    if ext == ".webp":
        return "WEBP"
    return "PNG"


def save_view(buf: RasterBuffer, out: Path) -> Path:
    out.parent.mkdir(parents=True, exist_ok=True)
    fmt = _infer_format_from_path(out)
    img = buf.to_image()
    if fmt == "JPEG":
        img = img.convert("RGB")
    img.save(out, format=fmt)
    return out


def _load_source(args: argparse.Namespace) -> Tuple[bytes, Optional[str], RasterBuffer]:
    fetcher = FileFetcher()
    loader = ImageLoader()
    raw, ctype = fetcher.fetch(args.url)
    src = loader.load(raw, ctype, max_size=getattr(args, "max_size", None), crop_even=getattr(args, "crop_even", False))
    log.info("Loaded %s (%dx%d)", args.url, src.width, src.height)
    return raw, ctype, src


def _parse_views(spec: Optional[str]) -> List[ViewSelector]:
    if not spec:
        return list(CATALOGUE_ORDER)
    return [ViewSelector.parse(s) for s in spec.split(",") if s.strip()]


def _write_catalogue(src: RasterBuffer, out_dir: Path, views: List[ViewSelector], workers: Optional[int], ext: str) -> List[Path]:
    rendered, failures = render_catalogue(src, views, max_workers=workers)
    written = []
    for sel, buf in rendered.items():
        idx = CATALOGUE_ORDER.index(sel)
        written.append(save_view(buf, out_dir / f"{idx:02d}_{sel.value}.{ext}"))
    for sel, err in failures.items():
        print(f"  skipped {sel.value}: {err}")
    log.info("Wrote %d view(s) to %s", len(written), out_dir)
    return written


# =============== CLI ===============
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="leafviews", description="Multi-view raster analysis for leaf images.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v, -vv).")
    sub = p.add_subparsers(dest="cmd", required=True)

    lp = sub.add_parser("list", help="List views in catalogue order.")
    lp.set_defaults(func=cmd_list)

    def add_source(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--url", required=True, help="HTTP(S) URL, file:// URL, or local path.")
        sp.add_argument("--max-size", type=int, default=None, help="Downscale input longest side before processing.")
        sp.add_argument("--crop-even", action="store_true", help="Drop a trailing odd row/column (wavelet needs even sizes).")

    rp = sub.add_parser("render", help="Render one view to an image file.")
    add_source(rp)
    rp.add_argument("--view", required=True, help="View slug or label (see 'list').")
    rp.add_argument("--out", type=Path, required=True, help="Output image file (png/jpg/webp).")
    rp.set_defaults(func=cmd_render)

    cp = sub.add_parser("catalogue", help="Render every view (in parallel) into a directory.")
    add_source(cp)
    cp.add_argument("--out-dir", type=Path, required=True)
    cp.add_argument("--views", default=None, help="Comma-separated subset, e.g. 'heatmap,wavelet'.")
    cp.add_argument("--workers", type=int, default=None, help="Thread pool size (default: one per view).")
    cp.add_argument("--format", default="png", choices=["png", "jpg", "webp"])
    cp.set_defaults(func=cmd_catalogue)

    ip = sub.add_parser("identify", help="Ask the classifier whether the image is a leaf.")
    ip.add_argument("--url", required=True)
    ip.add_argument("--json", action="store_true", help="Print the raw record as JSON.")
    ip.set_defaults(func=cmd_identify)

    ap = sub.add_parser("analyze", help="Identify, then render the catalogue if it is a leaf.")
    add_source(ap)
    ap.add_argument("--out-dir", type=Path, required=True)
    ap.add_argument("--workers", type=int, default=None)
    ap.set_defaults(func=cmd_analyze)

    bp = sub.add_parser("bench", help="Micro-benchmark one view (or the whole catalogue).")
    add_source(bp)
    bp.add_argument("--view", default=None)
    bp.add_argument("--runs", type=int, default=3)
    bp.set_defaults(func=cmd_bench)

    return p


# =============== Commands ===============
def cmd_list(_args: argparse.Namespace) -> int:
    for slug, label in available_views():
        print(f"{slug:20s} {label}")
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    try:
        view = ViewSelector.parse(args.view)
        _, _, src = _load_source(args)
        out = render(src, view)
        save_view(out, args.out)
        log.info("Saved %s (%dx%d)", args.out, out.width, out.height)
        return 0
    except (MemoryError, AllocationFailure):
        log.error("Out of memory: try a smaller --max-size.")
        return 1
    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def cmd_catalogue(args: argparse.Namespace) -> int:
    try:
        views = _parse_views(args.views)
        _, _, src = _load_source(args)
        _write_catalogue(src, args.out_dir, views, args.workers, args.format)
        return 0
    except (MemoryError, AllocationFailure):
        log.error("Out of memory: try a smaller --max-size.")
        return 1
    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def _print_result(result) -> None:
    if result.is_leaf:
        print(f"Identified: {result.species or '(unknown species)'}  [{result.confidence_percent}%]")
        if result.scientific_name:
            print(f"  {result.scientific_name}")
        if result.description:
            print(f"  {result.description}")
    else:
        print("Not a Leaf Detected")
        print(f"  {result.reason or NOT_A_LEAF_MESSAGE}")


def cmd_identify(args: argparse.Namespace) -> int:
    try:
        raw, ctype = FileFetcher().fetch(args.url)
        ImageLoader().validate(raw, ctype)
        result = LeafClassifier().classify(raw, ctype or "image/jpeg")
        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            _print_result(result)
        return 0
    except ClassificationError as e:
        log.error("Failed to analyze image: %s", e)
        return 1
    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def cmd_analyze(args: argparse.Namespace) -> int:
    try:
        raw, ctype, src = _load_source(args)
        result = LeafClassifier().classify(raw, ctype or "image/jpeg")
        _print_result(result)
        args.out_dir.mkdir(parents=True, exist_ok=True)
        (args.out_dir / "analysis.json").write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        if not should_show_views(result):
            return 2
        _write_catalogue(src, args.out_dir, list(CATALOGUE_ORDER), args.workers, "png")
        return 0
    except ClassificationError as e:
        log.error("Failed to analyze image: %s", e)
        return 1
    except (MemoryError, AllocationFailure):
        log.error("Out of memory: try a smaller --max-size.")
        return 1
    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def cmd_bench(args: argparse.Namespace) -> int:
    try:
        _, _, src = _load_source(args)
        views = [ViewSelector.parse(args.view)] if args.view else list(CATALOGUE_ORDER)
        for sel in views:
            times = []
            for _ in range(max(1, args.runs)):
                t0 = time.perf_counter()
                try:
                    render(src, sel)
                except ValueError as e:
                    print(f"{sel.value}: skipped ({e})")
                    break
                times.append(time.perf_counter() - t0)
            if times:
                avg = sum(times) / len(times)
                print(
                    f"{sel.value}: {len(times)} run(s), avg {avg*1000:.2f} ms, "
                    f"min {min(times)*1000:.2f} ms, max {max(times)*1000:.2f} ms"
                )
        return 0
    except Exception as e:
        log.exception("Bench failed: %s", e)
        return 1


# =============== Entry ===============
def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
