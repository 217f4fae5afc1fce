from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
import requests
from PIL import Image

import main
from identify import LeafAnalysisResult
from registry import CATALOGUE_ORDER, ViewSelector


@pytest.fixture(autouse=True)
def _isolated_cache(tmp_path, monkeypatch):
    monkeypatch.setenv("LEAFVIEWS_CACHE_DIR", str(tmp_path / "cache"))


def write_png(path: Path, width: int, height: int) -> Path:
    rng = np.random.default_rng(1)
    arr = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    Image.fromarray(arr, "RGB").save(path)
    return path


def test_list_prints_the_catalogue(capsys):
    assert main.main(["list"]) == 0
    out = capsys.readouterr().out
    assert "heatmap" in out and "Chlorophyll Map" in out
    assert out.splitlines()[0].startswith("original")


def test_render_writes_one_view(tmp_path):
    src = write_png(tmp_path / "leaf.png", 6, 4)
    out = tmp_path / "out" / "gray.png"
    assert main.main(["render", "--url", str(src), "--view", "structure", "--out", str(out)]) == 0
    img = Image.open(out)
    assert img.size == (6, 4)
    arr = np.asarray(img.convert("RGBA"))
    assert (arr[..., 0] == arr[..., 1]).all()


def test_render_to_jpeg_drops_alpha(tmp_path):
    src = write_png(tmp_path / "leaf.png", 4, 4)
    out = tmp_path / "heat.jpg"
    assert main.main(["render", "--url", str(src), "--view", "heatmap", "--out", str(out)]) == 0
    assert Image.open(out).mode == "RGB"


def test_render_unknown_view_fails(tmp_path):
    src = write_png(tmp_path / "leaf.png", 4, 4)
    assert main.main(["render", "--url", str(src), "--view", "sepia", "--out", str(tmp_path / "x.png")]) == 1


def test_catalogue_skips_wavelet_on_odd_sizes(tmp_path):
    src = write_png(tmp_path / "leaf.png", 5, 5)
    out_dir = tmp_path / "views"
    assert main.main(["catalogue", "--url", str(src), "--out-dir", str(out_dir)]) == 0
    names = sorted(p.name for p in out_dir.iterdir())
    assert len(names) == len(CATALOGUE_ORDER) - 1
    assert not any("wavelet" in n for n in names)
    assert names[0] == "00_original.png"


def test_catalogue_crop_even_keeps_wavelet(tmp_path):
    src = write_png(tmp_path / "leaf.png", 5, 7)
    out_dir = tmp_path / "views"
    rc = main.main(["catalogue", "--url", str(src), "--out-dir", str(out_dir), "--crop-even", "--views", "wavelet,binary"])
    assert rc == 0
    wavelet = out_dir / f"{CATALOGUE_ORDER.index(ViewSelector.WAVELET):02d}_wavelet.png"
    assert wavelet.exists()
    assert Image.open(wavelet).size == (4, 6)


def test_loader_rejects_non_images_and_oversized_uploads():
    loader = main.ImageLoader(max_bytes=10)
    with pytest.raises(main.ImageRejected):
        loader.load(b"hello", "text/plain")
    with pytest.raises(main.ImageRejected):
        loader.load(b"x" * 11, "image/png")
    with pytest.raises(ValueError):
        main.ImageLoader().load(b"not an image", "image/png")


def test_loader_thumbnail_and_rgba(tmp_path):
    src = write_png(tmp_path / "leaf.png", 40, 20)
    buf = main.ImageLoader().load(src.read_bytes(), "image/png", max_size=10)
    assert buf.size == (10, 5)
    assert (buf.pixels[..., 3] == 255).all()


def test_fetcher_reads_local_and_file_urls(tmp_path):
    src = write_png(tmp_path / "leaf.png", 2, 2)
    fetcher = main.FileFetcher(cache_dir=tmp_path / "c")
    raw, ctype = fetcher.fetch(str(src))
    assert raw == src.read_bytes() and ctype == "image/png"
    raw2, _ = fetcher.fetch(src.as_uri())
    assert raw2 == raw
    with pytest.raises(FileNotFoundError):
        fetcher.fetch(str(tmp_path / "missing.png"))


class HtmlSession:
    def __init__(self) -> None:
        self.headers: dict = {}
        self.gets = 0

    def get(self, url, timeout=None):
        self.gets += 1
        resp = requests.Response()
        resp.status_code = 200
        resp._content = b"<html>sign in</html>"
        resp.headers["Content-Type"] = "text/html; charset=utf-8"
        return resp


def test_cached_fetch_keeps_the_server_content_type(tmp_path):
    fetcher = main.FileFetcher(cache_dir=tmp_path / "c")
    session = HtmlSession()
    fetcher._session = session
    url = "https://example.com/download?id=1"
    loader = main.ImageLoader()

    for _ in range(2):
        raw, ctype = fetcher.fetch(url)
        assert ctype == "text/html"
        with pytest.raises(main.ImageRejected):
            loader.validate(raw, ctype)
    assert session.gets == 1


class FakeClassifier:
    result = LeafAnalysisResult(is_leaf=False, confidence=0.9, reason="Looks like a rock.")

    def classify(self, image_bytes, mime_type):
        return self.result


def test_analyze_stops_when_not_a_leaf(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(main, "LeafClassifier", FakeClassifier)
    src = write_png(tmp_path / "leaf.png", 4, 4)
    out_dir = tmp_path / "analysis"
    assert main.main(["analyze", "--url", str(src), "--out-dir", str(out_dir)]) == 2
    assert "Looks like a rock." in capsys.readouterr().out
    record = json.loads((out_dir / "analysis.json").read_text(encoding="utf-8"))
    assert record["isLeaf"] is False
    assert not any(p.suffix == ".png" for p in out_dir.iterdir())


def test_analyze_renders_views_for_a_leaf(tmp_path, monkeypatch):
    class LeafClassifierStub(FakeClassifier):
        result = LeafAnalysisResult(is_leaf=True, confidence=0.75, species="Ginkgo", scientific_name="Ginkgo biloba")

    monkeypatch.setattr(main, "LeafClassifier", LeafClassifierStub)
    src = write_png(tmp_path / "leaf.png", 4, 4)
    out_dir = tmp_path / "analysis"
    assert main.main(["analyze", "--url", str(src), "--out-dir", str(out_dir)]) == 0
    pngs = [p for p in out_dir.iterdir() if p.suffix == ".png"]
    assert len(pngs) == len(CATALOGUE_ORDER)
