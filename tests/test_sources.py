from io import BytesIO

from PIL import Image
import pytest
import requests

from cutout_service import sources
from cutout_service.errors import FetchError, NoImageSelectedError, UnsupportedImageError

from .conftest import make_oversized_png


class _FakeResponse:
    def __init__(self, content=b"", status_code=200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_resolve_file_loads_image(tmp_path, png_bytes):
    path = tmp_path / "photo.png"
    path.write_bytes(png_bytes)
    source = sources.resolve_file(path)
    assert source.kind == sources.KIND_FILE
    image = source.load_image()
    assert image.mode == "RGB"
    assert image.size == (4, 2)


def test_resolve_file_missing(tmp_path):
    with pytest.raises(NoImageSelectedError):
        sources.resolve_file(tmp_path / "missing.png")


def test_resolve_upload_rejects_empty():
    with pytest.raises(NoImageSelectedError):
        sources.resolve_upload(b"")


def test_upload_with_garbage_is_unsupported():
    source = sources.resolve_upload(b"not an image", "notes.txt")
    with pytest.raises(UnsupportedImageError):
        source.load_image()


def test_upload_over_size_limit(monkeypatch, png_bytes):
    monkeypatch.setattr(sources.config.get_settings(), "max_image_bytes", 10)
    with pytest.raises(UnsupportedImageError):
        sources.resolve_upload(png_bytes)


@pytest.mark.parametrize("url", ["", "   "])
def test_resolve_url_rejects_blank(url):
    with pytest.raises(NoImageSelectedError):
        sources.resolve_url(url)


def test_resolve_url_rejects_other_schemes():
    with pytest.raises(UnsupportedImageError):
        sources.resolve_url("ftp://example.com/a.png")


def test_url_is_fetched_once(monkeypatch, png_bytes):
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return _FakeResponse(png_bytes)

    monkeypatch.setattr(sources.requests, "get", fake_get)
    source = sources.resolve_url("https://example.com/cat.png")
    assert calls == []
    assert source.read_bytes() == png_bytes
    assert source.load_image().size == (4, 2)
    assert len(calls) == 1
    assert calls[0][0] == "https://example.com/cat.png"


def test_url_network_failure(monkeypatch):
    def fake_get(url, timeout):
        raise requests.ConnectionError("boom")

    monkeypatch.setattr(sources.requests, "get", fake_get)
    source = sources.resolve_url("https://example.com/cat.png")
    with pytest.raises(FetchError):
        source.read_bytes()
    assert not source.loaded


def test_url_http_error(monkeypatch):
    monkeypatch.setattr(sources.requests, "get", lambda url, timeout: _FakeResponse(status_code=404))
    with pytest.raises(FetchError):
        sources.resolve_url("https://example.com/missing.png").read_bytes()


def test_url_empty_body(monkeypatch):
    monkeypatch.setattr(sources.requests, "get", lambda url, timeout: _FakeResponse(b""))
    with pytest.raises(NoImageSelectedError):
        sources.resolve_url("https://example.com/empty.png").read_bytes()


def test_decompression_bomb_is_unsupported():
    source = sources.resolve_upload(make_oversized_png(), "huge.png")
    with pytest.raises(UnsupportedImageError):
        source.load_image()


def test_load_image_keeps_alpha_when_asked():
    buf = BytesIO()
    Image.new("RGBA", (1, 1), (1, 2, 3, 4)).save(buf, format="PNG")
    source = sources.resolve_upload(buf.getvalue())
    assert source.load_image("RGBA").getpixel((0, 0)) == (1, 2, 3, 4)
    assert source.load_image().mode == "RGB"
