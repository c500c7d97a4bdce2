"""
Image source resolution.

A user picks an image either from disk, as uploaded bytes, or by URL. Each is
turned into an :class:`ImageSource`, an opaque handle that loads its payload
once on first use and hands back raw bytes or a decoded PIL image.
"""

from __future__ import annotations

from io import BytesIO
import logging
from pathlib import Path
from threading import Lock
from typing import Optional, Union
from urllib.parse import urlparse

from PIL import Image, UnidentifiedImageError
import requests

from . import config
from .errors import FetchError, NoImageSelectedError, UnsupportedImageError

logger = logging.getLogger(__name__)

KIND_FILE = "file"
KIND_UPLOAD = "upload"
KIND_URL = "url"


class ImageSource:
    """Loadable image handle; the payload is fetched at most once."""

    def __init__(self, kind: str, origin: str, data: Optional[bytes] = None):
        self.kind = kind
        self.origin = origin
        self._data = data
        self._lock = Lock()

    def __repr__(self) -> str:
        return f"ImageSource(kind={self.kind!r}, origin={self.origin!r})"

    @property
    def loaded(self) -> bool:
        return self._data is not None

    def read_bytes(self) -> bytes:
        """Return the raw image payload, loading it on the first call."""
        if self._data is not None:
            return self._data
        with self._lock:
            if self._data is None:
                data = self._load()
                _check_payload(data, self.origin)
                self._data = data
        return self._data

    def load_image(self, mode: str = "RGB") -> Image.Image:
        """Decode the payload into a PIL image converted to `mode`."""
        data = self.read_bytes()
        try:
            image = Image.open(BytesIO(data))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise UnsupportedImageError(f"Could not decode image from {self.origin}") from exc
        return image.convert(mode)

    def _load(self) -> bytes:
        if self.kind == KIND_FILE:
            try:
                return Path(self.origin).read_bytes()
            except OSError as exc:
                raise NoImageSelectedError(f"Could not read {self.origin}") from exc
        if self.kind == KIND_URL:
            return _download_image(self.origin)
        raise NoImageSelectedError("Upload carried no data")


def _check_payload(data: bytes, origin: str) -> None:
    settings = config.get_settings()
    if not data:
        raise NoImageSelectedError(f"Image at {origin} is empty")
    if len(data) > settings.max_image_bytes:
        raise UnsupportedImageError(
            f"Image at {origin} is {len(data)} bytes, limit is {settings.max_image_bytes}"
        )


def _download_image(url: str) -> bytes:
    settings = config.get_settings()
    logger.info("Fetching image: %s", url)
    try:
        resp = requests.get(url, timeout=(5, settings.request_timeout_seconds))
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"Failed to fetch image from {url}") from exc
    return resp.content


def resolve_file(path: Union[str, Path]) -> ImageSource:
    """Resolve a local file selection."""
    if not path:
        raise NoImageSelectedError("No file selected")
    path = Path(path)
    if not path.is_file():
        raise NoImageSelectedError(f"File not found: {path}")
    return ImageSource(KIND_FILE, str(path))


def resolve_upload(data: bytes, filename: Optional[str] = None) -> ImageSource:
    """Resolve in-memory bytes, e.g. a multipart upload."""
    if not data:
        raise NoImageSelectedError("Uploaded file is empty")
    origin = filename or "upload"
    _check_payload(data, origin)
    return ImageSource(KIND_UPLOAD, origin, data=data)


def resolve_url(url: str) -> ImageSource:
    """Resolve a user-supplied URL. Nothing is downloaded until first use."""
    if not url or not url.strip():
        raise NoImageSelectedError("No image URL given")
    url = url.strip()
    scheme = urlparse(url).scheme.lower()
    if scheme not in {"http", "https"}:
        raise UnsupportedImageError(f"Unsupported URL scheme: {scheme or '(none)'}")
    return ImageSource(KIND_URL, url)
