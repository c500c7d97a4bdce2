"""
Pytest configuration and fixtures shared by the test suite.
"""

from io import BytesIO
import struct
import threading
from typing import List, Optional
import zlib

from PIL import Image
import pytest

from cutout_service.backends import ProcessingMode, SegmentationBackend


def make_png_bytes(size=(4, 2), color=(200, 100, 50)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def make_oversized_png(width=20000, height=20000) -> bytes:
    """PNG whose header claims far more pixels than the decoder will accept."""

    def chunk(kind: bytes, payload: bytes) -> bytes:
        return (
            struct.pack(">I", len(payload))
            + kind
            + payload
            + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF)
        )

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IEND", b"")


class RecordingBackend(SegmentationBackend):
    """Backend stub that records calls and returns a fixed cutout or raises."""

    def __init__(self, mode: ProcessingMode, error: Optional[Exception] = None):
        self.mode = mode
        self.error = error
        self.calls: List = []
        self.entered = threading.Event()
        self.release: Optional[threading.Event] = None

    def remove_background(self, source):
        self.calls.append(source)
        self.entered.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        image = source.load_image().convert("RGBA")
        image.putalpha(0)
        return image


@pytest.fixture
def png_bytes() -> bytes:
    return make_png_bytes()


@pytest.fixture
def backends():
    return {
        ProcessingMode.LOCAL: RecordingBackend(ProcessingMode.LOCAL),
        ProcessingMode.EXTERNAL: RecordingBackend(ProcessingMode.EXTERNAL),
    }


@pytest.fixture
def backend_factory(backends):
    return lambda mode: backends[mode]
