"""
High-level background-removal pipeline.

`process_source` is the main entry point used by the session, the HTTP API
and the local helper script. Orchestration stays simple:
source -> backend for the requested mode -> RGBA image.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Union

from PIL import Image

from . import config
from .backends import ProcessingMode, SegmentationBackend, get_backend
from .errors import InvalidResultError
from .exporter import to_png_bytes
from .sources import ImageSource, resolve_upload

logger = logging.getLogger(__name__)


def process_source(
    source: ImageSource,
    mode: Union[ProcessingMode, str],
    backend: Optional[SegmentationBackend] = None,
) -> Image.Image:
    """
    Remove the background of `source` with the backend selected by `mode`.

    Raises:
        ProcessingError: when loading, segmentation or matting fails.
    """
    mode = ProcessingMode(mode)
    backend = backend or get_backend(mode)
    started = time.perf_counter()
    result = backend.remove_background(source)
    if result is None or result.size[0] == 0 or result.size[1] == 0:
        raise InvalidResultError(f"{mode.value} backend returned an empty image")
    logger.info(
        "Processed %s with %s backend in %.2fs (%dx%d)",
        source.origin,
        mode.value,
        time.perf_counter() - started,
        result.size[0],
        result.size[1],
    )
    return result


def process_image_bytes(
    image_bytes: bytes,
    mode: Union[ProcessingMode, str, None] = None,
) -> bytes:
    """Full pipeline from raw bytes to RGBA PNG bytes."""
    mode = mode or config.get_settings().default_processing_mode
    source = resolve_upload(image_bytes)
    return to_png_bytes(process_source(source, mode))
