"""Serialization of processed cutouts into downloadable PNG artifacts."""

from __future__ import annotations

from io import BytesIO
import logging
from pathlib import Path
from typing import Optional, Union

from PIL import Image

from . import config

logger = logging.getLogger(__name__)


def to_png_bytes(image: Image.Image) -> bytes:
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def export_png(
    image: Image.Image,
    directory: Optional[Union[str, Path]] = None,
    filename: Optional[str] = None,
) -> Path:
    """Write `image` as PNG under `directory`, using the fixed export filename by default."""
    settings = config.get_settings()
    out_dir = Path(directory) if directory is not None else settings.export_dir
    out_path = out_dir / (filename or settings.export_filename)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(to_png_bytes(image))
    logger.info("Exported processed image to %s", out_path)
    return out_path


def content_disposition(filename: Optional[str] = None) -> str:
    """Header value that makes browsers save the result under the export filename."""
    name = filename or config.get_settings().export_filename
    return f'attachment; filename="{name}"'
