"""
State of one background-remover component.

Holds the selected image, the active processing mode and the last processed
result, and enforces that only one processing operation runs at a time.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Callable, Optional, Union

from PIL import Image

from . import config
from .backends import ProcessingMode, SegmentationBackend, get_backend
from .errors import ProcessingBusyError, ProcessingError
from .exporter import export_png, to_png_bytes
from .pipeline import process_source
from .sources import ImageSource, resolve_file, resolve_upload, resolve_url

logger = logging.getLogger(__name__)

BackendFactory = Callable[[ProcessingMode], SegmentationBackend]


class RemoverSession:
    def __init__(
        self,
        mode: Union[ProcessingMode, str, None] = None,
        backend_factory: Optional[BackendFactory] = None,
    ):
        self._mode = ProcessingMode(mode or config.get_settings().default_processing_mode)
        self._backend_factory = backend_factory or get_backend
        self._busy = Lock()
        self.selected: Optional[ImageSource] = None
        self.processed: Optional[Image.Image] = None
        self.last_error: Optional[str] = None

    @property
    def mode(self) -> ProcessingMode:
        return self._mode

    @property
    def is_processing(self) -> bool:
        return self._busy.locked()

    def set_mode(self, mode: Union[ProcessingMode, str]) -> ProcessingMode:
        """Select the backend for the next operation; a running one keeps its mode."""
        self._mode = ProcessingMode(mode)
        if self.is_processing:
            logger.info("Mode set to %s; takes effect after the running operation", self._mode.value)
        return self._mode

    def select(self, source: ImageSource) -> ImageSource:
        self.selected = source
        logger.info("Selected image %s", source)
        return source

    def select_file(self, path: Union[str, Path]) -> ImageSource:
        return self.select(resolve_file(path))

    def select_upload(self, data: bytes, filename: Optional[str] = None) -> ImageSource:
        return self.select(resolve_upload(data, filename))

    def select_url(self, url: Optional[str]) -> Optional[ImageSource]:
        """Select an image by URL. A blank URL is ignored and leaves the selection as is."""
        if not url or not url.strip():
            logger.info("Empty image URL ignored")
            return None
        return self.select(resolve_url(url))

    def process(self) -> Optional[Image.Image]:
        """
        Remove the background of the selected image.

        Returns the new cutout, or None when nothing was selected or the
        operation failed. A failure is logged and leaves any earlier result
        in place.

        Raises:
            ProcessingBusyError: when another operation is still running.
        """
        source = self.selected
        if source is None:
            logger.warning("No image selected; nothing to process")
            return None

        if not self._busy.acquire(blocking=False):
            raise ProcessingBusyError("A background removal is already in progress")
        try:
            mode = self._mode
            try:
                backend = self._backend_factory(mode)
                result = process_source(source, mode, backend=backend)
            except ProcessingError as exc:
                logger.exception("Error processing image with %s backend: %s", mode.value, exc)
                self.last_error = str(exc)
                return None
            self.processed = result
            self.last_error = None
            return result
        finally:
            self._busy.release()

    def download_bytes(self) -> Optional[bytes]:
        if self.processed is None:
            return None
        return to_png_bytes(self.processed)

    def export(self, directory: Optional[Union[str, Path]] = None) -> Optional[Path]:
        if self.processed is None:
            logger.warning("No processed image to export")
            return None
        return export_png(self.processed, directory=directory)
