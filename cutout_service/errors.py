"""Exceptions raised while resolving, segmenting and compositing images."""

from __future__ import annotations


class ProcessingError(RuntimeError):
    """A recoverable failure of one background-removal operation."""


class NoImageSelectedError(ProcessingError):
    """No image was provided, or the provided input was empty."""


class BackendUnavailableError(ProcessingError):
    """The segmentation model or matting session could not be loaded."""


class FetchError(ProcessingError):
    """Downloading a URL source failed."""


class UnsupportedImageError(ProcessingError):
    """The input could not be decoded as an image or exceeds the size limit."""


class InvalidResultError(ProcessingError):
    """A backend returned an empty or malformed artifact."""


class DimensionMismatchError(ValueError):
    """Pixel buffer and segmentation mask disagree on pixel count."""

    def __init__(self, pixel_count: int, mask_length: int):
        super().__init__(
            f"mask has {mask_length} entries but the image has {pixel_count} pixels"
        )
        self.pixel_count = pixel_count
        self.mask_length = mask_length


class ProcessingBusyError(RuntimeError):
    """Another processing operation is already in flight."""
