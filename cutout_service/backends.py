"""
Segmentation backends.

Two interchangeable ways of removing a background:
 - `LocalMaskBackend` runs the in-process person-segmentation network and
   composites its binary mask onto the image,
 - `ExternalMattingBackend` hands the raw bytes to rembg, which returns a
   finished cutout directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from io import BytesIO
import logging
from threading import Lock
from typing import Dict, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError
from rembg import new_session, remove
import torch
import torch.nn.functional as F

from . import config
from .compositor import compose_cutout
from .errors import BackendUnavailableError, InvalidResultError, ProcessingError
from .model_loader import get_segmentation_model
from .preprocessing import preprocess_for_segmentation
from .sources import ImageSource

logger = logging.getLogger(__name__)


class ProcessingMode(str, Enum):
    LOCAL = "local"
    EXTERNAL = "external"


class SegmentationBackend(ABC):
    mode: ProcessingMode

    @abstractmethod
    def remove_background(self, source: ImageSource) -> Image.Image:
        """Return an RGBA image with the background made transparent."""


class LocalMaskBackend(SegmentationBackend):
    mode = ProcessingMode.LOCAL

    def __init__(
        self,
        internal_resolution: Optional[str] = None,
        threshold: Optional[float] = None,
        person_class_index: Optional[int] = None,
    ):
        settings = config.get_settings()
        self.scale = config.resolution_to_scale(
            internal_resolution or settings.segmentation_internal_resolution
        )
        self.threshold = settings.segmentation_threshold if threshold is None else threshold
        self.person_class_index = (
            settings.person_class_index if person_class_index is None else person_class_index
        )

    def _run_inference(self, image: Image.Image) -> np.ndarray:
        """Person probability per pixel, at the original resolution."""
        try:
            model, device = get_segmentation_model()
        except Exception as exc:  # noqa: BLE001
            raise BackendUnavailableError("Segmentation model could not be loaded") from exc

        try:
            preprocessed = preprocess_for_segmentation(image, self.scale, device)
            with torch.no_grad():
                logits = model(preprocessed.tensor)["out"]  # (B,C,h,w)
            probs = torch.softmax(logits, dim=1)
            person = probs[:, self.person_class_index : self.person_class_index + 1]
            person = F.interpolate(
                person,
                size=(preprocessed.orig_size[1], preprocessed.orig_size[0]),
                mode="bilinear",
                align_corners=False,
            )
        except (RuntimeError, ValueError, KeyError, IndexError) as exc:
            raise ProcessingError("Segmentation inference failed") from exc
        return person[0, 0].detach().cpu().numpy()

    def segment(self, image: Image.Image) -> np.ndarray:
        """
        Produce a flat binary mask for `image` (1 = person, 0 = background).

        The mask has one entry per pixel in row-major order.
        """
        probability = self._run_inference(image)
        mask = (probability > self.threshold).astype(np.uint8).reshape(-1)
        logger.debug(
            "local backend: scale=%.2f threshold=%.2f foreground=%d/%d",
            self.scale,
            self.threshold,
            int(mask.sum()),
            mask.size,
        )
        return mask

    def remove_background(self, source: ImageSource) -> Image.Image:
        image = source.load_image("RGBA")
        mask = self.segment(image.convert("RGB"))
        return compose_cutout(image, mask)


_SESSION_CACHE: Dict[str, object] = {}
_SESSION_LOCK = Lock()


def get_matting_session(model_name: str):
    """Cache rembg sessions by model name so each model loads once per process."""
    sess = _SESSION_CACHE.get(model_name)
    if sess is not None:
        return sess
    with _SESSION_LOCK:
        sess = _SESSION_CACHE.get(model_name)
        if sess is None:
            logger.info("Creating rembg session for model %s", model_name)
            try:
                sess = new_session(model_name)
            except Exception as exc:  # noqa: BLE001
                raise BackendUnavailableError(
                    f"rembg model {model_name!r} could not be loaded"
                ) from exc
            _SESSION_CACHE[model_name] = sess
    return sess


class ExternalMattingBackend(SegmentationBackend):
    mode = ProcessingMode.EXTERNAL

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or config.get_settings().matting_model_name

    def matte(self, source: ImageSource) -> Image.Image:
        """Send the raw image to rembg and return its RGBA cutout."""
        image_bytes = source.read_bytes()
        session = get_matting_session(self.model_name)
        logger.info("Sending %d bytes from %s to rembg (%s)", len(image_bytes), source.origin, self.model_name)
        try:
            result = remove(image_bytes, session=session)
        except Exception as exc:  # noqa: BLE001
            raise ProcessingError(f"rembg failed on {source.origin}") from exc

        if not result or not isinstance(result, bytes):
            raise InvalidResultError("rembg returned an invalid result")
        try:
            cutout = Image.open(BytesIO(result))
            cutout.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise InvalidResultError("rembg returned an undecodable image") from exc
        return cutout.convert("RGBA")

    def remove_background(self, source: ImageSource) -> Image.Image:
        return self.matte(source)


_BACKENDS: Dict[ProcessingMode, SegmentationBackend] = {}
_BACKENDS_LOCK = Lock()

_BACKEND_TYPES = {
    ProcessingMode.LOCAL: LocalMaskBackend,
    ProcessingMode.EXTERNAL: ExternalMattingBackend,
}


def get_backend(mode: ProcessingMode) -> SegmentationBackend:
    """Return the shared backend instance for `mode`."""
    mode = ProcessingMode(mode)
    with _BACKENDS_LOCK:
        backend = _BACKENDS.get(mode)
        if backend is None:
            backend = _BACKEND_TYPES[mode]()
            _BACKENDS[mode] = backend
    return backend
