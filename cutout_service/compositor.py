"""Alpha compositing of segmentation masks onto RGBA pixel buffers."""

from __future__ import annotations

import logging
from typing import Sequence, Union

import numpy as np
from PIL import Image

from .errors import DimensionMismatchError

logger = logging.getLogger(__name__)

MaskLike = Union[np.ndarray, Sequence[int]]


def apply_mask(rgba: np.ndarray, mask: MaskLike) -> np.ndarray:
    """
    Return a copy of `rgba` with alpha zeroed wherever `mask` is 0.

    `rgba` is an (H, W, 4) buffer; `mask` holds one label per pixel in
    row-major order (0 = background, anything else = foreground). Colour
    channels and foreground pixels are left untouched.

    Raises:
        DimensionMismatchError: when the mask length differs from H * W.
        ValueError: when `rgba` is not a 4-channel image buffer.
    """
    rgba = np.asarray(rgba)
    if rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError(f"expected an (H, W, 4) RGBA buffer, got shape {rgba.shape}")

    labels = np.asarray(mask).reshape(-1)
    pixel_count = rgba.shape[0] * rgba.shape[1]
    if labels.size != pixel_count:
        raise DimensionMismatchError(pixel_count, labels.size)

    out = rgba.copy()
    background = (labels == 0).reshape(rgba.shape[:2])
    out[..., 3][background] = 0
    logger.debug(
        "compositor: zeroed alpha on %d of %d pixels", int(background.sum()), pixel_count
    )
    return out


def compose_cutout(image: Image.Image, mask: MaskLike) -> Image.Image:
    """Apply `mask` to a PIL image and return the RGBA cutout."""
    rgba = np.array(image.convert("RGBA"), dtype=np.uint8)
    return Image.fromarray(apply_mask(rgba, mask))
