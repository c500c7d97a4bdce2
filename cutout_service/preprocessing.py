"""
Image preprocessing for the person-segmentation network.

The network runs at an internal resolution, a fraction of the source size,
and expects RGB inputs normalized with ImageNet statistics.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image
import torch

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype="float32")
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype="float32")


@dataclass
class PreprocessResult:
    tensor: torch.Tensor
    original_image: Image.Image
    orig_size: Tuple[int, int]  # (width, height)
    resized_size: Tuple[int, int]


def compute_resize_dims(width: int, height: int, scale: float) -> Tuple[int, int]:
    """Scale both sides, preserving aspect ratio and keeping at least one pixel."""
    if scale >= 1.0:
        return width, height
    new_w = max(1, int(round(width * scale)))
    new_h = max(1, int(round(height * scale)))
    return new_w, new_h


def preprocess_for_segmentation(
    image: Image.Image, scale: float, device: torch.device
) -> PreprocessResult:
    """Resize `image` by `scale` and normalize it into a (1, 3, H, W) tensor."""
    image = image.convert("RGB")
    orig_w, orig_h = image.size
    new_w, new_h = compute_resize_dims(orig_w, orig_h, scale)

    if (new_w, new_h) != (orig_w, orig_h):
        image_resized = image.resize((new_w, new_h), Image.BILINEAR)
    else:
        image_resized = image

    im_np = np.asarray(image_resized).astype("float32") / 255.0
    im_np = (im_np - IMAGENET_MEAN) / IMAGENET_STD
    im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW

    tensor = torch.from_numpy(np.ascontiguousarray(im_np)).unsqueeze(0).to(device)

    return PreprocessResult(
        tensor=tensor,
        original_image=image,
        orig_size=(orig_w, orig_h),
        resized_size=(new_w, new_h),
    )
