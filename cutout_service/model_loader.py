"""
Model loading utilities for the person-segmentation network.

The loader:
 - builds torchvision's DeepLabV3 / MobileNetV3 segmentation network,
 - loads a local checkpoint from `SEGMENTATION_MODEL_PATH` when configured,
   otherwise the bundled pretrained weights,
 - keeps a single shared instance for the lifetime of the process,
 - exposes `get_segmentation_model()` for inference callers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Tuple

import torch
from torchvision.models.segmentation import (
    DeepLabV3_MobileNet_V3_Large_Weights,
    deeplabv3_mobilenet_v3_large,
)

from . import config

logger = logging.getLogger(__name__)

VOC_NUM_CLASSES = 21

_MODEL = None
# Prefer CUDA -> Apple MPS -> CPU to support both GPU servers and local macOS dev.
if torch.cuda.is_available():
    _DEVICE = torch.device("cuda")
elif torch.backends.mps.is_available():  # type: ignore[attr-defined]
    _DEVICE = torch.device("mps")
else:
    _DEVICE = torch.device("cpu")
_LOCK = Lock()


def get_device() -> torch.device:
    """Return the inference device (prefers CUDA when available)."""
    return _DEVICE


def _try_load_torchscript(model_path: Path) -> torch.nn.Module:
    """Load a TorchScript model if possible."""
    model = torch.jit.load(str(model_path), map_location=_DEVICE)
    model.eval()
    return model


def _clean_state_dict(state_dict: dict) -> dict:
    """Remove common wrappers such as 'module.' prefixes."""
    cleaned = {}
    for key, value in state_dict.items():
        new_key = key
        if new_key.startswith("module."):
            new_key = new_key[len("module.") :]
        if new_key.startswith("model."):
            new_key = new_key[len("model.") :]
        cleaned[new_key] = value
    return cleaned


def _load_from_state_dict(model_path: Path) -> torch.nn.Module:
    """Load a vanilla PyTorch checkpoint into the DeepLabV3 architecture."""
    checkpoint = torch.load(model_path, map_location=_DEVICE)
    if isinstance(checkpoint, dict) and "state_dict" in checkpoint:
        checkpoint = checkpoint["state_dict"]
    if not isinstance(checkpoint, dict):
        raise RuntimeError("Unsupported checkpoint format for the segmentation model")

    checkpoint = _clean_state_dict(checkpoint)
    model = deeplabv3_mobilenet_v3_large(
        weights=None, weights_backbone=None, num_classes=VOC_NUM_CLASSES, aux_loss=True
    )
    missing, unexpected = model.load_state_dict(checkpoint, strict=False)
    if missing:
        logger.warning("Missing keys when loading segmentation checkpoint: %s", missing)
    if unexpected:
        logger.warning("Unexpected keys when loading segmentation checkpoint: %s", unexpected)

    model.to(_DEVICE)
    model.eval()
    return model


def _load_pretrained() -> torch.nn.Module:
    """Build the network with torchvision's bundled COCO/VOC weights."""
    weights = DeepLabV3_MobileNet_V3_Large_Weights.DEFAULT
    logger.info("Loading pretrained segmentation weights: %s", weights)
    model = deeplabv3_mobilenet_v3_large(weights=weights)
    model.to(_DEVICE)
    model.eval()
    return model


def _load_model(settings: config.Settings) -> torch.nn.Module:
    model_path = settings.segmentation_model_path
    if model_path is None:
        return _load_pretrained()
    if not model_path.exists():
        raise FileNotFoundError(f"Segmentation checkpoint not found at {model_path}")

    try:
        logger.info("Attempting to load TorchScript model from %s", model_path)
        return _try_load_torchscript(model_path)
    except Exception as script_error:  # noqa: BLE001
        logger.info("TorchScript load failed, falling back to state_dict. Error: %s", script_error)
        return _load_from_state_dict(model_path)


def get_segmentation_model() -> Tuple[torch.nn.Module, torch.device]:
    """
    Return a singleton segmentation model + device pair.

    The model is loaded once on first access and kept for the lifetime of the
    process, so repeated requests never pay the initialization cost again.
    """
    global _MODEL
    if _MODEL is not None:
        return _MODEL, _DEVICE

    with _LOCK:
        if _MODEL is None:
            settings = config.get_settings()
            _MODEL = _load_model(settings)
            logger.info("Segmentation model loaded on device: %s", _DEVICE)
    return _MODEL, _DEVICE
