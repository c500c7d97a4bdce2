"""
Configuration loader for the background-removal component.

Environment variables are centralized here to keep the rest of the code
focused on business logic and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

INTERNAL_RESOLUTIONS = {
    "low": 0.25,
    "medium": 0.5,
    "high": 0.75,
    "full": 1.0,
}

PROCESSING_MODES = {"local", "external"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Local segmentation model
    segmentation_model_path: Optional[Path] = Field(None)
    segmentation_internal_resolution: str = Field("medium")
    segmentation_threshold: float = Field(0.6)
    person_class_index: int = Field(15)

    # Backend selection
    default_processing_mode: str = Field("local")
    matting_model_name: str = Field("u2net")

    # Input
    request_timeout_seconds: int = Field(30)
    max_image_bytes: int = Field(20 * 1024 * 1024)

    # Export
    export_filename: str = Field("processed_image.png")
    export_dir: Path = Field(Path("."))

    log_level: str = Field("INFO")

    @field_validator("segmentation_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("SEGMENTATION_THRESHOLD must be between 0 and 1")
        return v

    @field_validator("segmentation_internal_resolution")
    @classmethod
    def validate_internal_resolution(cls, v: str) -> str:
        resolution_to_scale(v)
        return v

    @field_validator("default_processing_mode")
    @classmethod
    def validate_processing_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in PROCESSING_MODES:
            raise ValueError("DEFAULT_PROCESSING_MODE must be one of local|external")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def resolution_to_scale(resolution: Union[str, float]) -> float:
    """
    Translate an internal-resolution setting into a resize factor.

    Named levels follow the usual low/medium/high/full ladder; a bare number in
    (0, 1] is used directly. Lower values trade mask detail for speed.
    """
    if isinstance(resolution, str):
        named = INTERNAL_RESOLUTIONS.get(resolution.strip().lower())
        if named is not None:
            return named
        try:
            resolution = float(resolution)
        except ValueError as exc:
            raise ValueError(
                f"internal resolution must be one of low|medium|high|full or a number in (0, 1], got {resolution!r}"
            ) from exc
    scale = float(resolution)
    if not 0.0 < scale <= 1.0:
        raise ValueError(f"internal resolution must be in (0, 1], got {scale}")
    return scale
