"""
FastAPI layer exposing the background-remover component.

Endpoints:
 - GET /health
 - GET /state
 - PUT /mode
 - POST /image
 - POST /image/url
 - POST /remove-bg
 - GET /result
"""

from __future__ import annotations

from functools import lru_cache
import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile
from pydantic import BaseModel, HttpUrl

from . import config
from .backends import ProcessingMode
from .errors import NoImageSelectedError, ProcessingBusyError, UnsupportedImageError
from .exporter import content_disposition, to_png_bytes
from .session import RemoverSession

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Background Remover", version="0.1.0")


class ModeRequest(BaseModel):
    mode: ProcessingMode


class ImageUrlRequest(BaseModel):
    imageUrl: HttpUrl


class StateResponse(BaseModel):
    mode: ProcessingMode
    processing: bool
    selectedImage: Optional[str] = None
    hasResult: bool
    lastError: Optional[str] = None


@lru_cache()
def get_remover() -> RemoverSession:
    return RemoverSession()


def _state(remover: RemoverSession) -> StateResponse:
    return StateResponse(
        mode=remover.mode,
        processing=remover.is_processing,
        selectedImage=remover.selected.origin if remover.selected else None,
        hasResult=remover.processed is not None,
        lastError=remover.last_error,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/state", response_model=StateResponse)
def state(remover: RemoverSession = Depends(get_remover)):
    return _state(remover)


@app.put("/mode", response_model=StateResponse)
def set_mode(body: ModeRequest, remover: RemoverSession = Depends(get_remover)):
    remover.set_mode(body.mode)
    return _state(remover)


@app.post("/image", response_model=StateResponse)
def upload_image(file: UploadFile = File(...), remover: RemoverSession = Depends(get_remover)):
    data = file.file.read(config.get_settings().max_image_bytes + 1)
    try:
        remover.select_upload(data, file.filename)
    except (NoImageSelectedError, UnsupportedImageError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _state(remover)


@app.post("/image/url", response_model=StateResponse)
def select_image_url(body: ImageUrlRequest, remover: RemoverSession = Depends(get_remover)):
    try:
        remover.select_url(str(body.imageUrl))
    except (NoImageSelectedError, UnsupportedImageError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _state(remover)


@app.post("/remove-bg")
def remove_bg(remover: RemoverSession = Depends(get_remover)):
    if remover.selected is None:
        raise HTTPException(status_code=400, detail="No image selected")
    try:
        result = remover.process()
    except ProcessingBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if result is None:
        raise HTTPException(
            status_code=502,
            detail=f"Background removal failed: {remover.last_error or 'unknown error'}",
        )
    return Response(content=to_png_bytes(result), media_type="image/png")


@app.get("/result")
def download_result(remover: RemoverSession = Depends(get_remover)):
    png_bytes = remover.download_bytes()
    if png_bytes is None:
        raise HTTPException(status_code=404, detail="No processed image")
    return Response(
        content=png_bytes,
        media_type="image/png",
        headers={"Content-Disposition": content_disposition()},
    )
