"""
API routes for the transcription dispatch service.
"""

import json
import logging
import os
from typing import Any, NoReturn

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from scribe_dispatch.config import DEFAULT_ADAPTER, MAX_UPLOAD_SIZE_MB
from scribe_dispatch.core.errors import (
    AdapterError,
    EngineExecutionFailed,
    ExecutionCancelled,
    ExecutionTimeout,
    InvalidInput,
    ParameterError,
    ProvisioningFailed,
    UnsupportedPlatform,
)

logger = logging.getLogger(__name__)

# Allowed audio MIME types
ALLOWED_AUDIO_TYPES = {
    "audio/wav",
    "audio/x-wav",
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "audio/x-m4a",
    "audio/flac",
    "audio/ogg",
    "audio/webm",
}

# Extension fallback for application/octet-stream uploads
ALLOWED_AUDIO_EXTENSIONS = {
    ".wav",
    ".mp3",
    ".m4a",
    ".mp4",
    ".flac",
    ".ogg",
    ".webm",
}

# Adapter error → HTTP status. Order matters: first match wins.
_ERROR_STATUS: list[tuple[type[AdapterError], int]] = [
    (InvalidInput, 400),
    (ParameterError, 400),
    (UnsupportedPlatform, 501),
    (ProvisioningFailed, 503),
    (ExecutionTimeout, 504),
    (ExecutionCancelled, 503),
    (EngineExecutionFailed, 502),
]


class Segment(BaseModel):
    """Timed segment. start/end are null when the engine produced no usable value."""

    id: int
    start: float | None = None
    end: float | None = None
    text: str


class TranscriptionResponse(BaseModel):
    text: str
    language: str | None = None
    model: str
    adapter: str
    segments: list[Segment] = Field(default_factory=list, description="Timed segments in engine order")


class EnvironmentResponse(BaseModel):
    adapter: str
    ready: bool
    path: str


router = APIRouter()


def _status_for(error: AdapterError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def _parse_parameters(raw: str) -> dict[str, Any]:
    try:
        params = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"parameters must be a JSON object: {e}") from None
    if not isinstance(params, dict):
        raise HTTPException(status_code=400, detail="parameters must be a JSON object")
    return params


def _raise_adapter_error(request_id: str, error: AdapterError) -> NoReturn:
    status_code = _status_for(error)
    if status_code >= 500:
        logger.error(f"[{request_id}] {type(error).__name__}: {error}")
    else:
        logger.warning(f"[{request_id}] Rejected: {error.message}")
    raise HTTPException(
        status_code=status_code,
        detail={
            "error": type(error).__name__,
            "message": error.message,
            "retryable": error.retryable,
            "request_id": request_id,
        },
    ) from None


@router.post("/v1/audio/transcriptions")
async def create_transcription(
    request: Request,
    file: UploadFile = File(..., description="Audio file (wav, mp3, m4a, etc.)"),
    adapter: str = Form(DEFAULT_ADAPTER, description="Adapter name, e.g. 'faster_whisper', 'mlx_whisper'"),
    parameters: str = Form("{}", description="JSON object of engine parameters"),
) -> TranscriptionResponse:
    """Transcribe an audio file with the named adapter."""
    request_id = getattr(request.state, "request_id", "unknown")

    # 1. File type check
    is_valid_type = file.content_type in ALLOWED_AUDIO_TYPES
    if not is_valid_type and file.content_type == "application/octet-stream":
        file_ext = os.path.splitext(file.filename or "")[1].lower()
        is_valid_type = file_ext in ALLOWED_AUDIO_EXTENSIONS

    if not is_valid_type:
        logger.warning(f"[{request_id}] Unsupported file: {file.filename} (type={file.content_type})")
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported file type. Expected audio file, got: {file.content_type}",
        )

    # 2. File size check
    file.file.seek(0, 2)
    file_size_mb = file.file.tell() / (1024 * 1024)
    if file_size_mb > MAX_UPLOAD_SIZE_MB:
        logger.warning(f"[{request_id}] File too large: {file_size_mb:.2f}MB (max: {MAX_UPLOAD_SIZE_MB}MB)")
        raise HTTPException(
            status_code=413,
            detail=f"File size exceeds maximum allowed ({MAX_UPLOAD_SIZE_MB} MB)",
        )
    file.file.seek(0)

    params = _parse_parameters(parameters)
    service = request.app.state.service

    logger.info(f"[{request_id}] Processing file: {file.filename} ({file_size_mb:.2f}MB, adapter={adapter})")

    try:
        result = await service.submit(file, adapter, params, request_id=request_id)
    except AdapterError as e:
        _raise_adapter_error(request_id, e)
    except ValueError as e:
        # unknown adapter name
        raise HTTPException(status_code=400, detail=str(e)) from None
    except RuntimeError as e:
        if "Queue is full" in str(e):
            raise HTTPException(
                status_code=503, detail="Server is busy (Queue Full). Please try again later."
            ) from None
        logger.error(f"[{request_id}] Runtime error: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error occurred. (Request ID: {request_id})",
        ) from None

    return TranscriptionResponse(
        text=result.text,
        language=result.language,
        model=result.model_used,
        adapter=adapter,
        segments=[Segment(id=i, **segment.to_dict()) for i, segment in enumerate(result.segments)],
    )


@router.post("/v1/adapters/{name}/environment")
async def prepare_environment(request: Request, name: str) -> EnvironmentResponse:
    """Provision an adapter's environment ahead of the first job."""
    request_id = getattr(request.state, "request_id", "unknown")
    service = request.app.state.service
    try:
        await service.prepare(name)
    except AdapterError as e:
        _raise_adapter_error(request_id, e)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None

    adapter = service.registry.get(name)
    return EnvironmentResponse(adapter=name, ready=adapter.environment.ready, path=str(adapter.environment.path))
