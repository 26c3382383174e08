"""API route definitions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Request, UploadFile, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse

from headwatch.api.middleware import verify_api_key, verify_websocket_key
from headwatch.api.schemas import (
    DetectedFace,
    DetectFacesResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    Point,
    StatusResponse,
)
from headwatch.ml.model_manager import MODEL_REGISTRY
from headwatch.ml.preprocessing import decode_image
from headwatch.tracking.tracker import reference_point

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from headwatch.config import Settings
    from headwatch.ml.face_detector import FaceDetection, FaceDetector
    from headwatch.ml.inference import InferencePool
    from headwatch.ml.model_manager import ModelManager
    from headwatch.tracking.monitor import HeadMonitor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])
ws_router = APIRouter(prefix="/api/v1")

MJPEG_BOUNDARY = "frame"
STREAM_POLL_SECONDS = 1.0


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_monitor(request: Request) -> HeadMonitor:
    monitor: HeadMonitor = request.app.state.monitor
    return monitor


def _get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(detail=detail).model_dump())


def _detect_upload(detector: FaceDetector, image_bytes: bytes, settings: Settings) -> list[FaceDetection]:
    image = decode_image(image_bytes, settings.max_image_pixels, settings.max_file_size)
    return detector.detect(image)


@router.post(
    "/detect-faces",
    response_model=DetectFacesResponse,
    responses={
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Detect faces in an image",
)
async def detect_faces(request: Request, file: UploadFile) -> DetectFacesResponse | JSONResponse:
    """Run the face detector on an uploaded image."""
    settings = _get_settings(request)
    detector = _get_monitor(request).detector
    if detector is None:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Face detection model is not loaded")

    image_bytes = await file.read()
    pool = _get_inference_pool(request)
    try:
        faces = await pool.run(_detect_upload, detector, image_bytes, settings)
        reference = reference_point(faces[0], settings.reference_landmarks) if faces else None
    except ValueError as exc:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))
    except TimeoutError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Detector is busy, try again later")

    logger.info("Detected %d face(s) in upload %s", len(faces), file.filename)
    return DetectFacesResponse(
        faces=[DetectedFace.from_detection(face) for face in faces],
        reference_point=Point.from_point(reference) if reference is not None else None,
    )


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Current tracking status",
)
async def get_status(request: Request) -> StatusResponse:
    """Return the warning, status line and overlay of the latest frame."""
    return StatusResponse.from_status(_get_monitor(request).status())


@router.get(
    "/video",
    response_model=None,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse}},
    summary="Annotated camera stream (MJPEG)",
)
async def video(request: Request) -> StreamingResponse | JSONResponse:
    """Stream camera frames with the tracking overlay drawn on them."""
    monitor = _get_monitor(request)
    if not monitor.has_camera:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Camera is not available")

    async def frames() -> AsyncIterator[bytes]:
        version = -1
        while monitor.has_camera and not await request.is_disconnected():
            current = await monitor.wait_for_update(version, timeout=STREAM_POLL_SECONDS)
            if current.version == version:
                continue
            version = current.version
            jpeg = await run_in_threadpool(monitor.annotated_jpeg)
            if jpeg is None:
                continue
            yield (
                f"--{MJPEG_BOUNDARY}\r\nContent-Type: image/jpeg\r\nContent-Length: {len(jpeg)}\r\n\r\n".encode()
                + jpeg
                + b"\r\n"
            )

    return StreamingResponse(frames(), media_type=f"multipart/x-mixed-replace; boundary={MJPEG_BOUNDARY}")


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@ws_router.websocket("/ws")
async def status_updates(
    websocket: WebSocket,
    _auth: Annotated[None, Depends(verify_websocket_key)],
) -> None:
    """Push the tracking status after every processed frame."""
    monitor: HeadMonitor = websocket.app.state.monitor
    await websocket.accept()
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    version = -1
    try:
        while not disconnected.done():
            current = await monitor.wait_for_update(version, timeout=STREAM_POLL_SECONDS)
            if current.version == version:
                continue
            version = current.version
            await websocket.send_json(StatusResponse.from_status(current).model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.debug("Status subscriber disconnected during send")
    finally:
        disconnected.cancel()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    monitor_status = _get_monitor(request).status()
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=_get_model_manager(request).get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
        initialized=monitor_status.is_initialized,
        tracking=monitor_status.tracking,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return available models and which one is configured."""
    settings = _get_settings(request)
    models = [
        ModelInfo(
            name=spec.name,
            task=spec.task,
            status="active" if spec.name == settings.face_detection_model else "available",
            license=spec.license,
            description=spec.description,
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)
