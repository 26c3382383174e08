"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from headwatch.api.pages import pages_router
from headwatch.api.routes import router, ws_router
from headwatch.config import Settings, get_settings
from headwatch.ml.face_detector import load_face_detector
from headwatch.ml.inference import InferencePool
from headwatch.ml.model_manager import OnnxModelManager
from headwatch.tracking.camera import CameraConstraints, open_camera
from headwatch.tracking.monitor import HeadMonitor

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def build_monitor(settings: Settings, pool: InferencePool, model_manager: OnnxModelManager) -> HeadMonitor:
    """Wire the monitor to the ONNX detector and the OpenCV camera."""
    return HeadMonitor(
        settings,
        pool,
        detector_factory=partial(load_face_detector, model_manager, settings),
        camera_factory=partial(open_camera, CameraConstraints.from_settings(settings)),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: bootstrap tracking on startup, release the camera on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    logger.info(
        "Starting headwatch (device=%s, detector=%s, camera=%dx%d@%d, threshold=%.1f, landmarks=%s)",
        settings.device,
        settings.face_detection_model,
        settings.camera_width,
        settings.camera_height,
        settings.camera_frame_rate,
        settings.movement_threshold,
        settings.reference_landmarks,
    )

    inference_pool = InferencePool(settings)
    model_manager = OnnxModelManager(settings)
    monitor = build_monitor(settings, inference_pool, model_manager)
    app.state.inference_pool = inference_pool
    app.state.model_manager = model_manager
    app.state.monitor = monitor

    if await monitor.start():
        logger.info("headwatch ready")
    else:
        logger.warning("headwatch running without tracking: %s", monitor.status().debug_info)
    yield

    logger.info("Shutting down headwatch")
    await monitor.stop()
    model_manager.shutdown()
    inference_pool.shutdown()
    logger.info("headwatch shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="headwatch",
        description="Webcam head movement detection on top of a face landmark model",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    application.include_router(ws_router)
    application.include_router(pages_router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run("headwatch.main:app", host=settings.host, port=settings.port, log_level="info")
