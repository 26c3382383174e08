"""Bootstrap and tracking loop.

HeadMonitor loads the detector, opens the camera, then runs one frame at a
time: read -> detect -> track_frame -> publish. The previous reference
point lives in the loop and is threaded through track_frame; everything
readers see goes through an immutable MonitorStatus snapshot.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from headwatch.render import draw_overlay, encode_jpeg
from headwatch.tracking.camera import CameraUnavailableError
from headwatch.tracking.tracker import Overlay, track_frame

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np
    from numpy.typing import NDArray

    from headwatch.config import Settings
    from headwatch.ml.face_detector import FaceDetector, Point
    from headwatch.ml.inference import InferencePool
    from headwatch.tracking.camera import CameraStream

logger = logging.getLogger(__name__)

MODEL_ERROR_WARNING = "Error initializing face detection model. Please make sure the model can be downloaded."
CAMERA_PERMISSION_WARNING = "Please allow camera access to use this feature"


def _describe(exc: BaseException) -> str:
    # Some exceptions (TimeoutError() from the pool) carry no message.
    return str(exc) or type(exc).__name__


@dataclass(frozen=True)
class MonitorStatus:
    """What the presentation layer shows."""

    warning: str = ""
    debug_info: str = "Initializing..."
    is_initialized: bool = False
    has_permission: bool = True
    tracking: bool = False
    frames_processed: int = 0
    position: Point | None = None
    overlay: Overlay = field(default_factory=Overlay)
    version: int = 0


class HeadMonitor:
    """Owns the detector, the camera stream and the tracking loop."""

    def __init__(
        self,
        settings: Settings,
        pool: InferencePool,
        detector_factory: Callable[[], FaceDetector],
        camera_factory: Callable[[], CameraStream],
    ) -> None:
        self._settings = settings
        self._pool = pool
        self._detector_factory = detector_factory
        self._camera_factory = camera_factory

        self._detector: FaceDetector | None = None
        self._camera: CameraStream | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()
        self._updated = asyncio.Condition()

        self._status = MonitorStatus()
        self._latest: tuple[NDArray[np.uint8], Overlay] | None = None

    # -- Public API ---------------------------------------------------------

    @property
    def detector(self) -> FaceDetector | None:
        return self._detector

    @property
    def has_camera(self) -> bool:
        return self._camera is not None

    def status(self) -> MonitorStatus:
        return self._status

    async def start(self) -> bool:
        """Load the model, open the camera and launch the tracking loop.

        Initialization failures are reported through the status and are not
        retried.

        Returns:
            True when the tracking loop was started.
        """
        if not await self._load_detector():
            return False
        if not self._settings.start_camera:
            await self._publish(debug_info="Camera disabled")
            return False
        if not await self._open_camera():
            return False

        self._stop.clear()
        self._task = asyncio.create_task(self.run(), name="headwatch-tracker")
        return True

    async def run(self) -> None:
        """Process frames until stop() is called."""
        if self._detector is None or self._camera is None:
            raise RuntimeError("HeadMonitor.run() requires a loaded detector and an open camera")

        detector = self._detector
        camera = self._camera
        threshold = self._settings.movement_threshold
        reference_landmarks = self._settings.reference_landmarks
        previous: Point | None = None

        logger.info("Tracking loop started")
        await self._publish(tracking=True, debug_info="Video started - beginning detection")

        while not self._stop.is_set():
            try:
                frame = await self._pool.run(camera.read)
            except CameraUnavailableError as exc:
                logger.error("Camera read failed: %s", exc)
                await self._publish(debug_info=f"Camera Error: {_describe(exc)}", overlay=Overlay())
                await self._idle()
                continue
            except Exception as exc:
                logger.exception("Error reading camera frame")
                await self._publish(debug_info=f"Camera Error: {_describe(exc)}", overlay=Overlay())
                await self._idle()
                continue

            try:
                faces = await self._pool.run(detector.detect, frame)
                result = track_frame(
                    faces,
                    previous,
                    threshold=threshold,
                    reference_landmarks=reference_landmarks,
                )
            except Exception as exc:
                logger.exception("Error in face detection")
                self._latest = (frame, Overlay())
                await self._publish(debug_info=f"Detection error: {_describe(exc)}", overlay=Overlay())
                await self._idle()
                continue

            if result.directions:
                logger.info("Movement detected: %s", " and ".join(result.directions))
            elif not result.face_detected:
                logger.debug("No face detected in frame")

            previous = result.position
            self._latest = (frame, result.overlay)
            await self._publish(
                warning=result.warning,
                debug_info="Tracking face movements..." if result.face_detected else "No face detected in frame",
                position=result.position,
                overlay=result.overlay,
                frames_processed=self._status.frames_processed + 1,
            )
            await self._idle()

        logger.info("Tracking loop stopped after %d frames", self._status.frames_processed)

    async def stop(self) -> None:
        """Stop the loop and release the camera."""
        self._stop.set()
        if self._task is not None:
            task, self._task = self._task, None
            done, _ = await asyncio.wait({task}, timeout=self._settings.queue_timeout)
            if task not in done:
                logger.warning("Tracking loop did not stop in time, cancelling")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            elif not task.cancelled() and task.exception() is not None:
                logger.error("Tracking loop had failed", exc_info=task.exception())
        if self._camera is not None:
            self._camera.release()
            self._camera = None
        await self._publish(tracking=False)

    async def wait_for_update(self, after: int, timeout: float | None = None) -> MonitorStatus:
        """Wait until the status version moves past ``after``.

        Returns the current status on timeout.
        """
        async with self._updated:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._updated.wait_for(lambda: self._status.version > after),
                    timeout=timeout,
                )
        return self._status

    def annotated_jpeg(self) -> bytes | None:
        """Latest frame with its overlay drawn, JPEG encoded; None before the first frame."""
        latest = self._latest
        if latest is None:
            return None
        frame, overlay = latest
        return encode_jpeg(draw_overlay(frame, overlay), self._settings.jpeg_quality)

    # -- Internal -----------------------------------------------------------

    async def _load_detector(self) -> bool:
        await self._publish(debug_info="Loading face detection model...")
        try:
            self._detector = await self._pool.run(self._detector_factory)
        except Exception as exc:
            logger.exception("Error initializing face detector")
            await self._publish(debug_info=f"Error: {_describe(exc)}", warning=MODEL_ERROR_WARNING)
            return False
        logger.info("Face detection model %s loaded", self._detector.model_name)
        await self._publish(is_initialized=True, debug_info="Model loaded successfully!")
        return True

    async def _open_camera(self) -> bool:
        await self._publish(debug_info="Setting up camera...")
        try:
            self._camera = await self._pool.run(self._camera_factory)
        except CameraUnavailableError as exc:
            logger.error("Error accessing camera: %s", exc)
            await self._publish(
                debug_info=f"Camera Error: {_describe(exc)}",
                has_permission=False,
                warning=CAMERA_PERMISSION_WARNING,
            )
            return False
        await self._publish(debug_info="Camera setup complete")
        return True

    async def _publish(self, **changes: object) -> None:
        async with self._updated:
            self._status = replace(self._status, version=self._status.version + 1, **changes)  # type: ignore[arg-type]
            self._updated.notify_all()

    async def _idle(self) -> None:
        # Sleeping on the stop event lets stop() interrupt the pause.
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=self._settings.idle_sleep)
