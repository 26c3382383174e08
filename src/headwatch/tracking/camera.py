"""Camera access through OpenCV."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import cv2

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from headwatch.config import Settings

logger = logging.getLogger(__name__)

FacingMode = Literal["user", "environment"]

_FACING_MODE_INDEX: dict[str, int] = {"user": 0, "environment": 1}


class CameraUnavailableError(RuntimeError):
    """The camera could not be opened or stopped delivering frames."""


@dataclass(frozen=True)
class CameraConstraints:
    """Requested stream parameters. The device may not honour all of them."""

    width: int = 640
    height: int = 480
    facing_mode: FacingMode = "user"
    frame_rate: int = 30
    device_index: int | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> CameraConstraints:
        return cls(
            width=settings.camera_width,
            height=settings.camera_height,
            facing_mode=settings.camera_facing_mode,
            frame_rate=settings.camera_frame_rate,
            device_index=settings.camera_index,
        )

    def resolve_device(self) -> int:
        """Pick the capture index: an explicit index wins over the facing mode."""
        if self.device_index is not None:
            return self.device_index
        return _FACING_MODE_INDEX[self.facing_mode]


class CameraStream:
    """An exclusively owned, open capture device."""

    def __init__(self, capture: cv2.VideoCapture, device: int) -> None:
        self._capture = capture
        self._device = device
        self._lock = threading.Lock()
        self._released = False

    @property
    def device(self) -> int:
        return self._device

    @property
    def is_open(self) -> bool:
        return not self._released and self._capture.isOpened()

    @property
    def resolution(self) -> tuple[int, int]:
        """Actual (width, height) the device delivers."""
        width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return width, height

    def read(self) -> NDArray[np.uint8]:
        """Grab the next BGR frame.

        Raises:
            CameraUnavailableError: If the stream is closed or the read fails.
        """
        with self._lock:
            if self._released:
                raise CameraUnavailableError("Camera stream has been released")
            ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CameraUnavailableError(f"Failed to read a frame from camera {self._device}")
        return frame

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            self._capture.release()
        logger.info("Camera %d released", self._device)


def open_camera(constraints: CameraConstraints) -> CameraStream:
    """Open the camera and apply the requested resolution and frame rate.

    Raises:
        CameraUnavailableError: If the device does not exist, is busy, or
            access was denied.
    """
    device = constraints.resolve_device()
    capture = cv2.VideoCapture(device)
    if not capture.isOpened():
        capture.release()
        raise CameraUnavailableError(f"Could not open camera {device} (facing_mode={constraints.facing_mode})")

    capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
    capture.set(cv2.CAP_PROP_FPS, constraints.frame_rate)

    stream = CameraStream(capture, device)
    width, height = stream.resolution
    logger.info(
        "Camera %d opened (requested %dx%d@%d, got %dx%d)",
        device,
        constraints.width,
        constraints.height,
        constraints.frame_rate,
        width,
        height,
    )
    return stream
