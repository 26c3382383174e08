"""Draw tracker overlays onto frames and encode them for streaming."""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from headwatch.tracking.tracker import Overlay

# BGR
BOX_COLOR = (0, 255, 0)
MARKER_COLOR = (0, 255, 0)
MOVEMENT_COLOR = (0, 0, 255)

BOX_THICKNESS = 2
MARKER_RADIUS = 3
MOVEMENT_THICKNESS = 3


def _px(value: float) -> int:
    return round(value)


def draw_overlay(frame: NDArray[np.uint8], overlay: Overlay) -> NDArray[np.uint8]:
    """Return a copy of ``frame`` with the box, landmarks and movement vector drawn."""
    canvas = frame.copy()
    if overlay.box is not None:
        top_left, bottom_right = overlay.box
        cv2.rectangle(
            canvas,
            (_px(top_left.x), _px(top_left.y)),
            (_px(bottom_right.x), _px(bottom_right.y)),
            BOX_COLOR,
            BOX_THICKNESS,
        )
    for point in overlay.markers:
        cv2.circle(canvas, (_px(point.x), _px(point.y)), MARKER_RADIUS, MARKER_COLOR, -1)
    if overlay.movement is not None:
        start, end = overlay.movement.start, overlay.movement.end
        cv2.line(canvas, (_px(start.x), _px(start.y)), (_px(end.x), _px(end.y)), MOVEMENT_COLOR, MOVEMENT_THICKNESS)
    return canvas


def encode_jpeg(frame: NDArray[np.uint8], quality: int = 80) -> bytes:
    """Encode a BGR frame as JPEG.

    Raises:
        ValueError: If OpenCV refuses to encode the frame.
    """
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()
