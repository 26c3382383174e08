"""Frame-to-frame head movement tracking.

The tracker is a pure function: the previous reference point goes in, the
new one comes out together with the warning text and the overlay to draw.
The caller owns the state between frames.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from headwatch.ml.face_detector import Point

if TYPE_CHECKING:
    from collections.abc import Sequence

    from headwatch.ml.face_detector import FaceDetection

DEFAULT_THRESHOLD: float = 5.0
DEFAULT_REFERENCE_LANDMARKS: tuple[int, int] = (2, 3)

NO_FACE_WARNING = "No face detected"
MOVEMENT_WARNING_PREFIX = "Head movement detected"


@dataclass(frozen=True)
class Segment:
    start: Point
    end: Point


@dataclass(frozen=True)
class Overlay:
    """Drawing instructions for one frame."""

    box: tuple[Point, Point] | None = None
    markers: tuple[Point, ...] = ()
    movement: Segment | None = None

    @property
    def is_empty(self) -> bool:
        return self.box is None and not self.markers and self.movement is None


@dataclass(frozen=True)
class FrameResult:
    """Outcome of processing one frame."""

    position: Point | None
    warning: str
    overlay: Overlay = field(default_factory=Overlay)
    movement: Point | None = None
    directions: tuple[str, ...] = ()

    @property
    def face_detected(self) -> bool:
        return self.position is not None


def reference_point(face: FaceDetection, indices: tuple[int, int] = DEFAULT_REFERENCE_LANDMARKS) -> Point:
    """Return the midpoint of two landmarks of ``face``.

    Raises:
        ValueError: If the face does not carry the requested landmarks.
    """
    first, second = indices
    count = len(face.landmarks)
    if not (0 <= first < count and 0 <= second < count):
        raise ValueError(f"Landmark indices {indices} out of range for a face with {count} landmarks")
    a = face.landmarks[first]
    b = face.landmarks[second]
    return Point((a.x + b.x) / 2, (a.y + b.y) / 2)


def movement_directions(dx: float, dy: float, threshold: float = DEFAULT_THRESHOLD) -> tuple[str, ...]:
    """Name the axes on which a displacement exceeds ``threshold``.

    Image coordinates grow to the right and downwards.
    """
    directions: list[str] = []
    if abs(dx) > threshold:
        directions.append("right" if dx > 0 else "left")
    if abs(dy) > threshold:
        directions.append("down" if dy > 0 else "up")
    return tuple(directions)


def movement_warning(directions: Sequence[str]) -> str:
    """Format the user-facing warning; empty when nothing moved."""
    if not directions:
        return ""
    return f"{MOVEMENT_WARNING_PREFIX}: {' and '.join(directions)}!"


def track_frame(
    faces: Sequence[FaceDetection],
    previous: Point | None,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    reference_landmarks: tuple[int, int] = DEFAULT_REFERENCE_LANDMARKS,
) -> FrameResult:
    """Compare the first detected face against the previous reference point.

    Args:
        faces: Detector output for the current frame, best face first.
        previous: Reference point from the last frame that had a face, or None.
        threshold: Per-axis displacement (pixels) above which movement is flagged.
        reference_landmarks: Landmark indices whose midpoint is tracked.

    Returns:
        The new tracked position, warning text and overlay for this frame.
    """
    if not faces:
        return FrameResult(position=None, warning=NO_FACE_WARNING)

    face = faces[0]
    current = reference_point(face, reference_landmarks)

    if previous is None:
        overlay = Overlay(box=(face.top_left, face.bottom_right), markers=face.landmarks)
        return FrameResult(position=current, warning="", overlay=overlay)

    dx = current.x - previous.x
    dy = current.y - previous.y
    directions = movement_directions(dx, dy, threshold)
    overlay = Overlay(
        box=(face.top_left, face.bottom_right),
        markers=face.landmarks,
        movement=Segment(start=previous, end=current),
    )
    return FrameResult(
        position=current,
        warning=movement_warning(directions),
        overlay=overlay,
        movement=Point(dx, dy),
        directions=directions,
    )
