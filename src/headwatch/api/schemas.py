"""Pydantic request/response schemas for the headwatch API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from headwatch.ml.face_detector import FaceDetection
    from headwatch.ml.face_detector import Point as DetectorPoint
    from headwatch.tracking.monitor import MonitorStatus
    from headwatch.tracking.tracker import Overlay


class Point(BaseModel):
    """A location in frame pixel coordinates."""

    x: float
    y: float

    @classmethod
    def from_point(cls, point: DetectorPoint) -> Point:
        return cls(x=point.x, y=point.y)


class DetectedFace(BaseModel):
    """A single detected face with bounding box, landmarks and score."""

    top_left: Point
    bottom_right: Point
    landmarks: list[Point] = Field(description="Right eye, left eye, nose tip, right and left mouth corners")
    score: float = Field(description="Detection confidence (0.0-1.0)")

    @classmethod
    def from_detection(cls, face: FaceDetection) -> DetectedFace:
        return cls(
            top_left=Point.from_point(face.top_left),
            bottom_right=Point.from_point(face.bottom_right),
            landmarks=[Point.from_point(p) for p in face.landmarks],
            score=face.score,
        )


class DetectFacesResponse(BaseModel):
    """Response for the face detection endpoint."""

    faces: list[DetectedFace]
    reference_point: Point | None = Field(
        default=None,
        description="Tracked reference point of the first face, if any",
    )


class MovementSegment(BaseModel):
    start: Point
    end: Point


class OverlayModel(BaseModel):
    """Drawing instructions for the latest frame."""

    box: tuple[Point, Point] | None = None
    markers: list[Point] = Field(default_factory=list)
    movement: MovementSegment | None = None

    @classmethod
    def from_overlay(cls, overlay: Overlay) -> OverlayModel:
        box = None
        if overlay.box is not None:
            box = (Point.from_point(overlay.box[0]), Point.from_point(overlay.box[1]))
        movement = None
        if overlay.movement is not None:
            movement = MovementSegment(
                start=Point.from_point(overlay.movement.start),
                end=Point.from_point(overlay.movement.end),
            )
        return cls(box=box, markers=[Point.from_point(p) for p in overlay.markers], movement=movement)


class StatusResponse(BaseModel):
    """Current tracker state, as shown on the page."""

    warning: str = Field(description="Active warning, empty when none")
    debug_info: str = Field(description="Status line")
    is_initialized: bool = Field(description="Face detection model loaded")
    has_permission: bool = Field(description="Camera could be opened")
    tracking: bool
    frames_processed: int
    position: Point | None = None
    overlay: OverlayModel
    version: int

    @classmethod
    def from_status(cls, status: MonitorStatus) -> StatusResponse:
        return cls(
            warning=status.warning,
            debug_info=status.debug_info,
            is_initialized=status.is_initialized,
            has_permission=status.has_permission,
            tracking=status.tracking,
            frames_processed=status.frames_processed,
            position=Point.from_point(status.position) if status.position is not None else None,
            overlay=OverlayModel.from_overlay(status.overlay),
            version=status.version,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int
    initialized: bool
    tracking: bool


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task, e.g. 'face_detection'")
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str
    description: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
