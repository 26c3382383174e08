"""Face detection.

Implementations: YuNet (2023mar, float and int8) via ONNX Runtime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple, Protocol

import cv2
import numpy as np

from headwatch.ml.preprocessing import prepare_frame, to_blob

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from headwatch.config import Settings
    from headwatch.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

YUNET_STRIDES: tuple[int, ...] = (8, 16, 32)
YUNET_LANDMARKS = 5


class Point(NamedTuple):
    """A location in frame pixel coordinates."""

    x: float
    y: float


@dataclass(frozen=True)
class FaceDetection:
    """A single detected face.

    Coordinates are in pixel space of the frame passed to the detector.
    YuNet landmark order: right eye, left eye, nose tip, right mouth
    corner, left mouth corner.
    """

    top_left: Point
    bottom_right: Point
    landmarks: tuple[Point, ...]
    score: float = 1.0

    @property
    def width(self) -> float:
        return self.bottom_right.x - self.top_left.x

    @property
    def height(self) -> float:
        return self.bottom_right.y - self.top_left.y


class FaceDetector(Protocol):
    """Protocol for face detection models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def detect(self, image: NDArray[np.uint8]) -> list[FaceDetection]:
        """Detect faces in an image.

        Args:
            image: HxWx3 BGR uint8 array.

        Returns:
            Detections ordered by confidence, best first.
        """
        ...


def non_max_suppression(
    boxes: NDArray[np.float32],
    scores: NDArray[np.float32],
    iou_threshold: float,
    top_k: int | None = None,
) -> list[int]:
    """NMS over ``(x1, y1, x2, y2)`` boxes using OpenCV's ``NMSBoxes``.

    ``top_k`` caps the number of highest-scoring candidates considered, the
    same way OpenCV's own YuNet wrapper applies it.

    Returns:
        Indices of the kept boxes, highest score first.
    """
    if len(boxes) == 0:
        return []

    rects = np.column_stack((boxes[:, :2], boxes[:, 2:] - boxes[:, :2])).tolist()
    keep = cv2.dnn.NMSBoxes(rects, scores.tolist(), 0.0, iou_threshold, top_k=top_k or 0)
    return [int(i) for i in np.asarray(keep).reshape(-1)]


def decode_yunet(
    outputs: dict[str, NDArray[np.float32]],
    input_height: int,
    input_width: int,
    score_threshold: float,
) -> tuple[NDArray[np.float32], NDArray[np.float32], NDArray[np.float32]]:
    """Decode the per-stride YuNet heads into boxes, scores and landmarks.

    Args:
        outputs: Mapping of output name (``cls_8``, ``obj_8``, ``bbox_8``,
            ``kps_8``, ... for every stride) to its array.
        input_height: Height of the tensor fed to the model.
        input_width: Width of the tensor fed to the model.
        score_threshold: Minimum ``sqrt(cls * obj)`` to keep a candidate.

    Returns:
        ``(boxes Nx4 as x1,y1,x2,y2, scores N, landmarks Nx5x2)``.
    """
    all_boxes: list[NDArray[np.float32]] = []
    all_scores: list[NDArray[np.float32]] = []
    all_kps: list[NDArray[np.float32]] = []

    for stride in YUNET_STRIDES:
        cols = input_width // stride
        rows = input_height // stride
        cls = np.clip(outputs[f"cls_{stride}"].reshape(-1), 0.0, 1.0)
        obj = np.clip(outputs[f"obj_{stride}"].reshape(-1), 0.0, 1.0)
        bbox = outputs[f"bbox_{stride}"].reshape(-1, 4)
        kps = outputs[f"kps_{stride}"].reshape(-1, YUNET_LANDMARKS * 2)

        count = rows * cols
        if cls.shape[0] != count:
            raise ValueError(f"YuNet output for stride {stride} has {cls.shape[0]} anchors, expected {count}")

        row_idx, col_idx = np.divmod(np.arange(count), cols)
        scores = np.sqrt(cls * obj)
        mask = scores >= score_threshold
        if not np.any(mask):
            continue

        row_idx = row_idx[mask].astype(np.float32)
        col_idx = col_idx[mask].astype(np.float32)
        bbox = bbox[mask]
        kps = kps[mask]

        cx = (col_idx + bbox[:, 0]) * stride
        cy = (row_idx + bbox[:, 1]) * stride
        w = np.exp(bbox[:, 2]) * stride
        h = np.exp(bbox[:, 3]) * stride
        boxes = np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=1)

        points = kps.reshape(-1, YUNET_LANDMARKS, 2).copy()
        points[:, :, 0] = (points[:, :, 0] + col_idx[:, None]) * stride
        points[:, :, 1] = (points[:, :, 1] + row_idx[:, None]) * stride

        all_boxes.append(boxes.astype(np.float32))
        all_scores.append(scores[mask].astype(np.float32))
        all_kps.append(points.astype(np.float32))

    if not all_scores:
        return (
            np.zeros((0, 4), dtype=np.float32),
            np.zeros((0,), dtype=np.float32),
            np.zeros((0, YUNET_LANDMARKS, 2), dtype=np.float32),
        )
    return np.concatenate(all_boxes), np.concatenate(all_scores), np.concatenate(all_kps)


class YuNetFaceDetector:
    """YuNet face detector running on an ONNX Runtime session."""

    def __init__(
        self,
        session: InferenceSession,
        model_name: str = "yunet_2023mar",
        score_threshold: float = 0.6,
        nms_threshold: float = 0.3,
        top_k: int = 50,
    ) -> None:
        self._session = session
        self._model_name = model_name
        self._score_threshold = score_threshold
        self._nms_threshold = nms_threshold
        self._top_k = top_k

        model_input = session.get_inputs()[0]
        self._input_name = model_input.name
        self._input_size = _static_input_size(model_input.shape)
        self._output_names = [output.name for output in session.get_outputs()]

    @property
    def model_name(self) -> str:
        return self._model_name

    def detect(self, image: NDArray[np.uint8]) -> list[FaceDetection]:
        prepared = prepare_frame(image, self._input_size)
        input_h, input_w = prepared.image.shape[:2]
        raw = self._session.run(self._output_names, {self._input_name: to_blob(prepared.image)})
        outputs = dict(zip(self._output_names, raw, strict=True))

        boxes, scores, landmarks = decode_yunet(outputs, input_h, input_w, self._score_threshold)
        keep = non_max_suppression(boxes, scores, self._nms_threshold, self._top_k)

        faces: list[FaceDetection] = []
        for i in keep:
            x1, y1, x2, y2 = (float(v) / prepared.scale for v in boxes[i])
            faces.append(
                FaceDetection(
                    top_left=Point(max(0.0, x1), max(0.0, y1)),
                    bottom_right=Point(min(float(prepared.source_width), x2), min(float(prepared.source_height), y2)),
                    landmarks=tuple(Point(float(x) / prepared.scale, float(y) / prepared.scale) for x, y in landmarks[i]),
                    score=float(scores[i]),
                )
            )
        logger.debug("Detected %d face(s) with %s", len(faces), self._model_name)
        return faces


def _static_input_size(shape: list[object]) -> tuple[int, int] | None:
    """Return (height, width) when the model input is fixed, None when dynamic."""
    if len(shape) != 4:
        return None
    height, width = shape[2], shape[3]
    if isinstance(height, int) and isinstance(width, int) and height > 0 and width > 0:
        return height, width
    return None


def load_face_detector(manager: ModelManager, settings: Settings) -> YuNetFaceDetector:
    """Create the configured detector on top of a managed session."""
    session = manager.get_session(settings.face_detection_model)
    logger.info("Face detector %s ready", settings.face_detection_model)
    return YuNetFaceDetector(
        session,
        model_name=settings.face_detection_model,
        score_threshold=settings.score_threshold,
        nms_threshold=settings.nms_threshold,
        top_k=settings.top_k,
    )
