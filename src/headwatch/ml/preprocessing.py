"""Image preprocessing for the face detector.

Handles decoding of uploaded image bytes, size validation, and conversion
of BGR frames into the NCHW float tensor the YuNet graph expects.
"""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np
from numpy.typing import NDArray

DETECTOR_STRIDE = 32


@dataclass(frozen=True)
class PreparedFrame:
    """A frame resized and padded for the detector.

    ``scale`` maps detector-space coordinates back to the source frame:
    ``source = detector / scale``.
    """

    image: NDArray[np.uint8]
    scale: float
    source_width: int
    source_height: int


def decode_image(image_bytes: bytes, max_pixels: int, max_file_size: int) -> NDArray[np.uint8]:
    """Decode raw image bytes into a BGR uint8 numpy array.

    Raises:
        ValueError: If the image is empty, too large, or cannot be decoded.
    """
    if not image_bytes:
        raise ValueError("Empty image upload")
    if len(image_bytes) > max_file_size:
        raise ValueError(f"Image exceeds maximum file size of {max_file_size} bytes")

    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Unsupported or corrupt image data")

    height, width = image.shape[:2]
    if height * width > max_pixels:
        raise ValueError(f"Image has {height * width} pixels, limit is {max_pixels}")
    return image


def pad_to_stride(image: NDArray[np.uint8], stride: int = DETECTOR_STRIDE) -> NDArray[np.uint8]:
    """Zero-pad the bottom/right edges so both sides are multiples of ``stride``."""
    height, width = image.shape[:2]
    pad_h = (stride - height % stride) % stride
    pad_w = (stride - width % stride) % stride
    if pad_h == 0 and pad_w == 0:
        return image
    return cv2.copyMakeBorder(image, 0, pad_h, 0, pad_w, cv2.BORDER_CONSTANT, value=(0, 0, 0))


def prepare_frame(
    image: NDArray[np.uint8],
    input_size: tuple[int, int] | None = None,
) -> PreparedFrame:
    """Fit a frame into the detector input.

    Args:
        image: HxWx3 BGR uint8 array.
        input_size: Fixed (height, width) of the model input, or None when
            the model accepts any size that is a multiple of the stride.
    """
    height, width = image.shape[:2]
    if input_size is None:
        return PreparedFrame(image=pad_to_stride(image), scale=1.0, source_width=width, source_height=height)

    target_h, target_w = input_size
    scale = min(target_h / height, target_w / width)
    resized_w = max(1, round(width * scale))
    resized_h = max(1, round(height * scale))
    resized = image if scale == 1.0 else cv2.resize(image, (resized_w, resized_h))
    padded = cv2.copyMakeBorder(
        resized,
        0,
        target_h - resized_h,
        0,
        target_w - resized_w,
        cv2.BORDER_CONSTANT,
        value=(0, 0, 0),
    )
    return PreparedFrame(image=padded, scale=scale, source_width=width, source_height=height)


def to_blob(image: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Convert an HxWx3 BGR image into a 1x3xHxW float32 tensor (no normalization)."""
    return np.ascontiguousarray(image.transpose(2, 0, 1)[np.newaxis], dtype=np.float32)
