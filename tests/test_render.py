"""Tests for overlay rendering."""

from __future__ import annotations

import numpy as np

from headwatch.ml.face_detector import Point
from headwatch.render import BOX_COLOR, MOVEMENT_COLOR, draw_overlay, encode_jpeg
from headwatch.tracking.tracker import Overlay, Segment


def _blank() -> np.ndarray:
    return np.zeros((100, 100, 3), dtype=np.uint8)


def test_draws_box_markers_and_movement() -> None:
    frame = _blank()
    overlay = Overlay(
        box=(Point(10, 10), Point(50, 50)),
        markers=(Point(30, 30),),
        movement=Segment(start=Point(5, 80), end=Point(90, 80)),
    )

    canvas = draw_overlay(frame, overlay)

    assert tuple(canvas[30, 10]) == BOX_COLOR
    assert tuple(canvas[30, 30]) == BOX_COLOR
    assert tuple(canvas[80, 50]) == MOVEMENT_COLOR
    assert not frame.any()


def test_empty_overlay_leaves_frame_untouched() -> None:
    canvas = draw_overlay(_blank(), Overlay())
    assert not canvas.any()


def test_encode_jpeg() -> None:
    data = encode_jpeg(_blank(), quality=50)
    assert data[:2] == b"\xff\xd8"
