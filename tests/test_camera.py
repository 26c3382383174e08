"""Tests for OpenCV camera access."""

from __future__ import annotations

from unittest.mock import MagicMock, call, patch

import cv2
import numpy as np
import pytest
from fakes import make_settings

from headwatch.tracking.camera import CameraConstraints, CameraUnavailableError, open_camera


def _capture(opened: bool = True) -> MagicMock:
    capture = MagicMock()
    capture.isOpened.return_value = opened
    capture.get.side_effect = lambda prop: {cv2.CAP_PROP_FRAME_WIDTH: 640.0, cv2.CAP_PROP_FRAME_HEIGHT: 480.0}.get(
        prop, 0.0
    )
    return capture


class TestCameraConstraints:
    def test_defaults(self) -> None:
        constraints = CameraConstraints()
        assert (constraints.width, constraints.height, constraints.frame_rate) == (640, 480, 30)
        assert constraints.facing_mode == "user"

    def test_facing_mode_selects_device(self) -> None:
        assert CameraConstraints(facing_mode="user").resolve_device() == 0
        assert CameraConstraints(facing_mode="environment").resolve_device() == 1

    def test_explicit_index_wins(self) -> None:
        assert CameraConstraints(facing_mode="environment", device_index=3).resolve_device() == 3

    def test_from_settings(self) -> None:
        settings = make_settings(camera_width=1280, camera_height=720, camera_frame_rate=15, camera_index=2)
        constraints = CameraConstraints.from_settings(settings)
        assert constraints == CameraConstraints(width=1280, height=720, facing_mode="user", frame_rate=15, device_index=2)


class TestOpenCamera:
    @patch("headwatch.tracking.camera.cv2.VideoCapture")
    def test_applies_constraints(self, mock_capture_cls: MagicMock) -> None:
        capture = _capture()
        mock_capture_cls.return_value = capture

        stream = open_camera(CameraConstraints())

        mock_capture_cls.assert_called_once_with(0)
        capture.set.assert_has_calls(
            [
                call(cv2.CAP_PROP_FRAME_WIDTH, 640),
                call(cv2.CAP_PROP_FRAME_HEIGHT, 480),
                call(cv2.CAP_PROP_FPS, 30),
            ]
        )
        assert stream.device == 0
        assert stream.resolution == (640, 480)
        assert stream.is_open

    @patch("headwatch.tracking.camera.cv2.VideoCapture")
    def test_unavailable_device_raises(self, mock_capture_cls: MagicMock) -> None:
        capture = _capture(opened=False)
        mock_capture_cls.return_value = capture

        with pytest.raises(CameraUnavailableError, match="Could not open camera 0"):
            open_camera(CameraConstraints())
        capture.release.assert_called_once()

    @patch("headwatch.tracking.camera.cv2.VideoCapture")
    def test_read_returns_frame(self, mock_capture_cls: MagicMock) -> None:
        capture = _capture()
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        capture.read.return_value = (True, frame)
        mock_capture_cls.return_value = capture

        assert open_camera(CameraConstraints()).read() is frame

    @patch("headwatch.tracking.camera.cv2.VideoCapture")
    def test_failed_read_raises(self, mock_capture_cls: MagicMock) -> None:
        capture = _capture()
        capture.read.return_value = (False, None)
        mock_capture_cls.return_value = capture

        with pytest.raises(CameraUnavailableError, match="Failed to read"):
            open_camera(CameraConstraints()).read()

    @patch("headwatch.tracking.camera.cv2.VideoCapture")
    def test_release_is_idempotent(self, mock_capture_cls: MagicMock) -> None:
        capture = _capture()
        mock_capture_cls.return_value = capture
        stream = open_camera(CameraConstraints())

        stream.release()
        stream.release()

        capture.release.assert_called_once()
        assert not stream.is_open
        with pytest.raises(CameraUnavailableError, match="released"):
            stream.read()
