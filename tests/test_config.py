"""Tests for environment-based settings."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from headwatch.config import get_settings


def test_defaults() -> None:
    with patch.dict(os.environ, {}, clear=True):
        settings = get_settings()
    assert settings.movement_threshold == 5.0
    assert settings.reference_landmarks == (2, 3)
    assert (settings.camera_width, settings.camera_height) == (640, 480)
    assert settings.camera_facing_mode == "user"
    assert settings.camera_frame_rate == 30
    assert settings.face_detection_model == "yunet_2023mar"
    assert settings.api_key is None


def test_env_overrides() -> None:
    env = {
        "HEADWATCH_MOVEMENT_THRESHOLD": "8.5",
        "HEADWATCH_REFERENCE_LANDMARKS": "[0, 1]",
        "HEADWATCH_CAMERA_FACING_MODE": "environment",
        "HEADWATCH_API_KEY": "secret",
    }
    with patch.dict(os.environ, env, clear=True):
        settings = get_settings()
    assert settings.movement_threshold == 8.5
    assert settings.reference_landmarks == (0, 1)
    assert settings.camera_facing_mode == "environment"
    assert settings.api_key == "secret"


def test_invalid_values_rejected() -> None:
    with patch.dict(os.environ, {"HEADWATCH_MOVEMENT_THRESHOLD": "-1"}, clear=True), pytest.raises(ValidationError):
        get_settings()


def test_no_session_ttl_setting() -> None:
    with patch.dict(os.environ, {"HEADWATCH_MODEL_TTL": "60"}, clear=True):
        settings = get_settings()
    assert "model_ttl" not in type(settings).model_fields
