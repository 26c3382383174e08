"""Environment-based configuration for headwatch."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from HEADWATCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HEADWATCH_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8090

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    face_detection_model: str = "yunet_2023mar"
    models_dir: str = "models"

    # Detector post-processing
    score_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    nms_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    top_k: int = Field(default=50, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Model management
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Camera request
    camera_width: int = Field(default=640, ge=1)
    camera_height: int = Field(default=480, ge=1)
    camera_facing_mode: Literal["user", "environment"] = "user"
    camera_frame_rate: int = Field(default=30, ge=1)
    camera_index: int | None = Field(default=None, ge=0)
    start_camera: bool = True

    # Movement tracking
    movement_threshold: float = Field(default=5.0, ge=0.0)
    reference_landmarks: tuple[int, int] = (2, 3)

    # Presentation
    jpeg_quality: int = Field(default=80, ge=1, le=100)
    idle_sleep: float = Field(default=0.01, ge=0.0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
