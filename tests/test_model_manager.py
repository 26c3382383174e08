"""Tests for the ONNX model manager."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from fakes import make_settings

from headwatch.ml.face_detector import YuNetFaceDetector, load_face_detector
from headwatch.ml.model_manager import MODEL_REGISTRY, OnnxModelManager

MODEL_PATH = "/tmp/headwatch_test_models/face_detection_yunet_2023mar.onnx"


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_known_model_lookup(self) -> None:
        spec = MODEL_REGISTRY["yunet_2023mar"]
        assert spec.name == "yunet_2023mar"
        assert spec.task == "face_detection"
        assert spec.repo_id == "opencv/face_detection_yunet"

    def test_unknown_model_raises_keyerror(self) -> None:
        with pytest.raises(KeyError):
            MODEL_REGISTRY["nonexistent_model"]

    def test_registry_models_are_detectors(self) -> None:
        assert {spec.task for spec in MODEL_REGISTRY.values()} == {"face_detection"}
        assert all(spec.filename.endswith(".onnx") for spec in MODEL_REGISTRY.values())


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestOnnxModelManager:
    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_calls_hf_hub_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "face_detection_yunet_2023mar.onnx")
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)))

        path = mgr.ensure_downloaded("yunet_2023mar")

        mock_download.assert_called_once_with(
            repo_id="opencv/face_detection_yunet",
            filename="face_detection_yunet_2023mar.onnx",
            subfolder=None,
            local_dir=str(tmp_path),
        )
        assert path == tmp_path / "face_detection_yunet_2023mar.onnx"

    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_skips_cached_path(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "elsewhere.onnx"
        model_file.touch()

        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)))
        # Simulate a previous download by setting the cached path.
        mgr._model_paths["yunet_2023mar"] = model_file

        path = mgr.ensure_downloaded("yunet_2023mar")

        mock_download.assert_not_called()
        assert path == model_file

    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_uses_local_copy(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "face_detection_yunet_2023mar_int8.onnx"
        model_file.touch()
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)))

        path = mgr.ensure_downloaded("yunet_2023mar_int8")

        mock_download.assert_not_called()
        assert path == model_file

    @patch("headwatch.ml.model_manager.InferenceSession")
    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_get_session_creates_and_caches(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = MODEL_PATH
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session

        mgr = OnnxModelManager(make_settings())

        session1 = mgr.get_session("yunet_2023mar")
        session2 = mgr.get_session("yunet_2023mar")

        assert session1 is mock_session
        assert session2 is mock_session
        mock_session_cls.assert_called_once()

    @patch("headwatch.ml.model_manager.InferenceSession")
    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_get_loaded_models(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = MODEL_PATH
        mgr = OnnxModelManager(make_settings())

        assert mgr.get_loaded_models() == []
        mgr.get_session("yunet_2023mar")
        assert mgr.get_loaded_models() == ["yunet_2023mar"]

    @patch("headwatch.ml.model_manager.InferenceSession")
    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_sessions_stay_cached_until_shutdown(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = MODEL_PATH
        mock_session_cls.side_effect = lambda *args, **kwargs: MagicMock()
        mgr = OnnxModelManager(make_settings())
        session = mgr.get_session("yunet_2023mar")

        assert not hasattr(mgr, "unload_idle_models")
        assert mgr.get_session("yunet_2023mar") is session
        assert mgr.get_loaded_models() == ["yunet_2023mar"]

        mgr.shutdown()
        assert mgr.get_loaded_models() == []
        assert mgr.get_session("yunet_2023mar") is not session
        assert mock_session_cls.call_count == 2

    def test_provider_building_cpu(self) -> None:
        mgr = OnnxModelManager(make_settings(device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self) -> None:
        mgr = OnnxModelManager(make_settings(device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self) -> None:
        mgr = OnnxModelManager(make_settings(device="openvino"))
        assert len(mgr._providers) == 2
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"

    @patch("headwatch.ml.model_manager.InferenceSession")
    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_shutdown_clears_sessions(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = MODEL_PATH
        mgr = OnnxModelManager(make_settings())
        mgr.get_session("yunet_2023mar")
        assert len(mgr.get_loaded_models()) == 1

        mgr.shutdown()
        assert mgr.get_loaded_models() == []

    def test_unknown_model_raises_keyerror(self) -> None:
        mgr = OnnxModelManager(make_settings())
        with pytest.raises(KeyError, match="Unknown model"):
            mgr.ensure_downloaded("totally_fake_model")


class TestLoadFaceDetector:
    @patch("headwatch.ml.model_manager.InferenceSession")
    @patch("headwatch.ml.model_manager.hf_hub_download")
    def test_builds_detector_from_configured_model(
        self, mock_download: MagicMock, mock_session_cls: MagicMock
    ) -> None:
        mock_download.return_value = MODEL_PATH
        session = mock_session_cls.return_value
        session.get_inputs.return_value = [MagicMock(shape=[1, 3, "h", "w"])]
        session.get_outputs.return_value = []
        settings = make_settings(face_detection_model="yunet_2023mar_int8")

        detector = load_face_detector(OnnxModelManager(settings), settings)

        assert isinstance(detector, YuNetFaceDetector)
        assert detector.model_name == "yunet_2023mar_int8"
