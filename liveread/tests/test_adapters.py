"""
Tests for the default adapters around the engine: cropping, OCR engine
wrappers, configuration and the frame-source pipeline.

Usage:
    pytest liveread/tests/test_adapters.py -v
"""

import json

import cv2
import numpy as np
import pytest

from liveread.core import (
    BoundingBox, ConfigError, Emission, EmissionSource, EngineConfig,
    LiveOCREngine, LiveOCRPipeline, OCREngine, Precision, RecognitionError,
    RoiCropper, count_frames, iter_frames,
)
from liveread.live_ocr import build_parser, config_from_args

from conftest import RECEIPT_LINES, tokens_for_lines


# =============================================================================
# Cropper Tests
# =============================================================================

class TestRoiCropper:
    """Test crop-or-fallback behaviour."""

    @pytest.fixture
    def frame(self):
        return np.zeros((100, 200, 3), dtype=np.uint8)

    def test_crops_to_rectangle(self, frame):
        image, size = RoiCropper()(frame, BoundingBox(0.25, 0.5, 0.5, 0.5))
        assert image.shape[:2] == (50, 100)
        assert size == (100, 50)

    def test_no_rectangle_uses_full_frame(self, frame):
        image, size = RoiCropper().crop_or_fallback(frame, None)
        assert image.shape == frame.shape
        assert size == (200, 100)

    def test_degenerate_rectangle_uses_full_frame(self, frame):
        image, size = RoiCropper().crop_or_fallback(frame, BoundingBox(0.5, 0.5, 0.01, 0.01))
        assert size == (200, 100)

    def test_rectangle_clamped_to_frame(self, frame):
        image, size = RoiCropper().crop_or_fallback(frame, BoundingBox(0.5, 0.5, 0.9, 0.9))
        assert size == (100, 50)

    def test_enhance_preserves_shape(self, frame):
        frame[20:80, 50:150] = 128
        image, size = RoiCropper(enhance=True).crop_or_fallback(frame, None)
        assert image.shape == frame.shape
        assert image.dtype == np.uint8

    def test_enhance_grayscale(self):
        gray = np.full((64, 64), 100, dtype=np.uint8)
        assert RoiCropper().enhance_contrast(gray).shape == (64, 64)


# =============================================================================
# OCR Engine Tests
# =============================================================================

class FakeTesseract:
    """Stands in for the pytesseract module."""

    class Output:
        DICT = "dict"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.configs = []

    def image_to_data(self, image, config, output_type):
        if self.fail:
            raise OSError("tesseract not installed")
        self.configs.append(config)
        return {
            "text": ["Total", "", "4.80", "speck"],
            "left": [10, 0, 80, 5],
            "top": [10, 0, 10, 150],
            "width": [60, 0, 40, 3],
            "height": [20, 0, 20, 1],
            "conf": ["91", "-1", "88", "50"],
        }


class FakeEasyOCR:
    """Stands in for easyocr.Reader."""

    def __init__(self):
        self.kwargs = []

    def readtext(self, image, **kwargs):
        self.kwargs.append(kwargs)
        return [
            ([[10, 10], [90, 10], [90, 30], [10, 30]], "Coffee", 0.93),
            ([[0, 0], [5, 0], [5, 5], [0, 5]], "  ", 0.10),
        ]


class FakePaddle:
    """Stands in for PaddleOCR."""

    def __init__(self):
        self.cls = []

    def ocr(self, image, cls):
        self.cls.append(cls)
        return [[
            ([[10, 40], [90, 40], [90, 60], [10, 60]], ("Latte", 0.87)),
            None,
        ]]


class TestOCREngine:
    """Test OCR wrappers with stand-in backends."""

    @pytest.fixture
    def image(self):
        return np.zeros((200, 300, 3), dtype=np.uint8)

    def test_tesseract_tokens(self, image):
        backend = FakeTesseract()
        tokens = OCREngine("tesseract", backend=backend).recognize_text(image, Precision.FAST)

        assert [t.text for t in tokens] == ["Total", "4.80"]
        assert tokens[0].box == BoundingBox(10, 10, 60, 20)
        assert tokens[0].confidence == pytest.approx(0.91)
        assert not tokens[0].normalized

    def test_tesseract_precision_config(self, image):
        backend = FakeTesseract()
        engine = OCREngine("tesseract", backend=backend)
        engine(image, Precision.FAST)
        engine(image, "accurate")
        assert backend.configs == ["--oem 1 --psm 11", "--oem 1 --psm 3"]

    def test_backend_failure_raises_recognition_error(self, image):
        engine = OCREngine("tesseract", backend=FakeTesseract(fail=True))
        with pytest.raises(RecognitionError):
            engine.recognize_text(image)

    def test_empty_image(self):
        engine = OCREngine("tesseract", backend=FakeTesseract())
        assert engine.recognize_text(np.zeros((0, 0, 3), dtype=np.uint8)) == []

    def test_easyocr_decoder_by_precision(self, image):
        backend = FakeEasyOCR()
        engine = OCREngine("easyocr", backend=backend)

        tokens = engine.recognize_text(image, Precision.ACCURATE)
        engine.recognize_text(image, Precision.FAST)

        assert [t.text for t in tokens] == ["Coffee"]
        assert backend.kwargs[0]["decoder"] == "beamsearch"
        assert backend.kwargs[1]["decoder"] == "greedy"
        assert backend.kwargs[0]["paragraph"] is False

    def test_paddle_angle_classifier_only_when_accurate(self, image):
        backend = FakePaddle()
        engine = OCREngine("paddle", backend=backend)

        tokens = engine.recognize_text(image, Precision.FAST)
        engine.recognize_text(image, Precision.ACCURATE)

        assert [t.text for t in tokens] == ["Latte"]
        assert backend.cls == [False, True]

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            OCREngine("nonexistent")


# =============================================================================
# Configuration Tests
# =============================================================================

class TestEngineConfig:
    """Test configuration defaults, validation and overrides."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.window_size == 6
        assert config.min_lines == 4
        assert config.convergence_threshold == 0.90
        assert config.repeat_threshold == 0.80
        assert config.fire_cooldown == 1.0
        assert config.roi_reset_iou == 0.65

    @pytest.mark.parametrize("overrides", [
        {"window_size": 0},
        {"min_lines": -1},
        {"convergence_threshold": 1.5},
        {"repeat_threshold": -0.1},
        {"roi_reset_iou": 2.0},
        {"fire_cooldown": -1.0},
        {"row_height_ratio": -0.5},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            EngineConfig(**overrides).validate()

    def test_engine_validates_config(self):
        with pytest.raises(ConfigError):
            LiveOCREngine(recognizer=lambda image, precision: [], config=EngineConfig(window_size=0))

    def test_from_env(self):
        config = EngineConfig.from_env({
            "LIVEREAD_WINDOW_SIZE": "8",
            "LIVEREAD_FIRE_COOLDOWN": "2.5",
            "LIVEREAD_MIN_LINES": "",
            "UNRELATED": "1",
        })
        assert config.window_size == 8
        assert config.fire_cooldown == 2.5
        assert config.min_lines == 4

    def test_from_env_rejects_garbage(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_env({"LIVEREAD_WINDOW_SIZE": "six"})

    def test_cli_flags_override_env(self, monkeypatch):
        monkeypatch.setenv("LIVEREAD_MIN_LINES", "3")
        monkeypatch.setenv("LIVEREAD_WINDOW_SIZE", "4")

        args = build_parser().parse_args(["--input", "0", "--window_size", "8", "--cooldown", "0.5"])
        config = config_from_args(args)

        assert config.window_size == 8
        assert config.min_lines == 3
        assert config.fire_cooldown == 0.5

    def test_cli_rejects_invalid_flags(self):
        args = build_parser().parse_args(["--input", "0", "--convergence", "3"])
        with pytest.raises(ConfigError):
            config_from_args(args)


# =============================================================================
# Pipeline Tests
# =============================================================================

@pytest.fixture
def frame_folder(tmp_path):
    """Folder of seven small frames plus a non-image file."""
    folder = tmp_path / "frames"
    folder.mkdir()
    for i in range(7):
        cv2.imwrite(str(folder / f"frame_{i:03d}.png"), np.full((32, 48, 3), i * 10, dtype=np.uint8))
    (folder / "notes.txt").write_text("not a frame")
    return folder


def fixed_engine() -> LiveOCREngine:
    """Engine whose recognizer always sees the same receipt."""
    tokens = tokens_for_lines(RECEIPT_LINES)
    return LiveOCREngine(recognizer=lambda image, precision: list(tokens))


class TestFrameSources:

    def test_iter_folder(self, frame_folder):
        frames = list(iter_frames(str(frame_folder)))
        assert [idx for idx, _ in frames] == list(range(7))
        assert frames[0][1].shape == (32, 48, 3)
        assert count_frames(str(frame_folder)) == 7

    def test_iter_single_image(self, frame_folder):
        frames = list(iter_frames(str(frame_folder / "frame_000.png")))
        assert len(frames) == 1

    def test_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            list(iter_frames(str(tmp_path / "missing")))

    def test_camera_has_unknown_length(self):
        assert count_frames("0") is None


class TestLiveOCRPipeline:

    def test_auto_capture_from_folder(self, frame_folder, tmp_path):
        out_dir = tmp_path / "out"
        pipeline = LiveOCRPipeline(fixed_engine(), out_dir=str(out_dir), show_progress=False)

        emissions = pipeline.run(str(frame_folder))

        assert len(emissions) == 1
        assert emissions[0].frame_index == 5
        saved = json.loads((out_dir / "emission_0005_auto.json").read_text())
        assert saved["source"] == "auto"
        assert sorted(saved["lines"]) == sorted(emissions[0].lines)

    def test_scan_at_forces_capture(self, frame_folder):
        pipeline = LiveOCRPipeline(fixed_engine(), scan_at=[0], show_progress=False)

        emissions = pipeline.run(str(frame_folder))

        # The forced capture becomes the signature, so the same receipt is not re-emitted
        assert len(emissions) == 1
        assert emissions[0].source == EmissionSource.FORCED
        assert emissions[0].frame_index == 0

    def test_keyword_status(self):
        pipeline = LiveOCRPipeline(fixed_engine(), keyword="COFFEE", show_progress=False)
        assert pipeline.status(Emission(text="coffee shop\ntotal 4.80")) == "READY"
        assert pipeline.status(Emission(text="book store")) == "HOLD"

    def test_no_keyword_is_always_ready(self):
        pipeline = LiveOCRPipeline(fixed_engine(), show_progress=False)
        assert pipeline.status(Emission(text="")) == "READY"
