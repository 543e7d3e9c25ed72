"""
Core module for LiveRead.

This package contains modular components for live document OCR:
- utils: Data classes, configuration, errors and frame/result I/O
- preprocessing: Cropping to the detected document
- detection: Reading-order line assembly and rectangle detection
- recognition: OCR engine wrappers (PaddleOCR, EasyOCR, Tesseract)
- tracking: Region-of-interest continuity
- postprocessing: Text normalization, similarity and the stability window
- video: The per-frame engine and the frame-source pipeline
"""

# Data classes
from .utils import (
    BoundingBox,
    Token,
    Precision,
    EngineState,
    EmissionSource,
    Emission,
    EngineConfig,
)

# Errors
from .utils import ConfigError, RecognitionError

# File I/O utilities
from .utils import iter_frames, count_frames, save_emission

# Preprocessing
from .preprocessing import RoiCropper

# Detection
from .detection import LineAssembler, RectangleDetector

# Recognition
from .recognition import OCREngine, create_engine

# Tracking
from .tracking import RoiTracker, RoiUpdate

# Postprocessing
from .postprocessing import (
    normalize_text,
    jaccard_similarity,
    StabilityDecision,
    StabilityWindow,
)

# Engine and pipeline
from .video import (
    StateEvent,
    project_state,
    LiveOCREngine,
    LiveOCRPipeline,
    create_live_engine,
)


__all__ = [
    # Data classes
    "BoundingBox",
    "Token",
    "Precision",
    "EngineState",
    "EmissionSource",
    "Emission",
    "EngineConfig",
    # Errors
    "ConfigError",
    "RecognitionError",
    # File I/O
    "iter_frames",
    "count_frames",
    "save_emission",
    # Preprocessing
    "RoiCropper",
    # Detection
    "LineAssembler",
    "RectangleDetector",
    # Recognition
    "OCREngine",
    "create_engine",
    # Tracking
    "RoiTracker",
    "RoiUpdate",
    # Postprocessing
    "normalize_text",
    "jaccard_similarity",
    "StabilityDecision",
    "StabilityWindow",
    # Engine
    "StateEvent",
    "project_state",
    "LiveOCREngine",
    "LiveOCRPipeline",
    "create_live_engine",
]
