"""
Utility functions and data classes for LiveRead.

Contains shared data structures, engine configuration, error types and
frame/result I/O helpers.
"""

import json
import os
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np


VIDEO_EXTENSIONS = {'.mp4', '.avi', '.mov', '.mkv', '.webm'}
IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.webp'}


# =============================================================================
# Errors
# =============================================================================

class ConfigError(ValueError):
    """Raised when an engine configuration value is out of range."""
    pass


class RecognitionError(Exception):
    """Raised when an external detector, cropper or recognizer fails on a frame."""
    pass


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle, origin top-left unless stated otherwise."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def iou(self, other: 'BoundingBox') -> float:
        """Calculate Intersection over Union with another box."""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.right, other.right)
        y2 = min(self.bottom, other.bottom)

        if x2 <= x1 or y2 <= y1:
            return 0.0

        intersection = (x2 - x1) * (y2 - y1)
        union = self.area + other.area - intersection
        return intersection / union if union > 0 else 0.0

    def flipped_to_top_left(self, image_size: Tuple[float, float]) -> 'BoundingBox':
        """Convert a normalized bottom-left-origin box to top-left pixel space."""
        w, h = image_size
        return BoundingBox(
            x=self.x * w,
            y=(1.0 - self.bottom) * h,
            width=self.width * w,
            height=self.height * h,
        )

    def scaled(self, image_size: Tuple[float, float]) -> 'BoundingBox':
        """Scale a normalized top-left-origin box to pixel space."""
        w, h = image_size
        return BoundingBox(self.x * w, self.y * h, self.width * w, self.height * h)

    @classmethod
    def from_polygon(cls, polygon) -> 'BoundingBox':
        """Axis-aligned box around a list of [x, y] points."""
        pts = np.asarray(polygon, dtype=float)
        x = float(pts[:, 0].min())
        y = float(pts[:, 1].min())
        return cls(x, y, float(pts[:, 0].max()) - x, float(pts[:, 1].max()) - y)


@dataclass(frozen=True)
class Token:
    """One recognized text fragment for one frame.

    ``normalized`` marks boxes reported in 0-1 coordinates with a
    bottom-left origin; the line assembler converts those to pixels.
    """
    text: str
    box: BoundingBox
    confidence: float = 1.0
    normalized: bool = False


class Precision(str, Enum):
    """Recognition effort requested from the OCR engine."""
    FAST = "fast"
    ACCURATE = "accurate"


class EngineState(str, Enum):
    """Observable summary of what the engine is doing."""
    FINDING_ROI = "findingROI"
    UNSTABLE = "unstable"
    PROCESSING = "processing"
    READY = "ready"


class EmissionSource(str, Enum):
    AUTO = "auto"
    FORCED = "forced"


@dataclass
class Emission:
    """A result delivered to consumers, tagged with the path that produced it."""
    text: str
    lines: List[str] = field(default_factory=list)
    source: EmissionSource = EmissionSource.AUTO
    timestamp: float = field(default_factory=time.time)
    frame_index: Optional[int] = None

    def contains(self, keyword: str) -> bool:
        """Case-insensitive substring check, as done by result consumers."""
        return keyword.lower() in self.text.lower()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        return data


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_WINDOW_SIZE = 6
DEFAULT_MIN_LINES = 4
DEFAULT_CONVERGENCE_THRESHOLD = 0.90
DEFAULT_REPEAT_THRESHOLD = 0.80
DEFAULT_FIRE_COOLDOWN = 1.0       # seconds, monotonic clock
DEFAULT_ROI_RESET_IOU = 0.65
DEFAULT_MIN_ROW_THRESHOLD = 6.0   # pixels
DEFAULT_ROW_HEIGHT_RATIO = 0.6    # of median token height

ENV_PREFIX = "LIVEREAD_"


@dataclass
class EngineConfig:
    """Tunable thresholds for the live OCR engine."""
    window_size: int = DEFAULT_WINDOW_SIZE
    min_lines: int = DEFAULT_MIN_LINES
    convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD
    repeat_threshold: float = DEFAULT_REPEAT_THRESHOLD
    fire_cooldown: float = DEFAULT_FIRE_COOLDOWN
    roi_reset_iou: float = DEFAULT_ROI_RESET_IOU
    min_row_threshold: float = DEFAULT_MIN_ROW_THRESHOLD
    row_height_ratio: float = DEFAULT_ROW_HEIGHT_RATIO

    def validate(self) -> 'EngineConfig':
        """Check ranges; returns self so it can be chained.

        Raises:
            ConfigError: If any value is out of range
        """
        if self.window_size < 1:
            raise ConfigError(f"window_size must be >= 1, got {self.window_size}")
        if self.min_lines < 0:
            raise ConfigError(f"min_lines must be >= 0, got {self.min_lines}")
        for name in ("convergence_threshold", "repeat_threshold", "roi_reset_iou"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be within [0, 1], got {value}")
        if self.fire_cooldown < 0:
            raise ConfigError(f"fire_cooldown must be >= 0, got {self.fire_cooldown}")
        if self.min_row_threshold < 0 or self.row_height_ratio < 0:
            raise ConfigError("row grouping thresholds must be non-negative")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'EngineConfig':
        """Build a config from LIVEREAD_* environment variables.

        Unset variables keep their defaults, e.g. LIVEREAD_WINDOW_SIZE=8.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name, f in cls.__dataclass_fields__.items():
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None or not raw.strip():
                continue
            caster = int if f.type in (int, 'int') else float
            try:
                values[name] = caster(raw)
            except ValueError:
                raise ConfigError(f"{ENV_PREFIX}{name.upper()}={raw!r} is not a valid {caster.__name__}")
        return cls(**values).validate()


# =============================================================================
# Frame / Result I/O
# =============================================================================

def iter_frames(source: Union[str, int]) -> Iterator[Tuple[int, np.ndarray]]:
    """
    Yield frames from a camera, video file, single image or image folder.

    Args:
        source: Camera index (int or digit string), or a path

    Yields:
        (frame_index, image)
    """
    if isinstance(source, int) or (isinstance(source, str) and source.isdigit()):
        yield from _iter_capture(cv2.VideoCapture(int(source)))
        return

    path = Path(source)

    if path.is_file():
        if path.suffix.lower() in VIDEO_EXTENSIONS:
            yield from _iter_capture(cv2.VideoCapture(str(path)))
        else:
            image = cv2.imread(str(path))
            if image is not None:
                yield 0, image

    elif path.is_dir():
        image_files = sorted([
            f for f in path.iterdir()
            if f.suffix.lower() in IMAGE_EXTENSIONS
        ])

        idx = 0
        for img_path in image_files:
            image = cv2.imread(str(img_path))
            if image is not None:
                yield idx, image
                idx += 1

    else:
        raise FileNotFoundError(f"Input path does not exist: {source}")


def _iter_capture(cap) -> Iterator[Tuple[int, np.ndarray]]:
    frame_idx = 0
    try:
        while cap.isOpened():
            ret, frame = cap.read()
            if not ret:
                break
            yield frame_idx, frame
            frame_idx += 1
    finally:
        cap.release()


def count_frames(source: Union[str, int]) -> Optional[int]:
    """Number of frames in a finite source, None for cameras."""
    if isinstance(source, int) or (isinstance(source, str) and source.isdigit()):
        return None

    path = Path(source)
    if path.is_dir():
        return sum(1 for f in path.iterdir() if f.suffix.lower() in IMAGE_EXTENSIONS)
    if path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS:
        cap = cv2.VideoCapture(str(path))
        total = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        cap.release()
        return total or None
    return 1 if path.is_file() else None


def save_emission(emission: Emission, out_path: Path, index: int) -> Path:
    """Save one emitted result to JSON and return the file path."""
    out_path.mkdir(parents=True, exist_ok=True)
    json_path = out_path / f"emission_{index:04d}_{emission.source.value}.json"
    with open(json_path, "w") as f:
        json.dump(emission.to_dict(), f, indent=2)
    return json_path
