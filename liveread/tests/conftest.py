"""
Pytest configuration and shared fixtures for LiveRead tests.

This module provides:
- A controllable monotonic clock
- Token and frame builders
- Fake detector / recognizer / cropper collaborators for the engine

Usage:
    pytest liveread/tests -v
    pytest liveread/tests/test_engine.py -v
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from liveread.core import (
    BoundingBox, EngineConfig, LiveOCREngine, Precision, RecognitionError, Token,
)


# =============================================================================
# Constants
# =============================================================================

FRAME_SIZE = (1000, 800)  # (width, height) reported by the fake cropper
LINE_SPACING = 40
TOKEN_HEIGHT = 20

RECEIPT_LINES = ["Coffee Shop", "Latte 4.50", "Tax 0.30", "Total 4.80"]
OTHER_RECEIPT_LINES = ["Book Store", "Novel 12.00", "Bookmark 1.00", "Total 13.00"]


# =============================================================================
# Builders
# =============================================================================

def make_token(text: str, x: float, y: float, width: float = 50, height: float = TOKEN_HEIGHT) -> Token:
    """Pixel-space token."""
    return Token(text=text, box=BoundingBox(x, y, width, height))


def tokens_for_lines(lines: List[str]) -> List[Token]:
    """One token per line, stacked top-to-bottom."""
    return [make_token(line, 10, 10 + i * LINE_SPACING, width=200) for i, line in enumerate(lines)]


def make_frame(
    lines: Optional[List[str]] = None,
    tokens: Optional[List[Token]] = None,
    rect: Optional[BoundingBox] = None,
    fail: bool = False
) -> Dict:
    """Frames are plain dicts read by the fake collaborators below."""
    if tokens is None:
        tokens = tokens_for_lines(lines or [])
    return {"tokens": tokens, "rect": rect, "fail": fail}


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRecognizer:
    """Returns the frame's tokens and records the requested precision."""

    def __init__(self):
        self.calls: List[Precision] = []

    def __call__(self, image, precision):
        self.calls.append(precision)
        if image.get("fail"):
            raise RecognitionError("simulated recognizer failure")
        return list(image["tokens"])


def fake_detector(frame) -> Optional[BoundingBox]:
    return frame.get("rect")


def fake_cropper(frame, rect):
    return frame, FRAME_SIZE


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture
def make_engine(clock, recognizer):
    """
    Factory for engines wired to the fakes.

    Usage:
        engine = make_engine(window_size=3)
    """
    engines = []

    def _make(async_delivery: bool = False, **config_overrides) -> LiveOCREngine:
        engine = LiveOCREngine(
            recognizer=recognizer,
            detector=fake_detector,
            cropper=fake_cropper,
            config=EngineConfig(**config_overrides),
            clock=clock,
            async_delivery=async_delivery
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine) -> LiveOCREngine:
    return make_engine()


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "opencv: marks tests that run real OpenCV image operations"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their fixtures."""
    for item in items:
        if "synthetic_document" in item.fixturenames:
            item.add_marker(pytest.mark.opencv)


def pytest_report_header(config):
    """Add project info to test report header."""
    return [
        "LiveRead Test Suite",
        f"Project Root: {PROJECT_ROOT}",
    ]
