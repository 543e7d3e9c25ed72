"""
Text postprocessing functions for LiveRead.

Contains comparison normalization, set similarity and the multi-frame
stability window that decides when live content is ready to emit.
"""

import re
import time
import unicodedata
from collections import deque
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Deque, FrozenSet, Iterable, List, Optional

from .utils import (
    DEFAULT_WINDOW_SIZE, DEFAULT_MIN_LINES, DEFAULT_CONVERGENCE_THRESHOLD,
    DEFAULT_REPEAT_THRESHOLD, DEFAULT_FIRE_COOLDOWN,
)


_RE_DISALLOWED = re.compile(r"[^a-z0-9+ .:/-]")
_RE_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """
    Canonicalize OCR text for comparison.

    Lower-cases, folds diacritics, replaces anything outside
    ``[a-z0-9+ .:/-]`` with a space and collapses whitespace.

    Args:
        text: Raw recognized text

    Returns:
        Normalized text, possibly empty
    """
    if not text:
        return ""

    out = text.lower()
    out = unicodedata.normalize("NFKD", out)
    out = "".join(c for c in out if not unicodedata.combining(c))
    out = _RE_DISALLOWED.sub(" ", out)
    out = _RE_WHITESPACE.sub(" ", out)
    return out.strip()


def jaccard_similarity(a: AbstractSet, b: AbstractSet) -> float:
    """Intersection size over union size; 0.0 when both sets are empty."""
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


@dataclass
class StabilityDecision:
    """Outcome of feeding one frame's lines to the stability window."""
    fired: bool
    reason: str
    lines: List[str] = field(default_factory=list)
    similarity: Optional[float] = None


class StabilityWindow:
    """
    Sliding window of per-frame line sets.

    Fires once the oldest and newest frames agree, the merged content differs
    from the previous emission, and the cooldown has elapsed.
    """

    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        min_lines: int = DEFAULT_MIN_LINES,
        convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD,
        repeat_threshold: float = DEFAULT_REPEAT_THRESHOLD,
        fire_cooldown: float = DEFAULT_FIRE_COOLDOWN,
        clock: Callable[[], float] = time.monotonic
    ):
        self.window_size = window_size
        self.min_lines = min_lines
        self.convergence_threshold = convergence_threshold
        self.repeat_threshold = repeat_threshold
        self.fire_cooldown = fire_cooldown
        self.clock = clock

        self.frames: Deque[FrozenSet[str]] = deque(maxlen=window_size)
        self.signature: Optional[FrozenSet[str]] = None
        self.last_fire: Optional[float] = None

    def __len__(self) -> int:
        return len(self.frames)

    @property
    def is_full(self) -> bool:
        return len(self.frames) == self.window_size

    def update(self, lines: Iterable[str]) -> StabilityDecision:
        """
        Add one frame's lines and decide whether to fire.

        Args:
            lines: Normalized lines for the frame, in any order

        Returns:
            StabilityDecision; ``lines`` is populated only when fired
        """
        frame_lines = frozenset(lines)

        # A sparse frame usually means the document left the frame
        if len(frame_lines) < self.min_lines:
            self.frames.clear()
            return StabilityDecision(False, f"insufficient_lines ({len(frame_lines)} < {self.min_lines})")

        self.frames.append(frame_lines)
        if not self.is_full:
            return StabilityDecision(False, f"filling ({len(self.frames)}/{self.window_size})")

        convergence = jaccard_similarity(self.frames[0], self.frames[-1])
        if convergence < self.convergence_threshold:
            return StabilityDecision(False, f"unconverged ({convergence:.2f})", similarity=convergence)

        merged = frozenset().union(*self.frames)
        if self.signature is not None:
            repeat = jaccard_similarity(self.signature, merged)
            if repeat >= self.repeat_threshold:
                return StabilityDecision(False, f"repeat ({repeat:.2f})", similarity=repeat)

        now = self.clock()
        if self.last_fire is not None and now - self.last_fire < self.fire_cooldown:
            return StabilityDecision(False, f"cooldown ({now - self.last_fire:.2f}s)", similarity=convergence)

        self.last_fire = now
        self.frames.clear()
        self.signature = merged

        return StabilityDecision(True, "fired", sorted(merged), similarity=convergence)

    def adopt(self, lines: Iterable[str]) -> None:
        """Record an emission made outside the window (forced capture)."""
        self.frames.clear()
        self.signature = frozenset(lines)

    def clear(self) -> None:
        """Drop the window and signature; the cooldown clock is kept."""
        self.frames.clear()
        self.signature = None
