"""
Text layout and document detection for LiveRead.

Contains reading-order line assembly for recognized tokens and the
OpenCV rectangle detector used to find the document in a frame.
"""

from functools import cmp_to_key
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .postprocessing import normalize_text
from .utils import (
    BoundingBox, Token, DEFAULT_MIN_ROW_THRESHOLD, DEFAULT_ROW_HEIGHT_RATIO,
)


class LineAssembler:
    """Groups tokens into rows and orders them top-to-bottom, left-to-right."""

    def __init__(
        self,
        min_row_threshold: float = DEFAULT_MIN_ROW_THRESHOLD,
        row_height_ratio: float = DEFAULT_ROW_HEIGHT_RATIO
    ):
        self.min_row_threshold = min_row_threshold
        self.row_height_ratio = row_height_ratio

    def assemble(
        self,
        tokens: Sequence[Token],
        image_size: Tuple[float, float]
    ) -> List[str]:
        """
        Convert one frame's tokens into ordered line strings.

        Args:
            tokens: Recognized tokens for the frame
            image_size: (width, height) of the recognized image in pixels

        Returns:
            Lines in reading order, each a space-joined run of normalized texts
        """
        return [" ".join(text for _, text in row) for row in self.group(tokens, image_size)]

    def group(
        self,
        tokens: Sequence[Token],
        image_size: Tuple[float, float]
    ) -> List[List[Tuple[BoundingBox, str]]]:
        """
        Group tokens into rows.

        Returns:
            List of rows, each a list of (pixel_box, normalized_text)
        """
        boxes = []
        for token in tokens:
            text = normalize_text(token.text)
            if not text:
                continue
            box = token.box.flipped_to_top_left(image_size) if token.normalized else token.box
            boxes.append((box, text))

        if not boxes:
            return []

        row_thresh = self.row_threshold([box for box, _ in boxes])

        def compare(a, b) -> int:
            dy = a[0].y - b[0].y
            if abs(dy) > row_thresh:
                return -1 if dy < 0 else 1
            dx = a[0].x - b[0].x
            return (dx > 0) - (dx < 0)

        ordered = sorted(boxes, key=cmp_to_key(compare))

        rows = []
        current = []
        anchor_y = None
        for box, text in ordered:
            if anchor_y is None:
                anchor_y = box.y
            if abs(box.y - anchor_y) > row_thresh:
                rows.append(current)
                current = []
                anchor_y = box.y
            current.append((box, text))
        if current:
            rows.append(current)

        return rows

    def row_threshold(self, boxes: Sequence[BoundingBox]) -> float:
        """Row grouping tolerance in pixels, scaled to the median token height."""
        heights = sorted(box.height for box in boxes)
        median_h = heights[len(heights) // 2]
        return max(self.min_row_threshold, median_h * self.row_height_ratio)


class RectangleDetector:
    """Finds the single most prominent document-like quadrilateral."""

    def __init__(
        self,
        min_size: float = 0.2,
        min_aspect_ratio: float = 0.2,
        canny_low: int = 50,
        canny_high: int = 150,
        approx_epsilon: float = 0.02
    ):
        self.min_size = min_size
        self.min_aspect_ratio = min_aspect_ratio
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.approx_epsilon = approx_epsilon

    def __call__(self, frame: np.ndarray) -> Optional[BoundingBox]:
        return self.detect(frame)

    def detect(self, frame: np.ndarray) -> Optional[BoundingBox]:
        """
        Detect the document rectangle.

        Returns:
            Bounding box in normalized (0-1) top-left-origin coordinates,
            or None when nothing qualifies
        """
        if frame is None or frame.size == 0:
            return None

        h, w = frame.shape[:2]
        if len(frame.shape) == 3:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        else:
            gray = frame

        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)
        edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=1)

        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        best = None
        best_area = 0.0
        for contour in contours:
            peri = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, self.approx_epsilon * peri, True)
            if len(approx) != 4 or not cv2.isContourConvex(approx):
                continue

            x, y, bw, bh = cv2.boundingRect(approx)
            if bw == 0 or bh == 0:
                continue
            # Size is relative to the shorter image side
            if min(bw, bh) < self.min_size * min(w, h):
                continue
            if min(bw, bh) / max(bw, bh) < self.min_aspect_ratio:
                continue

            area = cv2.contourArea(approx)
            if area > best_area:
                best_area = area
                best = (x, y, bw, bh)

        if best is None:
            return None

        x, y, bw, bh = best
        return BoundingBox(x / w, y / h, bw / w, bh / h)
