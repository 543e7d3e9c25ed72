"""
Image preprocessing functions for LiveRead.

Crops frames to the detected document and optionally boosts contrast
before recognition.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from .utils import BoundingBox


class RoiCropper:
    """Crops a frame to a normalized rectangle, falling back to the full frame."""

    def __init__(
        self,
        enhance: bool = False,
        clahe_clip: float = 2.0,
        clahe_grid: int = 8,
        min_crop_pixels: int = 16
    ):
        self.enhance = enhance
        self.clahe_clip = clahe_clip
        self.clahe_grid = clahe_grid
        self.min_crop_pixels = min_crop_pixels

    def __call__(
        self,
        frame: np.ndarray,
        rect: Optional[BoundingBox]
    ) -> Tuple[np.ndarray, Tuple[int, int]]:
        return self.crop_or_fallback(frame, rect)

    def crop_or_fallback(
        self,
        frame: np.ndarray,
        rect: Optional[BoundingBox]
    ) -> Tuple[np.ndarray, Tuple[int, int]]:
        """
        Crop to the rectangle without perspective correction.

        Args:
            frame: BGR or grayscale frame
            rect: Normalized top-left-origin rectangle, or None

        Returns:
            (image, (width, height)); the full frame when there is no
            rectangle or the crop would be degenerate
        """
        image = frame
        if rect is not None:
            crop = self._crop(frame, rect)
            if crop is not None:
                image = crop

        if self.enhance:
            image = self.enhance_contrast(image)

        h, w = image.shape[:2]
        return image, (w, h)

    def _crop(self, frame: np.ndarray, rect: BoundingBox) -> Optional[np.ndarray]:
        h, w = frame.shape[:2]
        px = rect.scaled((w, h))

        x1 = max(0, int(round(px.x)))
        y1 = max(0, int(round(px.y)))
        x2 = min(w, int(round(px.right)))
        y2 = min(h, int(round(px.bottom)))

        if x2 - x1 < self.min_crop_pixels or y2 - y1 < self.min_crop_pixels:
            return None

        return frame[y1:y2, x1:x2].copy()

    def enhance_contrast(self, image: np.ndarray) -> np.ndarray:
        """CLAHE on the luminance channel; colour is preserved."""
        clahe = cv2.createCLAHE(
            clipLimit=self.clahe_clip,
            tileGridSize=(self.clahe_grid, self.clahe_grid)
        )

        if len(image.shape) == 2:
            return clahe.apply(image)

        lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
        l, a, b = cv2.split(lab)
        lab = cv2.merge((clahe.apply(l), a, b))
        return cv2.cvtColor(lab, cv2.COLOR_LAB2BGR)
