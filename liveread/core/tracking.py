"""
Region-of-interest continuity tracking for LiveRead.
"""

from dataclasses import dataclass
from typing import Optional

from .utils import BoundingBox, DEFAULT_ROI_RESET_IOU


@dataclass
class RoiUpdate:
    """Result of comparing this frame's rectangle with the retained one."""
    scene_changed: bool
    iou: Optional[float] = None


class RoiTracker:
    """Remembers the last document rectangle and flags large jumps."""

    def __init__(self, reset_iou: float = DEFAULT_ROI_RESET_IOU):
        self.reset_iou = reset_iou
        self.last_rect: Optional[BoundingBox] = None

    def update(self, rect: Optional[BoundingBox], forced: bool = False) -> RoiUpdate:
        """
        Compare a newly detected rectangle with the retained one.

        A missing rectangle never triggers a reset and leaves the retained
        rectangle untouched. Forced captures retain the rectangle but skip
        the comparison.

        Args:
            rect: Normalized rectangle detected this frame, or None
            forced: True during a one-shot capture

        Returns:
            RoiUpdate describing whether the scene changed
        """
        if rect is None:
            return RoiUpdate(scene_changed=False)

        previous = self.last_rect
        self.last_rect = rect

        if forced or previous is None:
            return RoiUpdate(scene_changed=False)

        iou = previous.iou(rect)
        return RoiUpdate(scene_changed=iou < self.reset_iou, iou=iou)

    def clear(self) -> None:
        self.last_rect = None
