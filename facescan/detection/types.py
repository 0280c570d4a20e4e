"""Detected face data types."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned face box in frame pixel coordinates."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        """Build from (x1, y1, x2, y2) corner coordinates."""
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    @property
    def center(self) -> Tuple[float, float]:
        """Return center point of bounding box."""
        return (self.x + self.width / 2, self.y + self.height / 2)


@dataclass(frozen=True)
class Detection:
    """A single face found in one frame."""

    box: BoundingBox
    confidence: float = 1.0
