"""Haar Cascade face detector."""

import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .base import BaseFaceDetector
from .types import BoundingBox, Detection

logger = logging.getLogger(__name__)


class HaarCascadeDetector(BaseFaceDetector):
    """Face detector using OpenCV Haar Cascades.

    Pros: ships with OpenCV, no model download
    Cons: frontal faces only, no real confidence score
    """

    name = "haar_cascade"

    def __init__(
        self,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: Tuple[int, int] = (30, 30),
    ):
        """Initialize Haar Cascade detector.

        Args:
            scale_factor: Scale factor for multi-scale detection
            min_neighbors: Minimum neighbors for detection
            min_size: Minimum face size to detect
        """
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = tuple(min_size)
        self._cascade: Optional[cv2.CascadeClassifier] = None

    def load(self) -> "HaarCascadeDetector":
        cascade_path = cv2.data.haarcascades + "haarcascade_frontalface_default.xml"  # type: ignore
        cascade = cv2.CascadeClassifier(cascade_path)

        if cascade.empty():
            raise RuntimeError(f"Failed to load cascade from {cascade_path}")

        self._cascade = cascade
        logger.info("Loaded Haar cascade detector")
        return self

    def detect(self, image: np.ndarray) -> List[Detection]:
        """Detect faces using Haar Cascade."""
        if self._cascade is None:
            raise RuntimeError("Haar cascade not loaded")

        if len(image.shape) == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = image

        faces = self._cascade.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=self.min_size,
        )

        return [
            Detection(box=BoundingBox(x=float(x), y=float(y), width=float(w), height=float(h)))
            for (x, y, w, h) in faces
        ]
