"""Lightweight per-frame detector using InsightFace (SCRFD).

Only the detection model of the pack is enabled, which keeps each call
cheap enough for the 150 ms guidance loop on a CPU.
"""

import logging
from typing import List

import numpy as np

from .base import BaseFaceDetector
from .types import BoundingBox, Detection

logger = logging.getLogger(__name__)


class InsightFaceDetector(BaseFaceDetector):
    """InsightFace detection-only wrapper tuned for speed."""

    name = "insightface"

    def __init__(
        self,
        model_name: str = "buffalo_sc",
        input_size: int = 416,
        min_confidence: float = 0.5,
    ):
        """Initialize InsightFace detector.

        Args:
            model_name: Model pack name
                - buffalo_sc: Small, good balance (default)
                - buffalo_l: Large, best accuracy
            input_size: Square detection input size in pixels
            min_confidence: Detection score threshold
        """
        self._app = None
        self._model_name = model_name
        self._input_size = input_size
        self._min_confidence = min_confidence

    def load(self) -> "InsightFaceDetector":
        from insightface.app import FaceAnalysis

        app = FaceAnalysis(
            name=self._model_name,
            allowed_modules=["detection"],
            providers=["CPUExecutionProvider"],
        )
        app.prepare(
            ctx_id=-1,
            det_thresh=self._min_confidence,
            det_size=(self._input_size, self._input_size),
        )
        self._app = app
        logger.info(f"Initialized InsightFace detector: {self._model_name} @ {self._input_size}px")
        return self

    def detect(self, image: np.ndarray) -> List[Detection]:
        """Detect faces using InsightFace.

        Args:
            image: BGR image

        Returns:
            List of detections above the confidence threshold
        """
        if self._app is None:
            raise RuntimeError("InsightFace detector not loaded")

        height, width = image.shape[:2]
        detections = []
        for face in self._app.get(image):
            confidence = float(getattr(face, "det_score", 1.0))
            if confidence < self._min_confidence:
                continue

            x1, y1, x2, y2 = [float(v) for v in face.bbox]
            x1 = max(0.0, x1)
            y1 = max(0.0, y1)
            x2 = min(float(width), x2)
            y2 = min(float(height), y2)
            if x2 <= x1 or y2 <= y1:
                continue

            detections.append(Detection(
                box=BoundingBox.from_corners(x1, y1, x2, y2),
                confidence=confidence,
            ))

        return detections
