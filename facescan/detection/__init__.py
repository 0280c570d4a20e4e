"""Face detection backends.

Available backends:
- insightface: SCRFD detector from an InsightFace pack (default)
- haar_cascade: Fast, lightweight OpenCV Haar Cascades
"""

from .types import BoundingBox, Detection
from .base import BaseFaceDetector
from .haar import HaarCascadeDetector
from .insightface import InsightFaceDetector
from .detector import FaceDetector

DETECTION_BACKENDS = FaceDetector.BACKENDS

__all__ = [
    "BoundingBox",
    "Detection",
    "BaseFaceDetector",
    "HaarCascadeDetector",
    "InsightFaceDetector",
    "FaceDetector",
    "DETECTION_BACKENDS",
]
