"""Distance-based descriptor matching."""

import logging
from typing import Optional

import numpy as np

from ..constants import RecognitionConfig, get_recognition_config
from ..errors import DescriptorError
from .types import FaceDescriptor, MatchResult, as_descriptor

logger = logging.getLogger(__name__)


def euclidean_distance(a: FaceDescriptor, b: FaceDescriptor) -> float:
    """Straight-line distance between two descriptors of equal length."""
    a = as_descriptor(a, dtype=np.float64)
    b = as_descriptor(b, dtype=np.float64)
    if a.size != b.size:
        raise DescriptorError(
            f"Descriptor length mismatch: {a.size} vs {b.size}"
        )
    return float(np.linalg.norm(a - b))


class DescriptorMatcher:
    """Decide match / no-match from the Euclidean distance.

    score = max(0, 1 - distance / max_distance)
    match = distance <= threshold (lower threshold = stricter)
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        max_distance: Optional[float] = None,
        config: Optional[RecognitionConfig] = None,
    ):
        config = config or get_recognition_config()
        self.threshold = config.match_threshold if threshold is None else threshold
        self.max_distance = config.max_distance if max_distance is None else max_distance
        if self.max_distance <= 0:
            raise ValueError("max_distance must be positive")

    def score(self, distance: float) -> float:
        return max(0.0, 1.0 - distance / self.max_distance)

    def match(self, reference: FaceDescriptor, candidate: FaceDescriptor) -> MatchResult:
        distance = euclidean_distance(reference, candidate)
        result = MatchResult(
            distance=distance,
            score=self.score(distance),
            is_match=distance <= self.threshold,
        )
        logger.debug(
            f"Descriptor distance {distance:.4f} -> score {result.score:.4f} "
            f"({'match' if result.is_match else 'no match'})"
        )
        return result


def match_descriptors(
    reference: FaceDescriptor,
    candidate: FaceDescriptor,
    threshold: Optional[float] = None,
    max_distance: Optional[float] = None,
) -> MatchResult:
    """Compare two descriptors with the configured threshold."""
    return DescriptorMatcher(threshold=threshold, max_distance=max_distance).match(reference, candidate)
