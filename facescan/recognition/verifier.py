"""One-shot verification of a captured image against a stored descriptor."""

import logging
from typing import Optional, Union

import numpy as np

from .extractor import DescriptorExtractor
from .matcher import DescriptorMatcher
from .types import FaceDescriptor, MatchResult, as_descriptor

logger = logging.getLogger(__name__)


class FaceVerifier:
    """Extractor + matcher. Stateless apart from the shared model load."""

    def __init__(
        self,
        extractor: Optional[DescriptorExtractor] = None,
        matcher: Optional[DescriptorMatcher] = None,
    ):
        self.extractor = extractor or DescriptorExtractor()
        self.matcher = matcher or DescriptorMatcher()

    def verify(self, image: Union[np.ndarray, bytes], reference: FaceDescriptor) -> MatchResult:
        """Compare the face in ``image`` with ``reference``.

        A mismatch is a normal result (``is_match`` False); extraction
        problems propagate as ExtractionError subclasses.
        """
        reference = as_descriptor(reference, dtype=np.float64)
        candidate = self.extractor.extract(image)
        result = self.matcher.match(reference, candidate)
        logger.info(
            f"Verification {'succeeded' if result.is_match else 'failed'}: "
            f"score {result.score_percent}%, distance {result.distance:.4f}"
        )
        return result
