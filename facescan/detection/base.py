"""Base face detector interface."""

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from .types import Detection


class BaseFaceDetector(ABC):
    """Abstract base class for face detector backends.

    ``load`` does the expensive model initialisation and returns the
    ready backend; it is called once per process through the model
    loader, never directly from the guidance loop.
    """

    name: str = "base"

    @abstractmethod
    def load(self) -> "BaseFaceDetector":
        """Load model weights and return self."""

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[Detection]:
        """Detect faces in an image.

        Args:
            image: BGR image as numpy array

        Returns:
            List of detections; empty when no face is present
        """
