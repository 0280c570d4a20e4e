"""Unified face detector with configurable backend and load-once models."""

import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

import numpy as np

from ..constants import DetectorConfig, get_detector_config
from ..errors import DetectorNotReadyError
from ..models import ModelLoader, get_model_loader
from .base import BaseFaceDetector
from .haar import HaarCascadeDetector
from .insightface import InsightFaceDetector
from .types import Detection

logger = logging.getLogger(__name__)


class FaceDetector:
    """Per-frame face detector used by the guidance loop.

    Model weights are shared process-wide: two FaceDetector instances with
    the same backend settings await the same load. ``detect`` before the
    load has completed raises DetectorNotReadyError.
    """

    BACKENDS = {
        "insightface": InsightFaceDetector,
        "haar_cascade": HaarCascadeDetector,
    }

    def __init__(
        self,
        backend: Optional[str] = None,
        config: Optional[DetectorConfig] = None,
        **kwargs,
    ):
        """Initialize face detector with specified backend.

        Args:
            backend: Detection backend to use (default from config)
            config: Detector configuration (default: global config)
            **kwargs: Extra arguments forwarded to the backend
        """
        self.config = config or get_detector_config()
        backend = backend or self.config.backend
        if backend not in self.BACKENDS:
            raise ValueError(
                f"Unknown backend: {backend}. "
                f"Available: {list(self.BACKENDS.keys())}"
            )

        self.backend_name = backend
        backend_kwargs = self._backend_kwargs(backend, self.config)
        backend_kwargs.update(kwargs)

        backend_cls = self.BACKENDS[backend]
        key = f"detector:{backend}:{sorted(backend_kwargs.items())}"
        self._loader: ModelLoader = get_model_loader(
            key, lambda: backend_cls(**backend_kwargs).load()
        )

    @staticmethod
    def _backend_kwargs(backend: str, config: DetectorConfig) -> Dict[str, Any]:
        if backend == "insightface":
            return {
                "model_name": config.model_name,
                "input_size": config.input_size,
                "min_confidence": config.min_confidence,
            }
        return {}

    def load(self) -> Future:
        """Start (or join) the shared model load."""
        return self._loader.load()

    @property
    def is_loaded(self) -> bool:
        return self._loader.is_loaded

    def detect(self, image: np.ndarray) -> List[Detection]:
        """Detect faces in an image.

        Raises:
            DetectorNotReadyError: If the model has not finished loading
        """
        backend: Optional[BaseFaceDetector] = self._loader.model
        if backend is None:
            raise DetectorNotReadyError()
        return backend.detect(image)

    @classmethod
    def available_backends(cls) -> List[str]:
        """Return list of available detection backends."""
        return list(cls.BACKENDS.keys())
