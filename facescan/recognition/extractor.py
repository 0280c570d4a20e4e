"""Descriptor extraction with InsightFace (detection + landmarks + ArcFace).

The extractor insists on exactly one face: an image with several faces is
rejected rather than silently picking the largest, since the descriptor
must belong to a single unambiguous subject.
"""

import logging
from concurrent.futures import Future
from typing import Any, Optional, Union

import numpy as np

from ..constants import RecognitionConfig, get_recognition_config
from ..errors import ExtractionError, MultipleFacesDetected, NoFaceDetected
from ..models import ModelLoader, get_model_loader
from ..postprocess import decode_image
from .types import FaceDescriptor

logger = logging.getLogger(__name__)


def load_face_analysis(model_name: str, det_size, min_confidence: float):
    """Load an InsightFace pack with detection, landmark and recognition models."""
    from insightface.app import FaceAnalysis

    app = FaceAnalysis(
        name=model_name,
        allowed_modules=["detection", "landmark_2d_106", "recognition"],
        providers=["CPUExecutionProvider"],
    )
    app.prepare(ctx_id=-1, det_thresh=min_confidence, det_size=tuple(det_size))
    logger.info(f"Initialized InsightFace analysis pack: {model_name}")
    return app


class DescriptorExtractor:
    """Turns a still image into a fixed-length face descriptor."""

    def __init__(
        self,
        config: Optional[RecognitionConfig] = None,
        analyzer: Any = None,
    ):
        """Initialize extractor.

        Args:
            config: Recognition configuration (default: global config)
            analyzer: Pre-built analyzer exposing ``get(image)``; when
                      omitted the InsightFace pack is loaded once per
                      process on first use
        """
        self.config = config or get_recognition_config()
        self._analyzer = analyzer
        self._loader: Optional[ModelLoader] = None
        if analyzer is None:
            cfg = self.config
            key = f"recognition:{cfg.model_name}:{tuple(cfg.det_size)}:{cfg.min_confidence}"
            self._loader = get_model_loader(
                key,
                lambda: load_face_analysis(cfg.model_name, cfg.det_size, cfg.min_confidence),
            )
        self._embedding_dim: Optional[int] = None

    def load(self) -> Optional[Future]:
        """Start (or join) the shared model load."""
        if self._loader is None:
            return None
        return self._loader.load()

    @property
    def is_loaded(self) -> bool:
        return self._loader is None or self._loader.is_loaded

    @property
    def embedding_dim(self) -> Optional[int]:
        """Descriptor length, known after the first successful extraction."""
        return self._embedding_dim

    def _get_analyzer(self):
        if self._analyzer is not None:
            return self._analyzer
        return self._loader.get()

    def extract(self, image: Union[np.ndarray, bytes]) -> FaceDescriptor:
        """Extract the descriptor of the single face in ``image``.

        Args:
            image: BGR array or encoded image bytes

        Returns:
            Descriptor as a flat float32 vector

        Raises:
            ModelLoadError: If the recognition models cannot be loaded
            InvalidImageError: If bytes cannot be decoded
            NoFaceDetected: If no face is found
            MultipleFacesDetected: If more than one face is found
        """
        if isinstance(image, (bytes, bytearray)):
            image = decode_image(bytes(image))

        analyzer = self._get_analyzer()
        faces = [
            face for face in analyzer.get(image)
            if float(getattr(face, "det_score", 1.0)) >= self.config.min_confidence
        ]

        if not faces:
            raise NoFaceDetected()
        if len(faces) > 1:
            raise MultipleFacesDetected(len(faces))

        embedding = getattr(faces[0], "normed_embedding", None)
        if embedding is None:
            embedding = getattr(faces[0], "embedding", None)
        if embedding is None:
            raise ExtractionError()

        descriptor = np.asarray(embedding, dtype=np.float32).ravel()
        if self._embedding_dim is None:
            self._embedding_dim = int(descriptor.size)
        elif descriptor.size != self._embedding_dim:
            raise ExtractionError(
                f"Model produced a {descriptor.size}-d descriptor, expected {self._embedding_dim}"
            )
        return descriptor
