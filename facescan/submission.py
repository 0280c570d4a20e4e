"""Collaborators that receive the captured image.

Registration hands the processed JPEG to a CredentialStore. Verification
hands the raw capture to a Verifier, which answers with a MatchResult or
raises (VerificationMismatch for a non-matching face).
"""

import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import numpy as np
import requests

from .errors import NetworkError, SubmissionError, VerificationMismatch
from .recognition import (
    DescriptorExtractor,
    FaceDescriptor,
    FaceVerifier,
    MatchResult,
    descriptor_to_list,
)

logger = logging.getLogger(__name__)


# ============================================================
# Credential stores (registration)
# ============================================================

class CredentialStore(ABC):
    """Durable home for an enrolled face image."""

    @abstractmethod
    def store(self, image: bytes) -> str:
        """Persist the JPEG bytes and return a reference to them."""


class DirectoryCredentialStore(CredentialStore):
    """Writes each enrolled image (and optionally its descriptor) to a directory."""

    def __init__(
        self,
        directory: Union[str, Path],
        extractor: Optional[DescriptorExtractor] = None,
        filename: Optional[str] = None,
    ):
        """Initialize store.

        Args:
            directory: Output directory (created on first store)
            extractor: When given, the descriptor is written next to the
                       image as ``<name>.json``
            filename: Fixed file name to use instead of a generated one
        """
        self.directory = Path(directory)
        self.extractor = extractor
        self.filename = filename

    def store(self, image: bytes) -> str:
        # Extract first so a rejected capture leaves nothing on disk
        descriptor = self.extractor.extract(image) if self.extractor is not None else None

        self.directory.mkdir(parents=True, exist_ok=True)
        name = self.filename or f"face_{time.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}.jpg"
        path = self.directory / name

        try:
            path.write_bytes(image)
        except OSError as e:
            raise SubmissionError(f"Failed to save face image: {e}") from e
        logger.info(f"Saved face image to {path}")

        if descriptor is not None:
            descriptor_path = path.with_suffix(".json")
            try:
                descriptor_path.write_text(json.dumps(descriptor_to_list(descriptor)))
            except OSError as e:
                path.unlink(missing_ok=True)
                raise SubmissionError(f"Failed to save face descriptor: {e}") from e
            logger.info(f"Saved {descriptor.size}-d descriptor to {descriptor_path}")

        return str(path)


# ============================================================
# Verifiers (verification)
# ============================================================

class Verifier(ABC):
    """Compares a captured image with a stored reference descriptor."""

    @abstractmethod
    def verify(self, image: bytes, reference: FaceDescriptor) -> MatchResult:
        """Return the match result for a matching face.

        Raises:
            VerificationMismatch: If the face does not match
            ExtractionError: If the image has no usable face
            SubmissionError: If the verification backend is unreachable
        """


class LocalVerifier(Verifier):
    """Runs extraction and matching in-process."""

    def __init__(self, face_verifier: Optional[FaceVerifier] = None):
        self.face_verifier = face_verifier or FaceVerifier()

    def verify(self, image: bytes, reference: FaceDescriptor) -> MatchResult:
        result = self.face_verifier.verify(image, reference)
        if not result.is_match:
            raise VerificationMismatch(result.score, result.distance)
        return result


class HttpVerifier(Verifier):
    """Calls a remote ``PUT /api/v1/verify`` endpoint."""

    def __init__(self, url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        """Initialize verifier.

        Args:
            url: Full URL of the verify endpoint
            timeout: Request timeout in seconds
            session: Optional requests session to reuse connections
        """
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def verify(self, image: bytes, reference: FaceDescriptor) -> MatchResult:
        files = {"faceScan": ("face-scan.jpg", image, "image/jpeg")}
        data = {"faceDescriptor": json.dumps(descriptor_to_list(np.asarray(reference)))}

        try:
            response = self.session.put(self.url, files=files, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Verification request to {self.url} failed: {e}")
            raise NetworkError() from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.ok and body.get("success"):
            score = float(body.get("score", 0.0))
            distance = float(body.get("distance", 1.0 - score))
            return MatchResult(distance=distance, score=score, is_match=True)

        if response.status_code == 400 and "score" in body:
            raise VerificationMismatch(float(body["score"]), message=body.get("error"))

        message = body.get("error") or f"Verification failed with HTTP {response.status_code}"
        logger.error(f"Verification endpoint returned {response.status_code}: {message}")
        raise SubmissionError(message)
