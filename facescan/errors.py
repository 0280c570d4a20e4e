"""Exception hierarchy for the face scan pipeline.

Guidance conditions (no face, off-center, ...) are never raised; they are
reported as GuidanceResult values. Everything here either terminates a
capture attempt or the whole session.
"""

from enum import Enum
from typing import Optional


class FaceScanError(Exception):
    """Base class for all pipeline errors."""

    #: Whether the user may retry from the Error state back into guidance.
    retryable: bool = True
    default_message: str = "An error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ============================================================
# Model / detector errors
# ============================================================

class ModelLoadError(FaceScanError):
    """A detection or recognition model bundle could not be loaded."""

    retryable = False
    default_message = "Failed to load face detection models."


class DetectorNotReadyError(FaceScanError):
    """detect() was called before the detector model finished loading."""

    retryable = False
    default_message = "Face detection model not loaded"


# ============================================================
# Camera errors
# ============================================================

class CameraErrorReason(Enum):
    """Why a camera could not be acquired."""
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    IN_USE = "in_use"


_CAMERA_MESSAGES = {
    CameraErrorReason.PERMISSION_DENIED: (
        "Camera access denied. Please allow camera permissions and retry."
    ),
    CameraErrorReason.NOT_FOUND: "No camera found. Please connect a camera and retry.",
    CameraErrorReason.IN_USE: "Camera is in use by another application.",
}


class CameraAccessError(FaceScanError):
    """The frame source could not be opened."""

    retryable = False

    def __init__(self, reason: CameraErrorReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or _CAMERA_MESSAGES[reason])


class CaptureError(FaceScanError):
    """A still frame could not be taken after the capture trigger."""

    default_message = "Failed to capture image from camera"


# ============================================================
# Extraction / post-processing errors
# ============================================================

class ExtractionError(FaceScanError):
    """Base class for descriptor extraction rejections."""

    default_message = "Failed to process face image"


class NoFaceDetected(ExtractionError):
    default_message = "No face detected in image"


class MultipleFacesDetected(ExtractionError):
    default_message = "Multiple faces detected. Please ensure only one face is visible"

    def __init__(self, count: int, message: Optional[str] = None):
        self.count = count
        super().__init__(message)


class InvalidImageError(ExtractionError):
    default_message = "Could not decode image"


class CropDimensionError(FaceScanError):
    """The aspect-ratio crop produced a non-positive window."""

    default_message = "Error processing captured image"

    def __init__(self, window: Optional[tuple] = None, message: Optional[str] = None):
        self.window = window
        super().__init__(message)


class DescriptorError(FaceScanError, ValueError):
    """A face descriptor is malformed or has the wrong length."""

    default_message = "Invalid face descriptor format"


# ============================================================
# Submission errors
# ============================================================

class SubmissionError(FaceScanError):
    """Handing the captured image to a collaborator failed."""

    default_message = "Error submitting captured image"


class NetworkError(SubmissionError):
    default_message = "Network error during verification"


class VerificationMismatch(FaceScanError):
    """The captured face does not match the reference descriptor.

    This is an expected negative outcome, not a software fault. The
    computed score is kept so it can be displayed to the user.
    """

    default_message = "Face verification failed. Please try again or contact admin."

    def __init__(self, score: float, distance: Optional[float] = None, message: Optional[str] = None):
        self.score = score
        self.distance = distance
        super().__init__(message)
