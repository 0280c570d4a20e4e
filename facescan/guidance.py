"""Guidance evaluation: turn per-frame detections into user feedback.

The evaluator is a pure function. It never raises; anything short of a
single, well-sized, centered face degrades to the most specific
"not yet valid" status so the loop can simply try again next tick.

Checks run in a fixed priority order:

1. face count (none / several)
2. distance, from face height relative to frame height
3. centering on both axes

Distance is checked before centering, so a face that is both too far
and off-center is reported as too far.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .constants import GuidanceConfig, get_guidance_config
from .detection.types import Detection

logger = logging.getLogger(__name__)


class CaptureMode(Enum):
    """What the capture is for."""
    REGISTER = "register"
    VERIFY = "verify"


class GuidanceStatus(Enum):
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    VALID = "valid"
    OFF_CENTER = "off_center"
    TOO_FAR = "too_far"
    TOO_CLOSE = "too_close"


class ColorState(Enum):
    """Severity color shown around the preview."""
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"


class DistanceClass(Enum):
    FAR = "far"
    CLOSE = "close"
    OPTIMAL = "optimal"


@dataclass(frozen=True)
class GuidanceResult:
    """Outcome of evaluating one frame.

    ``distance_class`` and ``face_height_ratio`` are only set when exactly
    one face was detected.
    """

    status: GuidanceStatus
    message: str
    color_state: ColorState
    distance_class: Optional[DistanceClass] = None
    face_height_ratio: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        return self.status is GuidanceStatus.VALID


def evaluate_guidance(
    detections: Sequence[Detection],
    frame_width: float,
    frame_height: float,
    mode: CaptureMode,
    config: Optional[GuidanceConfig] = None,
) -> GuidanceResult:
    """Classify face placement for one frame.

    Args:
        detections: Faces found in the frame
        frame_width: Frame width in pixels
        frame_height: Frame height in pixels
        mode: Capture mode, selects the message shown when valid
        config: Thresholds and messages (default: global config)

    Returns:
        GuidanceResult for this frame
    """
    config = config or get_guidance_config()

    if len(detections) == 0 or frame_width <= 0 or frame_height <= 0:
        return GuidanceResult(
            status=GuidanceStatus.NO_FACE,
            message=config.no_face_message,
            color_state=ColorState.RED,
        )

    if len(detections) > 1:
        return GuidanceResult(
            status=GuidanceStatus.MULTIPLE_FACES,
            message=config.multiple_faces_message,
            color_state=ColorState.RED,
        )

    box = detections[0].box
    ratio = box.height / frame_height

    if ratio < config.size_min_threshold:
        return GuidanceResult(
            status=GuidanceStatus.TOO_FAR,
            message=config.too_far_message,
            color_state=ColorState.YELLOW,
            distance_class=DistanceClass.FAR,
            face_height_ratio=ratio,
        )

    if ratio > config.size_max_threshold:
        return GuidanceResult(
            status=GuidanceStatus.TOO_CLOSE,
            message=config.too_close_message,
            color_state=ColorState.YELLOW,
            distance_class=DistanceClass.CLOSE,
            face_height_ratio=ratio,
        )

    cx, cy = box.center
    tx = config.center_threshold_x
    ty = config.center_threshold_y
    centered_x = frame_width * tx < cx < frame_width * (1 - tx)
    centered_y = frame_height * ty < cy < frame_height * (1 - ty)

    if centered_x and centered_y:
        message = (
            config.register_valid_message
            if mode is CaptureMode.REGISTER
            else config.verify_valid_message
        )
        return GuidanceResult(
            status=GuidanceStatus.VALID,
            message=message,
            color_state=ColorState.GREEN,
            distance_class=DistanceClass.OPTIMAL,
            face_height_ratio=ratio,
        )

    return GuidanceResult(
        status=GuidanceStatus.OFF_CENTER,
        message=_centering_message(
            cx / frame_width, cy / frame_height, centered_x, centered_y, config
        ),
        color_state=ColorState.YELLOW,
        distance_class=DistanceClass.OPTIMAL,
        face_height_ratio=ratio,
    )


def _centering_message(
    x_ratio: float,
    y_ratio: float,
    centered_x: bool,
    centered_y: bool,
    config: GuidanceConfig,
) -> str:
    """Pick a directional hint when exactly one axis is off."""
    if not centered_x and not centered_y:
        return config.center_message

    if not centered_x:
        if x_ratio < 0.5:
            return "Move slightly right"
        if x_ratio > 0.5:
            return "Move slightly left"
        return config.center_message

    if y_ratio < 0.5:
        return "Move slightly down"
    if y_ratio > 0.5:
        return "Move slightly up"
    return config.center_message
