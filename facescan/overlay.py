"""OpenCV rendering of the session state for the live preview window."""

from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from .constants import (
    FACE_CENTER_THRESHOLD_X,
    FACE_CENTER_THRESHOLD_Y,
    GuidanceConfig,
    get_guidance_config,
)
from .guidance import ColorState
from .session import ModalState, SessionSnapshot

# BGR
COLORS: Dict[ColorState, Tuple[int, int, int]] = {
    ColorState.RED: (0, 0, 255),
    ColorState.YELLOW: (0, 215, 255),
    ColorState.GREEN: (0, 200, 0),
    ColorState.BLUE: (255, 128, 0),
}

_LIVE_STATES = (ModalState.GUIDING, ModalState.CAPTURING)


def guide_ellipse(
    frame_width: int,
    frame_height: int,
    threshold_x: float = FACE_CENTER_THRESHOLD_X,
    threshold_y: float = FACE_CENTER_THRESHOLD_Y,
) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Center and half-axes of the on-screen face guide.

    The guide is the centering band widened by 40% of the frame, capped
    at 85% of it.
    """
    width = min((1 - 2 * threshold_x) + 0.4, 0.85) * frame_width
    height = min((1 - 2 * threshold_y) + 0.4, 0.85) * frame_height
    center = (frame_width // 2, frame_height // 2)
    return center, (int(width / 2), int(height / 2))


def draw_overlay(
    image: np.ndarray,
    snapshot: SessionSnapshot,
    thickness: int = 8,
    guidance_config: Optional[GuidanceConfig] = None,
) -> np.ndarray:
    """Return a copy of ``image`` with the state border, guide and message.

    The guide follows the same centering thresholds the evaluator uses.
    """
    guidance_config = guidance_config or get_guidance_config()
    output = image.copy()
    height, width = output.shape[:2]
    color = COLORS[snapshot.color]

    cv2.rectangle(output, (0, 0), (width - 1, height - 1), color, thickness)

    if snapshot.state in _LIVE_STATES:
        center, axes = guide_ellipse(
            width, height, guidance_config.center_threshold_x, guidance_config.center_threshold_y
        )
        cv2.ellipse(output, center, axes, 0, 0, 360, color, 2)
    else:
        # Dim the frame while nothing live is happening
        output = cv2.addWeighted(output, 0.4, np.zeros_like(output), 0.6, 0)

    lines = [snapshot.message]
    if snapshot.score is not None:
        lines.append(f"Score: {snapshot.score * 100:.2f}%")
    if snapshot.can_retry:
        lines.append("Press R to retry, Q to close")

    for i, line in enumerate(reversed(lines)):
        text_size = cv2.getTextSize(line, cv2.FONT_HERSHEY_SIMPLEX, 0.7, 2)[0]
        x = max(10, (width - text_size[0]) // 2)
        y = height - 30 - i * 32
        cv2.rectangle(output, (x - 8, y - text_size[1] - 8), (x + text_size[0] + 8, y + 8), (0, 0, 0), -1)
        cv2.putText(output, line, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2)

    return output
