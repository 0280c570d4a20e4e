"""Tests for the preview overlay."""

import numpy as np

from facescan.constants import get_config
from facescan.errors import VerificationMismatch
from facescan.guidance import CaptureMode, ColorState
from facescan.overlay import COLORS, draw_overlay, guide_ellipse
from facescan.session import ModalState, SessionSnapshot


def snapshot(state=ModalState.GUIDING, color=ColorState.GREEN, **kwargs):
    return SessionSnapshot(state=state, mode=CaptureMode.VERIFY, message="Hold still...", color=color, **kwargs)


class TestOverlay:
    def test_border_uses_state_color(self):
        image = np.zeros((480, 640, 3), dtype=np.uint8)
        output = draw_overlay(image, snapshot(color=ColorState.RED))

        assert tuple(output[0, 320]) == COLORS[ColorState.RED]
        assert not image.any()

    def test_error_with_score(self):
        error = VerificationMismatch(score=0.45)
        image = np.full((480, 640, 3), 128, dtype=np.uint8)
        output = draw_overlay(
            image, snapshot(state=ModalState.ERROR, color=ColorState.RED, error=error, score=0.45)
        )
        assert output.shape == image.shape

    def test_guide_ellipse_is_capped(self):
        center, axes = guide_ellipse(1000, 1000, threshold_x=0.0, threshold_y=0.0)
        assert center == (500, 500)
        assert axes == (425, 425)

    def test_guide_follows_configured_centering_band(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("guidance:\n  center_threshold_x: 0.0\n  center_threshold_y: 0.0\n")
        get_config().reload(path)

        image = np.zeros((1000, 1000, 3), dtype=np.uint8)
        output = draw_overlay(image, snapshot())

        # Capped guide reaches y=75; the default band would stop at y=200
        assert tuple(output[75, 500]) == COLORS[ColorState.GREEN]
        assert not output[200, 500].any()
