"""Tests for face detection backends."""

import numpy as np
import pytest

from facescan.constants import DetectorConfig
from facescan.errors import DetectorNotReadyError


class TestBoundingBox:
    def test_center(self):
        from facescan.detection import BoundingBox

        box = BoundingBox(x=100, y=50, width=80, height=100)
        assert box.center == (140, 100)

    def test_from_corners(self):
        from facescan.detection import BoundingBox

        box = BoundingBox.from_corners(10.0, 20.0, 110.0, 220.0)
        assert (box.x, box.y, box.width, box.height) == (10.0, 20.0, 100.0, 200.0)


class TestFaceDetector:
    """Test cases for FaceDetector class."""

    def test_detector_initialization(self):
        """Test detector initializes correctly."""
        from facescan.detection import FaceDetector

        detector = FaceDetector(backend="haar_cascade", config=DetectorConfig())
        assert detector.backend_name == "haar_cascade"
        assert not detector.is_loaded

    def test_default_backend_from_config(self):
        from facescan.detection import FaceDetector

        detector = FaceDetector(config=DetectorConfig(backend="haar_cascade"))
        assert detector.backend_name == "haar_cascade"

    def test_detector_invalid_backend(self):
        """Test detector raises error for invalid backend."""
        from facescan.detection import FaceDetector

        with pytest.raises(ValueError):
            FaceDetector(backend="invalid_backend", config=DetectorConfig())

    def test_available_backends(self):
        from facescan.detection import FaceDetector

        assert set(FaceDetector.available_backends()) == {"insightface", "haar_cascade"}

    def test_detect_before_load_raises(self):
        from facescan.detection import FaceDetector

        detector = FaceDetector(backend="haar_cascade", config=DetectorConfig())
        with pytest.raises(DetectorNotReadyError):
            detector.detect(np.zeros((480, 640, 3), dtype=np.uint8))

    def test_haar_detect_empty_frame(self):
        """A blank frame is a normal zero-face result, not an error."""
        from facescan.detection import FaceDetector

        detector = FaceDetector(backend="haar_cascade", config=DetectorConfig())
        detector.load().result(timeout=30)

        assert detector.is_loaded
        assert detector.detect(np.zeros((480, 640, 3), dtype=np.uint8)) == []

    def test_instances_share_model(self):
        from facescan.detection import FaceDetector

        first = FaceDetector(backend="haar_cascade", config=DetectorConfig())
        second = FaceDetector(backend="haar_cascade", config=DetectorConfig())
        assert first.load() is second.load()


class FakeInsightFace:
    def __init__(self, faces):
        self.faces = faces

    def get(self, image):
        return self.faces


class TestInsightFaceDetector:
    def _detector(self, faces, min_confidence=0.5):
        from facescan.detection import InsightFaceDetector

        detector = InsightFaceDetector(min_confidence=min_confidence)
        detector._app = FakeInsightFace(faces)
        return detector

    def test_converts_and_filters(self):
        from conftest import FakeFace

        faces = [
            FakeFace(normed_embedding=None, det_score=0.9, bbox=np.array([100, 50, 300, 350])),
            FakeFace(normed_embedding=None, det_score=0.3, bbox=np.array([400, 50, 500, 150])),
        ]
        detections = self._detector(faces).detect(np.zeros((480, 640, 3), dtype=np.uint8))

        assert len(detections) == 1
        assert detections[0].confidence == pytest.approx(0.9)
        assert detections[0].box.width == 200
        assert detections[0].box.height == 300

    def test_clamps_to_frame(self):
        from conftest import FakeFace

        faces = [FakeFace(normed_embedding=None, bbox=np.array([-20, -10, 700, 500]))]
        box = self._detector(faces).detect(np.zeros((480, 640, 3), dtype=np.uint8))[0].box

        assert (box.x, box.y, box.width, box.height) == (0.0, 0.0, 640.0, 480.0)

    def test_not_loaded(self):
        from facescan.detection import InsightFaceDetector

        with pytest.raises(RuntimeError):
            InsightFaceDetector().detect(np.zeros((10, 10, 3), dtype=np.uint8))
