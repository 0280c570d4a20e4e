"""Pytest configuration and fixtures."""

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np
import pytest

from facescan.camera import Frame, FrameSource
from facescan.constants import CaptureConfig, Config
from facescan.detection import BoundingBox, Detection
from facescan.models import clear_model_loaders

FRAME_WIDTH = 1280
FRAME_HEIGHT = 720


@pytest.fixture(autouse=True)
def isolated_state():
    """Fresh model registry and config singleton for every test."""
    clear_model_loaders()
    Config._instance = None
    yield
    clear_model_loaders()
    Config._instance = None


@pytest.fixture
def sample_image():
    """Create a sample test image."""
    return np.random.randint(0, 255, (480, 640, 3), dtype=np.uint8)


@pytest.fixture
def sample_jpeg(sample_image):
    """Sample image encoded as JPEG bytes."""
    ok, buffer = cv2.imencode(".jpg", sample_image)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def fast_capture_config():
    """Capture config with real hysteresis but no idle waiting."""
    return CaptureConfig(
        auto_capture_delay_ms=1500,
        detection_interval_ms=1,
        register_close_delay_ms=0,
        verify_close_delay_ms=0,
    )


def make_detection(x, y, width, height, confidence=0.99) -> Detection:
    return Detection(box=BoundingBox(x=x, y=y, width=width, height=height), confidence=confidence)


def centered_detection(height=360) -> Detection:
    """Single face centered in a 1280x720 frame."""
    width = height * 0.8
    return make_detection(
        FRAME_WIDTH / 2 - width / 2, FRAME_HEIGHT / 2 - height / 2, width, height
    )


class FakeDetector:
    """Stands in for FaceDetector; returns scripted detections."""

    def __init__(self, detections=None, error: Exception = None, loaded: bool = True,
                 load_error: Exception = None):
        self.detections = [] if detections is None else detections
        self.error = error
        self.loaded = loaded
        self.load_error = load_error
        self.calls = 0
        self.gate: Optional[threading.Event] = None

    @property
    def is_loaded(self) -> bool:
        return self.loaded

    def load(self) -> Future:
        future: Future = Future()
        if self.load_error is not None:
            future.set_exception(self.load_error)
        else:
            self.loaded = True
            future.set_result(self)
        return future

    def detect(self, image) -> List[Detection]:
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return list(self.detections)


class FakeFrameSource(FrameSource):
    """Frame source serving one fixed image."""

    def __init__(self, image=None, open_error: Exception = None, has_frame: bool = True):
        self.image = image if image is not None else np.zeros(
            (FRAME_HEIGHT, FRAME_WIDTH, 3), dtype=np.uint8
        )
        self.open_error = open_error
        self.has_frame = has_frame
        self.opened = False
        self.open_calls = 0
        self.release_calls = 0

    def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def current_frame(self) -> Optional[Frame]:
        if not self.has_frame:
            return None
        return Frame(image=self.image, timestamp=0.0, frame_number=1)

    def release(self) -> None:
        self.release_calls += 1
        self.opened = False

    @property
    def is_ready(self) -> bool:
        return self.opened and self.has_frame


@dataclass
class FakeFace:
    """Mimics an insightface Face object."""
    normed_embedding: np.ndarray
    det_score: float = 0.9
    bbox: np.ndarray = None


class FakeAnalyzer:
    """Mimics FaceAnalysis.get()."""

    def __init__(self, faces=None):
        self.faces = [] if faces is None else faces
        self.calls = 0

    def get(self, image):
        self.calls += 1
        return list(self.faces)


@pytest.fixture
def fake_detector():
    return FakeDetector(detections=[centered_detection()])


@pytest.fixture
def fake_frame_source():
    return FakeFrameSource()


@pytest.fixture
def unit_embedding():
    return np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float32)


@pytest.fixture
def fake_analyzer(unit_embedding):
    return FakeAnalyzer([FakeFace(normed_embedding=unit_embedding)])
