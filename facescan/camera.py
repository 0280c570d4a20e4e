"""Frame sources: the contract the pipeline consumes plus an OpenCV camera."""

import logging
import os
import platform
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from .errors import CameraAccessError, CameraErrorReason, CaptureError

logger = logging.getLogger(__name__)

_STREAM_PREFIXES = ("rtsp://", "http://", "https://")


@dataclass
class Frame:
    """A captured frame with metadata."""
    image: np.ndarray
    timestamp: float
    frame_number: int

    @property
    def shape(self) -> tuple:
        return self.image.shape

    @property
    def height(self) -> int:
        return self.image.shape[0]

    @property
    def width(self) -> int:
        return self.image.shape[1]


class FrameSource(ABC):
    """Source of live frames for the guidance loop.

    ``open`` blocks until the stream is ready (this is the "stream ready"
    notification) or raises CameraAccessError. ``release`` must be safe
    to call any number of times, from any state.
    """

    @abstractmethod
    def open(self) -> None:
        """Acquire the device and wait for the first frame."""

    @abstractmethod
    def current_frame(self) -> Optional[Frame]:
        """Most recent frame, or None if nothing has arrived yet."""

    @abstractmethod
    def release(self) -> None:
        """Stop streaming and release the device."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True while frames are being delivered."""

    def capture(self) -> Frame:
        """Take a still frame for submission.

        Raises:
            CaptureError: If no frame is available
        """
        frame = self.current_frame()
        if frame is None:
            raise CaptureError()
        return Frame(
            image=frame.image.copy(),
            timestamp=frame.timestamp,
            frame_number=frame.frame_number,
        )

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


@dataclass
class CameraConfig:
    """Camera configuration."""
    width: int = 1280
    height: int = 720
    fps: int = 30
    device: Union[int, str] = 0
    buffer_size: int = 1
    # Seconds to wait for the first frame before giving up
    ready_timeout: float = 5.0


def classify_open_failure(device: Union[int, str]) -> CameraErrorReason:
    """Best-effort mapping of an OpenCV open failure to a reason."""
    if isinstance(device, str) and device.isdigit():
        device = int(device)

    if isinstance(device, int):
        if platform.system() != "Linux":
            return CameraErrorReason.NOT_FOUND
        node = Path(f"/dev/video{device}")
        if not node.exists():
            return CameraErrorReason.NOT_FOUND
        if not os.access(node, os.R_OK | os.W_OK):
            return CameraErrorReason.PERMISSION_DENIED
        return CameraErrorReason.IN_USE

    if device.startswith(_STREAM_PREFIXES):
        return CameraErrorReason.NOT_FOUND

    path = Path(device)
    if path.exists() and not os.access(path, os.R_OK):
        return CameraErrorReason.PERMISSION_DENIED
    return CameraErrorReason.NOT_FOUND


class Camera(FrameSource):
    """OpenCV camera with a background reader thread.

    The reader keeps only the latest frame, so ``current_frame`` always
    returns what the user sees right now rather than a queued backlog.
    """

    def __init__(self, config: Optional[CameraConfig] = None):
        """Initialize camera.

        Args:
            config: Camera configuration (uses defaults if None)
        """
        self.config = config or CameraConfig()

        self._capture: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self._frame_ready = threading.Event()
        self._frame_count = 0

        self._streaming = False
        self._stream_thread: Optional[threading.Thread] = None
        self._current_frame: Optional[Frame] = None

    def open(self) -> None:
        """Open the device and start the reader thread.

        Raises:
            CameraAccessError: If the device cannot be opened or delivers
                no frame within ``ready_timeout``
        """
        with self._lock:
            if self._streaming:
                return
            device = self.config.device
            if isinstance(device, str) and device.isdigit():
                device = int(device)

            capture = cv2.VideoCapture(device)
            if not capture.isOpened():
                capture.release()
                reason = classify_open_failure(device)
                logger.error(f"Failed to open camera device {device}: {reason.value}")
                raise CameraAccessError(reason)

            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
            capture.set(cv2.CAP_PROP_FPS, self.config.fps)
            capture.set(cv2.CAP_PROP_BUFFERSIZE, self.config.buffer_size)

            self._capture = capture
            self._frame_ready.clear()
            self._streaming = True
            self._stream_thread = threading.Thread(
                target=self._stream_loop,
                name="camera-reader",
                daemon=True,
            )
            self._stream_thread.start()
            logger.info(f"Opened OpenCV camera: {device}")

        if not self._frame_ready.wait(self.config.ready_timeout):
            self.release()
            raise CameraAccessError(CameraErrorReason.IN_USE)

    def _stream_loop(self) -> None:
        """Background reader loop."""
        while self._streaming:
            capture = self._capture
            if capture is None:
                break
            ok, image = capture.read()
            if not ok or image is None:
                time.sleep(0.01)
                continue
            self._frame_count += 1
            self._current_frame = Frame(
                image=image,
                timestamp=time.time(),
                frame_number=self._frame_count,
            )
            self._frame_ready.set()

    def current_frame(self) -> Optional[Frame]:
        return self._current_frame

    def release(self) -> None:
        """Stop the reader and release the device (idempotent)."""
        self._streaming = False
        thread = self._stream_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._stream_thread = None

        with self._lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None
                logger.info("Camera released")
            self._current_frame = None
            self._frame_ready.clear()

    @property
    def is_ready(self) -> bool:
        return self._streaming and self._current_frame is not None

    @property
    def frame_count(self) -> int:
        """Get total frames captured."""
        return self._frame_count
