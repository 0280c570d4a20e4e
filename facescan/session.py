"""Capture orchestrator: the modal state machine around one capture.

The session is split in two:

* ``transition`` is a pure reducer from (SessionSnapshot, event) to the
  next SessionSnapshot. Events that make no sense in the current state
  are ignored, so late callbacks can never move the session backwards.
* ``CaptureSession`` is the asyncio driver. It performs the entry action
  of each state (load models, open the camera, run the detection loop,
  capture, crop, submit), feeds the resulting events through the reducer,
  and guarantees teardown (loop stopped, camera released) on every exit.

State flow::

    LOADING_MODELS -> INITIALIZING_CAMERA -> GUIDING -> CAPTURING
        register: -> PROCESSING_IMAGE -> SUBMITTING -> SUCCESS
        verify:   -> SUBMITTING -> SUCCESS
    any failure -> ERROR; ERROR --retry--> GUIDING (retryable errors only)
"""

import asyncio
import functools
import logging
from concurrent.futures import Executor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .camera import FrameSource
from .constants import CaptureConfig, GuidanceConfig, get_capture_config
from .errors import FaceScanError, SubmissionError, VerificationMismatch
from .guidance import CaptureMode, ColorState, GuidanceResult
from .loop import DetectionLoop, monotonic_ms
from .postprocess import crop_to_aspect_ratio, encode_jpeg
from .recognition import FaceDescriptor
from .scheduler import CaptureTrigger, HysteresisScheduler
from .submission import CredentialStore, Verifier

logger = logging.getLogger(__name__)

LOADING_MODELS_MESSAGE = "Loading face detection models..."
INITIALIZING_CAMERA_MESSAGE = "Initializing camera..."
GUIDING_MESSAGE = "Position your face in the frame..."
PROCESSING_MESSAGE = "Processing image..."
DETECTION_ERROR_MESSAGE = "Detection error occurred."

_SUBMITTING_MESSAGES = {
    CaptureMode.REGISTER: "Finalizing registration...",
    CaptureMode.VERIFY: "Verifying...",
}
_SUCCESS_MESSAGES = {
    CaptureMode.REGISTER: "Image captured successfully!",
    CaptureMode.VERIFY: "Verification successful!",
}


class ModalState(Enum):
    LOADING_MODELS = "loading_models"
    INITIALIZING_CAMERA = "initializing_camera"
    GUIDING = "guiding"
    CAPTURING = "capturing"
    PROCESSING_IMAGE = "processing_image"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


# ============================================================
# Events
# ============================================================

@dataclass(frozen=True)
class ModelsLoaded:
    pass


@dataclass(frozen=True)
class ModelsFailed:
    error: FaceScanError


@dataclass(frozen=True)
class StreamReady:
    pass


@dataclass(frozen=True)
class CameraFailed:
    error: FaceScanError


@dataclass(frozen=True)
class GuidanceUpdated:
    result: GuidanceResult


@dataclass(frozen=True)
class GuidanceFailed:
    error: Exception


@dataclass(frozen=True)
class CaptureTriggered:
    pass


@dataclass(frozen=True)
class ImageCaptured:
    pass


@dataclass(frozen=True)
class CaptureFailed:
    error: FaceScanError


@dataclass(frozen=True)
class ImageProcessed:
    pass


@dataclass(frozen=True)
class ProcessingFailed:
    error: FaceScanError


@dataclass(frozen=True)
class SubmissionSucceeded:
    score: Optional[float] = None


@dataclass(frozen=True)
class SubmissionFailed:
    error: FaceScanError


@dataclass(frozen=True)
class Retry:
    pass


# ============================================================
# Reducer
# ============================================================

@dataclass(frozen=True)
class SessionSnapshot:
    """Everything the UI needs to render the current state."""

    state: ModalState
    mode: CaptureMode
    message: str
    color: ColorState = ColorState.BLUE
    error: Optional[FaceScanError] = None
    score: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (ModalState.SUCCESS, ModalState.ERROR)

    @property
    def can_retry(self) -> bool:
        return (
            self.state is ModalState.ERROR
            and self.error is not None
            and self.error.retryable
        )


def initial_snapshot(mode: CaptureMode, models_loaded: bool = False) -> SessionSnapshot:
    """Starting snapshot; skips model loading when models are cached."""
    if models_loaded:
        return SessionSnapshot(ModalState.INITIALIZING_CAMERA, mode, INITIALIZING_CAMERA_MESSAGE)
    return SessionSnapshot(ModalState.LOADING_MODELS, mode, LOADING_MODELS_MESSAGE)


def _error(snapshot: SessionSnapshot, error: FaceScanError) -> SessionSnapshot:
    score = error.score if isinstance(error, VerificationMismatch) else None
    return replace(
        snapshot,
        state=ModalState.ERROR,
        message=error.message,
        color=ColorState.RED,
        error=error,
        score=score,
    )


def _guiding(snapshot: SessionSnapshot) -> SessionSnapshot:
    return replace(
        snapshot,
        state=ModalState.GUIDING,
        message=GUIDING_MESSAGE,
        color=ColorState.BLUE,
        error=None,
        score=None,
    )


def transition(snapshot: SessionSnapshot, event) -> SessionSnapshot:
    """Apply one event; returns ``snapshot`` itself when the event is ignored."""
    state = snapshot.state

    if state is ModalState.LOADING_MODELS:
        if isinstance(event, ModelsLoaded):
            return replace(
                snapshot, state=ModalState.INITIALIZING_CAMERA, message=INITIALIZING_CAMERA_MESSAGE
            )
        if isinstance(event, ModelsFailed):
            return _error(snapshot, event.error)

    elif state is ModalState.INITIALIZING_CAMERA:
        if isinstance(event, StreamReady):
            return _guiding(snapshot)
        if isinstance(event, CameraFailed):
            return _error(snapshot, event.error)

    elif state is ModalState.GUIDING:
        if isinstance(event, GuidanceUpdated):
            return replace(snapshot, message=event.result.message, color=event.result.color_state)
        if isinstance(event, GuidanceFailed):
            return replace(snapshot, message=DETECTION_ERROR_MESSAGE, color=ColorState.RED)
        if isinstance(event, CaptureTriggered):
            return replace(snapshot, state=ModalState.CAPTURING, color=ColorState.GREEN)

    elif state is ModalState.CAPTURING:
        if isinstance(event, ImageCaptured):
            if snapshot.mode is CaptureMode.REGISTER:
                return replace(snapshot, state=ModalState.PROCESSING_IMAGE, message=PROCESSING_MESSAGE)
            return replace(
                snapshot, state=ModalState.SUBMITTING, message=_SUBMITTING_MESSAGES[snapshot.mode]
            )
        if isinstance(event, CaptureFailed):
            return _error(snapshot, event.error)

    elif state is ModalState.PROCESSING_IMAGE:
        if isinstance(event, ImageProcessed):
            return replace(
                snapshot, state=ModalState.SUBMITTING, message=_SUBMITTING_MESSAGES[snapshot.mode]
            )
        if isinstance(event, ProcessingFailed):
            return _error(snapshot, event.error)

    elif state is ModalState.SUBMITTING:
        if isinstance(event, SubmissionSucceeded):
            return replace(
                snapshot,
                state=ModalState.SUCCESS,
                message=_SUCCESS_MESSAGES[snapshot.mode],
                color=ColorState.GREEN,
                score=event.score,
            )
        if isinstance(event, SubmissionFailed):
            return _error(snapshot, event.error)

    elif state is ModalState.ERROR:
        if isinstance(event, Retry) and snapshot.can_retry:
            return _guiding(snapshot)

    return snapshot


# ============================================================
# Driver
# ============================================================

@dataclass(frozen=True)
class SessionOutcome:
    """What the caller learns once the session has closed."""

    mode: CaptureMode
    success: bool
    final_state: ModalState
    score: Optional[float] = None
    error: Optional[FaceScanError] = None
    stored_as: Optional[str] = None


class CaptureSession:
    """Runs one guided capture from model loading to close."""

    def __init__(
        self,
        mode: CaptureMode,
        detector,
        frame_source: FrameSource,
        credential_store: Optional[CredentialStore] = None,
        verifier: Optional[Verifier] = None,
        reference: Optional[FaceDescriptor] = None,
        capture_config: Optional[CaptureConfig] = None,
        guidance_config: Optional[GuidanceConfig] = None,
        on_change: Optional[Callable[[SessionSnapshot], None]] = None,
        clock: Callable[[], float] = monotonic_ms,
        executor: Optional[Executor] = None,
    ):
        """Initialize session.

        Args:
            mode: REGISTER or VERIFY
            detector: FaceDetector (``load()``, ``is_loaded``, ``detect()``)
            frame_source: Camera or any other FrameSource
            credential_store: Receives the cropped JPEG (register mode)
            verifier: Checks the capture against ``reference`` (verify mode)
            reference: Enrolled descriptor (verify mode)
            capture_config: Timing and crop settings (default: global config)
            guidance_config: Guidance thresholds (default: global config)
            on_change: Called with every new snapshot
            clock: Millisecond clock for auto-capture timing
            executor: Executor for blocking camera / submission calls
        """
        if mode is CaptureMode.REGISTER and credential_store is None:
            raise ValueError("Register mode requires a credential store")
        if mode is CaptureMode.VERIFY and (verifier is None or reference is None):
            raise ValueError("Verify mode requires a verifier and a reference descriptor")

        self.mode = mode
        self.detector = detector
        self.frame_source = frame_source
        self.credential_store = credential_store
        self.verifier = verifier
        self.reference = reference
        self.capture_config = capture_config or get_capture_config()
        self._on_change = on_change
        self._executor = executor

        self._scheduler = HysteresisScheduler(self.capture_config.auto_capture_delay_ms)
        self._detection_loop = DetectionLoop(
            detector,
            frame_source,
            mode,
            self._scheduler,
            on_guidance=lambda result: self._dispatch(GuidanceUpdated(result)),
            on_trigger=self._handle_trigger,
            on_error=lambda error: self._dispatch(GuidanceFailed(error)),
            interval_ms=self.capture_config.detection_interval_ms,
            guidance_config=guidance_config,
            clock=clock,
            executor=executor,
        )

        self._snapshot = initial_snapshot(mode, bool(getattr(detector, "is_loaded", False)))
        self._close_requested = False
        self._close_event: Optional[asyncio.Event] = None
        self._wake_event: Optional[asyncio.Event] = None
        self._trigger: Optional[asyncio.Future] = None
        self._opening: Optional[asyncio.Future] = None
        self._image: Optional[np.ndarray] = None
        self._payload: Optional[bytes] = None
        self._stored_as: Optional[str] = None

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def state(self) -> ModalState:
        return self._snapshot.state

    @property
    def detection_loop(self) -> DetectionLoop:
        return self._detection_loop

    # -- control ---------------------------------------------------------

    def retry(self) -> bool:
        """Leave a retryable Error state for Guiding.

        Returns:
            True if the retry was accepted
        """
        before = self._snapshot
        self._dispatch(Retry())
        accepted = self._snapshot is not before
        if accepted and self._wake_event is not None:
            self._wake_event.set()
        return accepted

    def close(self) -> None:
        """Close the session from any state."""
        self._close_requested = True
        if self._close_event is not None:
            self._close_event.set()

    def _dispatch(self, event) -> None:
        previous = self._snapshot
        self._snapshot = transition(previous, event)
        if self._snapshot == previous:
            return
        if self._snapshot.state is not previous.state:
            logger.debug(f"Session {previous.state.value} -> {self._snapshot.state.value}")
        if self._on_change is not None:
            self._on_change(self._snapshot)

    # -- main loop -------------------------------------------------------

    async def run(self) -> SessionOutcome:
        """Drive the session until it closes and report the outcome."""
        self._close_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        if self._close_requested:
            self._close_event.set()
        if self._on_change is not None:
            self._on_change(self._snapshot)

        handlers = {
            ModalState.LOADING_MODELS: self._load_models,
            ModalState.INITIALIZING_CAMERA: self._open_camera,
            ModalState.GUIDING: self._guide,
            ModalState.CAPTURING: self._capture,
            ModalState.PROCESSING_IMAGE: self._process,
            ModalState.SUBMITTING: self._submit,
            ModalState.SUCCESS: self._show_success,
            ModalState.ERROR: self._wait_for_retry,
        }

        try:
            while not self._close_requested:
                await self._until_closed(handlers[self.state]())
        finally:
            self._teardown()

        return self._outcome()

    async def _until_closed(self, coro) -> None:
        """Run ``coro`` unless ``close`` is requested first."""
        task = asyncio.ensure_future(coro)
        closer = asyncio.ensure_future(self._close_event.wait())
        try:
            await asyncio.wait({task, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closer.cancel()
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if task.done() and not task.cancelled():
            task.result()

    def _teardown(self) -> None:
        self._detection_loop.stop()
        self.frame_source.release()
        if self._opening is not None and not self._opening.done():
            # Device still opening in a worker thread: release once it returns
            self._opening.add_done_callback(self._release_late_open)

    def _release_late_open(self, future: asyncio.Future) -> None:
        if not future.cancelled():
            future.exception()
        self.frame_source.release()

    def _outcome(self) -> SessionOutcome:
        snapshot = self._snapshot
        success = snapshot.state is ModalState.SUCCESS
        if not success:
            logger.info(f"{self.mode.value.capitalize()} session closed without success")
        return SessionOutcome(
            mode=self.mode,
            success=success,
            final_state=snapshot.state,
            score=snapshot.score,
            error=snapshot.error,
            stored_as=self._stored_as if success else None,
        )

    async def _in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    # -- state entry actions ---------------------------------------------

    async def _load_models(self) -> None:
        try:
            await asyncio.shield(asyncio.wrap_future(self.detector.load()))
        except FaceScanError as e:
            self._dispatch(ModelsFailed(e))
            return
        self._dispatch(ModelsLoaded())

    async def _open_camera(self) -> None:
        loop = asyncio.get_running_loop()
        self._opening = loop.run_in_executor(self._executor, self.frame_source.open)
        try:
            await asyncio.shield(self._opening)
        except FaceScanError as e:
            self._dispatch(CameraFailed(e))
            return
        self._dispatch(StreamReady())

    def _handle_trigger(self, trigger: CaptureTrigger) -> None:
        if self._trigger is not None and not self._trigger.done():
            self._trigger.set_result(trigger)

    async def _guide(self) -> None:
        self._trigger = asyncio.get_running_loop().create_future()
        runner = asyncio.ensure_future(self._detection_loop.run())
        try:
            await self._trigger
        finally:
            self._detection_loop.stop()
            await runner
        self._dispatch(CaptureTriggered())

    async def _capture(self) -> None:
        self._image = None
        self._payload = None
        try:
            frame = await self._in_executor(self.frame_source.capture)
        except FaceScanError as e:
            self._dispatch(CaptureFailed(e))
            return
        self._image = frame.image
        logger.info(f"Captured frame {frame.frame_number} ({frame.width}x{frame.height})")
        self._dispatch(ImageCaptured())

    async def _process(self) -> None:
        config = self.capture_config
        try:
            cropped = crop_to_aspect_ratio(
                self._image, config.target_aspect_ratio, config.crop_tolerance
            )
            self._payload = encode_jpeg(cropped, config.jpeg_quality)
        except FaceScanError as e:
            logger.error(f"Error processing image for registration: {e}")
            self._dispatch(ProcessingFailed(e))
            return
        self._dispatch(ImageProcessed())

    async def _submit(self) -> None:
        try:
            if self.mode is CaptureMode.REGISTER:
                self._stored_as = await self._in_executor(self.credential_store.store, self._payload)
                score = None
            else:
                payload = encode_jpeg(self._image, self.capture_config.jpeg_quality)
                result = await self._in_executor(self.verifier.verify, payload, self.reference)
                score = result.score
        except FaceScanError as e:
            self._dispatch(SubmissionFailed(e))
            return
        except Exception as e:
            logger.exception(f"Unexpected {self.mode.value} submission failure")
            error = SubmissionError()
            error.__cause__ = e
            self._dispatch(SubmissionFailed(error))
            return
        self._dispatch(SubmissionSucceeded(score=score))

    async def _show_success(self) -> None:
        if self.mode is CaptureMode.REGISTER:
            delay_ms = self.capture_config.register_close_delay_ms
        else:
            delay_ms = self.capture_config.verify_close_delay_ms
        await asyncio.sleep(delay_ms / 1000.0)
        self.close()

    async def _wait_for_retry(self) -> None:
        while self.state is ModalState.ERROR:
            self._wake_event.clear()
            await self._wake_event.wait()
