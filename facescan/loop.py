"""Fixed-interval detection loop feeding guidance and the scheduler.

The loop is single-threaded cooperative polling on the asyncio event
loop. Each tick hands the latest frame to the detector in a worker
thread; a busy flag makes a tick that arrives while the previous
detection is still running a no-op instead of queueing another call.
Stopping the loop bumps a generation counter, so any detection that
resolves afterwards is dropped rather than applied.
"""

import asyncio
import logging
import time
from concurrent.futures import Executor
from typing import Callable, Optional

from .camera import Frame, FrameSource
from .constants import DETECTION_INTERVAL_MS, GuidanceConfig
from .guidance import CaptureMode, GuidanceResult, evaluate_guidance
from .scheduler import CaptureTrigger, HysteresisScheduler

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


class DetectionLoop:
    """Polls the frame source and drives guidance + auto-capture."""

    def __init__(
        self,
        detector,
        frame_source: FrameSource,
        mode: CaptureMode,
        scheduler: HysteresisScheduler,
        on_guidance: Callable[[GuidanceResult], None],
        on_trigger: Callable[[CaptureTrigger], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        interval_ms: float = DETECTION_INTERVAL_MS,
        guidance_config: Optional[GuidanceConfig] = None,
        clock: Callable[[], float] = monotonic_ms,
        executor: Optional[Executor] = None,
    ):
        """Initialize the loop.

        Args:
            detector: Object with ``detect(image) -> List[Detection]``
            frame_source: Where frames come from
            mode: Capture mode passed to the guidance evaluator
            scheduler: Hysteresis scheduler deciding auto-capture
            on_guidance: Called with every applied guidance result
            on_trigger: Called once when capture should happen
            on_error: Called when a detection call raised
            interval_ms: Polling period
            guidance_config: Thresholds for the evaluator
            clock: Millisecond clock used for hysteresis timing
            executor: Executor for the blocking detect call
        """
        self._detector = detector
        self._source = frame_source
        self._mode = mode
        self._scheduler = scheduler
        self._on_guidance = on_guidance
        self._on_trigger = on_trigger
        self._on_error = on_error
        self._interval_ms = interval_ms
        self._guidance_config = guidance_config
        self._clock = clock
        self._executor = executor

        self._busy = False
        self._running = False
        self._generation = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        """True while a detection call is in flight."""
        return self._busy

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Tick every interval until ``stop`` is called or capture fires."""
        self._running = True
        self._generation += 1
        self._stop_event = asyncio.Event()
        self._scheduler.resume()
        interval = self._interval_ms / 1000.0
        logger.debug(f"Detection loop started (every {self._interval_ms:.0f} ms)")

        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.tick()

        logger.debug("Detection loop stopped")

    def tick(self) -> bool:
        """Start one detection unless the previous one is still running.

        Must be called from within the running event loop.

        Returns:
            True if a detection call was started
        """
        if not self._running or self._busy:
            return False

        frame = self._source.current_frame()
        if frame is None:
            return False

        self._busy = True
        self._task = asyncio.get_running_loop().create_task(
            self._detect(frame, self._generation)
        )
        return True

    def stop(self) -> None:
        """Stop ticking and discard any in-flight result."""
        self._running = False
        self._generation += 1
        self._scheduler.pause()
        if self._stop_event is not None:
            self._stop_event.set()

    async def wait_idle(self) -> None:
        """Wait for an in-flight detection call (if any) to finish."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.shield(task)

    def _is_stale(self, generation: int) -> bool:
        return not self._running or generation != self._generation

    async def _detect(self, frame: Frame, generation: int) -> None:
        try:
            loop = asyncio.get_running_loop()
            detections = await loop.run_in_executor(
                self._executor, self._detector.detect, frame.image
            )
            if self._is_stale(generation):
                logger.debug("Discarding detection result from a stopped loop")
                return

            result = evaluate_guidance(
                detections, frame.width, frame.height, self._mode, self._guidance_config
            )
            self._on_guidance(result)

            trigger = self._scheduler.update(result.status, self._clock())
            if trigger is not None:
                self.stop()
                self._on_trigger(trigger)
        except Exception as e:
            if self._is_stale(generation):
                return
            logger.error(f"Error during face detection loop: {e}")
            self._scheduler.reset()
            if self._on_error is not None:
                self._on_error(e)
        finally:
            self._busy = False
