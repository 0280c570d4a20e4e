"""Hysteresis scheduler deciding when to auto-capture.

A capture fires only after guidance has been valid continuously for the
auto-capture delay. Any non-valid tick clears the streak, and a new full
delay must elapse from the next valid tick.

The decision itself is the pure ``tick`` function over an immutable
SchedulerState; HysteresisScheduler merely owns the current state.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .constants import AUTO_CAPTURE_DELAY_MS
from .guidance import GuidanceStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulerState:
    """Streak start time (ms) of the current valid run, if any."""
    valid_since: Optional[float] = None


@dataclass(frozen=True)
class CaptureTrigger:
    """Emitted once per qualifying valid streak."""
    timestamp: float
    held_for_ms: float


def tick(
    state: SchedulerState,
    status: GuidanceStatus,
    now: float,
    delay_ms: float = AUTO_CAPTURE_DELAY_MS,
) -> Tuple[SchedulerState, Optional[CaptureTrigger]]:
    """Advance the scheduler by one guidance result.

    Args:
        state: Current scheduler state
        status: Guidance status for this tick
        now: Current time in milliseconds (monotonic)
        delay_ms: Required continuous valid duration

    Returns:
        (new_state, trigger) where trigger is None unless capture fires
    """
    if status is not GuidanceStatus.VALID:
        return replace(state, valid_since=None), None

    if state.valid_since is None:
        return replace(state, valid_since=now), None

    held = now - state.valid_since
    if held >= delay_ms:
        return replace(state, valid_since=None), CaptureTrigger(timestamp=now, held_for_ms=held)

    return state, None


class HysteresisScheduler:
    """Stateful wrapper around ``tick`` with pause support.

    While paused, updates are ignored and never trigger; pausing and
    resuming both clear any streak in progress.
    """

    def __init__(self, delay_ms: float = AUTO_CAPTURE_DELAY_MS):
        self.delay_ms = delay_ms
        self._state = SchedulerState()
        self._paused = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def paused(self) -> bool:
        return self._paused

    def update(self, status: GuidanceStatus, now: float) -> Optional[CaptureTrigger]:
        """Feed one guidance status; return a trigger if capture is due."""
        if self._paused:
            return None

        self._state, trigger = tick(self._state, status, now, self.delay_ms)
        if trigger is not None:
            logger.info(f"Auto-capture threshold met after {trigger.held_for_ms:.0f} ms")
        return trigger

    def reset(self) -> None:
        self._state = SchedulerState()

    def pause(self) -> None:
        self._paused = True
        self.reset()

    def resume(self) -> None:
        self._paused = False
        self.reset()
