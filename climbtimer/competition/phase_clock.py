# climbtimer/competition/phase_clock.py
import logging
from dataclasses import dataclass
from typing import Callable

from . import rotation
from .models import Phase, TimerState

logger = logging.getLogger(__name__)


@dataclass
class ClockStep:
    remaining: int
    phase: Phase
    crossed_zero: bool = False
    roster_changed: bool = False


class PhaseClock:
    """
    Countdown logic for one room. Cycles climb -> transition -> climb.

    The clock only counts while ``state.running`` is set; pausing keeps both
    ``remaining`` and ``phase``. When the countdown hits zero it stays at zero
    for one whole step so viewers see 0:00, and the following step is the
    zero-crossing, which is the only place climbers rotate automatically.
    """

    def __init__(self, state: TimerState):
        self.state = state

    def tick(self) -> bool:
        """Count down one second. Returns True once the countdown is at zero."""
        self.state.remaining = max(self.state.remaining - 1, 0)
        return self.state.remaining == 0

    def cross_zero(self) -> bool:
        """Switch phases. Returns True when the rosters advanced."""
        state = self.state
        if state.phase == Phase.CLIMB:
            rotation.advance_all(state.categories)
            if state.transition_seconds > 0:
                state.phase = Phase.TRANSITION
                state.remaining = state.transition_seconds
            else:
                state.phase = Phase.CLIMB
                state.remaining = state.climb_seconds
            logger.info("Climb phase ended, climbers advanced; now %s (%ss)", state.phase.value, state.remaining)
            return True

        if state.phase == Phase.TRANSITION:
            state.phase = Phase.CLIMB
            state.remaining = state.climb_seconds
            logger.info("Transition ended; climb phase started (%ss)", state.remaining)
        return False

    def step(self) -> ClockStep:
        """One elapsed second while running."""
        if self.state.remaining <= 0:
            rotated = self.cross_zero()
            return ClockStep(self.state.remaining, self.state.phase, crossed_zero=True, roster_changed=rotated)
        self.tick()
        logger.debug("Tick: %s - %ss remaining", self.state.phase.value, self.state.remaining)
        return ClockStep(self.state.remaining, self.state.phase)


class ClockTask:
    """
    Recurring per-room timer handle. ``start`` and ``stop`` are the only
    operations; both are idempotent.

    ``scheduler`` is anything with ``start_background_task`` and ``sleep``,
    normally the app's SocketIO instance.
    """

    def __init__(self, scheduler, on_step: Callable[[], None], interval: float = 1.0, name: str = ""):
        self.scheduler = scheduler
        self.on_step = on_step
        self.interval = interval
        self.name = name
        self._generation = 0
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        if self._running:
            return
        self._running = True
        self._generation += 1
        self.scheduler.start_background_task(self._loop, self._generation)
        logger.info("Clock started for room %s", self.name)

    def stop(self):
        if not self._running:
            return
        self._running = False
        # a loop from an earlier start exits at its next wake-up
        self._generation += 1
        logger.info("Clock stopped for room %s", self.name)

    def _loop(self, generation: int):
        while True:
            self.scheduler.sleep(self.interval)
            if generation != self._generation:
                return
            try:
                self.on_step()
            except Exception:
                logger.exception("Clock step failed for room %s", self.name)
