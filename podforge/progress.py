"""
Phased Progress Estimator

Turns one long external call of unknown duration into a smooth, labelled
progress signal. Each phase interpolates linearly from wherever the previous
phase stopped up to its own target over its estimated duration. The last
target is always below 100: only `complete()` may publish 100.

`tick(now)` is a pure function of the clock so the arithmetic can be
sampled deterministically; `run()` drives it from an asyncio task at the
configured frame interval.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

from podforge.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Phase:
    label: str
    icon: str
    target: float
    duration_ms: float


class PhasePlan:
    """Ordered, validated list of phases."""

    def __init__(self, phases: Sequence[Phase]):
        phases = tuple(phases)
        if not phases:
            raise ValueError("A phase plan needs at least one phase")
        for previous, current in zip(phases, phases[1:]):
            if current.target < previous.target:
                raise ValueError(f"Phase targets must not decrease ({previous.label} -> {current.label})")
        if phases[-1].target >= 100:
            raise ValueError("The last phase target must stay below 100")
        if any(p.target < 0 for p in phases):
            raise ValueError("Phase targets cannot be negative")
        if any(p.duration_ms <= 0 for p in phases):
            raise ValueError("Phase durations must be positive")
        self._phases = phases

    def __len__(self) -> int:
        return len(self._phases)

    def __getitem__(self, index: int) -> Phase:
        return self._phases[index]

    def __iter__(self) -> Iterator[Phase]:
        return iter(self._phases)


DRAFT_PHASE_PLAN = PhasePlan([
    Phase("Researching", "globe", 35, 7000),
    Phase("Aligning tone", "brain-circuit", 50, 2000),
    Phase("Structuring", "library", 65, 4000),
    Phase("Writing", "pen-tool", 98, 22000),
])


class PhasedProgressEstimator:
    """
    Callbacks:
        on_progress(value)        every published value
        on_phase(index, phase)    when a phase starts
        on_complete()             once, from complete() only
    """

    def __init__(
        self,
        plan: PhasePlan = DRAFT_PHASE_PLAN,
        clock: Callable[[], float] = time.monotonic,
        on_progress: Optional[Callable[[float], None]] = None,
        on_phase: Optional[Callable[[int, Phase], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
        frame_interval: Optional[float] = None,
    ):
        self.plan = plan
        self._clock = clock
        self._on_progress = on_progress
        self._on_phase = on_phase
        self._on_complete = on_complete
        self._frame_interval = frame_interval if frame_interval is not None else settings.PROGRESS_FRAME_SECONDS

        self.progress = 0.0
        self.phase_index = 0
        self.running = False
        self.completed = False
        self._phase_started_at = 0.0
        self._phase_start_progress = 0.0

    @property
    def phase(self) -> Phase:
        return self.plan[self.phase_index]

    def start(self) -> None:
        self.progress = 0.0
        self.phase_index = 0
        self.completed = False
        self.running = True
        self._phase_started_at = self._clock()
        self._phase_start_progress = 0.0
        self._notify_phase()
        self._publish()

    def tick(self, now: Optional[float] = None) -> float:
        """Advance to `now` (clock seconds) and publish the new value."""
        if not self.running:
            return self.progress
        now = self._clock() if now is None else now

        while True:
            phase = self.phase
            elapsed_ms = (now - self._phase_started_at) * 1000
            if elapsed_ms < phase.duration_ms:
                span = phase.target - self._phase_start_progress
                value = self._phase_start_progress + span * (elapsed_ms / phase.duration_ms)
                self.progress = max(self.progress, min(value, phase.target))
                break

            self.progress = max(self.progress, phase.target)
            if self.phase_index == len(self.plan) - 1:
                # Hold below 100 until the real result arrives
                break

            # The next phase starts where this one ended, in time and in value
            self._phase_started_at += phase.duration_ms / 1000
            self._phase_start_progress = self.progress
            self.phase_index += 1
            self._notify_phase()

        self._publish()
        return self.progress

    def complete(self) -> None:
        if self.completed:
            return
        self.running = False
        self.completed = True
        self.progress = 100.0
        self._publish()
        if self._on_complete:
            self._on_complete()

    def cancel(self) -> None:
        """Stop without firing `on_complete` and forget all state."""
        self.running = False
        self.completed = False
        self.progress = 0.0
        self.phase_index = 0

    def stop(self) -> None:
        """Stop the frame loop, keeping the current value."""
        self.running = False

    async def run(self) -> None:
        if not self.running:
            self.start()
        while self.running:
            await asyncio.sleep(self._frame_interval)
            self.tick()

    def _publish(self) -> None:
        if self._on_progress:
            self._on_progress(self.progress)

    def _notify_phase(self) -> None:
        if self._on_phase:
            self._on_phase(self.phase_index, self.phase)
