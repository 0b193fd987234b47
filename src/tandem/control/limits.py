"""Step and wall-clock bounds for agent loops.

Reaching a bound is a terminal loop state, not an error, so the tracker
reports which bound was hit instead of raising.
"""

import time
from typing import Callable

from pydantic import BaseModel, Field

from ..types import LoopState

DEFAULT_MAX_STEPS = 10
DEFAULT_TIMEOUT_SECONDS = 120.0


class LoopLimits(BaseModel):
    """Bounds for one loop run."""

    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, description="<= 0 times out at once")


class LoopBudget:
    """Tracks steps and the deadline for one loop run.

    Example:
        budget = LoopBudget(LoopLimits(max_steps=5, timeout_seconds=30))
        budget.start()
        while budget.exhausted() is None:
            ...
            budget.record_step()
    """

    def __init__(
        self,
        limits: LoopLimits | None = None,
        on_limit_warning: Callable[[str, float, float], None] | None = None,
        warning_threshold: float = 0.8,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the budget.

        Args:
            limits: Bounds to track.
            on_limit_warning: Called once per bound when usage passes
                ``warning_threshold`` (type, current, limit).
            warning_threshold: Fraction of a bound at which to warn.
            clock: Monotonic clock in seconds.
        """
        self._limits = limits or LoopLimits()
        self._on_limit_warning = on_limit_warning
        self._warning_threshold = warning_threshold
        self._clock = clock
        self._warnings_issued: set[str] = set()
        self._started_at: float | None = None
        self._steps = 0

    @property
    def limits(self) -> LoopLimits:
        return self._limits

    @property
    def step_count(self) -> int:
        return self._steps

    def start(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    @property
    def remaining_time(self) -> float:
        return max(0.0, self._limits.timeout_seconds - self.elapsed)

    @property
    def deadline_passed(self) -> bool:
        return self._limits.timeout_seconds <= 0 or self.elapsed >= self._limits.timeout_seconds

    def record_step(self) -> None:
        self._steps += 1
        self._check_warning("steps", float(self._steps), float(self._limits.max_steps))
        if self._limits.timeout_seconds > 0:
            self._check_warning("time", self.elapsed, self._limits.timeout_seconds)

    def exhausted(self) -> LoopState | None:
        """The terminal state for the first bound reached, if any."""
        if self._steps >= self._limits.max_steps:
            return LoopState.MAX_STEPS_REACHED
        if self.deadline_passed:
            return LoopState.TIMED_OUT
        return None

    def _check_warning(self, limit_type: str, current: float, limit: float) -> None:
        if self._on_limit_warning is None or limit_type in self._warnings_issued:
            return
        if limit > 0 and current / limit >= self._warning_threshold:
            self._warnings_issued.add(limit_type)
            self._on_limit_warning(limit_type, current, limit)
