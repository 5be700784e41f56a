from collections import deque
import logging
import typing

import attrs

from boxoil.errors import TimingError, ValidationError

__all__ = ["StepMetrics", "Timer"]

logger = logging.getLogger(__name__)


@attrs.frozen(slots=True)
class StepMetrics:
    """Metrics for a single time step attempt."""

    step_number: int
    step_size: float
    cfl: typing.Optional[float] = None
    success: bool = True


@attrs.define
class Timer:
    """
    Simulation clock for explicit, CFL-limited time stepping.

    Every step starts from a candidate proposed from the CFL bound, capped by
    `max_step_size` and the time remaining. A rejected candidate is halved
    and retried; the number of consecutive halvings is bounded by
    `max_rejects` and the step size by `min_step_size`.
    """

    start_time: float
    """Time at which the simulation starts (s)."""
    end_time: float
    """Time at which the simulation ends (s)."""
    max_step_size: float = float("inf")
    """Maximum allowable time step size in seconds."""
    min_step_size: float = 0.0
    """Step size in seconds below which a rejected step is not retried."""
    max_rejects: int = 10
    """Maximum number of consecutive time step rejections allowed."""
    max_steps: typing.Optional[int] = None
    """Maximum number of time steps to run for."""
    backoff_factor: float = 0.5
    """Factor by which to reduce time step size on failed steps."""
    metrics_history_size: int = 10
    """Number of recent steps to track for performance analysis."""

    # State variables
    time: float = attrs.field(init=False, default=0.0)
    """Current simulation time in seconds (start time plus all accepted steps)."""
    step: int = attrs.field(init=False, default=0)
    """Number of accepted time steps completed so far."""
    step_size: float = attrs.field(init=False, default=0.0)
    """The time step size (in seconds) of the most recently accepted step."""
    next_step_size: float = attrs.field(init=False, default=0.0)
    """Step size (in seconds) of the attempt in progress."""
    rejection_count: int = attrs.field(init=False, default=0)
    """Count of consecutive time step rejections."""
    recent_metrics: deque = attrs.field(init=False)
    """Recent step metrics."""

    def __attrs_post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValidationError("end_time must be greater than start_time")
        if not 0.0 < self.backoff_factor < 1.0:
            raise ValidationError("backoff_factor must lie in (0, 1)")
        self.time = self.start_time
        self.recent_metrics = deque(maxlen=self.metrics_history_size)

    @property
    def next_step(self) -> int:
        """Returns the next time step count."""
        return self.step + 1

    @property
    def elapsed_time(self) -> float:
        return self.time - self.start_time

    @property
    def time_remaining(self) -> float:
        """Calculates the remaining simulation time in seconds."""
        return max(self.end_time - self.time, 0.0)

    def done(self) -> bool:
        """
        Checks if the simulation has reached its end criteria.

        If True, simulation has reached it ends.
        """
        if self.time >= self.end_time:
            return True
        if self.max_steps is not None and self.step >= self.max_steps:
            return True
        return False

    @property
    def is_last_step(self) -> bool:
        """Whether the latest accepted step was the last one."""
        return self.done()

    def propose_step_size(self, cfl_step_size: float) -> float:
        """
        Propose the candidate step size of the next step.

        :param cfl_step_size: CFL-limited step size (safety factor already applied).
        :return: `min(cfl_step_size, max_step_size, time remaining)`.
        """
        if not cfl_step_size > 0.0:
            raise TimingError(
                f"CFL-limited step size must be positive, got {cfl_step_size} "
                f"for time step {self.next_step}"
            )
        dt = min(cfl_step_size, self.max_step_size, self.time_remaining)
        self.next_step_size = dt
        logger.debug(
            f"Proposing time step of size {dt} for time step {self.next_step} "
            f"at time {self.time}."
        )
        return dt

    def reject_step(self, step_size: float) -> float:
        """
        Registers a rejected step and halves its size.

        :param step_size: The step size that was rejected.
        :return: The step size to retry with.
        :raises TimingError: If `max_rejects` consecutive rejections have
            already happened or the reduced size falls below `min_step_size`.
        """
        if self.rejection_count >= self.max_rejects:
            raise TimingError(
                f"Maximum number of consecutive time step rejections ({self.max_rejects}) "
                f"exceeded at time step {self.next_step} (time {self.time})"
            )
        self.recent_metrics.append(
            StepMetrics(step_number=self.next_step, step_size=step_size, success=False)
        )
        new_step_size = step_size * self.backoff_factor
        if new_step_size < self.min_step_size:
            raise TimingError(
                f"Time step size {new_step_size} fell below the minimum "
                f"{self.min_step_size} at time step {self.next_step} (time {self.time})"
            )
        self.next_step_size = new_step_size
        self.rejection_count += 1
        logger.debug(
            f"Time step of size {step_size} rejected for time step {self.next_step} "
            f"at time {self.time}. New size: {new_step_size}"
        )
        return new_step_size

    def accept_step(self, step_size: float, cfl: typing.Optional[float] = None) -> None:
        """
        Registers an accepted step: advances time and the step counter.

        :param step_size: The time step size that was just accepted.
        :param cfl: CFL number of the accepted step, for the metrics history.
        """
        remaining = self.time_remaining
        if step_size > remaining * (1.0 + 1e-12):
            raise TimingError(
                f"Step size {step_size} exceeds remaining time {remaining}. "
                "This indicates a bug in the time stepping logic."
            )
        if step_size >= remaining:
            # Land exactly on the end time, free of accumulated round-off.
            self.time = self.end_time
        else:
            self.time += step_size
        self.step_size = step_size
        self.step += 1
        self.recent_metrics.append(
            StepMetrics(step_number=self.step, step_size=step_size, cfl=cfl, success=True)
        )
        self.rejection_count = 0
        logger.debug(
            f"Time step of size {step_size} accepted for time step {self.step} "
            f"at time {self.time}."
        )
