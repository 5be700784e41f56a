"""Run explicit saturation transport with CFL-limited adaptive time stepping."""

import enum
import logging
import typing

import attrs
import numpy as np

from boxoil.config import Config
from boxoil.diffusivity import compute_cfl_step_size, evolve_saturation_explicitly
from boxoil.diffusivity.base import EvolutionResult
from boxoil.errors import BoxOilError, ComputationError, SimulationError, TimingError
from boxoil.models import TransportProblem
from boxoil.states import ModelState, VariableState
from boxoil.timing import Timer
from boxoil.types import OutputHandler, SaturationUpdate


__all__ = ["LoopStatus", "StepRecord", "TransportTimeLoop", "log_progress", "run"]

logger = logging.getLogger(__name__)


class LoopStatus(enum.Enum):
    """States of the transport time loop."""

    RUNNING = "running"
    STEP_REJECTED = "step_rejected"
    TERMINATED = "terminated"


@attrs.frozen(slots=True)
class StepRecord:
    """Bookkeeping of one accepted time step."""

    step: int
    """Index of the accepted step (1-based)."""
    time: float
    """Time at the end of the step (s)."""
    step_size: float
    """Accepted step size (s)."""
    cfl_step_size: float
    """CFL-limited step size (safety factor applied) at the start of the step (s)."""
    rejections: int = 0
    """Number of halvings needed before the step was accepted."""
    cfl: typing.Optional[float] = None
    """CFL number of the accepted step, as reported by the update operator."""


def log_progress(
    step: int,
    step_size: float,
    time_elapsed: float,
    total_time: float,
    is_last_step: bool = False,
    interval: int = 3,
    cfl: typing.Optional[float] = None,
):
    """Logs the simulation progress at specified intervals."""
    if step <= 1 or step % interval == 0 or is_last_step:
        percent_complete = (time_elapsed / total_time) * 100.0
        cfl_info = f" (CFL = {cfl:.4f})" if cfl is not None else ""
        logger.info(
            f"Time Step {step} with dt = {step_size:.4e}s{cfl_info} - "
            f"({percent_complete:.4f}%) - "
            f"Elapsed Time: {time_elapsed:.4e}s / {total_time:.4e}s"
        )


def _as_handlers(value: typing.Optional[typing.Iterable[OutputHandler]]) -> tuple:
    return tuple(value or ())


@attrs.define
class TransportTimeLoop:
    """
    Explicit transport integrator.

    Each iteration proposes a CFL-limited step, runs the saturation update
    operator over the whole grid and accepts the result if it is physical.
    A rejected step is halved and retried from the previous time level.
    Snapshots are produced every `config.output_frequency` accepted steps
    and after the final step. Output handlers are owned by the caller and
    invoked in order.
    """

    problem: TransportProblem
    config: Config
    handlers: typing.Tuple[OutputHandler, ...] = attrs.field(
        factory=tuple, converter=_as_handlers
    )
    update_operator: SaturationUpdate = evolve_saturation_explicitly

    status: LoopStatus = attrs.field(init=False, default=LoopStatus.RUNNING)
    timer: Timer = attrs.field(init=False)
    state: VariableState = attrs.field(init=False)
    records: typing.List[StepRecord] = attrs.field(init=False, factory=list)
    """One record per accepted step."""
    total_rejections: int = attrs.field(init=False, default=0)

    def __attrs_post_init__(self) -> None:
        config = self.config
        self.timer = Timer(
            start_time=config.start_time,
            end_time=config.end_time,
            max_step_size=config.max_step_size,
            min_step_size=config.min_step_size,
            max_rejects=config.max_rejects,
            max_steps=config.max_steps,
        )
        self.state = VariableState.from_initial(self.problem.initial_saturations())

    @property
    def saturation(self) -> np.ndarray:
        """Wetting phase saturation of the last accepted step."""
        return self.state.solution(1)[:, 0]

    def snapshot(self) -> ModelState:
        return ModelState(
            step=self.timer.step,
            time=self.timer.time,
            step_size=self.timer.step_size,
            fields=self.problem.named_fields(self.state.solution(1)[:, 0]),
        )

    def _attempt(
        self, saturation: np.ndarray, step_size: float, time_step: int
    ) -> EvolutionResult:
        try:
            return self.update_operator(self.problem, saturation, step_size, time_step)
        except ComputationError as exc:
            return EvolutionResult(
                value=None, scheme="explicit", success=False, message=str(exc)
            )

    def run(self) -> typing.Generator[ModelState, None, None]:
        """
        Run the loop to the end time.

        :yield: `ModelState` snapshots at the output cadence.
        :raises SimulationError: If a step cannot be completed within the retry bound.
        """
        config = self.config
        timer = self.timer
        logger.info("Starting explicit transport simulation...")
        logger.debug(f"Control volumes: {self.state.num_dofs}")
        logger.debug(f"Simulation time: {config.start_time} to {config.end_time} seconds")
        logger.debug(f"CFL factor: {config.cfl_factor}")
        logger.debug(f"Output frequency: every {config.output_frequency} steps")

        with config.constants():
            self.status = LoopStatus.RUNNING
            if config.output_initial_state:
                logger.debug("Yielding initial model state")
                yield self.snapshot()

            while not timer.done():
                new_step = timer.next_step
                try:
                    saturation = self.state.solution(1)[:, 0]
                    cfl_step_size = compute_cfl_step_size(
                        self.problem, saturation, config.cfl_factor
                    )
                    step_size = timer.propose_step_size(cfl_step_size)
                    rejections = 0
                    logger.debug(
                        f"Attempting time step {new_step} with size {step_size} seconds..."
                    )
                    while True:
                        result = self._attempt(saturation, step_size, new_step)
                        if result.value is not None:
                            self.state.set_solution(result.value.saturation)
                        if result.success:
                            break

                        self.status = LoopStatus.STEP_REJECTED
                        self.state.restore()
                        try:
                            timer.reject_step(step_size)
                        except TimingError as exc:
                            raise SimulationError(
                                f"Simulation failed at time step {new_step} and cannot "
                                f"reduce time step further. {exc}.\n{result.message}"
                            ) from exc
                        step_size = timer.next_step_size
                        logger.warning(
                            f"Time step {new_step} failed. Retrying with step size {step_size:.4e}s."
                        )
                        rejections += 1
                        self.total_rejections += 1

                    cfl_number = (
                        result.metadata.cfl_info.cfl_number
                        if result.metadata is not None
                        else None
                    )
                    self.state.advance()
                    timer.accept_step(step_size, cfl=cfl_number)
                    accepted = timer.recent_metrics[-1]
                    self.status = LoopStatus.RUNNING
                except BoxOilError:
                    self.status = LoopStatus.TERMINATED
                    raise
                except Exception as exc:
                    self.status = LoopStatus.TERMINATED
                    raise SimulationError(
                        f"Simulation failed at time step {new_step} due to error: {exc}"
                    ) from exc

                self.records.append(
                    StepRecord(
                        step=timer.step,
                        time=timer.time,
                        step_size=step_size,
                        cfl_step_size=cfl_step_size,
                        rejections=rejections,
                        cfl=accepted.cfl,
                    )
                )
                log_progress(
                    step=timer.step,
                    step_size=step_size,
                    time_elapsed=timer.elapsed_time,
                    total_time=config.duration,
                    is_last_step=timer.is_last_step,
                    interval=config.log_interval,
                    cfl=accepted.cfl,
                )
                if (timer.step % config.output_frequency == 0) or timer.is_last_step:
                    logger.debug(f"Capturing model state at time step {timer.step}")
                    yield self.snapshot()

        self.status = LoopStatus.TERMINATED
        logger.info(f"Simulation completed successfully after {timer.step} time steps")

    def execute(self) -> typing.Optional[ModelState]:
        """
        Run the loop and deliver every snapshot to the output handlers in order.

        :return: The last snapshot produced, if any.
        """
        last = None
        for state in self.run():
            for handler in self.handlers:
                handler(state)
            last = state
        return last


def run(
    problem: TransportProblem,
    config: Config,
    update_operator: SaturationUpdate = evolve_saturation_explicitly,
) -> typing.Generator[ModelState, None, None]:
    """
    Runs explicit saturation transport on `problem`.

    :param problem: The transport problem (grid, velocity field, material law).
    :param config: Simulation run configuration and parameters.
    :param update_operator: Explicit saturation update operator.
    :yield: Yields the model state at specified output intervals.
    """
    loop = TransportTimeLoop(problem=problem, config=config, update_operator=update_operator)
    yield from loop.run()
