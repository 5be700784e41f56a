import logging
import typing

import attrs
import numpy as np

from boxoil._precision import get_dtype
from boxoil.errors import ValidationError
from boxoil.indices import BlackOilIndices

logger = logging.getLogger(__name__)


__all__ = ["VariableState", "ModelState"]

CURRENT = 0
PREVIOUS = 1


@attrs.define
class VariableState:
    """
    Two time levels of the primary variable vector.

    Level 0 is the current (iterated) solution, level 1 the solution at the
    start of the step. Both levels live in one buffer allocated once; the
    previous level is only handed out read-only and is overwritten in place
    when a step is accepted.
    """

    buffer: np.ndarray = attrs.field()
    """Solution buffer of shape (2, num_dofs, num_primary_variables)."""

    @buffer.validator
    def _check_buffer(self, attribute, value) -> None:
        if value.ndim != 3 or value.shape[0] != 2:
            raise ValidationError(
                f"Solution buffer must have shape (2, num_dofs, num_primary_variables), got {value.shape}"
            )

    @classmethod
    def from_initial(cls, solution: np.ndarray) -> "VariableState":
        """
        Allocate a state whose two time levels both hold `solution`.

        :param solution: Initial primary variables, shape (num_dofs, num_primary_variables)
            or (num_dofs,) for a single unknown per dof.
        """
        solution = np.asarray(solution, dtype=get_dtype())
        if solution.ndim == 1:
            solution = solution[:, None]
        if solution.ndim != 2:
            raise ValidationError(
                f"Initial solution must be 1 or 2 dimensional, got shape {solution.shape}"
            )
        buffer = np.empty((2,) + solution.shape, dtype=solution.dtype)
        buffer[CURRENT] = solution
        buffer[PREVIOUS] = solution
        return cls(buffer=buffer)

    @property
    def num_dofs(self) -> int:
        return int(self.buffer.shape[1])

    @property
    def num_primary_variables(self) -> int:
        return int(self.buffer.shape[2])

    def solution(self, time_index: int = CURRENT) -> np.ndarray:
        """
        View of one time level.

        :param time_index: 0 for the current level, 1 for the previous level.
        :return: Writable view of the current level, read-only view of the previous level.
        """
        if time_index == CURRENT:
            return self.buffer[CURRENT]
        if time_index == PREVIOUS:
            view = self.buffer[PREVIOUS].view()
            view.flags.writeable = False
            return view
        raise ValidationError(f"time_index must be 0 or 1, got {time_index}")

    @property
    def current(self) -> np.ndarray:
        return self.solution(CURRENT)

    @property
    def previous(self) -> np.ndarray:
        return self.solution(PREVIOUS)

    def set_solution(self, values: np.ndarray) -> None:
        """Overwrite the current level."""
        values = np.asarray(values)
        if values.ndim == 1 and self.num_primary_variables == 1:
            values = values[:, None]
        if values.shape != self.buffer.shape[1:]:
            raise ValidationError(
                f"Expected solution of shape {self.buffer.shape[1:]}, got {values.shape}"
            )
        self.buffer[CURRENT] = values

    def advance(self) -> None:
        """Accept the current level: copy it over the previous level in place."""
        np.copyto(self.buffer[PREVIOUS], self.buffer[CURRENT])

    def restore(self) -> None:
        """Reject the current level: roll it back to the previous level."""
        np.copyto(self.buffer[CURRENT], self.buffer[PREVIOUS])

    def pressures(self, indices: BlackOilIndices, time_index: int = CURRENT) -> np.ndarray:
        """Phase-0 pressure of every dof."""
        return self.solution(time_index)[:, indices.pressure0_idx]

    def saturations(
        self, indices: BlackOilIndices, time_index: int = CURRENT
    ) -> np.ndarray:
        """
        Saturations of all phases, shape (num_dofs, num_phases).

        The last phase saturation is recovered as `1 - Σ others`.
        """
        solution = self.solution(time_index)
        saturations = np.empty((self.num_dofs, indices.num_phases), dtype=solution.dtype)
        saturations[:, :-1] = solution[:, list(indices.saturation_slots)]
        saturations[:, -1] = 1.0 - saturations[:, :-1].sum(axis=1)
        return saturations


def _copy_fields(
    fields: typing.Mapping[str, np.ndarray],
) -> typing.Dict[str, np.ndarray]:
    return {name: np.array(value, copy=True) for name, value in fields.items()}


@attrs.frozen(slots=True)
class ModelState:
    """
    Snapshot of the model at one accepted time step, handed to output handlers.
    """

    step: int
    """Number of accepted time steps taken so far."""
    time: float
    """Simulation time (s) of the snapshot."""
    step_size: float
    """Size (s) of the step that produced the snapshot (0 for the initial state)."""
    fields: typing.Dict[str, np.ndarray] = attrs.field(converter=_copy_fields)
    """Named fields, e.g. "saturation_water" -> array over control volumes."""

    def __getitem__(self, name: str) -> np.ndarray:
        return self.fields[name]

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    @property
    def field_names(self) -> typing.List[str]:
        return list(self.fields)
