"""Problem definitions and the black-oil model (naming, weights and output fields)."""

import typing

import attrs
import numpy as np

from boxoil.constants import c
from boxoil.errors import InvariantViolation, ValidationError
from boxoil.grids.base import ControlVolumeGrid
from boxoil.indices import BlackOilIndices
from boxoil.pvt import FluidSystem, ImmiscibleFluidSystem
from boxoil.relperm import CoreyThreePhaseModel, TwoPhaseMaterialLaw
from boxoil.states import VariableState


__all__ = ["BlackOilProblem", "TransportProblem", "BlackOilModel"]


def _as_float_array(value: typing.Any) -> np.ndarray:
    return np.asarray(value, dtype=np.float64)


def _check_porosity(instance: typing.Any, attribute: typing.Any, value: np.ndarray) -> None:
    if np.any(~np.isfinite(value)) or np.any(value <= 0.0) or np.any(value > 1.0):
        raise ValidationError(f"'{attribute.name}' must lie in (0, 1]")


@attrs.frozen(eq=False)
class BlackOilProblem:
    """
    Rock properties, sources and material law of a black-oil box problem.

    Control volume data is laid out in the order of the grid the problem is
    assembled on.
    """

    porosity: np.ndarray = attrs.field(converter=_as_float_array, validator=_check_porosity)
    """Porosity of every control volume, shape (n,)."""
    permeability: np.ndarray = attrs.field(converter=_as_float_array)
    """Absolute permeability (m²), shape (n,) for isotropic or (n, dim) for diagonal tensors."""
    material_law: CoreyThreePhaseModel = attrs.field(factory=CoreyThreePhaseModel)
    gravity: typing.Optional[np.ndarray] = attrs.field(
        default=None,
        converter=attrs.converters.optional(_as_float_array),
    )
    """Gravitational acceleration vector (m/s²). No gravity if None."""
    source: typing.Union[
        None, np.ndarray, typing.Callable[[float], np.ndarray]
    ] = None
    """Component mass sources (kg/(m³·s)), shape (n, num_components), or a callable of time returning them."""
    num_components: int = 3

    def __attrs_post_init__(self) -> None:
        if self.permeability.shape[0] != self.porosity.shape[0]:
            raise ValidationError("permeability and porosity must cover the same control volumes")
        if np.any(self.permeability < 0.0):
            raise ValidationError("Permeability must be non-negative")

    @property
    def num_control_volumes(self) -> int:
        return int(self.porosity.shape[0])

    def gravity_vector(self, dim: int) -> np.ndarray:
        if self.gravity is None:
            return np.zeros(dim)
        if self.gravity.shape != (dim,):
            raise ValidationError(f"Gravity must be a {dim}-vector, got shape {self.gravity.shape}")
        return self.gravity

    def source_rates(self, time: float) -> np.ndarray:
        """Component mass source rates at `time`, shape (n, num_components)."""
        shape = (self.num_control_volumes, self.num_components)
        if self.source is None:
            return np.zeros(shape)
        if callable(self.source):
            return np.asarray(self.source(time), dtype=np.float64)
        return np.broadcast_to(np.asarray(self.source, dtype=np.float64), shape)


@attrs.frozen(eq=False)
class TransportProblem:
    """
    Two-phase (wetting / non-wetting) transport in a prescribed total velocity field.

    Boundary faces with inflow carry `inflow_saturation` of the wetting
    phase; outflow faces carry the saturation of the control volume they
    belong to.
    """

    grid: ControlVolumeGrid
    velocity: np.ndarray = attrs.field(converter=_as_float_array)
    """Total filter velocity (m/s), uniform, shape (dim,)."""
    porosity: np.ndarray = attrs.field(converter=_as_float_array, validator=_check_porosity)
    """Porosity, scalar or shape (n,)."""
    material_law: TwoPhaseMaterialLaw
    fluid_system: ImmiscibleFluidSystem
    initial_saturation: np.ndarray = attrs.field(default=0.0, converter=_as_float_array)
    """Initial wetting phase saturation, scalar or shape (n,)."""
    inflow_saturation: float = 1.0
    """Wetting phase saturation of fluid entering through inflow boundaries."""

    def __attrs_post_init__(self) -> None:
        if self.velocity.shape != (self.grid.dim,):
            raise ValidationError(
                f"Velocity must be a {self.grid.dim}-vector, got shape {self.velocity.shape}"
            )
        if self.fluid_system.num_phases != 2:
            raise ValidationError("Transport requires a two-phase fluid system")
        n = self.grid.num_control_volumes
        for name in ("porosity", "initial_saturation"):
            value = getattr(self, name)
            if value.ndim != 0 and value.shape != (n,):
                raise ValidationError(f"'{name}' must be a scalar or have shape ({n},)")
        if np.any(self.initial_saturation < 0.0) or np.any(self.initial_saturation > 1.0):
            raise ValidationError("initial_saturation must lie in [0, 1]")
        if not 0.0 <= self.inflow_saturation <= 1.0:
            raise ValidationError("inflow_saturation must lie in [0, 1]")

    @property
    def pore_volumes(self) -> np.ndarray:
        return np.ascontiguousarray(
            np.broadcast_to(self.porosity, self.grid.volumes.shape) * self.grid.volumes,
            dtype=np.float64,
        )

    @property
    def face_fluxes(self) -> np.ndarray:
        """Total volume rate through every interior face (m³/s), positive from first to second neighbour."""
        return np.ascontiguousarray(
            (self.grid.face_normals @ self.velocity) * self.grid.face_areas,
            dtype=np.float64,
        )

    @property
    def boundary_fluxes(self) -> np.ndarray:
        """Total volume rate through every boundary face (m³/s), positive out of the domain."""
        return np.ascontiguousarray(
            (self.grid.boundary_normals @ self.velocity) * self.grid.boundary_areas,
            dtype=np.float64,
        )

    @property
    def boundary_saturations(self) -> np.ndarray:
        return np.full(self.grid.num_boundary_faces, self.inflow_saturation)

    @property
    def viscosities(self) -> typing.Tuple[float, float]:
        p = c.REFERENCE_PRESSURE
        return (
            float(self.fluid_system.viscosity(0, p)),
            float(self.fluid_system.viscosity(1, p)),
        )

    @property
    def injection_rate(self) -> float:
        """Total volume rate entering the domain (m³/s)."""
        fluxes = self.boundary_fluxes
        return float(-fluxes[fluxes < 0.0].sum())

    def initial_saturations(self) -> np.ndarray:
        return np.array(
            np.broadcast_to(self.initial_saturation, (self.grid.num_control_volumes,)),
            dtype=np.float64,
        )

    def named_fields(self, saturation: np.ndarray) -> typing.Dict[str, np.ndarray]:
        """Output fields of a wetting phase saturation, keyed by `saturation_<phase>`."""
        wetting, nonwetting = self.fluid_system.phase_names
        return {
            f"saturation_{wetting}": saturation,
            f"saturation_{nonwetting}": 1.0 - saturation,
        }


@attrs.define
class BlackOilModel:
    """
    Three-phase black-oil model on the box scheme.

    Composes the index layout, the fluid system and the variable state, and
    supplies the names and Newton weights of primary variables and equations.
    """

    name: typing.ClassVar[str] = "blackoil"

    fluid_system: FluidSystem
    state: VariableState
    indices: BlackOilIndices = attrs.field(factory=BlackOilIndices)

    def __attrs_post_init__(self) -> None:
        if self.state.num_primary_variables != self.indices.num_primary_variables:
            raise ValidationError(
                f"State holds {self.state.num_primary_variables} primary variables per dof, "
                f"expected {self.indices.num_primary_variables}"
            )
        if self.fluid_system.num_phases != self.indices.num_phases:
            raise ValidationError(
                f"Fluid system has {self.fluid_system.num_phases} phases, "
                f"expected {self.indices.num_phases}"
            )

    @classmethod
    def from_initial(
        cls,
        fluid_system: FluidSystem,
        solution: np.ndarray,
        indices: typing.Optional[BlackOilIndices] = None,
    ) -> "BlackOilModel":
        """Build a model whose state holds `solution` on both time levels."""
        return cls(
            fluid_system=fluid_system,
            state=VariableState.from_initial(solution),
            indices=indices or BlackOilIndices(),
        )

    @property
    def num_dofs(self) -> int:
        return self.state.num_dofs

    def _check_vertex(self, vertex: int) -> int:
        if not 0 <= vertex < self.state.num_dofs:
            raise InvariantViolation(
                f"Vertex {vertex} out of range [0, {self.state.num_dofs})"
            )
        return vertex

    def primary_variable_name(self, slot: int) -> str:
        """
        Name of a primary variable slot.

        :return: "pressure_<phase 0>" or "saturation_<phase>".
        :raises InvariantViolation: For a slot outside the primary variable layout.
        """
        indices = self.indices
        if indices.is_pressure_slot(slot):
            return f"pressure_{self.fluid_system.phase_name(0)}"
        if indices.is_saturation_slot(slot):
            return f"saturation_{self.fluid_system.phase_name(indices.saturation_phase(slot))}"
        raise InvariantViolation(f"Invalid primary variable index {slot}")

    def equation_name(self, eq_slot: int) -> str:
        """Name of a continuity equation slot, "conti_<phase>"."""
        component = self.indices.equation_component(eq_slot)
        return f"conti_{self.fluid_system.phase_name(component)}"

    def primary_variable_weight(self, vertex: int, slot: int) -> float:
        """
        Newton weight of a primary variable.

        The pressure is weighted by `min(1/|p|, 1)` of the previous time
        level so that pressure updates are comparable to saturation updates.
        A zero previous pressure gets weight 1. Saturations get weight 1.
        """
        self.indices.check_primary_variable_slot(slot)
        vertex = self._check_vertex(vertex)
        if not self.indices.is_pressure_slot(slot):
            return 1.0
        previous = abs(float(self.state.solution(1)[vertex, self.indices.pressure0_idx]))
        if previous == 0.0:
            return 1.0
        return min(1.0 / previous, 1.0)

    def equation_weight(self, vertex: int, eq_slot: int) -> float:
        """Newton weight of a continuity equation: the molar mass of its component."""
        self._check_vertex(vertex)
        component = self.indices.equation_component(eq_slot)
        if not 0 <= component <= self.indices.num_phases:
            raise InvariantViolation(
                f"Component {component} of equation {eq_slot} outside [0, {self.indices.num_phases}]"
            )
        return float(self.fluid_system.molar_mass(component))

    def primary_variable_names(self) -> typing.List[str]:
        return [
            self.primary_variable_name(slot)
            for slot in range(self.indices.num_primary_variables)
        ]

    def equation_names(self) -> typing.List[str]:
        return [self.equation_name(slot) for slot in self.indices.equation_slots]

    def primary_variable_weights(self) -> np.ndarray:
        """Weights of every dof and slot, shape (num_dofs, num_primary_variables)."""
        weights = np.ones((self.num_dofs, self.indices.num_primary_variables))
        previous = np.abs(self.state.pressures(self.indices, time_index=1))
        pressure_weights = np.ones_like(previous)
        nonzero = previous > 0.0
        pressure_weights[nonzero] = np.minimum(1.0 / previous[nonzero], 1.0)
        weights[:, self.indices.pressure0_idx] = pressure_weights
        return weights

    def equation_weights(self) -> np.ndarray:
        """Weights of every dof and equation, shape (num_dofs, num_equations)."""
        row = np.array(
            [self.equation_weight(0, slot) for slot in self.indices.equation_slots]
        )
        return np.broadcast_to(row, (self.num_dofs, row.size)).copy()

    def weighted_update_norm(self, delta: np.ndarray) -> float:
        """Max-norm of a Newton update scaled by the primary variable weights."""
        return float(np.max(np.abs(delta * self.primary_variable_weights())))

    def weighted_residual_norm(self, residual: np.ndarray) -> float:
        """Max-norm of a residual scaled by the equation weights."""
        return float(np.max(np.abs(residual * self.equation_weights())))

    def named_fields(self, time_index: int = 0) -> typing.Dict[str, np.ndarray]:
        """
        Primary variables of one time level keyed by their names, plus the
        derived saturation of the last phase.
        """
        solution = self.state.solution(time_index)
        fields = {
            self.primary_variable_name(slot): solution[:, slot]
            for slot in range(self.indices.num_primary_variables)
        }
        last_phase = self.indices.num_phases - 1
        saturations = self.state.saturations(self.indices, time_index)
        fields[f"saturation_{self.fluid_system.phase_name(last_phase)}"] = saturations[
            :, last_phase
        ]
        return fields
