"""
Box scheme residual of the black-oil component conservation equations.

For control volume `i` and component `κ` the residual (mol/s) is

    R_i^κ = (N_i^κ(t + Δt) - N_i^κ(t)) / Δt - Σ_faces F^κ(into i) - q_i^κ V_i

with the stored moles `N_i^κ = φ_i V_i Σ_α S_α ρ_α X_α^κ / M^κ`. Domain
boundaries are closed (no flow); inflow and outflow enter through sources.
"""

import logging
import typing

import attrs
import numpy as np

from boxoil.diffusivity.base import (
    harmonic_mean,
    interpolate_face_gradients,
    reconstruct_gradients,
)
from boxoil.config import Config
from boxoil.constants import c
from boxoil.errors import DiscretizationError, ValidationError
from boxoil.grids.base import ControlVolumeGrid
from boxoil.indices import BlackOilIndices
from boxoil.pvt import FluidSystem
from boxoil.states import VariableState
from boxoil.velocity import VelocityModule, get_velocity_module

if typing.TYPE_CHECKING:
    from boxoil.models import BlackOilProblem

logger = logging.getLogger(__name__)

__all__ = ["PhaseState", "FaceFluxesMeta", "ResidualAssembler"]


@attrs.frozen(slots=True)
class PhaseState:
    """Phase quantities of every control volume, evaluated from one solution."""

    saturations: np.ndarray
    """Shape (n, num_phases)."""
    pressures: np.ndarray
    """Phase pressures p_α = p_0 + p_cα, shape (n, num_phases) (Pa)."""
    densities: np.ndarray
    """Mass densities, shape (n, num_phases) (kg/m³)."""
    viscosities: np.ndarray
    """Shape (n, num_phases) (Pa·s)."""
    formation_volume_factors: np.ndarray
    """Shape (n, num_phases)."""
    mobilities: np.ndarray
    """kr/μ, shape (n, num_phases) (1/(Pa·s))."""
    mass_fractions: np.ndarray
    """X_α^κ, shape (n, num_phases, num_components)."""
    molar_concentrations: np.ndarray
    """Moles of component κ per volume of phase α, ρ_α X_α^κ / M^κ, shape (n, num_phases, num_components)."""


@attrs.frozen(slots=True)
class FaceFluxesMeta:
    """Face quantities of the last flux evaluation."""

    volumetric_fluxes: np.ndarray
    """Phase volume flux through every interior face (m³/s), shape (num_faces, num_phases), positive from first to second neighbour."""
    upwind: np.ndarray
    """Upwind control volume of every face and phase, shape (num_faces, num_phases)."""
    component_fluxes: np.ndarray
    """Component molar flux through every face (mol/s), shape (num_faces, num_components)."""


def _check_physical(name: str, values: np.ndarray) -> None:
    invalid = ~np.isfinite(values) | (values <= 0.0)
    if np.any(invalid):
        cv, phase = np.argwhere(invalid)[0]
        raise DiscretizationError(
            f"Fluid system returned non-physical {name} {values[cv, phase]!r} "
            f"for phase {phase} at control volume {cv}"
        )


@attrs.define
class ResidualAssembler:
    """
    Assembles the per-control-volume component residuals of the box scheme.

    Fluid properties, the velocity law and the index layout are injected;
    the assembler never inspects which velocity law is in use.
    """

    grid: ControlVolumeGrid
    fluid_system: FluidSystem
    problem: "BlackOilProblem"
    indices: BlackOilIndices = attrs.field(factory=BlackOilIndices)
    velocity_module: VelocityModule = attrs.field(
        factory=lambda: get_velocity_module("darcy"),
        converter=lambda value: get_velocity_module(value) if isinstance(value, str) else value,
    )
    singular_limit: float = attrs.field(
        factory=lambda: float(c.SINGULAR_LIMIT), converter=float
    )

    def __attrs_post_init__(self) -> None:
        if self.fluid_system.num_phases != self.indices.num_phases:
            raise ValidationError(
                f"Fluid system has {self.fluid_system.num_phases} phases, "
                f"indices expect {self.indices.num_phases}"
            )
        if self.fluid_system.num_components != self.indices.num_components:
            raise ValidationError(
                f"Fluid system has {self.fluid_system.num_components} components, "
                f"indices expect {self.indices.num_components}"
            )
        if self.grid.num_control_volumes != self.problem.porosity.shape[0]:
            raise ValidationError("Problem data does not match the number of control volumes")

    @classmethod
    def from_config(
        cls,
        grid: ControlVolumeGrid,
        fluid_system: FluidSystem,
        problem: "BlackOilProblem",
        config: Config,
        indices: typing.Optional[BlackOilIndices] = None,
    ) -> "ResidualAssembler":
        """
        Build an assembler using the velocity module and singular-matrix
        threshold selected in `config`.

        :param grid: Control volume grid.
        :param fluid_system: Fluid property evaluator.
        :param problem: Black-oil problem definition.
        :param config: Run configuration.
        :param indices: Index layout. The default black-oil layout if not given.
        """
        return cls(
            grid=grid,
            fluid_system=fluid_system,
            problem=problem,
            indices=indices if indices is not None else BlackOilIndices(),
            velocity_module=get_velocity_module(config.velocity_module),
            singular_limit=config.singular_limit,
        )

    @property
    def molar_masses(self) -> np.ndarray:
        return np.array(
            [self.fluid_system.molar_mass(k) for k in range(self.indices.num_components)]
        )

    def phase_state(self, solution: np.ndarray) -> PhaseState:
        """
        Evaluate every phase quantity of `solution`.

        :param solution: Primary variables, shape (n, num_primary_variables).
        :raises DiscretizationError: If the fluid system returns a non-finite
            or non-positive density, viscosity or formation volume factor.
        """
        indices = self.indices
        num_phases = indices.num_phases
        n = solution.shape[0]

        saturations = np.empty((n, num_phases))
        saturations[:, :-1] = solution[:, list(indices.saturation_slots)]
        saturations[:, -1] = 1.0 - saturations[:, :-1].sum(axis=1)

        material_law = self.problem.material_law
        reference_pressure = solution[:, indices.pressure0_idx]
        pressures = reference_pressure[:, None] + material_law.capillary_pressures(saturations)

        densities = np.empty((n, num_phases))
        viscosities = np.empty((n, num_phases))
        volume_factors = np.empty((n, num_phases))
        mass_fractions = np.empty((n, num_phases, indices.num_components))
        for phase in range(num_phases):
            p = pressures[:, phase]
            densities[:, phase] = self.fluid_system.density(phase, p)
            viscosities[:, phase] = self.fluid_system.viscosity(phase, p)
            volume_factors[:, phase] = self.fluid_system.formation_volume_factor(phase, p)
            mass_fractions[:, phase, :] = self.fluid_system.mass_fractions(phase, p)

        _check_physical("density", densities)
        _check_physical("viscosity", viscosities)
        _check_physical("formation volume factor", volume_factors)

        mobilities = material_law.relative_permeabilities(saturations) / viscosities
        concentrations = (
            densities[:, :, None] * mass_fractions / self.molar_masses[None, None, :]
        )
        return PhaseState(
            saturations=saturations,
            pressures=pressures,
            densities=densities,
            viscosities=viscosities,
            formation_volume_factors=volume_factors,
            mobilities=mobilities,
            mass_fractions=mass_fractions,
            molar_concentrations=concentrations,
        )

    def storage(
        self, solution: np.ndarray, phase_state: typing.Optional[PhaseState] = None
    ) -> np.ndarray:
        """
        Moles of every component stored in every control volume, shape (n, num_components).
        """
        state = phase_state or self.phase_state(solution)
        pore_volumes = self.problem.porosity * self.grid.volumes
        return pore_volumes[:, None] * np.einsum(
            "np,npk->nk", state.saturations, state.molar_concentrations
        )

    def fluxes(
        self,
        solution: np.ndarray,
        phase_state: typing.Optional[PhaseState] = None,
        return_meta: bool = False,
    ) -> typing.Union[np.ndarray, typing.Tuple[np.ndarray, FaceFluxesMeta]]:
        """
        Net molar inflow of every component into every control volume (mol/s).

        :param solution: Primary variables, shape (n, num_primary_variables).
        :param phase_state: Precomputed phase state of `solution`.
        :param return_meta: Also return the face quantities as `FaceFluxesMeta`.
        :return: Inflow of shape (n, num_components), optionally with `FaceFluxesMeta`.
        """
        state = phase_state or self.phase_state(solution)
        grid = self.grid
        left, right = grid.face_neighbours[:, 0], grid.face_neighbours[:, 1]
        gravity = self.problem.gravity_vector(grid.dim)
        offsets = grid.centers[right] - grid.centers[left]

        permeability = np.asarray(self.problem.permeability, dtype=np.float64)
        face_permeability = harmonic_mean(permeability[left], permeability[right])

        num_faces = grid.num_faces
        num_phases = self.indices.num_phases
        volumetric = np.empty((num_faces, num_phases))
        upwind = np.empty((num_faces, num_phases), dtype=np.int64)
        component_fluxes = np.zeros((num_faces, self.indices.num_components))
        for phase in range(num_phases):
            pressure = state.pressures[:, phase]
            density = state.densities[:, phase]
            gradients = reconstruct_gradients(grid, pressure, self.singular_limit)
            face_gradient = interpolate_face_gradients(grid, pressure, gradients)
            face_density = 0.5 * (density[left] + density[right])

            potential_difference = (pressure[right] - pressure[left]) - face_density * (
                offsets @ gravity
            )
            mobility_upwind = np.where(potential_difference <= 0.0, left, right)
            velocity = self.velocity_module(
                face_gradient,
                gravity,
                face_permeability,
                state.mobilities[mobility_upwind, phase],
                face_density,
            )
            flux = np.sum(velocity * grid.face_normals, axis=1) * grid.face_areas
            upstream = np.where(flux >= 0.0, left, right)
            component_fluxes += flux[:, None] * state.molar_concentrations[upstream, phase, :]
            volumetric[:, phase] = flux
            upwind[:, phase] = upstream

        inflow = np.zeros((grid.num_control_volumes, self.indices.num_components))
        np.add.at(inflow, right, component_fluxes)
        np.add.at(inflow, left, -component_fluxes)
        if return_meta:
            meta = FaceFluxesMeta(
                volumetric_fluxes=volumetric,
                upwind=upwind,
                component_fluxes=component_fluxes,
            )
            return inflow, meta
        return inflow

    def sources(self, time: float) -> np.ndarray:
        """Molar source of every component in every control volume, q V / M (mol/s)."""
        rates = np.asarray(self.problem.source_rates(time), dtype=np.float64)
        expected = (self.grid.num_control_volumes, self.indices.num_components)
        if rates.shape != expected:
            raise ValidationError(f"Source rates must have shape {expected}, got {rates.shape}")
        return rates * self.grid.volumes[:, None] / self.molar_masses[None, :]

    def assemble(
        self, state: VariableState, time_step_size: float, time: float = 0.0
    ) -> np.ndarray:
        """
        Residual of the current level of `state` against its previous level.

        :param state: Two-level variable state.
        :param time_step_size: Step size Δt (s).
        :param time: Time (s) at the end of the step, passed to the source term.
        :return: Residual vector of shape (n, num_equations), columns in equation slot order.
        """
        if time_step_size <= 0.0:
            raise ValidationError(f"time_step_size must be positive, got {time_step_size}")
        current = state.solution(0)
        phase_state = self.phase_state(current)
        storage_change = (
            self.storage(current, phase_state) - self.storage(state.solution(1))
        ) / time_step_size
        balance = (
            storage_change - self.fluxes(current, phase_state) - self.sources(time)
        )

        residual = np.empty((current.shape[0], self.indices.num_equations))
        for eq_slot in self.indices.equation_slots:
            residual[:, eq_slot] = balance[:, self.indices.equation_component(eq_slot)]
        logger.debug(
            f"Assembled residual over {current.shape[0]} control volumes, "
            f"max |R| = {np.max(np.abs(residual)):.3e}"
        )
        return residual
