"""Ready-made problems: the reference transport benchmark and a small black-oil box problem."""

import typing

import numpy as np

from boxoil.config import Config
from boxoil.constants import c
from boxoil.grids.base import ControlVolumeGrid, build_box_grid, build_cartesian_grid
from boxoil.models import BlackOilModel, BlackOilProblem, TransportProblem
from boxoil.pvt import BlackOilFluidSystem, ImmiscibleFluidSystem
from boxoil.relperm import (
    BrooksCoreyTwoPhaseModel,
    CoreyThreePhaseModel,
    LinearTwoPhaseModel,
    TwoPhaseMaterialLaw,
)

__all__ = [
    "REFERENCE_VELOCITY",
    "REFERENCE_CONFIG_OPTIONS",
    "build_reference_transport_problem",
    "build_nonlinear_transport_problem",
    "reference_transport_config",
    "build_black_oil_problem",
]

REFERENCE_VELOCITY = 1.0 / 6.0 * 1e-6
"""Injection velocity of the reference transport benchmark (m/s)."""

REFERENCE_CONFIG_OPTIONS: typing.Dict[str, typing.Any] = {
    "start_time": 0.0,
    "end_time": 4e9,
    "cfl_factor": 0.99,
    "max_step_size": 1e100,
    "output_frequency": 10,
}


def build_reference_transport_problem(
    cell_counts: typing.Sequence[int] = (16, 1),
    lengths: typing.Sequence[float] = (600.0, 300.0),
    velocity: float = REFERENCE_VELOCITY,
    porosity: float = 0.2,
    material_law: typing.Optional[TwoPhaseMaterialLaw] = None,
) -> TransportProblem:
    """
    The reference explicit transport benchmark.

    A rectangular domain is flooded from the left with the wetting phase at
    a constant total velocity along x. The domain starts free of the wetting
    phase. Both phases have the density and viscosity of water and the
    relative permeabilities are linear, so the fractional flow equals the
    saturation and the front travels at `velocity / porosity`.

    :param cell_counts: Number of cells along each axis.
    :param lengths: Domain extent along each axis (m).
    :param velocity: Total filter velocity along x (m/s).
    :param porosity: Uniform porosity.
    :param material_law: Two-phase material law. Linear with zero residual saturations by default.
    """
    grid = build_cartesian_grid(cell_counts, lengths)
    direction = np.zeros(grid.dim)
    direction[0] = velocity
    fluid_system = ImmiscibleFluidSystem(
        densities=(1000.0, 1000.0),
        viscosities=(1e-3, 1e-3),
        molar_masses=(c.WATER_MOLAR_MASS, c.WATER_MOLAR_MASS),
        phase_names=("wetting", "nonwetting"),
    )
    return TransportProblem(
        grid=grid,
        velocity=direction,
        porosity=porosity,
        material_law=material_law or LinearTwoPhaseModel(),
        fluid_system=fluid_system,
        initial_saturation=0.0,
        inflow_saturation=1.0,
    )


def build_nonlinear_transport_problem(
    material_law: typing.Optional[TwoPhaseMaterialLaw] = None, **kwargs: typing.Any
) -> TransportProblem:
    """
    The reference benchmark with a nonlinear material law.

    Uses Brooks-Corey relative permeabilities, so the fractional flow is
    S-shaped and the front develops a shock followed by a rarefaction.

    :param material_law: Two-phase material law. Brooks-Corey with λ = 2 by default.
    :param kwargs: Passed on to `build_reference_transport_problem`.
    """
    return build_reference_transport_problem(
        material_law=material_law or BrooksCoreyTwoPhaseModel(), **kwargs
    )


def reference_transport_config(**overrides: typing.Any) -> Config:
    """
    Run configuration of the reference transport benchmark.

    Runs from 0 to 4e9 s with a CFL factor of 0.99 and writes every 10th step.
    """
    return Config.from_dict({**REFERENCE_CONFIG_OPTIONS, **overrides})


def build_black_oil_problem(
    vertex_counts: typing.Sequence[int] = (5, 3),
    lengths: typing.Sequence[float] = (100.0, 50.0),
    pressure: float = 2.0e7,
    saturations: typing.Tuple[float, float] = (0.2, 0.1),
    porosity: float = 0.25,
    permeability: float = 1e-13,
    injection_rate: float = 0.0,
    gravity: bool = False,
) -> typing.Tuple[ControlVolumeGrid, BlackOilProblem, BlackOilModel]:
    """
    A small black-oil box problem at rest, optionally with water injection.

    :param vertex_counts: Number of mesh vertices along each axis.
    :param lengths: Domain extent along each axis (m).
    :param pressure: Initial water pressure (Pa).
    :param saturations: Initial (water, gas) saturations.
    :param porosity: Uniform porosity.
    :param permeability: Uniform isotropic permeability (m²).
    :param injection_rate: Water mass source in the first vertex (kg/(m³·s)).
    :param gravity: Apply gravity along the last axis.
    :return: `(grid, problem, model)`
    """
    grid = build_box_grid(vertex_counts, lengths)
    n = grid.num_control_volumes
    source = np.zeros((n, 3))
    source[0, BlackOilFluidSystem.WATER_PHASE] = injection_rate
    gravity_vector = None
    if gravity:
        gravity_vector = np.zeros(grid.dim)
        gravity_vector[-1] = -c.ACCELERATION_DUE_TO_GRAVITY
    problem = BlackOilProblem(
        porosity=np.full(n, porosity),
        permeability=np.full(n, permeability),
        material_law=CoreyThreePhaseModel(),
        gravity=gravity_vector,
        source=source,
    )
    fluid_system = BlackOilFluidSystem.from_compressibilities(
        pressures=np.linspace(1.0e5, 5.0e7, 50)
    )
    solution = np.empty((n, 3))
    solution[:, 0] = pressure
    solution[:, 1] = saturations[0]
    solution[:, 2] = saturations[1]
    model = BlackOilModel.from_initial(fluid_system, solution)
    return grid, problem, model
