import logging
import typing

import attrs
import numba
import numpy as np

from boxoil.constants import c
from boxoil.diffusivity.base import EvolutionResult

if typing.TYPE_CHECKING:
    from boxoil.models import TransportProblem

__all__ = [
    "CFLMeta",
    "FluxesMeta",
    "VolumesMeta",
    "SaturationEvolutionMeta",
    "ExplicitSaturationSolution",
    "PhaseFluxes",
    "compute_phase_fluxes",
    "compute_cfl_time_step",
    "compute_cfl_step_size",
    "accumulate_net_outflow",
    "apply_saturation_update",
    "evolve_saturation_explicitly",
]

logger = logging.getLogger(__name__)


@attrs.frozen
class CFLMeta:
    cfl_factor: float
    cfl_step_size: float
    """Largest stable step size before the safety factor is applied (s)."""
    cfl_number: float
    """Ratio of the attempted step size to `cfl_step_size`."""
    cell: int
    """Control volume that limits the step size."""
    time_step: int
    violated: bool


@attrs.frozen
class FluxesMeta:
    wetting_inflow: float
    """Wetting phase volume rate entering through the boundary (m³/s)."""
    wetting_outflow: float
    nonwetting_inflow: float
    nonwetting_outflow: float

    @property
    def total_inflow(self) -> float:
        return self.wetting_inflow + self.nonwetting_inflow

    @property
    def total_outflow(self) -> float:
        return self.wetting_outflow + self.nonwetting_outflow


@attrs.frozen
class VolumesMeta:
    wetting_volume: float
    nonwetting_volume: float
    pore_volume: float


@attrs.frozen
class SaturationEvolutionMeta:
    cfl_info: CFLMeta
    fluxes: typing.Optional[FluxesMeta] = None
    volumes: typing.Optional[VolumesMeta] = None


@attrs.frozen
class ExplicitSaturationSolution:
    saturation: np.ndarray
    """Updated wetting phase saturation of every control volume."""

    @property
    def nonwetting_saturation(self) -> np.ndarray:
        return 1.0 - self.saturation


@attrs.frozen
class PhaseFluxes:
    """Upwinded phase volume rates (m³/s) through interior and boundary faces."""

    wetting: np.ndarray
    """Interior faces, positive from first to second neighbour."""
    nonwetting: np.ndarray
    boundary_wetting: np.ndarray
    """Boundary faces, positive out of the domain."""
    boundary_nonwetting: np.ndarray


def compute_phase_fluxes(
    problem: "TransportProblem", saturation: np.ndarray
) -> PhaseFluxes:
    """
    Split the total face fluxes of `problem` into phase fluxes.

    The fractional flow is evaluated at the upwind saturation of each face:
    the upstream control volume for interior faces, the control volume
    itself for outflow boundary faces and the prescribed boundary saturation
    for inflow boundary faces.
    """
    grid = problem.grid
    viscosities = problem.viscosities
    material_law = problem.material_law
    left, right = grid.face_neighbours[:, 0], grid.face_neighbours[:, 1]

    total = problem.face_fluxes
    upwind_saturation = np.where(total >= 0.0, saturation[left], saturation[right])
    fractional = material_law.fractional_flow(upwind_saturation, viscosities)

    boundary_total = problem.boundary_fluxes
    boundary_upwind = np.where(
        boundary_total > 0.0,
        saturation[grid.boundary_cells],
        problem.boundary_saturations,
    )
    boundary_fractional = material_law.fractional_flow(boundary_upwind, viscosities)
    return PhaseFluxes(
        wetting=fractional * total,
        nonwetting=(1.0 - fractional) * total,
        boundary_wetting=boundary_fractional * boundary_total,
        boundary_nonwetting=(1.0 - boundary_fractional) * boundary_total,
    )


@numba.njit(cache=True)
def compute_cfl_time_step(
    pore_volumes: np.ndarray,
    face_neighbours: np.ndarray,
    face_flux_magnitudes: np.ndarray,
    boundary_cells: np.ndarray,
    boundary_flux_magnitudes: np.ndarray,
) -> typing.Tuple[float, int]:
    """
    Largest step for which no face moves more than one pore volume of an adjacent cell.

        Δt_cfl = min over faces and adjacent cells of PV / |flux|

    :param pore_volumes: Pore volume of every control volume (m³).
    :param face_neighbours: Interior face neighbour pairs, shape (num_faces, 2).
    :param face_flux_magnitudes: Sum of phase flux magnitudes per interior face (m³/s).
    :param boundary_cells: Control volume owning each boundary face.
    :param boundary_flux_magnitudes: Sum of phase flux magnitudes per boundary face (m³/s).
    :return: `(Δt_cfl, limiting_cell)`; `(inf, -1)` if nothing flows.
    """
    step = np.inf
    cell = -1
    for f in range(face_neighbours.shape[0]):
        flux = face_flux_magnitudes[f]
        if flux <= 0.0:
            continue
        for side in range(2):
            neighbour = face_neighbours[f, side]
            candidate = pore_volumes[neighbour] / flux
            if candidate < step:
                step = candidate
                cell = neighbour
    for b in range(boundary_cells.shape[0]):
        flux = boundary_flux_magnitudes[b]
        if flux <= 0.0:
            continue
        candidate = pore_volumes[boundary_cells[b]] / flux
        if candidate < step:
            step = candidate
            cell = boundary_cells[b]
    return step, cell


def compute_cfl_step_size(
    problem: "TransportProblem", saturation: np.ndarray, cfl_factor: float
) -> float:
    """CFL-limited step size `cfl_factor · min(PV / |flux|)` for the current saturation."""
    fluxes = compute_phase_fluxes(problem, saturation)
    step, _ = compute_cfl_time_step(
        problem.pore_volumes,
        problem.grid.face_neighbours,
        np.abs(fluxes.wetting) + np.abs(fluxes.nonwetting),
        problem.grid.boundary_cells,
        np.abs(fluxes.boundary_wetting) + np.abs(fluxes.boundary_nonwetting),
    )
    return cfl_factor * step


@numba.njit(cache=True)
def accumulate_net_outflow(
    num_cells: int,
    face_neighbours: np.ndarray,
    face_fluxes: np.ndarray,
    boundary_cells: np.ndarray,
    boundary_fluxes: np.ndarray,
) -> np.ndarray:
    """Net volume rate leaving every control volume through its faces (m³/s)."""
    outflow = np.zeros(num_cells)
    for f in range(face_neighbours.shape[0]):
        outflow[face_neighbours[f, 0]] += face_fluxes[f]
        outflow[face_neighbours[f, 1]] -= face_fluxes[f]
    for b in range(boundary_cells.shape[0]):
        outflow[boundary_cells[b]] += boundary_fluxes[b]
    return outflow


@numba.njit(cache=True)
def apply_saturation_update(
    saturation: np.ndarray,
    net_outflow: np.ndarray,
    pore_volumes: np.ndarray,
    time_step_size: float,
    saturation_epsilon: float,
) -> typing.Tuple[np.ndarray, int, float]:
    """
    Explicit update S ← S - Δt · outflow / PV.

    Values within `saturation_epsilon` of the bounds are snapped onto [0, 1].
    Non-finite values are violations.

    :return: `(updated, violating_cell, violating_value)`; `violating_cell` is -1
        when every updated saturation is physical.
    """
    updated = saturation.copy()
    violating_cell = -1
    violating_value = 0.0
    for i in range(saturation.shape[0]):
        value = saturation[i] - time_step_size * net_outflow[i] / pore_volumes[i]
        if not np.isfinite(value):
            if violating_cell < 0:
                violating_cell = i
                violating_value = value
        elif value < 0.0:
            if value < -saturation_epsilon and violating_cell < 0:
                violating_cell = i
                violating_value = value
            value = 0.0 if value >= -saturation_epsilon else value
        elif value > 1.0:
            if value > 1.0 + saturation_epsilon and violating_cell < 0:
                violating_cell = i
                violating_value = value
            value = 1.0 if value <= 1.0 + saturation_epsilon else value
        updated[i] = value
    return updated, violating_cell, violating_value


def evolve_saturation_explicitly(
    problem: "TransportProblem",
    saturation: np.ndarray,
    time_step_size: float,
    time_step: int,
    cfl_factor: float = 0.99,
) -> EvolutionResult[ExplicitSaturationSolution, SaturationEvolutionMeta]:
    """
    Advance the wetting phase saturation by one explicit upwind finite volume step.

    The update is rejected (`success=False`) if any saturation leaves [0, 1]
    by more than the saturation tolerance; the candidate is still returned
    so the caller can inspect it.

    :param problem: Transport problem providing geometry, total fluxes and material law.
    :param saturation: Wetting phase saturation at the start of the step.
    :param time_step_size: Step size (s).
    :param time_step: Index of the step being attempted (for reporting).
    :param cfl_factor: Safety factor reported alongside the CFL number.
    :return: `EvolutionResult` with the updated saturation.
    """
    grid = problem.grid
    pore_volumes = problem.pore_volumes
    fluxes = compute_phase_fluxes(problem, saturation)
    cfl_step, cfl_cell = compute_cfl_time_step(
        pore_volumes,
        grid.face_neighbours,
        np.abs(fluxes.wetting) + np.abs(fluxes.nonwetting),
        grid.boundary_cells,
        np.abs(fluxes.boundary_wetting) + np.abs(fluxes.boundary_nonwetting),
    )
    net_outflow = accumulate_net_outflow(
        grid.num_control_volumes,
        grid.face_neighbours,
        fluxes.wetting,
        grid.boundary_cells,
        fluxes.boundary_wetting,
    )
    updated, violating_cell, violating_value = apply_saturation_update(
        np.array(saturation, dtype=np.float64),
        net_outflow,
        pore_volumes,
        float(time_step_size),
        float(c.SATURATION_EPSILON),
    )
    updated = updated.astype(saturation.dtype, copy=False)

    cfl_number = time_step_size / cfl_step if np.isfinite(cfl_step) else 0.0
    violated = violating_cell >= 0
    boundary_wetting = fluxes.boundary_wetting
    boundary_nonwetting = fluxes.boundary_nonwetting
    flux_meta = FluxesMeta(
        wetting_inflow=float(-boundary_wetting[boundary_wetting < 0.0].sum()),
        wetting_outflow=float(boundary_wetting[boundary_wetting > 0.0].sum()),
        nonwetting_inflow=float(-boundary_nonwetting[boundary_nonwetting < 0.0].sum()),
        nonwetting_outflow=float(boundary_nonwetting[boundary_nonwetting > 0.0].sum()),
    )
    wetting_volume = float(np.sum(updated * pore_volumes))
    volumes_meta = VolumesMeta(
        wetting_volume=wetting_volume,
        nonwetting_volume=float(np.sum(pore_volumes)) - wetting_volume,
        pore_volume=float(np.sum(pore_volumes)),
    )
    meta = SaturationEvolutionMeta(
        cfl_info=CFLMeta(
            cfl_factor=cfl_factor,
            cfl_step_size=float(cfl_step),
            cfl_number=float(cfl_number),
            cell=int(violating_cell if violated else cfl_cell),
            time_step=time_step,
            violated=violated,
        ),
        fluxes=flux_meta,
        volumes=volumes_meta,
    )
    if violated:
        msg = (
            f"Saturation {violating_value:.6e} out of [0, 1] at control volume "
            f"{violating_cell} at time step {time_step} with step size "
            f"{time_step_size:.6e} s (CFL number {cfl_number:.4f}). "
            "Consider reducing the time step size."
        )
        return EvolutionResult(
            value=ExplicitSaturationSolution(saturation=updated),
            scheme="explicit",
            success=False,
            message=msg,
            metadata=meta,
        )
    return EvolutionResult(
        value=ExplicitSaturationSolution(saturation=updated),
        scheme="explicit",
        success=True,
        message=f"Explicit saturation evolution time step {time_step} successful.",
        metadata=meta,
    )
