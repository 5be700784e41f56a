import numpy as np
import pytest

from boxoil.diffusivity import (
    accumulate_net_outflow,
    apply_saturation_update,
    compute_cfl_step_size,
    compute_cfl_time_step,
    compute_phase_fluxes,
    evolve_saturation_explicitly,
)

PORE_VOLUME = 0.2 * 37.5 * 300.0
TOTAL_FLUX = 1.0 / 6.0 * 1e-6 * 300.0


def test_reference_problem_geometry(transport_problem):
    np.testing.assert_allclose(transport_problem.pore_volumes, PORE_VOLUME)
    np.testing.assert_allclose(transport_problem.face_fluxes, TOTAL_FLUX)
    assert transport_problem.injection_rate == pytest.approx(TOTAL_FLUX)
    assert transport_problem.boundary_fluxes.sum() == pytest.approx(0.0, abs=1e-20)


def test_phase_fluxes_upwind(transport_problem):
    saturation = np.zeros(16)
    saturation[:4] = 1.0
    fluxes = compute_phase_fluxes(transport_problem, saturation)
    # Linear law with equal viscosities: fractional flow equals the upwind saturation
    np.testing.assert_allclose(fluxes.wetting[:3], TOTAL_FLUX)
    np.testing.assert_allclose(fluxes.wetting[4:], 0.0)
    np.testing.assert_allclose(fluxes.wetting + fluxes.nonwetting, TOTAL_FLUX)
    left = transport_problem.grid.boundary_faces(0, -1)
    np.testing.assert_allclose(fluxes.boundary_wetting[left], -TOTAL_FLUX)


def test_cfl_step_size(transport_problem):
    saturation = transport_problem.initial_saturations()
    step = compute_cfl_step_size(transport_problem, saturation, cfl_factor=0.99)
    assert step == pytest.approx(0.99 * PORE_VOLUME / TOTAL_FLUX)


def test_cfl_kernel():
    pore_volumes = np.array([1.0, 2.0, 0.5])
    neighbours = np.array([[0, 1], [1, 2]])
    step, cell = compute_cfl_time_step(
        pore_volumes,
        neighbours,
        np.array([0.5, 0.1]),
        np.array([0, 2]),
        np.array([0.0, 0.0]),
    )
    assert step == pytest.approx(2.0)
    assert cell == 0
    step, cell = compute_cfl_time_step(
        pore_volumes, neighbours, np.zeros(2), np.array([0]), np.zeros(1)
    )
    assert step == np.inf
    assert cell == -1


def test_net_outflow_kernel():
    outflow = accumulate_net_outflow(
        3,
        np.array([[0, 1], [1, 2]]),
        np.array([1.0, 0.5]),
        np.array([0, 2]),
        np.array([-1.0, 0.5]),
    )
    np.testing.assert_allclose(outflow, [0.0, -0.5, 0.0])


def test_update_kernel_snaps_round_off():
    updated, cell, _ = apply_saturation_update(
        np.array([1.0, 0.0]), np.array([-1e-12, 1e-12]), np.ones(2), 1.0, 1e-10
    )
    assert cell == -1
    np.testing.assert_array_equal(updated, [1.0, 0.0])


def test_update_kernel_reports_violation():
    updated, cell, value = apply_saturation_update(
        np.array([0.5, 0.9]), np.array([0.0, -0.2]), np.ones(2), 1.0, 1e-10
    )
    assert cell == 1
    assert value == pytest.approx(1.1)
    assert updated[1] == pytest.approx(1.1)


def test_update_kernel_reports_non_finite_saturation():
    updated, cell, value = apply_saturation_update(
        np.array([0.5, 0.2, 0.3]), np.array([0.0, np.nan, 0.1]), np.ones(3), 1.0, 1e-10
    )
    assert cell == 1
    assert np.isnan(value)
    assert np.isnan(updated[1])
    assert updated[2] == pytest.approx(0.2)


def test_first_step(transport_problem):
    saturation = transport_problem.initial_saturations()
    dt = 0.99 * PORE_VOLUME / TOTAL_FLUX
    result = evolve_saturation_explicitly(transport_problem, saturation, dt, time_step=1)
    assert result.success
    assert result.scheme == "explicit"
    updated = result.value.saturation
    assert updated[0] == pytest.approx(0.99)
    np.testing.assert_array_equal(updated[1:], 0.0)
    np.testing.assert_allclose(result.value.nonwetting_saturation, 1.0 - updated)
    # The input is not modified
    np.testing.assert_array_equal(saturation, 0.0)

    meta = result.metadata
    assert meta.cfl_info.cfl_number == pytest.approx(0.99)
    assert not meta.cfl_info.violated
    assert meta.fluxes.wetting_inflow == pytest.approx(TOTAL_FLUX)
    assert meta.fluxes.nonwetting_outflow == pytest.approx(TOTAL_FLUX)
    assert meta.fluxes.wetting_outflow == 0.0
    assert meta.volumes.wetting_volume == pytest.approx(0.99 * PORE_VOLUME)


def test_oversized_step_is_rejected(transport_problem):
    saturation = transport_problem.initial_saturations()
    dt = 2.0 * PORE_VOLUME / TOTAL_FLUX
    result = evolve_saturation_explicitly(transport_problem, saturation, dt, time_step=1)
    assert not result.success
    assert result.metadata.cfl_info.violated
    assert result.metadata.cfl_info.cell == 0
    assert result.metadata.cfl_info.cfl_number == pytest.approx(2.0)
    assert "out of [0, 1]" in result.message
