import numpy as np
import pytest

from boxoil.errors import ValidationError
from boxoil.pvt import BlackOilFluidSystem, ImmiscibleFluidSystem


def _tables(**overrides):
    tables = dict(
        pressures=[1.0e5, 2.0e5],
        water_formation_volume_factors=[1.0, 0.9],
        gas_formation_volume_factors=[1.0, 0.5],
        oil_formation_volume_factors=[1.0, 0.8],
        gas_formation_factors=[0.0, 10.0],
        water_viscosities=[1.0e-3, 1.0e-3],
        gas_viscosities=[1.0e-5, 2.0e-5],
        oil_viscosities=[5.0e-3, 4.0e-3],
    )
    tables.update(overrides)
    return tables


def test_linear_interpolation():
    fluid_system = BlackOilFluidSystem(**_tables())
    assert fluid_system.formation_volume_factor(0, 1.5e5) == pytest.approx(0.95)
    assert fluid_system.viscosity(1, 1.5e5) == pytest.approx(1.5e-5)
    np.testing.assert_allclose(
        fluid_system.formation_volume_factor(2, np.array([1.0e5, 1.25e5, 2.0e5])),
        [1.0, 0.95, 0.8],
    )


def test_constant_beyond_table_ends():
    fluid_system = BlackOilFluidSystem(**_tables())
    assert fluid_system.formation_volume_factor(0, 1.0e4) == pytest.approx(1.0)
    assert fluid_system.formation_volume_factor(0, 1.0e7) == pytest.approx(0.9)


def test_densities():
    fluid_system = BlackOilFluidSystem(**_tables())
    p = 2.0e5
    assert fluid_system.density(0, p) == pytest.approx(1000.0 / 0.9)
    assert fluid_system.density(1, p) == pytest.approx(0.85 / 0.5)
    assert fluid_system.density(2, p) == pytest.approx((850.0 + 10.0 * 0.85) / 0.8)


def test_oil_composition():
    fluid_system = BlackOilFluidSystem(**_tables())
    p = 2.0e5
    fractions = fluid_system.mass_fractions(2, p)
    expected_gas = 10.0 * 0.85 / (850.0 + 10.0 * 0.85)
    assert fractions.shape == (3,)
    assert fractions[1] == pytest.approx(expected_gas)
    assert fractions.sum() == pytest.approx(1.0)
    assert fractions[0] == 0.0
    np.testing.assert_array_equal(fluid_system.mass_fractions(0, p), [1.0, 0.0, 0.0])
    assert 0.0 < fluid_system.dissolved_gas_mole_fraction(p) < 1.0


def test_vectorised_mass_fractions():
    fluid_system = BlackOilFluidSystem(**_tables())
    fractions = fluid_system.mass_fractions(2, np.array([1.0e5, 1.5e5, 2.0e5]))
    assert fractions.shape == (3, 3)
    np.testing.assert_allclose(fractions.sum(axis=-1), 1.0)
    assert fractions[0, 1] == 0.0


def test_molar_density_of_water():
    fluid_system = BlackOilFluidSystem(**_tables())
    assert fluid_system.molar_density(0, 1.0e5) == pytest.approx(
        1000.0 / fluid_system.molar_mass(0)
    )


def test_sample():
    fluid_system = BlackOilFluidSystem(**_tables())
    oil = fluid_system.sample(2, 2.0e5)
    assert oil.phase == 2
    assert oil.formation_volume_factor == pytest.approx(0.8)
    assert oil.dissolved_gas_fraction > 0.0
    water = fluid_system.sample(0, 2.0e5)
    assert water.dissolved_gas_fraction == 0.0
    assert water.molar_mass == pytest.approx(fluid_system.molar_mass(0))


def test_from_compressibilities():
    fluid_system = BlackOilFluidSystem.from_compressibilities(
        pressures=np.linspace(1.0e5, 5.0e7, 50)
    )
    assert fluid_system.density(0, 1.0e5) == pytest.approx(1000.0)
    assert fluid_system.density(2, 1.0e5) == pytest.approx(850.0)
    assert fluid_system.density(0, 2.0e7) > fluid_system.density(0, 1.0e7)
    assert fluid_system.gas_formation_factor(2.0e7) > 0.0


def test_phase_names():
    fluid_system = BlackOilFluidSystem(**_tables())
    assert [fluid_system.phase_name(phase) for phase in range(3)] == [
        "water",
        "gas",
        "oil",
    ]
    with pytest.raises(ValidationError):
        fluid_system.phase_name(3)
    with pytest.raises(ValidationError):
        fluid_system.molar_mass(-1)


def test_table_validation():
    with pytest.raises(ValidationError):
        BlackOilFluidSystem(**_tables(pressures=[2.0e5, 1.0e5]))
    with pytest.raises(ValidationError):
        BlackOilFluidSystem(**_tables(oil_viscosities=[5.0e-3]))
    with pytest.raises(ValidationError):
        BlackOilFluidSystem(**_tables(pressures=[1.0e5], water_formation_volume_factors=[1.0]))


def test_immiscible_fluid_system():
    fluid_system = ImmiscibleFluidSystem(
        densities=(1000.0, 800.0),
        viscosities=(1.0e-3, 5.0e-3),
        molar_masses=(0.018, 0.1),
    )
    assert fluid_system.num_phases == 2
    np.testing.assert_allclose(fluid_system.density(1, np.array([1.0, 2.0])), [800.0, 800.0])
    assert fluid_system.formation_volume_factor(0, 1.0e5) == 1.0
    np.testing.assert_array_equal(fluid_system.mass_fractions(1, 1.0e5), [0.0, 1.0])
    with pytest.raises(ValidationError):
        ImmiscibleFluidSystem(densities=(1.0,), viscosities=(1.0, 1.0), molar_masses=(1.0, 1.0))
