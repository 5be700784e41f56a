import numpy as np
import pytest

from boxoil.diffusivity import ResidualAssembler
from boxoil.pvt import BlackOilFluidSystem
from boxoil.scenarios import (
    build_black_oil_problem,
    build_reference_transport_problem,
    reference_transport_config,
)


@pytest.fixture
def fluid_system() -> BlackOilFluidSystem:
    return BlackOilFluidSystem.from_compressibilities(
        pressures=np.linspace(1.0e5, 5.0e7, 50)
    )


@pytest.fixture
def black_oil_setup():
    """Grid, problem and model of the small black-oil box problem at rest."""
    return build_black_oil_problem()


@pytest.fixture
def assembler(black_oil_setup) -> ResidualAssembler:
    grid, problem, model = black_oil_setup
    return ResidualAssembler(
        grid=grid, fluid_system=model.fluid_system, problem=problem
    )


@pytest.fixture
def transport_problem():
    return build_reference_transport_problem()


@pytest.fixture
def transport_config():
    return reference_transport_config()
