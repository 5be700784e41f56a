import pytest

from boxoil.config import Config
from boxoil.constants import Constant, Constants, c, get_constant
from boxoil.errors import ValidationError
from boxoil.scenarios import build_black_oil_problem, build_reference_transport_problem


def test_defaults():
    config = Config(end_time=10.0)
    assert config.start_time == 0.0
    assert config.cfl_factor == 0.99
    assert config.singular_limit == 1e-35
    assert config.output_frequency == 1
    assert config.output_initial_state
    assert config.max_rejects == 10
    assert config.velocity_module == "darcy"
    assert config.duration == 10.0


@pytest.mark.parametrize(
    "options",
    [
        {"end_time": 1.0, "cfl_factor": 1.0},
        {"end_time": 1.0, "cfl_factor": 0.0},
        {"end_time": 1.0, "output_frequency": 0},
        {"end_time": 1.0, "max_rejects": 0},
        {"end_time": 1.0, "start_time": 2.0},
        {"end_time": 1.0, "min_step_size": 2.0, "max_step_size": 1.0},
        {"end_time": 1.0, "cfl": 0.5},
        {"cfl_factor": 0.5},
    ],
)
def test_invalid_options(options):
    with pytest.raises(ValidationError):
        Config.from_dict(options)


def test_from_file(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text("end_time: 1.0e6\ncfl_factor: 0.5\noutput_frequency: 3\n")
    config = Config.from_file(path)
    assert config.end_time == 1.0e6
    assert config.cfl_factor == 0.5
    assert config.output_frequency == 3


def test_from_file_with_defaults(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text("cfl_factor: 0.5\n")
    config = Config.from_file(path, end_time=4e9, cfl_factor=0.9)
    assert config.end_time == 4e9
    assert config.cfl_factor == 0.5


def test_from_file_requires_a_mapping(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValidationError):
        Config.from_file(path)


def test_constants_override():
    config = Config(end_time=1.0, constants={"SATURATION_EPSILON": 1e-6})
    assert c.SATURATION_EPSILON == 1e-10
    with config.constants():
        assert c.SATURATION_EPSILON == 1e-6
        assert c.REFERENCE_PRESSURE == 1.0e5
    assert c.SATURATION_EPSILON == 1e-10


def test_constants_store():
    constants = Constants()
    assert "WATER_MOLAR_MASS" in constants
    assert constants["WATER_MOLAR_MASS"].unit == "kg/mol"
    constants.CUSTOM = Constant(3.0, unit="m")
    assert constants.CUSTOM == 3.0
    assert str(constants["CUSTOM"]) == "3.0m"
    with pytest.raises(AttributeError):
        constants.UNKNOWN
    assert get_constant("SINGULAR_LIMIT").value == 1e-35


def test_scenarios_read_active_constants():
    overrides = Constants({"ACCELERATION_DUE_TO_GRAVITY": 10.0, "WATER_MOLAR_MASS": 0.02})
    with overrides():
        _, problem, _ = build_black_oil_problem(gravity=True)
        transport = build_reference_transport_problem()
    assert problem.gravity_vector(2)[-1] == -10.0
    assert transport.fluid_system.molar_mass(0) == 0.02

    _, problem, _ = build_black_oil_problem(gravity=True)
    assert problem.gravity_vector(2)[-1] == pytest.approx(-9.80665)


def test_singular_limit_defaults_to_active_constant():
    with Constants({"SINGULAR_LIMIT": 1e-20})():
        assert Config(end_time=1.0).singular_limit == 1e-20
    assert Config(end_time=1.0).singular_limit == 1e-35
