import pytest

from boxoil.errors import InvariantViolation, ValidationError
from boxoil.indices import BlackOilIndices


def test_default_layout():
    indices = BlackOilIndices()
    assert indices.num_primary_variables == 3
    assert indices.num_equations == 3
    assert indices.pressure0_idx == 0
    assert list(indices.saturation_slots) == [1, 2]
    assert list(indices.equation_slots) == [0, 1, 2]


def test_slots_are_a_permutation():
    indices = BlackOilIndices()
    slots = [indices.pressure0_idx] + list(indices.saturation_slots)
    assert sorted(slots) == list(range(indices.num_primary_variables))


def test_pressure_after_saturations():
    indices = BlackOilIndices(pressure0_idx=2, saturation0_idx=0)
    assert indices.is_pressure_slot(2)
    assert indices.saturation_phase(0) == 0
    assert indices.saturation_phase(1) == 1
    assert indices.saturation_slot(1) == 1


def test_overlapping_slots_are_rejected():
    with pytest.raises(ValidationError):
        BlackOilIndices(pressure0_idx=1, saturation0_idx=1)


def test_non_dense_equations_are_rejected():
    with pytest.raises(ValidationError):
        BlackOilIndices(conti0_eq_idx=1)


def test_invalid_slots_raise_invariant_violation():
    indices = BlackOilIndices()
    with pytest.raises(InvariantViolation):
        indices.check_primary_variable_slot(3)
    with pytest.raises(InvariantViolation):
        indices.check_primary_variable_slot(-1)
    with pytest.raises(InvariantViolation):
        indices.equation_component(3)
    with pytest.raises(InvariantViolation):
        indices.saturation_phase(0)
    # The last phase has no saturation slot
    with pytest.raises(InvariantViolation):
        indices.saturation_slot(2)


def test_invariant_violation_is_an_assertion():
    with pytest.raises(AssertionError):
        BlackOilIndices().equation_component(7)


def test_as_dict():
    assert BlackOilIndices().as_dict() == {
        "num_phases": 3,
        "num_components": 3,
        "pressure0_idx": 0,
        "saturation0_idx": 1,
        "conti0_eq_idx": 0,
    }
