"""Slot layout of the black-oil primary variable and equation vectors."""

import typing

import attrs

from boxoil.errors import InvariantViolation, ValidationError

__all__ = ["BlackOilIndices"]


@attrs.frozen
class BlackOilIndices:
    """
    Mapping of physical unknowns and continuity equations to vector slots.

    The primary variables of a control volume are the pressure of phase 0
    followed (or preceded) by the saturations of phases `0 .. num_phases - 2`.
    The saturation of the last phase is not a primary variable and is
    recovered as `1 - Σ others`. Equations are one continuity equation per
    component in a contiguous range starting at `conti0_eq_idx`.

    The layout is validated once, on construction, and never changes.
    """

    num_phases: int = attrs.field(default=3, validator=attrs.validators.ge(2))
    num_components: int = attrs.field(default=3, validator=attrs.validators.ge(1))
    pressure0_idx: int = attrs.field(default=0, validator=attrs.validators.ge(0))
    """Slot of the phase-0 pressure."""
    saturation0_idx: int = attrs.field(default=1, validator=attrs.validators.ge(0))
    """Slot of the phase-0 saturation; phase `α` saturation lives at `saturation0_idx + α`."""
    conti0_eq_idx: int = attrs.field(default=0, validator=attrs.validators.ge(0))
    """Slot of the continuity equation of component 0."""

    def __attrs_post_init__(self) -> None:
        slots = [self.pressure0_idx] + list(self.saturation_slots)
        if sorted(slots) != list(range(self.num_primary_variables)):
            raise ValidationError(
                f"Pressure slot {self.pressure0_idx} and saturation slots "
                f"{list(self.saturation_slots)} do not cover "
                f"0..{self.num_primary_variables - 1} exactly once"
            )
        if self.conti0_eq_idx + self.num_components != self.num_equations:
            raise ValidationError(
                "Continuity equations must be dense and start at slot 0 "
                f"(conti0_eq_idx={self.conti0_eq_idx})"
            )

    @property
    def num_primary_variables(self) -> int:
        """One pressure plus `num_phases - 1` saturations."""
        return self.num_phases

    @property
    def num_equations(self) -> int:
        return self.num_components

    @property
    def saturation_slots(self) -> range:
        return range(self.saturation0_idx, self.saturation0_idx + self.num_phases - 1)

    @property
    def equation_slots(self) -> range:
        return range(self.conti0_eq_idx, self.conti0_eq_idx + self.num_components)

    def is_pressure_slot(self, slot: int) -> bool:
        return slot == self.pressure0_idx

    def is_saturation_slot(self, slot: int) -> bool:
        return slot in self.saturation_slots

    def saturation_phase(self, slot: int) -> int:
        """Phase whose saturation is stored in `slot`."""
        if not self.is_saturation_slot(slot):
            raise InvariantViolation(f"Slot {slot} is not a saturation slot")
        return slot - self.saturation0_idx

    def saturation_slot(self, phase: int) -> int:
        """Slot holding the saturation of `phase` (the last phase has none)."""
        if not 0 <= phase < self.num_phases - 1:
            raise InvariantViolation(
                f"Phase {phase} has no saturation slot (valid phases: 0..{self.num_phases - 2})"
            )
        return self.saturation0_idx + phase

    def equation_component(self, eq_slot: int) -> int:
        """Component whose continuity equation lives in `eq_slot`."""
        if eq_slot not in self.equation_slots:
            raise InvariantViolation(
                f"Slot {eq_slot} is not an equation slot "
                f"(valid: {self.conti0_eq_idx}..{self.conti0_eq_idx + self.num_components - 1})"
            )
        return eq_slot - self.conti0_eq_idx

    def check_primary_variable_slot(self, slot: int) -> int:
        if not (self.is_pressure_slot(slot) or self.is_saturation_slot(slot)):
            raise InvariantViolation(
                f"Slot {slot} is not a primary variable slot "
                f"(valid: 0..{self.num_primary_variables - 1})"
            )
        return slot

    def as_dict(self) -> typing.Dict[str, int]:
        return attrs.asdict(self)
