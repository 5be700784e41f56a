"""Fluid property evaluators (PVT) for the black-oil and immiscible fluid systems."""

from abc import ABC, abstractmethod
import typing

import attrs
import numpy as np

from boxoil.constants import c
from boxoil.errors import ValidationError
from boxoil.types import FloatOrArray, FluidPhase

__all__ = [
    "FluidPropertySample",
    "FluidSystem",
    "BlackOilFluidSystem",
    "ImmiscibleFluidSystem",
]


@attrs.frozen(slots=True)
class FluidPropertySample:
    """Properties of one phase at one pressure. Recomputed on demand, never cached."""

    phase: int
    pressure: float
    density: float
    """Mass density (kg/m³)."""
    viscosity: float
    """Dynamic viscosity (Pa·s)."""
    formation_volume_factor: float
    """Reference density over density at `pressure` (dimensionless)."""
    molar_mass: float
    """Molar mass of the phase's main component (kg/mol)."""
    dissolved_gas_fraction: float
    """Mass fraction of dissolved gas in the phase (only non-zero for oil)."""


class FluidSystem(ABC):
    """
    Contract of a fluid property evaluator.

    Implementations are pure functions of (phase, pressure): no hidden state
    and no caching across calls. Component `κ` is the main component of phase
    `κ`, so phase and component indices share an ordering.
    """

    phase_names: typing.Tuple[str, ...]

    @property
    def num_phases(self) -> int:
        return len(self.phase_names)

    @property
    def num_components(self) -> int:
        return len(self.phase_names)

    def _check_phase(self, phase: int) -> int:
        if not 0 <= phase < self.num_phases:
            raise ValidationError(
                f"Phase index {phase} out of range [0, {self.num_phases})"
            )
        return phase

    def _check_component(self, component: int) -> int:
        if not 0 <= component < self.num_components:
            raise ValidationError(
                f"Component index {component} out of range [0, {self.num_components})"
            )
        return component

    def phase_name(self, phase: int) -> str:
        """Human readable name of a phase, used in primary variable and equation names."""
        return self.phase_names[self._check_phase(phase)]

    @abstractmethod
    def density(self, phase: int, pressure: FloatOrArray) -> FloatOrArray:
        """Mass density (kg/m³) of `phase` at `pressure` (Pa)."""
        ...

    @abstractmethod
    def viscosity(self, phase: int, pressure: FloatOrArray) -> FloatOrArray:
        """Dynamic viscosity (Pa·s) of `phase` at `pressure` (Pa)."""
        ...

    @abstractmethod
    def formation_volume_factor(
        self, phase: int, pressure: FloatOrArray
    ) -> FloatOrArray:
        """Formation volume factor of `phase` at `pressure` (Pa)."""
        ...

    @abstractmethod
    def molar_mass(self, component: int) -> float:
        """Molar mass (kg/mol) of `component`."""
        ...

    @abstractmethod
    def mass_fractions(self, phase: int, pressure: FloatOrArray) -> np.ndarray:
        """
        Composition of `phase` at `pressure`.

        :return: Array of shape `np.shape(pressure) + (num_components,)` summing to 1.
        """
        ...

    def dissolved_gas_fraction(self, pressure: FloatOrArray) -> FloatOrArray:
        """Mass fraction of gas dissolved in the oil phase. Zero unless overridden."""
        return np.zeros_like(np.asarray(pressure, dtype=float))

    def sample(self, phase: int, pressure: float) -> FluidPropertySample:
        """Evaluate every property of `phase` at a single `pressure`."""
        phase = self._check_phase(phase)
        dissolved = (
            self.dissolved_gas_fraction(pressure)
            if self.phase_names[phase] == FluidPhase.OIL.value
            else 0.0
        )
        return FluidPropertySample(
            phase=phase,
            pressure=float(pressure),
            density=float(self.density(phase, pressure)),
            viscosity=float(self.viscosity(phase, pressure)),
            formation_volume_factor=float(self.formation_volume_factor(phase, pressure)),
            molar_mass=float(self.molar_mass(phase)),
            dissolved_gas_fraction=float(dissolved),
        )


def _as_table(value: typing.Any) -> np.ndarray:
    return np.asarray(value, dtype=np.float64)


def _default_molar_masses() -> typing.Tuple[float, float, float]:
    return (c.WATER_MOLAR_MASS, c.GAS_MOLAR_MASS, c.OIL_MOLAR_MASS)


@attrs.frozen(eq=False)
class BlackOilFluidSystem(FluidSystem):
    """
    Three-phase, three-component black-oil fluid system.

    Water and gas are immiscible and consist of their own component only.
    Oil is a mixture of the oil and gas components; it is taken to be
    saturated, carrying the amount of gas given by the gas formation factor
    `R_s(p)`. Densities follow from the formation volume factors:

        ρ_w = ρ_w(1 bar) / B_w(p)
        ρ_g = ρ_g(1 bar) / B_g(p)
        ρ_o = (ρ_o(1 bar) + R_s(p) ρ_g(1 bar)) / B_o(p)

    Tabulated properties are linearly interpolated in pressure and held
    constant beyond the table ends.
    """

    WATER_PHASE: typing.ClassVar[int] = 0
    GAS_PHASE: typing.ClassVar[int] = 1
    OIL_PHASE: typing.ClassVar[int] = 2

    pressures: np.ndarray = attrs.field(converter=_as_table)
    """Table pressures (Pa), strictly increasing."""
    water_formation_volume_factors: np.ndarray = attrs.field(converter=_as_table)
    gas_formation_volume_factors: np.ndarray = attrs.field(converter=_as_table)
    oil_formation_volume_factors: np.ndarray = attrs.field(converter=_as_table)
    gas_formation_factors: np.ndarray = attrs.field(converter=_as_table)
    """R_s: surface volume of gas dissolved per surface volume of oil (m³/m³)."""
    water_viscosities: np.ndarray = attrs.field(converter=_as_table)
    gas_viscosities: np.ndarray = attrs.field(converter=_as_table)
    oil_viscosities: np.ndarray = attrs.field(converter=_as_table)
    surface_densities: typing.Tuple[float, float, float] = (1000.0, 0.85, 850.0)
    """Densities (kg/m³) of water, gas and oil at the reference pressure."""
    molar_masses: typing.Tuple[float, float, float] = attrs.field(
        factory=_default_molar_masses
    )
    """Molar masses (kg/mol) of the water, gas and oil components."""
    phase_names: typing.Tuple[str, ...] = (
        FluidPhase.WATER.value,
        FluidPhase.GAS.value,
        FluidPhase.OIL.value,
    )

    def __attrs_post_init__(self) -> None:
        if self.pressures.ndim != 1 or self.pressures.size < 2:
            raise ValidationError("At least two table pressures are required")
        if np.any(np.diff(self.pressures) <= 0.0):
            raise ValidationError("Table pressures must be strictly increasing")
        for field in attrs.fields(type(self))[1:8]:
            table = getattr(self, field.name)
            if table.shape != self.pressures.shape:
                raise ValidationError(
                    f"'{field.name}' has {table.size} entries, expected {self.pressures.size}"
                )
        if len(self.surface_densities) != 3 or len(self.molar_masses) != 3:
            raise ValidationError(
                "surface_densities and molar_masses need one entry per phase"
            )
        if len(self.phase_names) != 3:
            raise ValidationError("The black-oil system has exactly three phases")

    @classmethod
    def from_compressibilities(
        cls,
        pressures: typing.Sequence[float],
        water_compressibility: float = 4.6e-10,
        oil_compressibility: float = 1.0e-9,
        gas_formation_factor_slope: float = 1.0e-6,
        water_viscosity: float = 1.0e-3,
        gas_viscosity: float = 1.5e-5,
        oil_viscosity: float = 5.0e-3,
        **kwargs: typing.Any,
    ) -> "BlackOilFluidSystem":
        """
        Build the tables from constant compressibilities.

        `B_w` and `B_o` decay exponentially with pressure above the reference
        pressure, the gas is ideal (`B_g = p_ref / p`) and `R_s` grows
        linearly with pressure.

        :param pressures: Table pressures (Pa).
        :param water_compressibility: Water compressibility (1/Pa).
        :param oil_compressibility: Oil compressibility (1/Pa).
        :param gas_formation_factor_slope: d R_s / d p (1/Pa).
        :param kwargs: Passed on to the constructor (densities, molar masses...).
        """
        p = _as_table(pressures)
        p_ref = c.REFERENCE_PRESSURE
        return cls(
            pressures=p,
            water_formation_volume_factors=np.exp(-water_compressibility * (p - p_ref)),
            gas_formation_volume_factors=p_ref / p,
            oil_formation_volume_factors=np.exp(-oil_compressibility * (p - p_ref)),
            gas_formation_factors=np.maximum(gas_formation_factor_slope * (p - p_ref), 0.0),
            water_viscosities=np.full_like(p, water_viscosity),
            gas_viscosities=np.full_like(p, gas_viscosity),
            oil_viscosities=np.full_like(p, oil_viscosity),
            **kwargs,
        )

    def _interpolate(self, table: np.ndarray, pressure: FloatOrArray) -> FloatOrArray:
        return np.interp(pressure, self.pressures, table)

    def formation_volume_factor(
        self, phase: int, pressure: FloatOrArray
    ) -> FloatOrArray:
        phase = self._check_phase(phase)
        table = (
            self.water_formation_volume_factors,
            self.gas_formation_volume_factors,
            self.oil_formation_volume_factors,
        )[phase]
        return self._interpolate(table, pressure)

    def gas_formation_factor(self, pressure: FloatOrArray) -> FloatOrArray:
        """R_s of saturated oil at `pressure`."""
        return self._interpolate(self.gas_formation_factors, pressure)

    def density(self, phase: int, pressure: FloatOrArray) -> FloatOrArray:
        phase = self._check_phase(phase)
        b = self.formation_volume_factor(phase, pressure)
        if phase == self.OIL_PHASE:
            rs = self.gas_formation_factor(pressure)
            surface_mass = (
                self.surface_densities[self.OIL_PHASE]
                + rs * self.surface_densities[self.GAS_PHASE]
            )
            return surface_mass / b
        return self.surface_densities[phase] / b

    def viscosity(self, phase: int, pressure: FloatOrArray) -> FloatOrArray:
        phase = self._check_phase(phase)
        table = (self.water_viscosities, self.gas_viscosities, self.oil_viscosities)[
            phase
        ]
        return self._interpolate(table, pressure)

    def molar_mass(self, component: int) -> float:
        return self.molar_masses[self._check_component(component)]

    def dissolved_gas_fraction(self, pressure: FloatOrArray) -> FloatOrArray:
        """Mass fraction of the gas component in saturated oil, X_o^G(p)."""
        dissolved = self.gas_formation_factor(pressure) * self.surface_densities[self.GAS_PHASE]
        return dissolved / (self.surface_densities[self.OIL_PHASE] + dissolved)

    def dissolved_gas_mole_fraction(self, pressure: FloatOrArray) -> FloatOrArray:
        """Mole fraction of the gas component in saturated oil, x_o^G(p)."""
        gas_moles = (
            self.gas_formation_factor(pressure)
            * self.surface_densities[self.GAS_PHASE]
            / self.molar_masses[self.GAS_PHASE]
        )
        oil_moles = self.surface_densities[self.OIL_PHASE] / self.molar_masses[self.OIL_PHASE]
        return gas_moles / (gas_moles + oil_moles)

    def molar_density(self, phase: int, pressure: FloatOrArray) -> FloatOrArray:
        """Moles of all components per unit volume of `phase` (mol/m³)."""
        fractions = self.mass_fractions(phase, pressure)
        molar_masses = np.asarray(self.molar_masses)
        return self.density(phase, pressure) * np.sum(fractions / molar_masses, axis=-1)

    def mass_fractions(self, phase: int, pressure: FloatOrArray) -> np.ndarray:
        phase = self._check_phase(phase)
        shape = np.shape(pressure)
        fractions = np.zeros(shape + (3,))
        if phase == self.OIL_PHASE:
            dissolved = self.dissolved_gas_fraction(pressure)
            fractions[..., self.GAS_PHASE] = dissolved
            fractions[..., self.OIL_PHASE] = 1.0 - dissolved
        else:
            fractions[..., phase] = 1.0
        return fractions


@attrs.frozen(eq=False)
class ImmiscibleFluidSystem(FluidSystem):
    """
    Incompressible, immiscible phases with constant properties.

    Every phase consists of its own component only.
    """

    densities: typing.Tuple[float, ...] = attrs.field(converter=tuple)
    """Mass density of each phase (kg/m³)."""
    viscosities: typing.Tuple[float, ...] = attrs.field(converter=tuple)
    """Dynamic viscosity of each phase (Pa·s)."""
    molar_masses: typing.Tuple[float, ...] = attrs.field(converter=tuple)
    """Molar mass of each phase's component (kg/mol)."""
    phase_names: typing.Tuple[str, ...] = attrs.field(
        default=("wetting", "nonwetting"), converter=tuple
    )

    def __attrs_post_init__(self) -> None:
        n = len(self.phase_names)
        if n < 1:
            raise ValidationError("At least one phase is required")
        for name in ("densities", "viscosities", "molar_masses"):
            if len(getattr(self, name)) != n:
                raise ValidationError(f"'{name}' needs one entry per phase ({n})")

    def density(self, phase: int, pressure: FloatOrArray) -> FloatOrArray:
        value = self.densities[self._check_phase(phase)]
        return np.full_like(np.asarray(pressure, dtype=float), value)

    def viscosity(self, phase: int, pressure: FloatOrArray) -> FloatOrArray:
        value = self.viscosities[self._check_phase(phase)]
        return np.full_like(np.asarray(pressure, dtype=float), value)

    def formation_volume_factor(
        self, phase: int, pressure: FloatOrArray
    ) -> FloatOrArray:
        self._check_phase(phase)
        return np.ones_like(np.asarray(pressure, dtype=float))

    def molar_mass(self, component: int) -> float:
        return self.molar_masses[self._check_component(component)]

    def mass_fractions(self, phase: int, pressure: FloatOrArray) -> np.ndarray:
        phase = self._check_phase(phase)
        fractions = np.zeros(np.shape(pressure) + (self.num_components,))
        fractions[..., phase] = 1.0
        return fractions
