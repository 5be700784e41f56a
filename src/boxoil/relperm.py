"""Relative permeability and capillary pressure models (material laws)."""

from abc import ABC, abstractmethod
import typing

import attrs
import numba
import numpy as np

from boxoil.errors import ValidationError
from boxoil.types import FloatOrArray

__all__ = [
    "compute_effective_saturation",
    "compute_brooks_corey_relative_permeabilities",
    "compute_brooks_corey_capillary_pressure",
    "compute_corey_relative_permeability",
    "TwoPhaseMaterialLaw",
    "LinearTwoPhaseModel",
    "BrooksCoreyTwoPhaseModel",
    "CoreyThreePhaseModel",
]


@numba.njit(cache=True)
def compute_effective_saturation(
    wetting_saturation: np.ndarray,
    residual_wetting_saturation: float,
    residual_nonwetting_saturation: float,
) -> np.ndarray:
    """
    Effective (normalized) wetting phase saturation.

    Se = (Sw - Swr) / (1 - Swr - Snr), clipped to [0, 1].
    """
    movable = 1.0 - residual_wetting_saturation - residual_nonwetting_saturation
    effective = np.empty_like(wetting_saturation)
    for i in range(wetting_saturation.size):
        value = (wetting_saturation[i] - residual_wetting_saturation) / movable
        effective[i] = min(max(value, 0.0), 1.0)
    return effective


@numba.njit(cache=True)
def compute_brooks_corey_relative_permeabilities(
    effective_saturation: np.ndarray, pore_size_distribution_index: float
) -> typing.Tuple[np.ndarray, np.ndarray]:
    """
    Brooks-Corey (Burdine) relative permeabilities of the wetting and non-wetting phase.

    krw = Se^((2 + 3λ) / λ)
    krn = (1 - Se)² (1 - Se^((2 + λ) / λ))
    """
    lam = pore_size_distribution_index
    krw = np.empty_like(effective_saturation)
    krn = np.empty_like(effective_saturation)
    for i in range(effective_saturation.size):
        se = effective_saturation[i]
        krw[i] = se ** ((2.0 + 3.0 * lam) / lam)
        krn[i] = (1.0 - se) ** 2 * (1.0 - se ** ((2.0 + lam) / lam))
    return krw, krn


@numba.njit(cache=True)
def compute_brooks_corey_capillary_pressure(
    effective_saturation: np.ndarray,
    entry_pressure: float,
    pore_size_distribution_index: float,
) -> np.ndarray:
    """
    Brooks-Corey capillary pressure pc = pe Se^(-1/λ).

    Effective saturations are floored at 1e-6 so the curve stays finite.
    """
    pc = np.empty_like(effective_saturation)
    for i in range(effective_saturation.size):
        se = max(effective_saturation[i], 1e-6)
        pc[i] = entry_pressure * se ** (-1.0 / pore_size_distribution_index)
    return pc


@numba.njit(cache=True)
def compute_corey_relative_permeability(
    saturation: np.ndarray,
    residual_saturation: float,
    total_residual_saturation: float,
    exponent: float,
) -> np.ndarray:
    """Corey curve kr = Se^n with Se = (S - Sr) / (1 - ΣSr), clipped to [0, 1]."""
    movable = 1.0 - total_residual_saturation
    kr = np.empty_like(saturation)
    for i in range(saturation.size):
        se = min(max((saturation[i] - residual_saturation) / movable, 0.0), 1.0)
        kr[i] = se**exponent
    return kr


def _as_flat(value: FloatOrArray) -> typing.Tuple[np.ndarray, typing.Tuple[int, ...]]:
    array = np.asarray(value, dtype=np.float64)
    return np.ascontiguousarray(array.ravel()), array.shape


class TwoPhaseMaterialLaw(ABC):
    """
    Base for wetting/non-wetting material laws used by explicit transport.

    Subclasses implement `relative_permeabilities`; mobilities and the
    fractional flow function are derived from it.
    """

    @abstractmethod
    def relative_permeabilities(
        self, wetting_saturation: FloatOrArray
    ) -> typing.Tuple[FloatOrArray, FloatOrArray]:
        """(wetting, non-wetting) relative permeabilities."""
        ...

    def capillary_pressure(self, wetting_saturation: FloatOrArray) -> FloatOrArray:
        return np.zeros_like(np.asarray(wetting_saturation, dtype=np.float64))

    def mobilities(
        self,
        wetting_saturation: FloatOrArray,
        viscosities: typing.Tuple[float, float],
    ) -> typing.Tuple[FloatOrArray, FloatOrArray]:
        """
        Phase mobilities λ = kr / μ.

        :param wetting_saturation: Wetting phase saturation - scalar or array.
        :param viscosities: (wetting, non-wetting) viscosities (Pa·s).
        """
        krw, krn = self.relative_permeabilities(wetting_saturation)
        return krw / viscosities[0], krn / viscosities[1]

    def fractional_flow(
        self,
        wetting_saturation: FloatOrArray,
        viscosities: typing.Tuple[float, float],
    ) -> FloatOrArray:
        """
        Wetting phase fractional flow fw = λw / (λw + λn).

        Where both mobilities vanish the fractional flow is taken as zero.
        """
        mobility_w, mobility_n = self.mobilities(wetting_saturation, viscosities)
        total = mobility_w + mobility_n
        return np.where(total > 0.0, mobility_w / np.where(total > 0.0, total, 1.0), 0.0)


def _check_residuals(instance: typing.Any, attribute: typing.Any, value: float) -> None:
    if not 0.0 <= value < 1.0:
        raise ValidationError(f"'{attribute.name}' must lie in [0, 1), got {value}")


@attrs.frozen
class LinearTwoPhaseModel(TwoPhaseMaterialLaw):
    """Linear relative permeabilities krw = Se, krn = 1 - Se and no capillary pressure."""

    residual_wetting_saturation: float = attrs.field(
        default=0.0, validator=_check_residuals
    )
    residual_nonwetting_saturation: float = attrs.field(
        default=0.0, validator=_check_residuals
    )

    def __attrs_post_init__(self) -> None:
        if self.residual_wetting_saturation + self.residual_nonwetting_saturation >= 1.0:
            raise ValidationError("Residual saturations must sum to less than 1")

    def relative_permeabilities(
        self, wetting_saturation: FloatOrArray
    ) -> typing.Tuple[FloatOrArray, FloatOrArray]:
        flat, shape = _as_flat(wetting_saturation)
        se = compute_effective_saturation(
            flat,
            self.residual_wetting_saturation,
            self.residual_nonwetting_saturation,
        )
        return se.reshape(shape), (1.0 - se).reshape(shape)


@attrs.frozen
class BrooksCoreyTwoPhaseModel(TwoPhaseMaterialLaw):
    """
    Brooks-Corey two-phase material law.

    Relative permeabilities follow the Burdine form of the Brooks-Corey
    model, the capillary pressure is `pe Se^(-1/λ)`.
    """

    residual_wetting_saturation: float = attrs.field(
        default=0.0, validator=_check_residuals
    )
    """Residual wetting phase saturation (Swr)."""
    residual_nonwetting_saturation: float = attrs.field(
        default=0.0, validator=_check_residuals
    )
    """Residual non-wetting phase saturation (Snr)."""
    pore_size_distribution_index: float = attrs.field(
        default=2.0, validator=attrs.validators.gt(0)
    )
    """Brooks-Corey λ."""
    entry_pressure: float = attrs.field(default=0.0, validator=attrs.validators.ge(0))
    """Capillary entry pressure pe (Pa)."""

    def __attrs_post_init__(self) -> None:
        if self.residual_wetting_saturation + self.residual_nonwetting_saturation >= 1.0:
            raise ValidationError("Residual saturations must sum to less than 1")

    def effective_saturation(self, wetting_saturation: FloatOrArray) -> FloatOrArray:
        flat, shape = _as_flat(wetting_saturation)
        return compute_effective_saturation(
            flat,
            self.residual_wetting_saturation,
            self.residual_nonwetting_saturation,
        ).reshape(shape)

    def relative_permeabilities(
        self, wetting_saturation: FloatOrArray
    ) -> typing.Tuple[FloatOrArray, FloatOrArray]:
        flat, shape = _as_flat(self.effective_saturation(wetting_saturation))
        krw, krn = compute_brooks_corey_relative_permeabilities(
            flat, self.pore_size_distribution_index
        )
        return krw.reshape(shape), krn.reshape(shape)

    def capillary_pressure(self, wetting_saturation: FloatOrArray) -> FloatOrArray:
        flat, shape = _as_flat(self.effective_saturation(wetting_saturation))
        return compute_brooks_corey_capillary_pressure(
            flat, self.entry_pressure, self.pore_size_distribution_index
        ).reshape(shape)


@attrs.frozen
class CoreyThreePhaseModel:
    """
    Per-phase Corey relative permeabilities for the three-phase black-oil model.

    Each phase uses its own curve `kr = Se^n`, normalized with the sum of all
    residual saturations. Capillary pressures are zero, so all phases share
    the phase-0 pressure.
    """

    residual_saturations: typing.Tuple[float, float, float] = attrs.field(
        default=(0.0, 0.0, 0.0), converter=tuple
    )
    """Residual saturations of water, gas and oil."""
    exponents: typing.Tuple[float, float, float] = attrs.field(
        default=(2.0, 2.0, 2.0), converter=tuple
    )
    """Corey exponents of water, gas and oil."""

    def __attrs_post_init__(self) -> None:
        if len(self.residual_saturations) != 3 or len(self.exponents) != 3:
            raise ValidationError("Three residual saturations and exponents are required")
        if any(value < 0.0 for value in self.residual_saturations):
            raise ValidationError("Residual saturations must be non-negative")
        if sum(self.residual_saturations) >= 1.0:
            raise ValidationError("Residual saturations must sum to less than 1")
        if any(value <= 0.0 for value in self.exponents):
            raise ValidationError("Corey exponents must be positive")

    def relative_permeabilities(self, saturations: np.ndarray) -> np.ndarray:
        """
        :param saturations: Phase saturations, shape `(..., 3)`.
        :return: Relative permeabilities, same shape as `saturations`.
        """
        saturations = np.asarray(saturations, dtype=np.float64)
        total_residual = float(sum(self.residual_saturations))
        result = np.empty_like(saturations)
        for phase in range(3):
            flat, shape = _as_flat(saturations[..., phase])
            result[..., phase] = compute_corey_relative_permeability(
                flat,
                self.residual_saturations[phase],
                total_residual,
                self.exponents[phase],
            ).reshape(shape)
        return result

    def capillary_pressures(self, saturations: np.ndarray) -> np.ndarray:
        """Capillary pressures of each phase relative to phase 0 (all zero)."""
        return np.zeros_like(np.asarray(saturations, dtype=np.float64))
