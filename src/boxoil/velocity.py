"""
Filter velocity laws for the phase fluxes of the box residual.

A velocity module maps the face pressure gradient of a phase to its filter
velocity. The residual assembler only relies on the call signature, so
modules can be swapped by name through the registry.
"""

from abc import ABC, abstractmethod
import logging
import typing

import attrs
import numpy as np
from scipy.optimize import newton

from boxoil.errors import ComputationError, ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "VelocityModule",
    "DarcyVelocityModule",
    "ForchheimerVelocityModule",
    "velocity_module",
    "get_velocity_module",
    "list_velocity_modules",
]

VelocityModuleT = typing.TypeVar("VelocityModuleT", bound="VelocityModule")


class VelocityModule(ABC):
    """Contract of a filter velocity law, vectorised over faces."""

    @abstractmethod
    def __call__(
        self,
        gradient: np.ndarray,
        gravity: np.ndarray,
        permeability: np.ndarray,
        mobility: np.ndarray,
        density: np.ndarray,
    ) -> np.ndarray:
        """
        Compute phase filter velocities.

        :param gradient: Phase pressure gradient on each face, shape (num_faces, dim) (Pa/m).
        :param gravity: Gravitational acceleration vector, shape (dim,) (m/s²).
        :param permeability: Face permeability, shape (num_faces,) for isotropic,
            (num_faces, dim) for diagonal or (num_faces, dim, dim) for full tensors (m²).
        :param mobility: Upwinded phase mobility kr/μ on each face, shape (num_faces,) (1/(Pa·s)).
        :param density: Phase density on each face, shape (num_faces,) (kg/m³).
        :return: Filter velocity on each face, shape (num_faces, dim) (m/s).
        """
        ...


_VELOCITY_MODULES: typing.Dict[str, typing.Type[VelocityModule]] = {}


def velocity_module(
    *names: str,
) -> typing.Callable[[typing.Type[VelocityModuleT]], typing.Type[VelocityModuleT]]:
    """
    Velocity module registration decorator.

    :param names: Names under which the module class is registered.
    """

    def _decorator(cls: typing.Type[VelocityModuleT]) -> typing.Type[VelocityModuleT]:
        for name in names:
            _VELOCITY_MODULES[name] = cls
        return cls

    return _decorator


def get_velocity_module(name: str, **kwargs: typing.Any) -> VelocityModule:
    """
    Instantiate a registered velocity module.

    :param name: Registered name, e.g. "darcy" or "forchheimer".
    :param kwargs: Passed on to the module constructor.
    """
    if name not in _VELOCITY_MODULES:
        raise ValidationError(
            f"Unknown velocity module: {name}. Choose from {list(_VELOCITY_MODULES.keys())}"
        )
    return _VELOCITY_MODULES[name](**kwargs)


def list_velocity_modules() -> typing.List[str]:
    return sorted(_VELOCITY_MODULES)


def _driving_force(
    gradient: np.ndarray, gravity: np.ndarray, density: np.ndarray
) -> np.ndarray:
    """-(∇p - ρg) per face."""
    return -(gradient - density[:, None] * gravity[None, :])


def _apply_permeability(permeability: np.ndarray, force: np.ndarray) -> np.ndarray:
    if permeability.ndim == 1:
        return permeability[:, None] * force
    if permeability.ndim == 2:
        return permeability * force
    if permeability.ndim == 3:
        return np.einsum("fij,fj->fi", permeability, force)
    raise ValidationError(
        f"Permeability must have 1, 2 or 3 dimensions, got {permeability.ndim}"
    )


@velocity_module("darcy")
@attrs.frozen
class DarcyVelocityModule(VelocityModule):
    """Multi-phase Darcy law v = -λ K (∇p - ρg)."""

    def __call__(
        self,
        gradient: np.ndarray,
        gravity: np.ndarray,
        permeability: np.ndarray,
        mobility: np.ndarray,
        density: np.ndarray,
    ) -> np.ndarray:
        force = _driving_force(gradient, gravity, density)
        return mobility[:, None] * _apply_permeability(permeability, force)


@velocity_module("forchheimer")
@attrs.frozen
class ForchheimerVelocityModule(VelocityModule):
    """
    Forchheimer law with an inertial correction to Darcy flow:

        -(∇p - ρg) = (λK)⁻¹ v + β ρ |v| v

    For isotropic permeability the speed follows in closed form from the
    quadratic `βρ s² + s/(λk) = |f|`. Diagonal tensors are solved for the
    speed with a vectorised Newton iteration started at the Darcy speed.
    Full tensors with off-diagonal entries are not supported.
    """

    forchheimer_coefficient: float = attrs.field(
        default=0.0, validator=attrs.validators.ge(0)
    )
    """β (1/m)."""
    tolerance: float = attrs.field(default=1e-12, validator=attrs.validators.gt(0))
    max_iterations: int = attrs.field(default=50, validator=attrs.validators.ge(1))

    def __call__(
        self,
        gradient: np.ndarray,
        gravity: np.ndarray,
        permeability: np.ndarray,
        mobility: np.ndarray,
        density: np.ndarray,
    ) -> np.ndarray:
        force = _driving_force(gradient, gravity, density)
        inertia = self.forchheimer_coefficient * density

        if permeability.ndim == 3:
            diagonal = np.diagonal(permeability, axis1=1, axis2=2)
            dim = diagonal.shape[1]
            if not np.allclose(permeability, diagonal[:, :, None] * np.eye(dim)):
                raise ValidationError(
                    "Forchheimer velocity supports isotropic or diagonal permeability only"
                )
            permeability = diagonal

        if permeability.ndim == 1:
            conductance = mobility * permeability
            magnitude = np.linalg.norm(force, axis=1)
            speed = (
                2.0
                * magnitude
                * conductance
                / (1.0 + np.sqrt(1.0 + 4.0 * inertia * conductance**2 * magnitude))
            )
            return (conductance / (1.0 + inertia * conductance * speed))[:, None] * force

        conductance = mobility[:, None] * permeability
        darcy = conductance * force
        initial_speed = np.linalg.norm(darcy, axis=1)
        if not np.any(initial_speed > 0.0) or self.forchheimer_coefficient == 0.0:
            return darcy

        def velocity(speed: np.ndarray) -> np.ndarray:
            return darcy / (1.0 + inertia[:, None] * conductance * speed[:, None])

        def residual(speed: np.ndarray) -> np.ndarray:
            return np.linalg.norm(velocity(speed), axis=1) - speed

        def derivative(speed: np.ndarray) -> np.ndarray:
            v = velocity(speed)
            norm = np.linalg.norm(v, axis=1)
            damping = inertia[:, None] * conductance / (
                1.0 + inertia[:, None] * conductance * speed[:, None]
            )
            slope = np.sum(v**2 * damping, axis=1)
            return -np.divide(slope, norm, out=np.zeros_like(norm), where=norm > 0.0) - 1.0

        try:
            speed = newton(
                residual,
                initial_speed,
                fprime=derivative,
                tol=self.tolerance,
                maxiter=self.max_iterations,
            )
        except RuntimeError as exc:
            raise ComputationError(
                f"Forchheimer velocity iteration did not converge: {exc}"
            ) from exc
        logger.debug(f"Solved Forchheimer speed on {speed.size} faces")
        return velocity(np.asarray(speed))
