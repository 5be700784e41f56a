import numpy as np
import pytest

from boxoil.errors import ValidationError
from boxoil.velocity import (
    DarcyVelocityModule,
    ForchheimerVelocityModule,
    get_velocity_module,
    list_velocity_modules,
)


def _faces(num_faces=4, dim=2, seed=0):
    rng = np.random.default_rng(seed)
    gradient = rng.normal(scale=1.0e4, size=(num_faces, dim))
    permeability = rng.uniform(1e-14, 1e-12, size=num_faces)
    mobility = rng.uniform(100.0, 1000.0, size=num_faces)
    density = rng.uniform(700.0, 1000.0, size=num_faces)
    return gradient, permeability, mobility, density


def test_registry():
    assert {"darcy", "forchheimer"} <= set(list_velocity_modules())
    assert isinstance(get_velocity_module("darcy"), DarcyVelocityModule)
    module = get_velocity_module("forchheimer", forchheimer_coefficient=2.0)
    assert isinstance(module, ForchheimerVelocityModule)
    assert module.forchheimer_coefficient == 2.0


def test_unknown_module():
    with pytest.raises(ValidationError):
        get_velocity_module("stokes")


def test_darcy_against_pressure_gradient():
    velocity = DarcyVelocityModule()(
        gradient=np.array([[-2.0, 0.0]]),
        gravity=np.zeros(2),
        permeability=np.array([3.0]),
        mobility=np.array([0.5]),
        density=np.array([1000.0]),
    )
    np.testing.assert_allclose(velocity, [[3.0, 0.0]])


def test_darcy_gravity_drives_downward_flow():
    velocity = DarcyVelocityModule()(
        gradient=np.zeros((1, 2)),
        gravity=np.array([0.0, -10.0]),
        permeability=np.array([2.0]),
        mobility=np.array([0.5]),
        density=np.array([100.0]),
    )
    np.testing.assert_allclose(velocity, [[0.0, -1000.0]])


def test_darcy_tensor_forms_agree():
    gradient, permeability, mobility, density = _faces()
    gravity = np.array([0.0, -9.81])
    darcy = DarcyVelocityModule()
    isotropic = darcy(gradient, gravity, permeability, mobility, density)
    diagonal = darcy(
        gradient, gravity, np.stack([permeability, permeability], axis=1), mobility, density
    )
    full = darcy(
        gradient, gravity, permeability[:, None, None] * np.eye(2), mobility, density
    )
    np.testing.assert_allclose(diagonal, isotropic)
    np.testing.assert_allclose(full, isotropic)


def test_forchheimer_without_inertia_is_darcy():
    gradient, permeability, mobility, density = _faces()
    gravity = np.array([0.0, -9.81])
    darcy = DarcyVelocityModule()(gradient, gravity, permeability, mobility, density)
    forchheimer = ForchheimerVelocityModule()
    np.testing.assert_allclose(
        forchheimer(gradient, gravity, permeability, mobility, density), darcy
    )
    diagonal = np.stack([permeability, 2.0 * permeability], axis=1)
    np.testing.assert_allclose(
        forchheimer(gradient, gravity, diagonal, mobility, density),
        DarcyVelocityModule()(gradient, gravity, diagonal, mobility, density),
    )


def test_forchheimer_closed_form():
    # |f| = s + s² with |f| = 2 gives s = 1
    velocity = ForchheimerVelocityModule(forchheimer_coefficient=1.0)(
        gradient=np.array([[-2.0, 0.0]]),
        gravity=np.zeros(2),
        permeability=np.array([1.0]),
        mobility=np.array([1.0]),
        density=np.array([1.0]),
    )
    np.testing.assert_allclose(velocity, [[1.0, 0.0]])


def test_forchheimer_diagonal_matches_isotropic():
    gradient = np.array([[-2.0, 0.0], [0.0, 6.0], [-1.5, 2.0]])
    args = dict(
        gravity=np.zeros(2), mobility=np.ones(3), density=np.ones(3)
    )
    module = ForchheimerVelocityModule(forchheimer_coefficient=1.0)
    isotropic = module(gradient=gradient, permeability=np.ones(3), **args)
    diagonal = module(gradient=gradient, permeability=np.ones((3, 2)), **args)
    np.testing.assert_allclose(diagonal, isotropic, rtol=1e-8)
    np.testing.assert_allclose(isotropic[1], [0.0, -2.0])


def test_forchheimer_satisfies_momentum_balance():
    gradient, permeability, mobility, density = _faces(num_faces=6, dim=3, seed=4)
    beta = 1.0e12
    velocity = ForchheimerVelocityModule(forchheimer_coefficient=beta)(
        gradient, np.zeros(3), permeability, mobility, density
    )
    speed = np.linalg.norm(velocity, axis=1)
    balance = (
        velocity / (mobility * permeability)[:, None]
        + (beta * density * speed)[:, None] * velocity
    )
    np.testing.assert_allclose(balance, -gradient, rtol=1e-8, atol=1e-4)
    darcy = DarcyVelocityModule()(gradient, np.zeros(3), permeability, mobility, density)
    assert np.all(speed <= np.linalg.norm(darcy, axis=1))


def test_forchheimer_rejects_full_tensor():
    permeability = np.array([[[1.0, 0.5], [0.5, 1.0]]])
    with pytest.raises(ValidationError):
        ForchheimerVelocityModule(forchheimer_coefficient=1.0)(
            np.array([[-1.0, 0.0]]),
            np.zeros(2),
            permeability,
            np.ones(1),
            np.ones(1),
        )
