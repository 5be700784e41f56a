import logging
import typing

import attrs
import numba  # type: ignore[import-untyped]
import numpy as np

from boxoil.constants import c
from boxoil.errors import SingularMatrixError
from boxoil.grids.base import ControlVolumeGrid

logger = logging.getLogger(__name__)


__all__ = [
    "EvolutionResult",
    "assemble_least_squares_systems",
    "invert_local_matrices",
    "reconstruct_gradients",
    "interpolate_face_gradients",
    "harmonic_mean",
]

T = typing.TypeVar("T")
M = typing.TypeVar("M")


@attrs.frozen(slots=True)
class EvolutionResult(typing.Generic[T, M]):
    """
    Result of a single evolution step in the simulation.
    """

    value: T
    """The result value if successful, otherwise the rejected candidate."""
    scheme: typing.Literal["implicit", "explicit"]
    """The numerical scheme used for the evolution step."""
    success: bool = True
    """Indicates if the evolution step was successful."""
    message: typing.Optional[str] = None
    """A message providing additional information about the result."""
    metadata: typing.Optional[M] = None
    """Optional metadata related to the evolution step."""


@numba.njit(cache=True)
def assemble_least_squares_systems(
    centers: np.ndarray,
    face_neighbours: np.ndarray,
    values: np.ndarray,
) -> typing.Tuple[np.ndarray, np.ndarray]:
    """
    Assemble the weighted least-squares normal equations of every control volume.

    For control volume `i` with neighbours `j` and offsets `d = x_j - x_i`:

        A_i = Σ_j w d dᵀ,  b_i = Σ_j w d (u_j - u_i),  w = 1/|d|²

    :param centers: Control volume centres, shape (n, dim).
    :param face_neighbours: Interior face neighbour pairs, shape (num_faces, 2).
    :param values: Scalar field at the control volumes, shape (n,).
    :return: `(A, b)` with shapes (n, dim, dim) and (n, dim).
    """
    n, dim = centers.shape
    matrices = np.zeros((n, dim, dim))
    rhs = np.zeros((n, dim))
    for f in range(face_neighbours.shape[0]):
        left = face_neighbours[f, 0]
        right = face_neighbours[f, 1]
        offset = centers[right] - centers[left]
        weight = 1.0 / np.sum(offset * offset)
        difference = values[right] - values[left]
        for a in range(dim):
            rhs[left, a] += weight * offset[a] * difference
            # Seen from the right neighbour both offset and difference flip sign
            rhs[right, a] += weight * offset[a] * difference
            for b in range(dim):
                contribution = weight * offset[a] * offset[b]
                matrices[left, a, b] += contribution
                matrices[right, a, b] += contribution
    return matrices, rhs


def invert_local_matrices(
    matrices: np.ndarray, singular_limit: typing.Optional[float] = None
) -> np.ndarray:
    """
    Invert a stack of small local matrices.

    :param matrices: Stack of square matrices, shape (n, dim, dim).
    :param singular_limit: Determinant magnitude below which a matrix is singular.
        Defaults to the active `SINGULAR_LIMIT` constant.
    :return: Stack of inverses, same shape.
    :raises SingularMatrixError: If any |det| is below `singular_limit`.
    """
    if singular_limit is None:
        singular_limit = float(c.SINGULAR_LIMIT)
    determinants = np.linalg.det(matrices)
    singular = np.abs(determinants) < singular_limit
    if np.any(singular):
        first = int(np.flatnonzero(singular)[0])
        raise SingularMatrixError(
            f"{int(singular.sum())} local matrix/matrices are singular "
            f"(first at control volume {first}, |det| = {abs(determinants[first]):.3e} "
            f"< {singular_limit:.1e})"
        )
    return np.linalg.inv(matrices)


def reconstruct_gradients(
    grid: ControlVolumeGrid,
    values: np.ndarray,
    singular_limit: typing.Optional[float] = None,
) -> np.ndarray:
    """
    Least-squares gradient of a scalar field at every control volume.

    :param grid: Control volume grid.
    :param values: Scalar field, shape (num_control_volumes,).
    :param singular_limit: Threshold passed to `invert_local_matrices`.
    :return: Gradients, shape (num_control_volumes, dim).
    """
    matrices, rhs = assemble_least_squares_systems(
        np.ascontiguousarray(grid.centers, dtype=np.float64),
        grid.face_neighbours,
        np.ascontiguousarray(values, dtype=np.float64),
    )
    inverses = invert_local_matrices(matrices, singular_limit=singular_limit)
    return np.einsum("nij,nj->ni", inverses, rhs)


def interpolate_face_gradients(
    grid: ControlVolumeGrid, values: np.ndarray, gradients: np.ndarray
) -> np.ndarray:
    """
    Gradient on every interior face.

    The two control volume gradients are averaged and the face-normal
    component is replaced by the two-point difference across the face.
    """
    left, right = grid.face_neighbours[:, 0], grid.face_neighbours[:, 1]
    normals = grid.face_normals
    averaged = 0.5 * (gradients[left] + gradients[right])
    two_point = (values[right] - values[left]) / grid.face_distances
    normal_part = np.sum(averaged * normals, axis=1)
    return averaged + (two_point - normal_part)[:, None] * normals


def harmonic_mean(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Elementwise harmonic mean, zero where either side is zero."""
    total = left + right
    return np.divide(
        2.0 * left * right, total, out=np.zeros_like(total, dtype=np.float64), where=total > 0.0
    )
