import typing

import attrs
import numpy as np

from boxoil._precision import get_dtype
from boxoil.errors import ValidationError
from boxoil.types import GridKind, NDimensionalGrid, Orientation

__all__ = [
    "array",
    "build_uniform_grid",
    "uniform_grid",
    "ControlVolumeGrid",
    "build_cartesian_grid",
    "build_box_grid",
]

_AXES = {Orientation.X: 0, Orientation.Y: 1, Orientation.Z: 2}


def array(obj: typing.Any, **kwargs: typing.Any) -> np.ndarray:
    """
    Wrapper around np.array to enforce global dtype.

    :param obj: Object to convert to numpy array
    :param kwargs: Additional keyword arguments for `np.array`
    :return: return value of `np.array`
    """
    kwargs.setdefault("dtype", get_dtype())
    return np.array(obj, **kwargs)


def build_uniform_grid(
    grid_shape: typing.Tuple[int, ...], value: float = 0.0
) -> NDimensionalGrid:
    """
    Constructs a uniform array with the specified initial value.

    :param grid_shape: Shape of the array, usually `(num_control_volumes,)`.
    :param value: Initial value to fill the array with
    :return: Numpy array filled with `value`
    """
    return np.full(grid_shape, fill_value=value, dtype=get_dtype(), order="C")


uniform_grid = build_uniform_grid  # Alias for convenience


@attrs.frozen(eq=False)
class ControlVolumeGrid:
    """
    Geometry and topology of a structured grid of control volumes.

    Control volumes are numbered in C order over `shape`. Interior faces join
    two control volumes; their unit normal points from the first to the
    second entry of `face_neighbours`. Boundary faces belong to a single
    control volume and carry an outward unit normal.
    """

    kind: GridKind
    """Whether unknowns live at cell centres or at vertices (box scheme)."""
    shape: typing.Tuple[int, ...]
    """Number of control volumes along each axis."""
    lengths: typing.Tuple[float, ...]
    """Extent of the domain along each axis (m)."""
    centers: NDimensionalGrid
    """Location of every unknown, shape (num_control_volumes, dim) (m)."""
    volumes: NDimensionalGrid
    """Bulk volume of every control volume (m³)."""
    face_neighbours: np.ndarray
    """Control volume pairs sharing an interior face, shape (num_faces, 2)."""
    face_areas: NDimensionalGrid
    """Area of every interior face (m² in 3D, m in 2D)."""
    face_normals: NDimensionalGrid
    """Unit normal of every interior face, shape (num_faces, dim)."""
    face_distances: NDimensionalGrid
    """Distance between the two unknowns sharing a face (m)."""
    boundary_cells: np.ndarray
    """Control volume owning each boundary face."""
    boundary_areas: NDimensionalGrid
    """Area of every boundary face."""
    boundary_normals: NDimensionalGrid
    """Outward unit normal of every boundary face, shape (num_boundary_faces, dim)."""
    boundary_centers: NDimensionalGrid
    """Centre of every boundary face, shape (num_boundary_faces, dim)."""
    boundary_axes: np.ndarray
    """Axis index each boundary face is normal to."""
    boundary_sides: np.ndarray
    """-1 for faces on the lower end of their axis, +1 for the upper end."""

    @property
    def dim(self) -> int:
        return len(self.shape)

    @property
    def num_control_volumes(self) -> int:
        return int(self.volumes.shape[0])

    @property
    def num_faces(self) -> int:
        return int(self.face_neighbours.shape[0])

    @property
    def num_boundary_faces(self) -> int:
        return int(self.boundary_cells.shape[0])

    @property
    def total_volume(self) -> float:
        return float(np.prod(self.lengths))

    def flat_index(self, index: typing.Sequence[int]) -> int:
        """Flat control volume number of a multi-index."""
        if len(index) != self.dim:
            raise ValidationError(
                f"Expected a {self.dim}-dimensional index, got {tuple(index)}"
            )
        return int(np.ravel_multi_index(tuple(index), self.shape))

    def boundary_faces(
        self, orientation: typing.Union[Orientation, int], side: int
    ) -> np.ndarray:
        """
        Indices of the boundary faces on one side of the domain.

        :param orientation: Axis the faces are normal to.
        :param side: -1 for the lower end of the axis, +1 for the upper end.
        :return: Integer array of boundary face indices.
        """
        axis = _AXES[orientation] if isinstance(orientation, Orientation) else orientation
        if not 0 <= axis < self.dim:
            raise ValidationError(f"Grid has no axis {axis}")
        if side not in (-1, 1):
            raise ValidationError("side must be -1 or +1")
        return np.flatnonzero((self.boundary_axes == axis) & (self.boundary_sides == side))

    def neighbours_of(self, cell: int) -> np.ndarray:
        """Control volumes sharing an interior face with `cell`."""
        left, right = self.face_neighbours[:, 0], self.face_neighbours[:, 1]
        return np.concatenate([right[left == cell], left[right == cell]])


def _check_axes(
    counts: typing.Sequence[int], lengths: typing.Sequence[float], minimum: int
) -> None:
    if len(counts) != len(lengths):
        raise ValidationError("counts and lengths must have the same number of axes")
    if not 1 <= len(counts) <= 3:
        raise ValidationError("Only 1, 2 and 3 dimensional grids are supported")
    for count, length in zip(counts, lengths):
        if int(count) < minimum:
            raise ValidationError(
                f"Each axis needs at least {minimum} node(s), got {count}"
            )
        if length <= 0.0:
            raise ValidationError(f"Axis lengths must be positive, got {length}")


def _build_control_volume_grid(
    kind: GridKind,
    centers_1d: typing.List[np.ndarray],
    extents_1d: typing.List[np.ndarray],
    lengths: typing.Tuple[float, ...],
    origin: np.ndarray,
) -> ControlVolumeGrid:
    dtype = get_dtype()
    shape = tuple(len(centers) for centers in centers_1d)
    dim = len(shape)
    node_ids = np.arange(int(np.prod(shape))).reshape(shape)
    center_mesh = np.meshgrid(*centers_1d, indexing="ij")
    extent_mesh = np.meshgrid(*extents_1d, indexing="ij")

    centers = np.stack([mesh.ravel() for mesh in center_mesh], axis=-1).astype(dtype)
    volumes = np.prod(
        np.stack([mesh.ravel() for mesh in extent_mesh], axis=-1), axis=-1
    ).astype(dtype)

    neighbours, areas, normals, distances = [], [], [], []
    b_cells, b_areas, b_normals, b_centers, b_axes, b_sides = [], [], [], [], [], []
    for axis in range(dim):
        # Area of faces normal to `axis` is the product of the other extents
        cross_section = np.ones(shape)
        for other in range(dim):
            if other != axis:
                cross_section = cross_section * extent_mesh[other]

        lower = [slice(None)] * dim
        upper = [slice(None)] * dim
        lower[axis] = slice(0, -1)
        upper[axis] = slice(1, None)
        left = node_ids[tuple(lower)].ravel()
        right = node_ids[tuple(upper)].ravel()
        neighbours.append(np.stack([left, right], axis=-1))
        areas.append(cross_section[tuple(lower)].ravel())
        distances.append(centers[right, axis] - centers[left, axis])
        normal = np.zeros((left.size, dim))
        normal[:, axis] = 1.0
        normals.append(normal)

        for side, position in ((-1, 0), (1, -1)):
            at_side = [slice(None)] * dim
            at_side[axis] = position
            cells = node_ids[tuple(at_side)].ravel()
            b_cells.append(cells)
            b_areas.append(cross_section[tuple(at_side)].ravel())
            normal = np.zeros((cells.size, dim))
            normal[:, axis] = side
            b_normals.append(normal)
            face_centers = centers[cells].copy()
            face_centers[:, axis] = origin[axis] + (lengths[axis] if side > 0 else 0.0)
            b_centers.append(face_centers)
            b_axes.append(np.full(cells.size, axis))
            b_sides.append(np.full(cells.size, side))

    return ControlVolumeGrid(
        kind=kind,
        shape=shape,
        lengths=lengths,
        centers=centers,
        volumes=volumes,
        face_neighbours=np.concatenate(neighbours).astype(np.int64),
        face_areas=np.concatenate(areas).astype(dtype),
        face_normals=np.concatenate(normals).astype(dtype),
        face_distances=np.concatenate(distances).astype(dtype),
        boundary_cells=np.concatenate(b_cells).astype(np.int64),
        boundary_areas=np.concatenate(b_areas).astype(dtype),
        boundary_normals=np.concatenate(b_normals).astype(dtype),
        boundary_centers=np.concatenate(b_centers).astype(dtype),
        boundary_axes=np.concatenate(b_axes).astype(np.int64),
        boundary_sides=np.concatenate(b_sides).astype(np.int64),
    )


def build_cartesian_grid(
    cell_counts: typing.Sequence[int],
    lengths: typing.Sequence[float],
    origin: typing.Optional[typing.Sequence[float]] = None,
) -> ControlVolumeGrid:
    """
    Build a cell-centred Cartesian grid of uniform cells.

    :param cell_counts: Number of cells along each axis, e.g. `(16, 1)`.
    :param lengths: Domain extent along each axis (m), e.g. `(600.0, 300.0)`.
    :param origin: Lower corner of the domain. Defaults to the coordinate origin.
    :return: `ControlVolumeGrid` whose control volumes are the cells.
    """
    _check_axes(cell_counts, lengths, minimum=1)
    lengths = tuple(float(length) for length in lengths)
    origin_ = np.zeros(len(lengths)) if origin is None else np.asarray(origin, float)
    centers_1d, extents_1d = [], []
    for count, length, start in zip(cell_counts, lengths, origin_):
        spacing = length / int(count)
        centers_1d.append(start + (np.arange(int(count)) + 0.5) * spacing)
        extents_1d.append(np.full(int(count), spacing))
    return _build_control_volume_grid("cell", centers_1d, extents_1d, lengths, origin_)


def build_box_grid(
    vertex_counts: typing.Sequence[int],
    lengths: typing.Sequence[float],
    origin: typing.Optional[typing.Sequence[float]] = None,
) -> ControlVolumeGrid:
    """
    Build the vertex-centred control volumes of the box scheme on a Cartesian mesh.

    Unknowns live at mesh vertices. Each control volume spans half an element
    on either side of its vertex, so vertices on the domain boundary own
    half-width control volumes and the control volumes tile the domain.

    :param vertex_counts: Number of vertices along each axis (at least 2).
    :param lengths: Domain extent along each axis (m).
    :param origin: Lower corner of the domain. Defaults to the coordinate origin.
    :return: `ControlVolumeGrid` whose control volumes are the vertex boxes.
    """
    _check_axes(vertex_counts, lengths, minimum=2)
    lengths = tuple(float(length) for length in lengths)
    origin_ = np.zeros(len(lengths)) if origin is None else np.asarray(origin, float)
    centers_1d, extents_1d = [], []
    for count, length, start in zip(vertex_counts, lengths, origin_):
        spacing = length / (int(count) - 1)
        centers_1d.append(start + np.arange(int(count)) * spacing)
        extents = np.full(int(count), spacing)
        extents[[0, -1]] = spacing / 2.0
        extents_1d.append(extents)
    return _build_control_volume_grid("vertex", centers_1d, extents_1d, lengths, origin_)
