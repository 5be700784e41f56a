import contextvars

import numpy as np
import pytest

from boxoil._precision import (
    get_dtype,
    get_floating_point_info,
    use_32bit_precision,
    use_64bit_precision,
    with_precision,
)
from boxoil.errors import ValidationError
from boxoil.grids import array, build_box_grid, build_cartesian_grid, build_uniform_grid
from boxoil.types import Orientation


def test_cartesian_grid_geometry():
    grid = build_cartesian_grid((16, 1), (600.0, 300.0))
    assert grid.kind == "cell"
    assert grid.dim == 2
    assert grid.num_control_volumes == 16
    np.testing.assert_allclose(grid.volumes, 37.5 * 300.0)
    assert grid.volumes.sum() == pytest.approx(grid.total_volume)
    np.testing.assert_allclose(grid.centers[:3, 0], [18.75, 56.25, 93.75])
    # Faces only along x; 2 x-boundary faces and 32 y-boundary faces
    assert grid.num_faces == 15
    assert grid.num_boundary_faces == 34
    np.testing.assert_allclose(grid.face_areas, 300.0)
    np.testing.assert_allclose(grid.face_distances, 37.5)


def test_boundary_faces():
    grid = build_cartesian_grid((16, 1), (600.0, 300.0))
    left = grid.boundary_faces(Orientation.X, -1)
    right = grid.boundary_faces(0, 1)
    assert grid.boundary_cells[left].tolist() == [0]
    assert grid.boundary_cells[right].tolist() == [15]
    np.testing.assert_allclose(grid.boundary_normals[left], [[-1.0, 0.0]])
    np.testing.assert_allclose(grid.boundary_centers[right], [[600.0, 150.0]])
    assert grid.boundary_faces(Orientation.Y, 1).size == 16
    with pytest.raises(ValidationError):
        grid.boundary_faces(Orientation.Z, 1)
    with pytest.raises(ValidationError):
        grid.boundary_faces(0, 0)


def test_box_grid_tiles_the_domain():
    grid = build_box_grid((5, 3), (100.0, 50.0))
    assert grid.kind == "vertex"
    assert grid.num_control_volumes == 15
    assert grid.volumes.sum() == pytest.approx(5000.0)
    assert grid.volumes[0] == pytest.approx(12.5 * 12.5)
    assert grid.volumes[grid.flat_index((2, 1))] == pytest.approx(25.0 * 25.0)
    assert grid.num_faces == 4 * 3 + 5 * 2
    np.testing.assert_allclose(grid.centers[grid.flat_index((4, 2))], [100.0, 50.0])


def test_box_grid_3d():
    grid = build_box_grid((3, 3, 2), (20.0, 20.0, 5.0))
    assert grid.volumes.sum() == pytest.approx(2000.0)
    assert grid.num_faces == 2 * 3 * 2 + 3 * 2 * 2 + 3 * 3 * 1
    assert sorted(grid.neighbours_of(0).tolist()) == [1, 2, 6]


def test_face_normals_point_to_second_neighbour():
    grid = build_box_grid((4, 4), (3.0, 3.0))
    left, right = grid.face_neighbours[:, 0], grid.face_neighbours[:, 1]
    offsets = grid.centers[right] - grid.centers[left]
    np.testing.assert_allclose(np.sum(offsets * grid.face_normals, axis=1), grid.face_distances)
    assert np.all(grid.face_distances > 0.0)


@pytest.mark.parametrize(
    "counts, lengths",
    [((1, 3), (1.0, 1.0)), ((3,), (1.0, 1.0)), ((3, 3), (1.0, -1.0)), ((2, 2, 2, 2), (1.0,) * 4)],
)
def test_invalid_box_grids(counts, lengths):
    with pytest.raises(ValidationError):
        build_box_grid(counts, lengths)


def test_flat_index_checks_dimension():
    grid = build_cartesian_grid((4, 2), (4.0, 2.0))
    assert grid.flat_index((1, 1)) == 3
    with pytest.raises(ValidationError):
        grid.flat_index((1,))


def test_precision_context():
    assert build_uniform_grid((3,), 1.0).dtype == np.float64
    with with_precision(np.float32):
        assert array([1.0, 2.0]).dtype == np.float32
        assert build_cartesian_grid((2,), (1.0,)).volumes.dtype == np.float32
    assert array([1.0]).dtype == np.float64


def test_precision_switches():
    def switch():
        use_32bit_precision()
        assert get_dtype() == np.float32
        assert get_floating_point_info().eps == np.finfo(np.float32).eps
        use_64bit_precision()
        assert get_dtype() == np.float64

    contextvars.copy_context().run(switch)
    assert get_dtype() == np.float64
