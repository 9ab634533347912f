"""Tests for the ideal reference grid and grid configuration."""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from calib_verify.calibration.reference_grid import generate_reference_grid, object_points_3d
from calib_verify.core.models import GridSpec


class TestGridSpec:

    def test_defaults_match_nine_by_six_board(self):
        g = GridSpec()
        assert (g.rows, g.cols, g.square_size_mm) == (6, 9, 30.0)
        assert g.corner_count == 54
        assert g.pattern_size == (9, 6)

    @pytest.mark.parametrize("rows,cols,size", [(1, 9, 30.0), (6, 1, 30.0), (6, 9, 0.0), (6, 9, -5.0)])
    def test_invalid_grids_rejected(self, rows, cols, size):
        with pytest.raises(ValueError):
            GridSpec(rows=rows, cols=cols, square_size_mm=size)

    def test_is_immutable(self):
        g = GridSpec()
        with pytest.raises(AttributeError):
            g.rows = 7


class TestReferenceGrid:

    def test_row_major_layout(self, grid):
        pts = generate_reference_grid(grid)
        assert pts.shape == (54, 2)
        # index = row*cols + col -> (col*s, row*s)
        assert_allclose(pts[0], [0.0, 0.0])
        assert_allclose(pts[1], [30.0, 0.0])
        assert_allclose(pts[8], [240.0, 0.0])
        assert_allclose(pts[9], [0.0, 30.0])
        assert_allclose(pts[22], [4 * 30.0, 2 * 30.0])
        assert_allclose(pts[53], [240.0, 150.0])

    def test_deterministic_and_idempotent(self, grid):
        a = generate_reference_grid(grid)
        b = generate_reference_grid(grid)
        assert_array_equal(a, b)
        a[0] = [99.0, 99.0]
        assert_array_equal(generate_reference_grid(grid)[0], [0.0, 0.0])

    def test_object_points_on_board_plane(self, grid):
        obj = object_points_3d(grid)
        assert obj.shape == (54, 3)
        assert np.all(obj[:, 2] == 0.0)
        assert_array_equal(obj[:, :2], generate_reference_grid(grid))
