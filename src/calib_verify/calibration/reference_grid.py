"""Ideal world-space corner positions of the checkerboard."""

from __future__ import annotations

import numpy as np

from calib_verify.core.models import GridSpec


def generate_reference_grid(grid: GridSpec) -> np.ndarray:
    """
    World points (mm) of every inner corner, row-major: index row*cols + col
    holds (col * square_size_mm, row * square_size_mm).
    """
    pts = np.mgrid[0:grid.cols, 0:grid.rows].T.reshape(-1, 2).astype(np.float64)
    return pts * float(grid.square_size_mm)


def object_points_3d(grid: GridSpec) -> np.ndarray:
    """Reference grid lifted onto the z=0 board plane."""
    objp = np.zeros((grid.corner_count, 3), np.float64)
    objp[:, :2] = generate_reference_grid(grid)
    return objp
