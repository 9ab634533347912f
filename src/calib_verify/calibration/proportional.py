"""Uniform pixel-to-millimetre scale sampled at the grid centre."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from calib_verify.calibration.checkerboard import grid_points
from calib_verify.core.errors import DegenerateDistance
from calib_verify.core.models import CornerSet, GridSpec


log = logging.getLogger(__name__)

MIN_REFERENCE_DISTANCE_PX = 1e-9


def reference_pair(grid: GridSpec) -> tuple[int, int]:
    """
    Indices of the two horizontally adjacent corners nearest the grid centre.
    For a 9x6 board this is (22, 23).
    """
    row = (grid.rows - 1) // 2
    col = (grid.cols - 1) // 2
    i = row * grid.cols + col
    return i, i + 1


@dataclass(slots=True)
class ProportionalConverter:
    """
    Treats the whole image as having one mm/px scale. Lens distortion and
    perspective are ignored, so error grows away from the reference pair.
    """
    scale_mm_per_px: float
    reference: tuple[int, int]

    @classmethod
    def from_corners(cls, corners: CornerSet | np.ndarray, grid: GridSpec) -> "ProportionalConverter":
        pts = grid_points(corners, grid)
        i, j = reference_pair(grid)
        d = float(np.hypot(*(pts[i] - pts[j])))
        if not np.isfinite(d) or d <= MIN_REFERENCE_DISTANCE_PX:
            raise DegenerateDistance(
                f"Reference corners {i} and {j} are {d:.3g}px apart; cannot derive a scale",
                cause="coincident reference corners",
            )
        scale = float(grid.square_size_mm) / d
        log.info("Proportional scale from corners %d-%d: %.6f mm/px (%.3f px)", i, j, scale, d)
        return cls(scale_mm_per_px=scale, reference=(i, j))

    def to_world(self, points: np.ndarray) -> np.ndarray:
        return np.asarray(points, dtype=np.float64).reshape(-1, 2) * self.scale_mm_per_px
