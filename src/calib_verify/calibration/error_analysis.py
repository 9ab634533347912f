"""Adjacent-edge distance error against the known square size."""

from __future__ import annotations

import logging
from typing import Iterator, Protocol

import numpy as np

from calib_verify.calibration.checkerboard import grid_points
from calib_verify.core.errors import NoSamples
from calib_verify.core.models import CornerSet, EdgeMeasurement, ErrorReport, GridSpec


log = logging.getLogger(__name__)


class WorldConverter(Protocol):
    def to_world(self, points: np.ndarray) -> np.ndarray: ...


def iter_adjacent_pairs(count: int, cols: int) -> Iterator[tuple[int, int]]:
    """
    Yield (i, i+1) for horizontally adjacent corners in a row-major grid.
    Pairs where i+1 starts a new row would bridge two rows and are skipped.
    """
    for i in range(count - 1):
        if (i + 1) % cols == 0:
            continue
        yield i, i + 1


def summarize_edges(world_points: np.ndarray, cols: int, square_size_mm: float) -> ErrorReport:
    """Measure every retained adjacent edge of already-converted points (mm)."""
    pts = np.asarray(world_points, dtype=np.float64).reshape(-1, 2)
    edges: list[EdgeMeasurement] = []
    total = 0.0
    worst = 0.0
    for i, j in iter_adjacent_pairs(pts.shape[0], int(cols)):
        dist = float(np.hypot(*(pts[j] - pts[i])))
        err = abs(dist - float(square_size_mm))
        total += err
        worst = max(worst, err)
        edges.append(EdgeMeasurement(row=i // cols, col=i % cols, distance_mm=dist, error_mm=err))

    if not edges:
        raise NoSamples(
            f"No measurable adjacent pairs among {pts.shape[0]} points with {cols} column(s)",
            cause="no adjacent pairs",
        )
    return ErrorReport(
        mean_error_mm=total / len(edges),
        max_error_mm=worst,
        sample_count=len(edges),
        edges=edges,
    )


def analyze(converter: WorldConverter, corners: CornerSet | np.ndarray, grid: GridSpec) -> ErrorReport:
    """Convert the corners with `converter` and score every adjacent edge."""
    pts = grid_points(corners, grid)
    report = summarize_edges(converter.to_world(pts), grid.cols, grid.square_size_mm)
    log.info(
        "%s: mean %.4f mm, max %.4f mm over %d edges",
        type(converter).__name__,
        report.mean_error_mm,
        report.max_error_mm,
        report.sample_count,
    )
    return report
