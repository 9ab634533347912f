"""Checkerboard conversion strategies and their error analysis."""

from .checkerboard import acquire_corners, grid_points, render_overlay
from .distortion import DistortionCorrector, RectifiedView
from .error_analysis import analyze, iter_adjacent_pairs, summarize_edges
from .homography import HomographyConverter, normalise_homography
from .proportional import ProportionalConverter, reference_pair
from .reference_grid import generate_reference_grid, object_points_3d
from .vision import OpenCvVision

__all__ = [
    "acquire_corners",
    "grid_points",
    "render_overlay",
    "DistortionCorrector",
    "RectifiedView",
    "analyze",
    "iter_adjacent_pairs",
    "summarize_edges",
    "HomographyConverter",
    "normalise_homography",
    "ProportionalConverter",
    "reference_pair",
    "generate_reference_grid",
    "object_points_3d",
    "OpenCvVision",
]
