"""Synthetic checkerboard data shared by the tests."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from calib_verify.calibration.reference_grid import generate_reference_grid
from calib_verify.calibration.vision import OpenCvVision
from calib_verify.core.models import GridSpec


def pinhole_homography(
    grid: GridSpec,
    px_per_mm: float = 10.0,
    tilt_deg: float = 0.0,
    distance_mm: float = 300.0,
    principal: tuple[float, float] = (1300.0, 800.0),
) -> np.ndarray:
    """
    World (mm) -> pixel homography of a pinhole camera looking at the board
    centre from `distance_mm`, with the board tilted about its horizontal axis.
    """
    f = px_per_mm * distance_mm
    K = np.array([[f, 0.0, principal[0]], [0.0, f, principal[1]], [0.0, 0.0, 1.0]])
    t = np.deg2rad(tilt_deg)
    R = np.array([[1.0, 0.0, 0.0], [0.0, np.cos(t), -np.sin(t)], [0.0, np.sin(t), np.cos(t)]])
    centre = np.array([(grid.cols - 1) * grid.square_size_mm / 2.0, (grid.rows - 1) * grid.square_size_mm / 2.0])
    # Board point (X, Y, 0) shifted to the board centre, then [r1 r2 t].
    shift = np.array([[1.0, 0.0, -centre[0]], [0.0, 1.0, -centre[1]], [0.0, 0.0, 1.0]])
    Rt = np.column_stack([R[:, 0], R[:, 1], [0.0, 0.0, distance_mm]])
    return K @ Rt @ shift


def project(H: np.ndarray, pts: np.ndarray) -> np.ndarray:
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    hom = np.column_stack([pts, np.ones(len(pts))]) @ H.T
    return hom[:, :2] / hom[:, 2:3]


def render_board(grid: GridSpec, square_px: int = 40, margin: int = 60) -> tuple[np.ndarray, np.ndarray]:
    """
    Render a fronto-parallel RGB checkerboard; returns (image, inner corner
    pixel positions in row-major order).
    """
    import cv2

    n_x, n_y = grid.cols + 1, grid.rows + 1
    w = 2 * margin + n_x * square_px
    h = 2 * margin + n_y * square_px
    yy, xx = np.mgrid[0:h, 0:w]
    sx = (xx - margin) // square_px
    sy = (yy - margin) // square_px
    inside = (xx >= margin) & (yy >= margin) & (sx < n_x) & (sy < n_y)
    gray = np.full((h, w), 255, np.uint8)
    gray[inside & ((sx + sy) % 2 == 0)] = 0
    gray = cv2.GaussianBlur(gray, (3, 3), 0)
    image = np.stack([gray, gray, gray], axis=2)

    cols, rows = np.meshgrid(np.arange(grid.cols), np.arange(grid.rows))
    corners = np.column_stack([
        margin + (cols.reshape(-1) + 1) * square_px - 0.5,
        margin + (rows.reshape(-1) + 1) * square_px - 0.5,
    ]).astype(np.float64)
    return image, corners


def barrel_distort(image: np.ndarray, k1: float = 0.4) -> np.ndarray:
    """
    Resample `image` through the OpenCV radial model with f = max(w, h) and
    the principal point at the centre; content is pulled toward the centre.
    """
    import cv2

    h, w = image.shape[:2]
    f = float(max(w, h))
    K = np.array([[f, 0.0, w / 2.0], [0.0, f, h / 2.0], [0.0, 0.0, 1.0]])
    dist = np.array([k1, 0.0, 0.0, 0.0, 0.0])
    map_x, map_y = cv2.initUndistortRectifyMap(K, dist, None, K, (w, h), cv2.CV_32FC1)
    return cv2.remap(
        image,
        map_x,
        map_y,
        cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(255, 255, 255),
    )


class ScriptedVision(OpenCvVision):
    """
    OpenCV vision with detection replaced by a scripted sequence of results,
    so converter and pipeline behaviour can be checked on exact corners.
    """

    def __init__(self, detections, calibration=None, timeout_s=None) -> None:
        super().__init__(timeout_s=timeout_s)
        self.detections = list(detections)
        self.calibration = calibration
        self.detect_calls = 0

    def detect_grid_corners(self, gray, rows, cols, method="classic"):
        self.detect_calls += 1
        if method != "classic":
            return False, None
        corners = self.detections.pop(0) if len(self.detections) > 1 else self.detections[0]
        if corners is None:
            return False, None
        return True, np.asarray(corners, dtype=np.float32).reshape(-1, 1, 2)

    def refine_corners_subpixel(self, gray, corners, window_size=11, max_iter=30, eps=0.1):
        return corners

    def calibrate_single_view(self, object_points, image_points, image_size, **kwargs):
        if self.calibration is None:
            return super().calibrate_single_view(object_points, image_points, image_size, **kwargs)
        return self.calibration

    def undistort_image(self, image, intrinsics, dist_coeffs):
        return image


@pytest.fixture
def grid() -> GridSpec:
    return GridSpec(rows=6, cols=9, square_size_mm=30.0)


@pytest.fixture
def world(grid) -> np.ndarray:
    return generate_reference_grid(grid)


@pytest.fixture
def tilted_corners(grid, world) -> np.ndarray:
    """Corners at 10 px/mm seen through a 5 degree board tilt."""
    return project(pinhole_homography(grid, px_per_mm=10.0, tilt_deg=5.0), world)


@pytest.fixture
def blank_image() -> np.ndarray:
    return np.zeros((1600, 2600, 3), np.uint8)


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Drop handlers installed by setup_logging so each test starts clean."""
    yield
    logger = logging.getLogger("calib_verify")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
