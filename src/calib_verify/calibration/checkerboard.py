"""Checkerboard corner acquisition, overlays and image I/O."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from calib_verify.calibration.vision import OpenCvVision, _require_cv2
from calib_verify.core.config import DetectionConfig
from calib_verify.core.errors import DetectionFailed, InsufficientCorners
from calib_verify.core.models import CornerSet, GridSpec


log = logging.getLogger(__name__)


def to_gray_u8(image: np.ndarray) -> np.ndarray:
    """Convert RGB/gray image to uint8 gray."""
    if image.ndim == 2:
        return image.astype(np.uint8)
    if image.ndim == 3 and image.shape[2] >= 3:
        f = image.astype(np.float32)
        gray = 0.299 * f[:, :, 0] + 0.587 * f[:, :, 1] + 0.114 * f[:, :, 2]
        return np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    if image.ndim == 3 and image.shape[2] == 1:
        return image[:, :, 0].astype(np.uint8)
    raise ValueError("Unsupported image shape for grayscale conversion")


def acquire_corners(
    image: np.ndarray,
    grid: GridSpec,
    vision: OpenCvVision,
    cfg: Optional[DetectionConfig] = None,
) -> CornerSet:
    """
    Detect and sub-pixel refine the grid corners of one image.

    This is the single corner-acquisition path shared by every verification
    step, for the loaded image and for the undistorted one alike.
    """
    cfg = cfg or DetectionConfig()
    gray = to_gray_u8(image)
    image_size = (int(gray.shape[1]), int(gray.shape[0]))

    found, corners, method = False, None, "none"
    if cfg.use_sb_detector:
        found, corners = vision.detect_grid_corners(gray, grid.rows, grid.cols, method="sb")
        method = "findChessboardCornersSB"

    if not found or corners is None:
        found, corners = vision.detect_grid_corners(gray, grid.rows, grid.cols, method="classic")
        method = "findChessboardCorners"
        if found and corners is not None:
            corners = vision.refine_corners_subpixel(
                gray,
                corners,
                window_size=cfg.subpix_window,
                max_iter=cfg.subpix_max_iter,
                eps=cfg.subpix_eps,
            )

    if not found or corners is None:
        raise DetectionFailed(
            f"{grid.cols}x{grid.rows} checkerboard not found in {image_size[0]}x{image_size[1]} image",
            cause="grid not found",
        )

    corner_set = CornerSet(points=corners.reshape(-1, 2), image_size=image_size, method=method)
    if len(corner_set) != grid.corner_count:
        raise InsufficientCorners(
            f"Detector returned {len(corner_set)} corners, expected {grid.corner_count}",
            cause="detector corner count",
        )
    log.debug("Acquired %d corners via %s", len(corner_set), method)
    return corner_set


def grid_points(corners: CornerSet | np.ndarray, grid: GridSpec) -> np.ndarray:
    """Return corners as an (rows*cols, 2) float array, checking the count."""
    pts = corners.points if isinstance(corners, CornerSet) else np.asarray(corners, dtype=np.float64).reshape(-1, 2)
    if pts.shape[0] != grid.corner_count:
        raise InsufficientCorners(
            f"Got {pts.shape[0]} corners, expected rows*cols = {grid.rows}*{grid.cols} = {grid.corner_count}",
            cause="corner count mismatch",
        )
    return pts


def render_overlay(image: np.ndarray, grid: GridSpec, corners: Optional[CornerSet]) -> np.ndarray:
    """Draw detected corners (or a not-found banner) over an RGB copy of the image."""
    cv = _require_cv2()
    if image.ndim == 2:
        overlay = np.stack([image, image, image], axis=2).astype(np.uint8)
    elif image.ndim == 3 and image.shape[2] >= 3:
        overlay = np.ascontiguousarray(image[:, :, :3]).astype(np.uint8).copy()
    else:
        raise ValueError("Unsupported image shape for overlay")

    if corners is not None:
        pts = corners.points.astype(np.float32).reshape(-1, 1, 2)
        cv.drawChessboardCorners(overlay, grid.pattern_size, pts, True)
    else:
        cv.putText(
            overlay,
            "checkerboard not found",
            (24, 42),
            cv.FONT_HERSHEY_SIMPLEX,
            1.0,
            (255, 64, 64),
            2,
            cv.LINE_AA,
        )
    return overlay


def load_image(path: Path) -> np.ndarray:
    """Load an image file as an RGB uint8 array."""
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")
    with Image.open(path) as img:
        return np.asarray(img.convert("RGB"), dtype=np.uint8).copy()


def save_image(path: Path, image: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(image.astype(np.uint8)).save(path)
