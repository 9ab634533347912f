"""Single-view lens distortion estimation and image rectification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from calib_verify.calibration.checkerboard import acquire_corners, grid_points
from calib_verify.calibration.reference_grid import object_points_3d
from calib_verify.calibration.vision import OpenCvVision
from calib_verify.core.config import DetectionConfig, DistortionConfig
from calib_verify.core.errors import CalibrationFailed, DetectionFailed, InsufficientCorners, RectificationCornerLoss
from calib_verify.core.models import CameraModel, CornerSet, GridSpec


log = logging.getLogger(__name__)


@dataclass(slots=True)
class RectifiedView:
    camera: CameraModel
    image: np.ndarray
    corners: CornerSet


def initial_intrinsics(image_size: tuple[int, int]) -> np.ndarray:
    """Centre guess: f = max(w, h), principal point at the image centre."""
    w, h = image_size
    f = float(max(w, h))
    return np.array([[f, 0.0, w * 0.5], [0.0, f, h * 0.5], [0.0, 0.0, 1.0]], dtype=np.float64)


class DistortionCorrector:
    """
    Estimates intrinsics and distortion from the single checkerboard view,
    undistorts the image and re-acquires the grid on the rectified image.
    """

    def __init__(
        self,
        grid: GridSpec,
        vision: Optional[OpenCvVision] = None,
        detection: Optional[DetectionConfig] = None,
        cfg: Optional[DistortionConfig] = None,
    ) -> None:
        self.grid = grid
        self.vision = vision or OpenCvVision()
        self.detection = detection or DetectionConfig()
        self.cfg = cfg or DistortionConfig()

    def calibrate(self, corners: CornerSet) -> CameraModel:
        pts = grid_points(corners, self.grid)
        K, dist, rms = self.vision.calibrate_single_view(
            object_points_3d(self.grid),
            pts,
            corners.image_size,
            initial_intrinsics=initial_intrinsics(corners.image_size),
            fix_principal_point=self.cfg.fix_principal_point,
            fix_aspect_ratio=self.cfg.fix_aspect_ratio,
            zero_tangent_dist=self.cfg.zero_tangent_dist,
            fix_k3=self.cfg.fix_k3,
        )
        if not (np.all(np.isfinite(K)) and np.all(np.isfinite(dist)) and np.isfinite(rms)):
            raise CalibrationFailed("Calibration produced non-finite parameters", cause="non-finite solution")
        fx, fy = float(K[0, 0]), float(K[1, 1])
        if min(fx, fy) < self.cfg.min_focal_px:
            raise CalibrationFailed(
                f"Degenerate focal length fx={fx:.3g}, fy={fy:.3g} (min {self.cfg.min_focal_px:g}px)",
                cause="degenerate intrinsics",
            )
        camera = CameraModel(intrinsics=K, dist_coeffs=dist, rms=float(rms))
        log.info("Single-view calibration: fx=%.2f fy=%.2f rms=%.4f px", fx, fy, camera.rms)
        log.debug("Distortion coefficients: %s", np.array2string(dist, precision=6))
        return camera

    def rectify(self, image: np.ndarray, camera: CameraModel) -> np.ndarray:
        return self.vision.undistort_image(image, camera.intrinsics, camera.dist_coeffs)

    def correct(self, image: np.ndarray, corners: CornerSet) -> RectifiedView:
        camera = self.calibrate(corners)
        rectified = self.rectify(image, camera)
        try:
            new_corners = acquire_corners(rectified, self.grid, self.vision, self.detection)
        except (DetectionFailed, InsufficientCorners) as exc:
            raise RectificationCornerLoss(
                f"Grid lost after undistortion: {exc.message}",
                cause="re-detection failed",
            ) from exc
        return RectifiedView(camera=camera, image=rectified, corners=new_corners)
