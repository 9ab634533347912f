"""
Perspective (homography) pixel-to-millimetre conversion.

The matrix maps image pixels directly onto the board plane in millimetres:

    nx  = px*h0 + py*h1 + h2
    ny  = px*h3 + py*h4 + h5
    den = px*h6 + py*h7 + 1
    world = (nx / den, ny / den)

The denominator carries the tilt-dependent foreshortening a single scale
factor cannot express. Unit conversion to other frames is left to callers.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from calib_verify.calibration.checkerboard import grid_points
from calib_verify.calibration.reference_grid import generate_reference_grid
from calib_verify.calibration.vision import OpenCvVision
from calib_verify.core.config import HomographyConfig
from calib_verify.core.errors import HomographyDegenerate, ZeroDenominator
from calib_verify.core.models import CornerSet, GridSpec


log = logging.getLogger(__name__)

MIN_DENOMINATOR = 1e-12
COLLINEAR_RATIO = 1e-9


def _is_collinear(points: np.ndarray) -> bool:
    centred = points - points.mean(axis=0)
    sv = np.linalg.svd(centred, compute_uv=False)
    return sv[0] <= 0.0 or sv[-1] / sv[0] < COLLINEAR_RATIO


def normalise_homography(H: np.ndarray, max_condition: float = 1e12) -> np.ndarray:
    """
    Divide every coefficient by the solver's bottom-right value so that
    h8 is exactly 1.0, rejecting matrices that cannot be used for mapping.
    """
    H = np.asarray(H, dtype=np.float64)
    if H.shape != (3, 3) or not np.all(np.isfinite(H)):
        raise HomographyDegenerate("Homography is not a finite 3x3 matrix", cause="non-finite matrix")
    scale = H[2, 2]
    if abs(scale) <= MIN_DENOMINATOR:
        raise HomographyDegenerate(
            f"Homography bottom-right coefficient is {scale:.3g}; cannot normalise",
            cause="zero h8",
        )
    Hn = H / scale
    Hn[2, 2] = 1.0
    if np.linalg.matrix_rank(Hn) < 3:
        raise HomographyDegenerate("Homography is rank deficient", cause="rank deficient")
    cond = float(np.linalg.cond(Hn))
    if not np.isfinite(cond) or cond > max_condition:
        raise HomographyDegenerate(
            f"Homography is ill-conditioned (cond={cond:.3g} > {max_condition:.3g})",
            cause="ill-conditioned",
        )
    return Hn


class HomographyConverter:
    """Pixel -> board-plane (mm) mapping through a normalised 3x3 homography."""

    def __init__(self, matrix: np.ndarray, max_condition: float = 1e12) -> None:
        self.matrix = normalise_homography(matrix, max_condition=max_condition)

    @classmethod
    def fit(
        cls,
        pixel_points: np.ndarray,
        world_points: np.ndarray,
        vision: Optional[OpenCvVision] = None,
        method: str = "lmeds",
        ransac_reproj_threshold: float = 3.0,
        max_condition: float = 1e12,
    ) -> "HomographyConverter":
        """
        Robustly fit the pixel -> world homography from paired points.

        Args:
            pixel_points: (N, 2) detected corners, paired by grid index
            world_points: (N, 2) reference corners in millimetres
            vision: vision backend; a default OpenCvVision is used if omitted
            method: 'lmeds' (default), 'ransac' or 'least_squares'
        """
        src = np.asarray(pixel_points, dtype=np.float64).reshape(-1, 2)
        dst = np.asarray(world_points, dtype=np.float64).reshape(-1, 2)
        if src.shape != dst.shape:
            raise HomographyDegenerate(
                f"Correspondence sets differ in length: {src.shape[0]} pixel vs {dst.shape[0]} world",
                cause="length mismatch",
            )
        if src.shape[0] < 4:
            raise HomographyDegenerate(
                f"Need at least 4 correspondences, got {src.shape[0]}",
                cause="too few points",
            )
        if not (np.all(np.isfinite(src)) and np.all(np.isfinite(dst))):
            raise HomographyDegenerate("Correspondences contain non-finite values", cause="non-finite points")
        if _is_collinear(src) or _is_collinear(dst):
            raise HomographyDegenerate("Correspondences are collinear", cause="collinear points")

        vision = vision or OpenCvVision()
        H = vision.fit_homography(src, dst, method=method, ransac_reproj_threshold=ransac_reproj_threshold)
        conv = cls(H, max_condition=max_condition)
        log.info("Homography (%s) fitted from %d correspondences", method, src.shape[0])
        log.debug("H =\n%s", conv.matrix)
        return conv

    @classmethod
    def from_corners(
        cls,
        corners: CornerSet | np.ndarray,
        grid: GridSpec,
        vision: Optional[OpenCvVision] = None,
        cfg: Optional[HomographyConfig] = None,
    ) -> "HomographyConverter":
        """Fit detected corners against the ideal reference grid."""
        cfg = cfg or HomographyConfig()
        return cls.fit(
            grid_points(corners, grid),
            generate_reference_grid(grid),
            vision=vision,
            method=cfg.method,
            ransac_reproj_threshold=cfg.ransac_reproj_threshold,
            max_condition=cfg.max_condition,
        )

    @property
    def coefficients(self) -> tuple[float, ...]:
        """h0..h8, row-major, h8 == 1."""
        return tuple(float(v) for v in self.matrix.reshape(-1))

    def apply_point(self, px: float, py: float) -> tuple[float, float]:
        h0, h1, h2, h3, h4, h5, h6, h7, _h8 = self.coefficients
        numerator_x = px * h0 + py * h1 + h2
        numerator_y = px * h3 + py * h4 + h5
        denominator = px * h6 + py * h7 + 1.0
        if abs(denominator) <= MIN_DENOMINATOR:
            raise ZeroDenominator(
                f"Homography denominator vanishes at pixel ({px:.3f}, {py:.3f})",
                cause="point on horizon line",
            )
        return numerator_x / denominator, numerator_y / denominator

    def to_world(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        H = self.matrix
        px, py = pts[:, 0], pts[:, 1]
        numerator_x = px * H[0, 0] + py * H[0, 1] + H[0, 2]
        numerator_y = px * H[1, 0] + py * H[1, 1] + H[1, 2]
        denominator = px * H[2, 0] + py * H[2, 1] + 1.0
        bad = np.abs(denominator) <= MIN_DENOMINATOR
        if np.any(bad):
            k = int(np.argmax(bad))
            raise ZeroDenominator(
                f"Homography denominator vanishes at pixel ({px[k]:.3f}, {py[k]:.3f})",
                cause="point on horizon line",
            )
        return np.column_stack([numerator_x / denominator, numerator_y / denominator])

    def residual_mm(self, pixel_points: np.ndarray, world_points: np.ndarray) -> float:
        """RMS distance between mapped pixel points and their world targets."""
        mapped = self.to_world(pixel_points)
        diff = mapped - np.asarray(world_points, dtype=np.float64).reshape(-1, 2)
        return float(np.sqrt(np.mean(np.sum(diff * diff, axis=1))))
