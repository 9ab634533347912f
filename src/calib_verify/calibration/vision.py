"""OpenCV-backed vision calls with an explicit time limit on each call."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import numpy as np

from calib_verify.core.errors import CalibrationFailed, HomographyDegenerate, VisionTimeout

try:
    import cv2
except Exception as exc:  # pragma: no cover - hard fail on systems without OpenCV
    cv2 = None
    _cv2_import_error = exc
else:
    _cv2_import_error = None


log = logging.getLogger(__name__)


def _require_cv2() -> Any:
    if cv2 is None:
        raise RuntimeError(
            "OpenCV is required for grid verification. "
            f"Import error: {_cv2_import_error}"
        )
    return cv2


class OpenCvVision:
    """
    Corner detection, homography fitting, single-view calibration and
    undistortion. Every call runs on a worker thread and is abandoned after
    `timeout_s` seconds; OpenCV routines cannot be interrupted, so the worker
    keeps running detached until it finishes on its own.
    """

    def __init__(self, timeout_s: Optional[float] = 30.0) -> None:
        self.timeout_s = timeout_s

    def _call(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if self.timeout_s is None:
            return fn(*args, **kwargs)

        outcome: dict[str, Any] = {}

        def _worker() -> None:
            try:
                outcome["value"] = fn(*args, **kwargs)
            except BaseException as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=_worker, name=f"vision-{name}", daemon=True)
        worker.start()
        worker.join(self.timeout_s)
        if worker.is_alive():
            raise VisionTimeout(
                f"{name} did not finish within {self.timeout_s:.1f}s",
                cause=f"{name} timeout",
            )
        if "error" in outcome:
            raise outcome["error"]
        return outcome["value"]

    def detect_grid_corners(
        self,
        gray: np.ndarray,
        rows: int,
        cols: int,
        method: str = "classic",
    ) -> tuple[bool, Optional[np.ndarray]]:
        """Find inner chessboard corners; returns (found, corners Nx1x2 float32)."""
        cv = _require_cv2()
        pattern_size = (int(cols), int(rows))
        if method == "sb":
            flags = cv.CALIB_CB_EXHAUSTIVE | cv.CALIB_CB_ACCURACY
            found, corners = self._call("findChessboardCornersSB", cv.findChessboardCornersSB, gray, pattern_size, flags=flags)
        elif method == "classic":
            flags = cv.CALIB_CB_ADAPTIVE_THRESH | cv.CALIB_CB_NORMALIZE_IMAGE
            found, corners = self._call("findChessboardCorners", cv.findChessboardCorners, gray, pattern_size, flags=flags)
        else:
            raise ValueError(f"Unknown detection method: {method}")
        if not found or corners is None:
            return False, None
        return True, np.asarray(corners, dtype=np.float32).reshape(-1, 1, 2)

    def refine_corners_subpixel(
        self,
        gray: np.ndarray,
        corners: np.ndarray,
        window_size: int = 11,
        max_iter: int = 30,
        eps: float = 0.1,
    ) -> np.ndarray:
        cv = _require_cv2()
        criteria = (cv.TERM_CRITERIA_EPS + cv.TERM_CRITERIA_MAX_ITER, int(max_iter), float(eps))
        pts = np.ascontiguousarray(corners, dtype=np.float32).reshape(-1, 1, 2)
        win = (int(window_size), int(window_size))
        refined = self._call("cornerSubPix", cv.cornerSubPix, gray, pts, win, (-1, -1), criteria)
        # Older bindings refine in place and return None.
        return np.asarray(pts if refined is None else refined, dtype=np.float32).reshape(-1, 1, 2)

    def fit_homography(
        self,
        src: np.ndarray,
        dst: np.ndarray,
        method: str = "lmeds",
        ransac_reproj_threshold: float = 3.0,
    ) -> np.ndarray:
        """Estimate the 3x3 projective transform mapping src -> dst."""
        cv = _require_cv2()
        flags = {"least_squares": 0, "ransac": cv.RANSAC, "lmeds": cv.LMEDS}
        if method not in flags:
            raise ValueError(f"Unknown homography method: {method}")
        src_pts = np.asarray(src, dtype=np.float64).reshape(-1, 1, 2)
        dst_pts = np.asarray(dst, dtype=np.float64).reshape(-1, 1, 2)
        try:
            H, _mask = self._call(
                "findHomography",
                cv.findHomography,
                src_pts,
                dst_pts,
                flags[method],
                float(ransac_reproj_threshold),
            )
        except cv.error as exc:
            raise HomographyDegenerate(f"findHomography failed: {exc}", cause="solver error") from exc
        if H is None:
            raise HomographyDegenerate("findHomography returned no solution", cause="no solution")
        return np.asarray(H, dtype=np.float64)

    def calibrate_single_view(
        self,
        object_points: np.ndarray,
        image_points: np.ndarray,
        image_size: tuple[int, int],
        initial_intrinsics: Optional[np.ndarray] = None,
        fix_principal_point: bool = False,
        fix_aspect_ratio: bool = False,
        zero_tangent_dist: bool = False,
        fix_k3: bool = True,
    ) -> tuple[np.ndarray, np.ndarray, float]:
        """Run calibrateCamera on one planar view; returns (K, dist, rms)."""
        cv = _require_cv2()
        obj = [np.asarray(object_points, dtype=np.float32).reshape(-1, 1, 3)]
        img = [np.asarray(image_points, dtype=np.float32).reshape(-1, 1, 2)]

        flags = 0
        K_init = None
        if initial_intrinsics is not None:
            K_init = np.asarray(initial_intrinsics, dtype=np.float64).copy()
            flags |= cv.CALIB_USE_INTRINSIC_GUESS
        if fix_principal_point:
            flags |= cv.CALIB_FIX_PRINCIPAL_POINT
        if fix_aspect_ratio:
            flags |= cv.CALIB_FIX_ASPECT_RATIO
        if zero_tangent_dist:
            flags |= cv.CALIB_ZERO_TANGENT_DIST
        if fix_k3:
            flags |= cv.CALIB_FIX_K3

        try:
            rms, K, dist, _rvecs, _tvecs = self._call(
                "calibrateCamera",
                cv.calibrateCamera,
                obj,
                img,
                (int(image_size[0]), int(image_size[1])),
                K_init,
                None,
                flags=flags,
            )
        except cv.error as exc:
            raise CalibrationFailed(f"calibrateCamera failed: {exc}", cause="solver error") from exc
        log.debug("calibrateCamera rms=%.4f flags=%d", float(rms), flags)
        return np.asarray(K, dtype=np.float64), np.asarray(dist, dtype=np.float64).reshape(-1), float(rms)

    def undistort_image(self, image: np.ndarray, intrinsics: np.ndarray, dist_coeffs: np.ndarray) -> np.ndarray:
        cv = _require_cv2()
        return self._call("undistort", cv.undistort, image, intrinsics, dist_coeffs)
