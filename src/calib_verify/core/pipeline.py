"""
Verification entry points for the three pixel-to-millimetre strategies.

Each run takes the image and configuration explicitly, works on its own copy
of the image and recomputes everything from scratch. Failures are raised as
`VerificationError` subclasses; `run_step` turns them into a tagged
`VerificationResult` for front ends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from calib_verify.calibration.checkerboard import acquire_corners
from calib_verify.calibration.distortion import DistortionCorrector
from calib_verify.calibration.error_analysis import analyze
from calib_verify.calibration.homography import HomographyConverter
from calib_verify.calibration.proportional import ProportionalConverter
from calib_verify.calibration.reference_grid import generate_reference_grid
from calib_verify.calibration.vision import OpenCvVision
from calib_verify.core.config import AppConfig
from calib_verify.core.errors import VerificationError
from calib_verify.core.models import CornerSet, ErrorReport, Step, VerificationResult


log = logging.getLogger(__name__)


@dataclass(slots=True)
class StepOutcome:
    report: ErrorReport
    corners: CornerSet
    image: np.ndarray
    details: dict[str, Any] = field(default_factory=dict)


def _prepare(image: np.ndarray, config: Optional[AppConfig], vision: Optional[OpenCvVision]):
    config = config or AppConfig()
    vision = vision or OpenCvVision(timeout_s=config.vision.timeout_s)
    snapshot = np.array(image, copy=True)
    return snapshot, config, vision


def _fit_and_analyze(corners: CornerSet, config: AppConfig, vision: OpenCvVision) -> tuple[ErrorReport, dict[str, Any]]:
    converter = HomographyConverter.from_corners(corners, config.grid, vision=vision, cfg=config.homography)
    report = analyze(converter, corners, config.grid)
    world = generate_reference_grid(config.grid)
    details = {
        "homography": converter.matrix.tolist(),
        "homography_residual_mm": converter.residual_mm(corners.points, world),
    }
    return report, details


def verify_proportional(
    image: np.ndarray,
    config: Optional[AppConfig] = None,
    vision: Optional[OpenCvVision] = None,
) -> StepOutcome:
    image, config, vision = _prepare(image, config, vision)
    corners = acquire_corners(image, config.grid, vision, config.detection)
    converter = ProportionalConverter.from_corners(corners, config.grid)
    report = analyze(converter, corners, config.grid)
    details = {
        "scale_mm_per_px": converter.scale_mm_per_px,
        "reference_pair": list(converter.reference),
        "detection_method": corners.method,
    }
    return StepOutcome(report=report, corners=corners, image=image, details=details)


def verify_homography(
    image: np.ndarray,
    config: Optional[AppConfig] = None,
    vision: Optional[OpenCvVision] = None,
) -> StepOutcome:
    image, config, vision = _prepare(image, config, vision)
    corners = acquire_corners(image, config.grid, vision, config.detection)
    report, details = _fit_and_analyze(corners, config, vision)
    details["detection_method"] = corners.method
    return StepOutcome(report=report, corners=corners, image=image, details=details)


def verify_distortion(
    image: np.ndarray,
    config: Optional[AppConfig] = None,
    vision: Optional[OpenCvVision] = None,
) -> StepOutcome:
    image, config, vision = _prepare(image, config, vision)
    corners = acquire_corners(image, config.grid, vision, config.detection)
    corrector = DistortionCorrector(config.grid, vision=vision, detection=config.detection, cfg=config.distortion)
    view = corrector.correct(image, corners)
    report, details = _fit_and_analyze(view.corners, config, vision)
    details.update(view.camera.to_dict())
    details["detection_method"] = view.corners.method
    return StepOutcome(report=report, corners=view.corners, image=view.image, details=details)


_VERIFIERS = {
    "proportional": verify_proportional,
    "homography": verify_homography,
    "distortion": verify_distortion,
}


def run_proportional_verification(
    image: np.ndarray,
    config: Optional[AppConfig] = None,
    vision: Optional[OpenCvVision] = None,
) -> ErrorReport:
    """Step 1: single mm/px scale from the centre reference pair."""
    try:
        return verify_proportional(image, config, vision).report
    except VerificationError as exc:
        exc.with_step("proportional")
        raise


def run_homography_verification(
    image: np.ndarray,
    config: Optional[AppConfig] = None,
    vision: Optional[OpenCvVision] = None,
) -> ErrorReport:
    """Step 2: robust pixel -> board-plane homography."""
    try:
        return verify_homography(image, config, vision).report
    except VerificationError as exc:
        exc.with_step("homography")
        raise


def run_distortion_verification(
    image: np.ndarray,
    config: Optional[AppConfig] = None,
    vision: Optional[OpenCvVision] = None,
) -> ErrorReport:
    """Step 3: undistort with a single-view camera model, then Step 2."""
    try:
        return verify_distortion(image, config, vision).report
    except VerificationError as exc:
        exc.with_step("distortion")
        raise


def run_step(
    step: Step,
    image: np.ndarray,
    config: Optional[AppConfig] = None,
    vision: Optional[OpenCvVision] = None,
) -> VerificationResult:
    """Run one step and return a tagged result instead of raising."""
    if step not in _VERIFIERS:
        raise ValueError(f"Unknown verification step: {step}")
    try:
        outcome = _VERIFIERS[step](image, config, vision)
    except VerificationError as exc:
        exc.with_step(step)
        log.error("%s verification failed: %s", step, exc)
        return VerificationResult(
            ok=False,
            step=step,
            reason=exc.reason,
            error=str(exc),
            hints=[exc.hint] if exc.hint else [],
            details={"cause": exc.cause} if exc.cause else {},
        )
    log.info(
        "%s verification: mean %.4f mm, max %.4f mm (%d edges)",
        step,
        outcome.report.mean_error_mm,
        outcome.report.max_error_mm,
        outcome.report.sample_count,
    )
    return VerificationResult(
        ok=True,
        step=step,
        report=outcome.report,
        details=outcome.details,
        corners=outcome.corners,
        image=outcome.image,
    )
