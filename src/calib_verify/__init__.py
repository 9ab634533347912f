"""Checkerboard measurement-accuracy verification."""

from calib_verify.core.config import AppConfig, load_config
from calib_verify.core.models import ErrorReport, GridSpec, VerificationResult
from calib_verify.core.pipeline import (
    run_distortion_verification,
    run_homography_verification,
    run_proportional_verification,
    run_step,
)

__all__ = [
    "AppConfig",
    "ErrorReport",
    "GridSpec",
    "VerificationResult",
    "load_config",
    "run_distortion_verification",
    "run_homography_verification",
    "run_proportional_verification",
    "run_step",
]
