"""Typed verification failures."""

from __future__ import annotations


class VerificationError(Exception):
    """
    Base class for every failure a verification step can report.

    `step` names the verification step (proportional/homography/distortion),
    `cause` is a short machine-readable description of the underlying problem.
    """

    hint = ""

    def __init__(self, message: str, *, step: str | None = None, cause: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.cause = cause

    @property
    def reason(self) -> str:
        return type(self).__name__

    def with_step(self, step: str) -> "VerificationError":
        if self.step is None:
            self.step = step
        return self

    def __str__(self) -> str:
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


class DetectionFailed(VerificationError):
    hint = "Check lighting and focus, and that the configured rows/cols match the printed pattern."


class InsufficientCorners(VerificationError):
    hint = "Corner count does not match rows*cols; check the grid configuration."


class DegenerateDistance(VerificationError):
    hint = "Reference corners coincide; the detection is unusable for a scale estimate."


class HomographyDegenerate(VerificationError):
    hint = "Perspective model could not be fitted; corners may be collinear or badly localised."


class ZeroDenominator(VerificationError):
    hint = "Point lies on the homography horizon line; the perspective model does not cover it."


class CalibrationFailed(VerificationError):
    hint = "Single-view intrinsics are degenerate; tilt the board or fix more calibration parameters."


class RectificationCornerLoss(VerificationError):
    hint = "Grid lost after undistortion; the distortion model is suspect, not the homography."


class NoSamples(VerificationError):
    hint = "No adjacent corner pairs to measure; the grid needs at least two columns."


class VisionTimeout(VerificationError):
    hint = "Vision call exceeded vision.timeout_s; try a smaller image or raise the timeout."
