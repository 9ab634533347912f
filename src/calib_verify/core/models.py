"""
Core data models for grid verification runs.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, field
from typing import Any, Literal, Optional

import numpy as np


Step = Literal["proportional", "homography", "distortion"]
STEPS: tuple[Step, ...] = ("proportional", "homography", "distortion")


@dataclass(slots=True, frozen=True)
class GridSpec:
    """
    Inner-corner layout of the printed checkerboard.
    """
    rows: int = 6
    cols: int = 9
    square_size_mm: float = 30.0

    def __post_init__(self) -> None:
        if int(self.rows) < 2 or int(self.cols) < 2:
            raise ValueError(f"Grid needs at least 2x2 inner corners, got {self.rows}x{self.cols}")
        if not float(self.square_size_mm) > 0.0:
            raise ValueError(f"square_size_mm must be positive, got {self.square_size_mm}")

    @property
    def corner_count(self) -> int:
        return int(self.rows) * int(self.cols)

    @property
    def pattern_size(self) -> tuple[int, int]:
        # OpenCV pattern size is (points per row, points per column).
        return int(self.cols), int(self.rows)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class CornerSet:
    """
    Detected corners for one image, row-major (index = row*cols + col).
    """
    points: np.ndarray
    image_size: tuple[int, int]  # width, height
    method: str = "unknown"

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 2)

    def __len__(self) -> int:
        return int(self.points.shape[0])


@dataclass(slots=True)
class CameraModel:
    intrinsics: np.ndarray
    dist_coeffs: np.ndarray
    rms: float

    @property
    def focal_px(self) -> tuple[float, float]:
        return float(self.intrinsics[0, 0]), float(self.intrinsics[1, 1])

    def to_dict(self) -> dict[str, Any]:
        return {
            "camera_matrix": np.asarray(self.intrinsics, dtype=float).tolist(),
            "dist_coeffs": np.asarray(self.dist_coeffs, dtype=float).reshape(-1).tolist(),
            "rms": float(self.rms),
        }


@dataclass(slots=True)
class EdgeMeasurement:
    row: int
    col: int  # left corner of the measured edge; the right one is col + 1
    distance_mm: float
    error_mm: float


@dataclass(slots=True)
class ErrorReport:
    mean_error_mm: float
    max_error_mm: float
    sample_count: int
    edges: list[EdgeMeasurement] = field(default_factory=list)

    def to_dict(self, include_edges: bool = False) -> dict[str, Any]:
        data = {
            "mean_error_mm": float(self.mean_error_mm),
            "max_error_mm": float(self.max_error_mm),
            "sample_count": int(self.sample_count),
        }
        if include_edges:
            data["edges"] = [asdict(e) for e in self.edges]
        return data


@dataclass(slots=True)
class VerificationResult:
    """
    Tagged outcome of one verification step: a report or a typed failure.
    """
    ok: bool
    step: Step
    report: Optional[ErrorReport] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    hints: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    # Corners the report was measured from and the image they were found in
    # (the rectified image for the distortion step). Not serialised.
    corners: Optional[CornerSet] = field(default=None, repr=False, compare=False)
    image: Optional[np.ndarray] = field(default=None, repr=False, compare=False)

    def to_dict(self, include_edges: bool = False) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "step": self.step,
            "report": self.report.to_dict(include_edges) if self.report is not None else None,
            "reason": self.reason,
            "error": self.error,
            "hints": list(self.hints),
            "details": dict(self.details),
        }
