"""Configuration loading from config/default.yaml."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from calib_verify.core.models import GridSpec


DEFAULT_CONFIG_PATH = Path("config/default.yaml")

# Multipliers from millimetres to each supported report unit.
UNIT_SCALES: dict[str, float] = {
    "mm": 1.0,
    "m": 1e-3,
    "um": 1e3,
}


@dataclass(slots=True)
class DetectionConfig:
    use_sb_detector: bool = False
    subpix_window: int = 11
    subpix_max_iter: int = 30
    subpix_eps: float = 0.1


@dataclass(slots=True)
class HomographyConfig:
    method: str = "lmeds"
    ransac_reproj_threshold: float = 3.0
    max_condition: float = 1e12


@dataclass(slots=True)
class DistortionConfig:
    fix_principal_point: bool = False
    fix_aspect_ratio: bool = False
    zero_tangent_dist: bool = False
    fix_k3: bool = True
    min_focal_px: float = 1.0


@dataclass(slots=True)
class VisionConfig:
    timeout_s: Optional[float] = 30.0


@dataclass(slots=True)
class ReportConfig:
    units: str = "mm"


@dataclass(slots=True)
class LoggingConfig:
    dir: str = "logs"
    level: str = "INFO"


@dataclass(slots=True)
class AppConfig:
    grid: GridSpec = field(default_factory=GridSpec)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    homography: HomographyConfig = field(default_factory=HomographyConfig)
    distortion: DistortionConfig = field(default_factory=DistortionConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "AppConfig":
        grid_cfg = cfg.get("grid", {}) or {}
        det_cfg = cfg.get("detection", {}) or {}
        hom_cfg = cfg.get("homography", {}) or {}
        dist_cfg = cfg.get("distortion", {}) or {}
        vis_cfg = cfg.get("vision", {}) or {}
        rep_cfg = cfg.get("report", {}) or {}
        log_cfg = cfg.get("logging", {}) or {}

        timeout = vis_cfg.get("timeout_s", 30.0)
        if timeout is not None:
            timeout = float(timeout)
            if not timeout > 0.0:
                raise ValueError(f"vision.timeout_s must be positive or null, got {timeout!r}")
        units = str(rep_cfg.get("units", "mm"))
        if units not in UNIT_SCALES:
            raise ValueError(f"report.units must be one of {sorted(UNIT_SCALES)}, got {units!r}")
        method = str(hom_cfg.get("method", "lmeds")).lower()
        if method not in ("lmeds", "ransac", "least_squares"):
            raise ValueError(f"homography.method must be lmeds, ransac or least_squares, got {method!r}")

        return cls(
            grid=GridSpec(
                rows=int(grid_cfg.get("rows", 6)),
                cols=int(grid_cfg.get("cols", 9)),
                square_size_mm=float(grid_cfg.get("square_size_mm", 30.0)),
            ),
            detection=DetectionConfig(
                use_sb_detector=bool(det_cfg.get("use_sb_detector", False)),
                subpix_window=int(det_cfg.get("subpix_window", 11)),
                subpix_max_iter=int(det_cfg.get("subpix_max_iter", 30)),
                subpix_eps=float(det_cfg.get("subpix_eps", 0.1)),
            ),
            homography=HomographyConfig(
                method=method,
                ransac_reproj_threshold=float(hom_cfg.get("ransac_reproj_threshold", 3.0)),
                max_condition=float(hom_cfg.get("max_condition", 1e12)),
            ),
            distortion=DistortionConfig(
                fix_principal_point=bool(dist_cfg.get("fix_principal_point", False)),
                fix_aspect_ratio=bool(dist_cfg.get("fix_aspect_ratio", False)),
                zero_tangent_dist=bool(dist_cfg.get("zero_tangent_dist", False)),
                fix_k3=bool(dist_cfg.get("fix_k3", True)),
                min_focal_px=float(dist_cfg.get("min_focal_px", 1.0)),
            ),
            vision=VisionConfig(timeout_s=timeout),
            report=ReportConfig(units=units),
            logging=LoggingConfig(
                dir=str(log_cfg.get("dir", "logs")),
                level=str(log_cfg.get("level", "INFO")).upper(),
            ),
        )

    def with_grid(
        self,
        rows: Optional[int] = None,
        cols: Optional[int] = None,
        square_size_mm: Optional[float] = None,
    ) -> "AppConfig":
        grid = GridSpec(
            rows=self.grid.rows if rows is None else int(rows),
            cols=self.grid.cols if cols is None else int(cols),
            square_size_mm=self.grid.square_size_mm if square_size_mm is None else float(square_size_mm),
        )
        return AppConfig(
            grid=grid,
            detection=self.detection,
            homography=self.homography,
            distortion=self.distortion,
            vision=self.vision,
            report=self.report,
            logging=self.logging,
        )


def load_config(path: str | Path | None = None) -> AppConfig:
    cfg_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return AppConfig()
    return AppConfig.from_dict(yaml.safe_load(cfg_path.read_text()) or {})


def mm_to_units(value_mm: float, units: str) -> float:
    """Convert a millimetre value into the configured report unit."""
    try:
        return float(value_mm) * UNIT_SCALES[units]
    except KeyError:
        raise ValueError(f"Unknown report unit: {units!r}") from None
