"""CLI for running the grid verification steps on one image."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import yaml

from calib_verify.calibration.checkerboard import load_image, render_overlay, save_image
from calib_verify.calibration.vision import OpenCvVision
from calib_verify.core.config import AppConfig, load_config, mm_to_units
from calib_verify.core.logging import setup_logging
from calib_verify.core.models import STEPS, GridSpec, VerificationResult
from calib_verify.core.pipeline import run_step


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="calib-verify",
        description="Measure checkerboard edge errors for proportional, homography and distortion-corrected conversion.",
    )
    parser.add_argument("image", type=Path, help="checkerboard photograph")
    parser.add_argument(
        "--step",
        choices=[*STEPS, "all"],
        default="all",
        help="verification step to run (default: all)",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML config (default: config/default.yaml if present)")
    parser.add_argument("--rows", type=int, default=None, help="inner corners per column")
    parser.add_argument("--cols", type=int, default=None, help="inner corners per row")
    parser.add_argument("--square-mm", type=float, default=None, help="square size in mm")
    parser.add_argument("--overlay", type=Path, default=None, help="write detected corners over the image to this PNG")
    parser.add_argument("--json", action="store_true", help="print results as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser


def _outer_row_lines(result: VerificationResult, grid: GridSpec, units: str) -> List[str]:
    # First and last rows show the worst perspective/distortion effects.
    lines: List[str] = []
    if result.report is None:
        return lines
    for e in result.report.edges:
        if e.row in (0, grid.rows - 1):
            lines.append(
                f"  R{e.row} C{e.col}-{e.col + 1}: "
                f"{mm_to_units(e.distance_mm, units):.3f}{units} (Err:{mm_to_units(e.error_mm, units):.3f})"
            )
    return lines


def _print_result(result: VerificationResult, cfg: AppConfig) -> None:
    units = cfg.report.units
    print("-" * 60)
    print(f"[{result.step}]")
    if not result.ok:
        print(f"  FAILED ({result.reason}): {result.error}")
        for hint in result.hints:
            print(f"  hint: {hint}")
        return

    d = result.details
    if "scale_mm_per_px" in d:
        print(f"  scale: {d['scale_mm_per_px']:.6f} mm/px (corners {d['reference_pair'][0]}-{d['reference_pair'][1]})")
    if "rms" in d:
        print(f"  calibration rms: {d['rms']:.4f} px")
        print(f"  dist coeffs: {', '.join(f'{c:.6f}' for c in d['dist_coeffs'])}")
    if "homography_residual_mm" in d:
        print(f"  homography residual: {mm_to_units(d['homography_residual_mm'], units):.4f} {units}")
    for line in _outer_row_lines(result, cfg.grid, units):
        print(line)
    report = result.report
    print(f"  mean error: {mm_to_units(report.mean_error_mm, units):.4f} {units}")
    print(f"  max error:  {mm_to_units(report.max_error_mm, units):.4f} {units}")
    print(f"  edges:      {report.sample_count}")


def _write_overlay(path: Path, image, results: List[VerificationResult], cfg: AppConfig, log: logging.Logger) -> None:
    # Later steps win, so "all" shows the corners measured on the rectified image.
    measured = [r for r in results if r.ok and r.corners is not None]
    if measured:
        last = measured[-1]
        overlay = render_overlay(last.image if last.image is not None else image, cfg.grid, last.corners)
        log.info("Overlay shows %s corners", last.step)
    else:
        log.warning("Overlay without corners: no step succeeded")
        overlay = render_overlay(image, cfg.grid, None)
    save_image(path, overlay)
    log.info("Overlay written to %s", path)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config).with_grid(args.rows, args.cols, args.square_mm)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        print(f"Configuration error: {exc}")
        return 1

    level = logging.DEBUG if args.verbose else cfg.logging.level
    log = setup_logging(cfg.logging.dir, level)

    try:
        image = load_image(args.image)
    except (FileNotFoundError, OSError) as exc:
        log.error("Cannot load image: %s", exc)
        return 1
    log.info("Loaded %s (%dx%d)", args.image, image.shape[1], image.shape[0])

    vision = OpenCvVision(timeout_s=cfg.vision.timeout_s)
    steps = list(STEPS) if args.step == "all" else [args.step]
    results = [run_step(step, image, cfg, vision) for step in steps]

    if args.overlay is not None:
        _write_overlay(args.overlay, image, results, cfg, log)

    if args.json:
        payload: dict[str, Any] = {
            "image": str(args.image),
            "grid": cfg.grid.to_dict(),
            "units": cfg.report.units,
            "results": [r.to_dict(include_edges=True) for r in results],
        }
        print(json.dumps(payload, indent=2))
    else:
        g = cfg.grid
        print(f"Grid: {g.cols}x{g.rows} corners / {g.square_size_mm:g}mm squares")
        for r in results:
            _print_result(r, cfg)
        print("-" * 60)

    return 0 if all(r.ok for r in results) else 1
