"""Tests for the calib-verify command line."""

import json

import numpy as np
import pytest

from conftest import render_board

from calib_verify.calibration.checkerboard import load_image, save_image
from calib_verify.cli import main


@pytest.fixture
def board_png(tmp_path, monkeypatch, grid):
    monkeypatch.chdir(tmp_path)
    image, _ = render_board(grid)
    path = tmp_path / "board.png"
    save_image(path, image)
    return path


def test_json_output(board_png, capsys):
    code = main([str(board_png), "--step", "homography", "--json"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["units"] == "mm"
    assert payload["grid"] == {"rows": 6, "cols": 9, "square_size_mm": 30.0}
    [result] = payload["results"]
    assert result["ok"] is True
    assert result["step"] == "homography"
    assert result["report"]["sample_count"] == 48
    assert len(result["report"]["edges"]) == 48


def test_text_output_lists_outer_rows(board_png, capsys):
    code = main([str(board_png), "--step", "proportional"])
    out = capsys.readouterr().out
    assert code == 0
    assert "scale:" in out
    assert "R0 C0-1:" in out
    assert "R5 C7-8:" in out
    assert "R2 C0-1:" not in out
    assert "max error:" in out


def test_report_units_from_config(board_png, tmp_path, capsys):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("report:\n  units: m\n")
    code = main([str(board_png), "--step", "homography", "--config", str(cfg)])
    out = capsys.readouterr().out
    assert code == 0
    assert "mean error:" in out and " m\n" in out


def test_wrong_grid_fails_with_hint(board_png, capsys):
    code = main([str(board_png), "--step", "homography", "--rows", "4", "--cols", "12", "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert code == 1
    [result] = payload["results"]
    assert result["ok"] is False
    assert result["reason"] == "DetectionFailed"
    assert result["hints"]


def test_overlay_written(board_png, tmp_path):
    out = tmp_path / "overlay.png"
    assert main([str(board_png), "--step", "proportional", "--overlay", str(out)]) == 0
    overlay = load_image(out)
    assert overlay.shape == load_image(board_png).shape
    assert not np.array_equal(overlay, load_image(board_png))


def test_missing_image(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main([str(tmp_path / "missing.png")]) == 1


def test_missing_config(board_png, tmp_path):
    assert main([str(board_png), "--config", str(tmp_path / "nope.yaml")]) == 1


def test_malformed_config(board_png, tmp_path, capsys):
    cfg = tmp_path / "broken.yaml"
    cfg.write_text("grid: [rows: 6\n")
    assert main([str(board_png), "--config", str(cfg)]) == 1
    assert "Configuration error" in capsys.readouterr().out


def test_overlay_uses_measured_corners(board_png, tmp_path):
    out = tmp_path / "all.png"
    assert main([str(board_png), "--step", "all", "--overlay", str(out)]) == 0
    assert not np.array_equal(load_image(out), load_image(board_png))


def test_overlay_banner_when_no_step_succeeds(board_png, tmp_path):
    out = tmp_path / "miss.png"
    assert main([str(board_png), "--step", "homography", "--rows", "4", "--cols", "12", "--overlay", str(out)]) == 1
    overlay = load_image(out)
    original = load_image(board_png)
    # Banner is drawn in the top-left corner only.
    assert not np.array_equal(overlay[:60, :400], original[:60, :400])
    assert np.array_equal(overlay[100:], original[100:])
