"""Entry point for calib_verify."""

from __future__ import annotations

from calib_verify.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
