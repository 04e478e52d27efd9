#!/usr/bin/env python3
"""Legacy wrapper for `eos-standards validate`."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from eos_standards.cli import run_validate


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate the standards routing graph.")
    parser.add_argument("--root", type=Path, default=Path("."), help="Repo root")
    parser.add_argument("--standards-dir", type=Path, default=None, help="Standards directory")
    parser.add_argument("--json-output", type=Path, default=None, help="JSON output path (- for stdout)")
    args = parser.parse_args(argv)
    return run_validate(root=args.root, standards_dir=args.standards_dir, json_output=args.json_output)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
