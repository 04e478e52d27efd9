#!/usr/bin/env python3
"""Legacy wrapper for `eos-standards verify`.

Accepts the older ``--files=a.md,b.md --mode=blocking`` spelling.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from eos_standards.cli import run_verify


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run verification tests embedded in standards documents.")
    parser.add_argument("--files", default="", help="Comma-separated documents to verify")
    parser.add_argument("--mode", default=None, help="blocking|advisory")
    parser.add_argument("--timeout", type=float, default=None, help="Per-test timeout in seconds")
    parser.add_argument("--concurrency", type=int, default=None, help="Maximum concurrent tests")
    parser.add_argument("--root", type=Path, default=Path("."), help="Repo root")
    parser.add_argument("--json-output", type=Path, default=None, help="JSON output path (- for stdout)")
    parser.add_argument("--dry-run", action="store_true", help="Print the schedule without running anything")
    args = parser.parse_args(argv)
    if not args.files.strip():
        parser.print_usage(sys.stderr)
        print("error: --files is required", file=sys.stderr)
        return 2
    try:
        return run_verify(
            root=args.root,
            files=args.files,
            mode=args.mode,
            timeout=args.timeout,
            concurrency=args.concurrency,
            json_output=args.json_output,
            dry_run=args.dry_run,
        )
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
