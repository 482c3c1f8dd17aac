#!/usr/bin/env python3
"""Fake command for runner integration testing.

Sleeps for a while, optionally records its pid and lifecycle in marker files,
then exits with the requested code.

Usage:
    python fake_cmd.py [--duration SECONDS] [--exit-code CODE] [--marker PATH]

Arguments:
    --duration: Time to sleep before exiting (default: 0)
    --exit-code: Exit code (default: 0)
    --marker: File that receives "started <pid>" on start and "finished" on
        normal completion; a killed process never writes "finished"
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from typing import NoReturn


def write_marker(path: str | None, line: str) -> None:
    if path:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()


def main() -> NoReturn:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fake command for testing")
    parser.add_argument("--duration", type=float, default=0.0, help="Duration in seconds")
    parser.add_argument("--exit-code", type=int, default=0, help="Exit code")
    parser.add_argument("--marker", type=str, default=None, help="Marker file path")
    args = parser.parse_args()

    write_marker(args.marker, f"started {os.getpid()}")
    if args.duration > 0:
        time.sleep(args.duration)
    write_marker(args.marker, "finished")

    sys.exit(args.exit_code)


if __name__ == "__main__":
    main()
