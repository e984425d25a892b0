#!/usr/bin/env python
"""Test runner script for luci-rpcd.

This script provides a convenient way to run tests with different options.
"""
from __future__ import annotations

import argparse
import subprocess
import sys


def main():
    parser = argparse.ArgumentParser(description="Run luci-rpcd tests")
    parser.add_argument(
        "--linux",
        action="store_true",
        help="Run only tests that read live Linux /proc tables",
    )
    parser.add_argument(
        "--integration",
        action="store_true",
        help="Run only integration tests",
    )
    parser.add_argument(
        "--coverage",
        action="store_true",
        help="Run with coverage report",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--file",
        help="Run specific test file",
    )
    parser.add_argument(
        "--install",
        action="store_true",
        help="Install test dependencies first",
    )

    args = parser.parse_args()

    if args.install:
        print("Installing test dependencies...")
        result = subprocess.run(
            [sys.executable, "-m", "pip", "install", "-e", ".[test]"],
            check=False,
        )
        if result.returncode != 0:
            print("Failed to install dependencies")
            return 1
        print()

    cmd = [sys.executable, "-m", "pytest"]

    if args.verbose:
        cmd.append("-v")

    if args.linux:
        cmd.extend(["-m", "linux"])
    elif args.integration:
        cmd.extend(["-m", "integration"])

    if args.coverage:
        cmd.extend(["--cov=luci_rpcd", "--cov-report=term-missing"])

    cmd.append(args.file or "tests")

    print(f"Running: {' '.join(cmd)}")
    print()
    result = subprocess.run(cmd, check=False)
    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
