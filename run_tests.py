#!/usr/bin/env python3
"""Run the CardLens test suite through pytest.

    python run_tests.py                      # everything
    python run_tests.py --unit               # component tests only
    python run_tests.py --integration        # whole-pipeline runs only
    python run_tests.py --file test_store.py -k claim
    python run_tests.py --coverage
"""

import argparse
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent


def build_command(args: argparse.Namespace) -> list:
    cmd = [sys.executable, "-m", "pytest", str(ROOT / "tests" / (args.file or "")), "--tb=short", "--strict-markers"]
    if args.unit:
        cmd += ["-m", "unit"]
    elif args.integration:
        cmd += ["-m", "integration"]
    if args.keyword:
        cmd += ["-k", args.keyword]
    if args.verbose:
        cmd.append("-v")
    if args.coverage:
        cmd += ["--cov=cardlens", "--cov-report=term-missing"]
    return cmd


def main() -> int:
    parser = argparse.ArgumentParser(description="Run CardLens tests")
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--unit", action="store_true", help="Only component tests")
    selection.add_argument("--integration", action="store_true", help="Only whole-pipeline runs")
    parser.add_argument("--file", help="A single test module under tests/")
    parser.add_argument("--keyword", "-k", help="pytest keyword expression")
    parser.add_argument("--verbose", "-v", action="store_true")
    parser.add_argument("--coverage", action="store_true", help="Report line coverage for cardlens")
    args = parser.parse_args()

    cmd = build_command(args)
    print(f"Running: {' '.join(cmd)}")
    returncode = subprocess.run(cmd, cwd=ROOT).returncode
    print("✅ Tests passed" if returncode == 0 else f"❌ Tests failed (exit code {returncode})")
    return returncode


if __name__ == "__main__":
    sys.exit(main())
