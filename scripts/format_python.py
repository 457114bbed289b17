#!/usr/bin/env python3
"""
Format TaskDesk sources with black.

Usage:
    ./scripts/format_python.py          # reformat in place
    ./scripts/format_python.py --check  # only report files black would change
"""

import argparse
import subprocess
import sys
from pathlib import Path

# Project parts holding Python sources, relative to project root
SOURCE_PATHS = ("lib", "internal", "tests", "scripts", "main.py")
SKIP_DIRS = {"venv", ".venv", "__pycache__", "build"}


def findPythonFiles(projectRoot: Path) -> list[Path]:
    """Collect Python files of the project, skipping virtualenvs and build output."""
    pythonFiles: list[Path] = []
    for sourcePath in SOURCE_PATHS:
        path = projectRoot / sourcePath
        if path.is_file():
            pythonFiles.append(path)
        elif path.is_dir():
            pythonFiles.extend(p for p in path.rglob("*.py") if not SKIP_DIRS.intersection(p.parts))
    return sorted(pythonFiles)


def runBlack(projectRoot: Path, filePaths: list[Path], check: bool) -> bool:
    """Run black (settings come from pyproject.toml) on given files."""
    if not filePaths:
        print("No Python files found to format.")
        return True

    cmd = ["black", "--config", str(projectRoot / "pyproject.toml")]
    if check:
        cmd.extend(["--check", "--diff"])
    cmd.extend(str(f) for f in filePaths)

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        print("Error: black not found. Please install it using 'pip install -e .[dev]'.")
        return False

    if result.returncode == 0:
        print(f"{'Checked' if check else 'Formatted'} {len(filePaths)} file(s).")
        return True

    print(result.stdout)
    print(result.stderr)
    return False


def main() -> int:
    parser = argparse.ArgumentParser(description="Format TaskDesk sources with black")
    parser.add_argument("--check", action="store_true", help="Don't write files, fail if formatting is needed")
    args = parser.parse_args()

    projectRoot = Path(__file__).resolve().parent.parent
    pythonFiles = findPythonFiles(projectRoot)
    print(f"Found {len(pythonFiles)} Python file(s) in {projectRoot}.")

    return 0 if runBlack(projectRoot, pythonFiles, args.check) else 1


if __name__ == "__main__":
    sys.exit(main())
