#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""Verify that every Python file of plesk-cache starts with the MIT SPDX header.

Usage: check-spdx.py [FILE ...]

Without arguments the ``src``, ``tests`` and ``scripts`` trees are scanned.
"""

import sys
from pathlib import Path

EXPECTED_HEADER = "# SPDX-License-Identifier: MIT"
SEARCHED_DIRS = ("src", "tests", "scripts")
# Shebang plus header must sit at the very top
HEADER_LINES = 3


def header_problem(file_path: Path) -> str | None:
    """Return a description of what is wrong with the header, or None."""
    try:
        head = file_path.read_text(encoding="utf-8").splitlines()[:HEADER_LINES]
    except (OSError, UnicodeDecodeError) as e:
        return f"unreadable ({e})"

    for line in head:
        if line.strip() == EXPECTED_HEADER:
            return None
        if "SPDX-License-Identifier" in line:
            return f"unexpected header '{line.strip()}'"
    return "missing header"


def collect_files(project_root: Path, args: list[str]) -> list[Path]:
    if args:
        return [Path(arg) for arg in args if arg.endswith(".py")]
    files: list[Path] = []
    for directory in SEARCHED_DIRS:
        files.extend(sorted((project_root / directory).rglob("*.py")))
    return files


def main(argv: list[str]) -> int:
    project_root = Path(__file__).resolve().parent.parent
    files = collect_files(project_root, argv)

    problems = [(path, header_problem(path)) for path in files]
    problems = [(path, problem) for path, problem in problems if problem]

    if not problems:
        print(f"SPDX check passed for {len(files)} files")
        return 0

    print(f"SPDX check failed for {len(problems)} of {len(files)} files:")
    for path, problem in problems:
        print(f"  {path}: {problem}")
    print(f"\nAdd '{EXPECTED_HEADER}' as the first line (after any shebang).")
    return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
