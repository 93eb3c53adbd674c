"""Reading simple line-oriented list files."""

from __future__ import annotations

import os


def read_file_lines(filename: str | os.PathLike) -> list[str]:
    """Return the lines of a file, trimmed of whitespace.

    Blank lines and lines beginning with "#" are skipped.
    """
    with open(filename, encoding="utf-8", newline="\n") as f:
        return [
            stripped
            for line in f
            if (stripped := line.strip()) and not stripped.startswith("#")
        ]