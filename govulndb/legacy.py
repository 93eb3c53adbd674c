"""The Go vulnerability database in the legacy schema.

A legacy database holds an index of modules with their last-modified
times, the OSV entries by ID, the entries grouped by module, and the
Go IDs listed under each alias. It is written as plain JSON files:
index.json, aliases.json, one <escaped module path>.json per module,
and ID/<id>.json per entry with an ID/index.json listing the IDs.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator

from govulndb.database import DatabaseError, write_json
from govulndb.osv import GO_CMD_MODULE_PATH, GO_STD_MODULE_PATH, ZERO_TIME, Entry

INDEX_FILE = "index.json"
ALIASES_FILE = "aliases.json"
ID_DIRECTORY = "ID"
VERSION_FILE = "data/version.md"

# Pseudo-module paths are not valid module paths and are never escaped.
_SPECIAL_CASE_MODULE_PATHS = frozenset({GO_STD_MODULE_PATH, GO_CMD_MODULE_PATH})

_BAD_WINDOWS_NAMES = (
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9",
)


@dataclass
class LegacyDatabase:
    """An in-memory Go vulnerability database in the legacy schema."""

    index: dict[str, datetime] = field(default_factory=dict)
    entries_by_id: dict[str, Entry] = field(default_factory=dict)
    entries_by_module: dict[str, list[Entry]] = field(default_factory=dict)
    ids_by_alias: dict[str, list[str]] = field(default_factory=dict)

    def add_entry(self, entry: Entry) -> None:
        """Add an entry, updating the module, ID and alias indexes."""
        for module in _modules_for_entry(entry):
            self.entries_by_module.setdefault(module, []).append(entry)
            if entry.modified > self.index.get(module, ZERO_TIME):
                self.index[module] = entry.modified
        self.entries_by_id[entry.id] = entry
        for alias in entry.aliases:
            self.ids_by_alias.setdefault(alias, []).append(entry.id)

    def write(self, path: str | os.PathLike, indent: bool) -> None:
        """Write the database as JSON files under path.

        The JSON is indented by two spaces if indent is set. Raises
        DatabaseError if a file cannot be written or a module path is
        malformed.
        """
        with _context(f"Database.Write({str(path)!r})"):
            root = Path(path)
            _make_dir(root)
            write_json(root / INDEX_FILE, self.index, indent)
            write_json(root / ALIASES_FILE, self.ids_by_alias, indent)
            self._write_entries_by_module(root, indent)
            self._write_entries_by_id(root, indent)

    def _write_entries_by_module(self, root: Path, indent: bool) -> None:
        for module, entries in self.entries_by_module.items():
            out_path = root / escape_module_path(module)
            _make_dir(out_path.parent)
            write_json(f"{out_path}.json", entries, indent)

    def _write_entries_by_id(self, root: Path, indent: bool) -> None:
        id_dir = root / ID_DIRECTORY
        _make_dir(id_dir)
        for entry in self.entries_by_id.values():
            write_json(id_dir / f"{entry.id}.json", entry, indent)
        write_json(id_dir / INDEX_FILE, sorted(self.entries_by_id), indent)


def new_empty() -> LegacyDatabase:
    """Return a database with no entries."""
    return LegacyDatabase()


@contextmanager
def _context(label: str) -> Iterator[None]:
    try:
        yield
    except (DatabaseError, OSError, ValueError) as exc:
        raise DatabaseError(f"{label}: {exc}") from exc


def _make_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DatabaseError(f"failed to create directory {str(path)!r}: {exc}") from exc


def _modules_for_entry(entry: Entry) -> list[str]:
    return list(dict.fromkeys(affected.module.path for affected in entry.affected))


# --- module path escaping -------------------------------------------------------

def escape_module_path(path: str) -> str:
    """Escape a module path for use as a file path.

    Upper-case letters become "!" followed by the lower-case letter.
    The pseudo-module paths "stdlib" and "toolchain" are returned as is.
    Raises ValueError if path is not a valid module path.
    """
    if path in _SPECIAL_CASE_MODULE_PATHS:
        return path
    _check_module_path(path)
    out = []
    for ch in path:
        if ch == "!" or ord(ch) >= 0x80:
            raise ValueError("internal error: inconsistency in EscapePath")
        out.append("!" + ch.lower() if "A" <= ch <= "Z" else ch)
    return "".join(out)


def unescape_module_path(path: str) -> str:
    """Reverse escape_module_path.

    Raises ValueError if path is not a validly escaped module path.
    """
    if path in _SPECIAL_CASE_MODULE_PATHS:
        return path
    unescaped = _unescape_string(path)
    if unescaped is None:
        raise ValueError(f"invalid escaped module path {path!r}")
    try:
        _check_module_path(unescaped)
    except ValueError as exc:
        raise ValueError(f"invalid escaped module path {path!r}: {exc}") from None
    return unescaped


def _unescape_string(escaped: str) -> str | None:
    out = []
    bang = False
    for ch in escaped:
        if ord(ch) >= 0x80:
            return None
        if bang:
            bang = False
            if not "a" <= ch <= "z":
                return None
            out.append(ch.upper())
            continue
        if ch == "!":
            bang = True
            continue
        if "A" <= ch <= "Z":
            return None
        out.append(ch)
    if bang:
        return None
    return "".join(out)


def _mod_path_ok(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch in "-._~")


def _first_path_ok(ch: str) -> bool:
    return ch == "-" or ch == "." or "0" <= ch <= "9" or "a" <= ch <= "z"


def _check_elem(elem: str) -> None:
    if not elem:
        raise ValueError("empty path element")
    if elem.count(".") == len(elem):
        raise ValueError(f"invalid path element {elem!r}")
    if elem[0] == ".":
        raise ValueError("leading dot in path element")
    if elem[-1] == ".":
        raise ValueError("trailing dot in path element")
    for ch in elem:
        if not _mod_path_ok(ch):
            raise ValueError(f"invalid char {ch!r}")
    short = elem.split(".", 1)[0]
    if short.upper() in _BAD_WINDOWS_NAMES:
        raise ValueError(f"{short!r} disallowed as path element component on Windows")


def _check_path(path: str) -> None:
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("invalid UTF-8") from None
    if not path:
        raise ValueError("empty string")
    if path[0] == "-":
        raise ValueError("leading dash")
    if "//" in path:
        raise ValueError("double slash")
    if path[-1] == "/":
        raise ValueError("trailing slash")
    for elem in path.split("/"):
        _check_elem(elem)


def _split_gopkg_in_ok(path: str) -> bool:
    i = len(path)
    if path.endswith("-unstable"):
        i -= len("-unstable")
    while i > 0 and "0" <= path[i - 1] <= "9":
        i -= 1
    if i <= 1 or path[i - 1] != "v" or path[i - 2] != ".":
        return False
    major = path[i - 2:]
    if len(major) <= 2 or (major[2] == "0" and major != ".v0"):
        return False
    return True


def _path_version_ok(path: str) -> bool:
    if path.startswith("gopkg.in/"):
        return _split_gopkg_in_ok(path)
    i = len(path)
    dot = False
    while i > 0 and ("0" <= path[i - 1] <= "9" or path[i - 1] == "."):
        if path[i - 1] == ".":
            dot = True
        i -= 1
    if i <= 1 or i == len(path) or path[i - 1] != "v" or path[i - 2] != "/":
        return True
    major = path[i - 2:]
    return not (dot or len(major) <= 2 or major[2] == "0" or major == "/v1")


def _check_module_path(path: str) -> None:
    try:
        _check_path(path)
        first = path.split("/", 1)[0]
        if not first:
            raise ValueError("leading slash")
        if "." not in first:
            raise ValueError("missing dot in first path element")
        if path[0] == "-":
            raise ValueError("leading dash in first path element")
        for ch in first:
            if not _first_path_ok(ch):
                raise ValueError(f"invalid char {ch!r} in first path element")
        if not _path_version_ok(path):
            raise ValueError("invalid version")
    except ValueError as exc:
        raise ValueError(f"malformed module path {path!r}: {exc}") from None