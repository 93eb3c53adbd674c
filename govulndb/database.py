"""The Go vulnerability database in the v1 schema.

A database is a set of OSV entries with three indexes derived from
them: db.json (database metadata), modules.json (vulnerabilities by
module) and vulns.json (vulnerability metadata). Each index and each
entry is written as compact JSON alongside a gzipped copy.
"""

from __future__ import annotations

import gzip
import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from govulndb.gitrepo import Dates
from govulndb.osv import ZERO_TIME, Entry, Range, RangeType, format_time, marshal_json, parse_time

INDEX_DIR = "index"
ID_DIR = "ID"
DB_ENDPOINT = "db.json"
MODULES_ENDPOINT = "modules.json"
VULNS_ENDPOINT = "vulns.json"


class DatabaseError(Exception):
    """A database is malformed or inconsistent."""


def is_index_endpoint(filename: str) -> bool:
    """Report whether filename names one of the index endpoints."""
    return filename in (DB_ENDPOINT, MODULES_ENDPOINT, VULNS_ENDPOINT)


# --- JSON helpers -------------------------------------------------------------

def _load_json(data: str | bytes) -> Any:
    return json.loads(data)


def _expect(value: Any, kind: type, what: str) -> Any:
    if not isinstance(value, kind):
        raise ValueError(f"cannot unmarshal {type(value).__name__} into {what}")
    return value


def _get_str(data: dict, key: str, what: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return _expect(value, str, f"{what}.{key} of type string")


def _get_time(data: dict, key: str, what: str) -> datetime:
    if key not in data:
        return ZERO_TIME
    return parse_time(_expect(data[key], str, f"{what}.{key} of type time"))


def _get_list(data: dict, key: str, what: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    return _expect(value, list, f"{what}.{key} of type array")


# --- index types ----------------------------------------------------------------

@dataclass
class DBMeta:
    """Metadata about the database itself (index/db.json)."""

    modified: datetime = ZERO_TIME

    def _add(self, entry: Entry) -> None:
        if entry.modified > self.modified:
            self.modified = entry.modified

    def _data(self) -> dict:
        return {"modified": format_time(self.modified)}

    def to_json(self) -> str:
        """Encode as compact JSON."""
        return marshal_json(self._data())

    @classmethod
    def from_json(cls, data: str | bytes) -> DBMeta:
        """Decode from JSON text."""
        obj = _expect(_load_json(data), dict, "DBMeta")
        return cls(modified=_get_time(obj, "modified", "DBMeta"))


@dataclass
class ModuleVuln:
    """A vulnerability affecting a module, as listed in the modules index.

    fixed is the latest version that fixes the vulnerability, or empty
    if there is no known fix.
    """

    id: str = ""
    modified: datetime = ZERO_TIME
    fixed: str = ""

    def _data(self) -> dict:
        out: dict[str, Any] = {"id": self.id, "modified": format_time(self.modified)}
        if self.fixed:
            out["fixed"] = self.fixed
        return out

    @classmethod
    def _from_data(cls, value: Any) -> ModuleVuln:
        obj = _expect(value, dict, "ModuleVuln")
        return cls(
            id=_get_str(obj, "id", "ModuleVuln"),
            modified=_get_time(obj, "modified", "ModuleVuln"),
            fixed=_get_str(obj, "fixed", "ModuleVuln"),
        )


@dataclass
class Module:
    """A module with one or more vulnerabilities in the database."""

    path: str = ""
    vulns: list[ModuleVuln] = field(default_factory=list)

    def _data(self) -> dict:
        vulns = sorted(self.vulns, key=lambda v: v.id)
        return {"path": self.path, "vulns": [v._data() for v in vulns]}

    @classmethod
    def _from_data(cls, value: Any) -> Module:
        obj = _expect(value, dict, "Module")
        return cls(
            path=_get_str(obj, "path", "Module"),
            vulns=[ModuleVuln._from_data(v) for v in _get_list(obj, "vulns", "Module")],
        )


@dataclass
class Vuln:
    """Metadata about a vulnerability, as listed in the vulns index."""

    id: str = ""
    modified: datetime = ZERO_TIME
    aliases: list[str] = field(default_factory=list)

    def _data(self) -> dict:
        out: dict[str, Any] = {"id": self.id, "modified": format_time(self.modified)}
        if self.aliases:
            out["aliases"] = list(self.aliases)
        return out

    @classmethod
    def _from_data(cls, value: Any) -> Vuln:
        obj = _expect(value, dict, "Vuln")
        return cls(
            id=_get_str(obj, "id", "Vuln"),
            modified=_get_time(obj, "modified", "Vuln"),
            aliases=[
                _expect(a, str, "Vuln.aliases of type string")
                for a in _get_list(obj, "aliases", "Vuln")
            ],
        )


class ModulesIndex(dict):
    """Map from module path to Module; published as a JSON array sorted by path."""

    def _add(self, entry: Entry) -> None:
        for affected in entry.affected:
            path = affected.module.path
            module = self.setdefault(path, Module(path=path, vulns=[]))
            module.vulns.append(
                ModuleVuln(
                    id=entry.id,
                    modified=entry.modified,
                    fixed=latest_fixed_version(affected.ranges),
                )
            )

    def _data(self) -> list:
        return [m._data() for m in sorted(self.values(), key=lambda m: m.path)]

    def to_json(self) -> str:
        """Encode as a compact JSON array of modules."""
        return marshal_json(self._data())

    @classmethod
    def from_json(cls, data: str | bytes) -> ModulesIndex:
        """Decode from a JSON array; raises DatabaseError on a repeated path."""
        decoded = _load_json(data)
        index = cls()
        if decoded is None:
            return index
        for item in _expect(decoded, list, "ModulesIndex"):
            module = Module._from_data(item)
            if module.path in index:
                raise DatabaseError(f'module "{module.path}" appears twice in modules.json')
            index[module.path] = module
        return index


class VulnsIndex(dict):
    """Map from vulnerability ID to Vuln; published as a JSON array sorted by ID."""

    def _add(self, entry: Entry) -> None:
        if entry.id in self:
            raise DatabaseError(f'id "{entry.id}" appears twice in database')
        self[entry.id] = Vuln(id=entry.id, modified=entry.modified, aliases=list(entry.aliases))

    def _data(self) -> list:
        return [v._data() for v in sorted(self.values(), key=lambda v: v.id)]

    def to_json(self) -> str:
        """Encode as a compact JSON array of vulnerabilities."""
        return marshal_json(self._data())

    @classmethod
    def from_json(cls, data: str | bytes) -> VulnsIndex:
        """Decode from a JSON array; raises DatabaseError on a repeated ID."""
        decoded = _load_json(data)
        index = cls()
        if decoded is None:
            return index
        for item in _expect(decoded, list, "VulnsIndex"):
            vuln = Vuln._from_data(item)
            if vuln.id in index:
                raise DatabaseError(f'id "{vuln.id}" appears twice in vulns.json')
            index[vuln.id] = vuln
        return index


# --- the database --------------------------------------------------------------

@dataclass
class Database:
    """An in-memory Go vulnerability database in the v1 schema."""

    db: DBMeta = field(default_factory=DBMeta)
    modules: ModulesIndex = field(default_factory=ModulesIndex)
    vulns: VulnsIndex = field(default_factory=VulnsIndex)
    entries: list[Entry] = field(default_factory=list)

    def add(self, *args: Entry) -> None:
        """Add entries, raising DatabaseError if an ID is already present.

        Entries before the offending one remain added.
        """
        for entry in args:
            self.vulns._add(entry)
            self.entries.append(entry)
            self.modules._add(entry)
            self.db._add(entry)

    def write(self, directory: str | os.PathLike) -> None:
        """Write the indexes and entries, with gzipped copies, under directory."""
        root = Path(directory)
        index_dir = root / INDEX_DIR
        index_dir.mkdir(parents=True, exist_ok=True)
        _write(index_dir / DB_ENDPOINT, self.db, compress=True)
        _write(index_dir / MODULES_ENDPOINT, self.modules, compress=True)
        _write(index_dir / VULNS_ENDPOINT, self.vulns, compress=True)

        id_dir = root / ID_DIR
        id_dir.mkdir(parents=True, exist_ok=True)
        for entry in self.entries:
            _write(id_dir / f"{entry.id}.json", entry, compress=True)


def new(*args: Entry) -> Database:
    """Create a database from the given entries.

    Raises DatabaseError if two entries share an ID.
    """
    db = Database()
    db.add(*args)
    return db


def add_timestamps(entry: Entry, dates: Dates) -> None:
    """Set an entry's times from the commit history of its file.

    An explicit published time is kept; otherwise the oldest commit is
    used. The modified time is always the newest commit.
    """
    if entry.published == ZERO_TIME:
        entry.published = dates.oldest
    entry.modified = dates.newest


# --- versions -------------------------------------------------------------------

_IDENT = r"[0-9A-Za-z-]+"
_SEMVER = re.compile(
    r"v(0|[1-9][0-9]*)"
    r"(?:\.(0|[1-9][0-9]*)"
    r"(?:\.(0|[1-9][0-9]*)"
    rf"(?:-({_IDENT}(?:\.{_IDENT})*))?"
    rf"(?:\+{_IDENT}(?:\.{_IDENT})*)?"
    r")?)?\Z"
)


def _parse_semver(version: str) -> tuple[str, str, str, str] | None:
    match = _SEMVER.match("v" + version)
    if match is None:
        return None
    major, minor, patch, prerelease = match.groups()
    if prerelease:
        for ident in prerelease.split("."):
            if ident.isdigit() and len(ident) > 1 and ident[0] == "0":
                return None
    return major, minor or "0", patch or "0", prerelease or ""


def _compare_int(x: str, y: str) -> int:
    a, b = (len(x), x), (len(y), y)
    return (a > b) - (a < b)


def _compare_ident(x: str, y: str) -> int:
    x_num, y_num = x.isdigit(), y.isdigit()
    if x_num and y_num:
        return _compare_int(x, y)
    if x_num != y_num:
        return -1 if x_num else 1
    return (x > y) - (x < y)


def _compare_prerelease(x: str, y: str) -> int:
    if x == y:
        return 0
    if not x:
        return 1
    if not y:
        return -1
    xs, ys = x.split("."), y.split(".")
    for a, b in zip(xs, ys):
        result = _compare_ident(a, b)
        if result:
            return result
    return (len(xs) > len(ys)) - (len(xs) < len(ys))


def _compare_versions(x: str, y: str) -> int:
    px, py = _parse_semver(x), _parse_semver(y)
    if px is None and py is None:
        return 0
    if px is None:
        return -1
    if py is None:
        return 1
    for a, b in zip(px[:3], py[:3]):
        result = _compare_int(a, b)
        if result:
            return result
    return _compare_prerelease(px[3], py[3])


def _before(x: str, y: str) -> bool:
    return _compare_versions(x, y) < 0


def latest_fixed_version(ranges: Iterable[Range]) -> str:
    """Return the latest fixed version across the SEMVER ranges.

    Returns "" if there is no fix, or if the vulnerability is
    re-introduced after the latest fix.
    """
    latest = ""
    for r in ranges:
        if r.type != RangeType.SEMVER:
            continue
        for event in r.events:
            if event.fixed and _before(latest, event.fixed):
                latest = event.fixed
        for event in r.events:
            introduced = event.introduced
            if introduced and introduced != "0" and _before(latest, introduced):
                latest = ""
                break
    return latest


# --- files ------------------------------------------------------------------------

def _plain(value: Any) -> Any:
    """Turn index types into plain JSON data; sort the keys of plain maps."""
    to_data = getattr(value, "_data", None)
    if callable(to_data):
        return to_data()
    if isinstance(value, dict):
        return {key: _plain(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _marshal(value: Any, indent: bool = False) -> bytes:
    return marshal_json(_plain(value), indent).encode("utf-8")


def write_json(filename: str | os.PathLike, value: Any, indent: bool) -> None:
    """Write value as JSON to filename, indented by two spaces if indent is set."""
    Path(filename).write_bytes(_marshal(value, indent))


def write_gzipped(filename: str | os.PathLike, data: bytes | str) -> None:
    """Compress data at the best compression level and write it to filename."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    Path(filename).write_bytes(gzip.compress(data, compresslevel=9, mtime=0))


def read_gzipped(filename: str | os.PathLike) -> bytes:
    """Return the uncompressed contents of a gzipped file."""
    return gzip.decompress(Path(filename).read_bytes())


def _write(filename: Path, value: Any, compress: bool) -> None:
    data = _marshal(value)
    filename.write_bytes(data)
    if compress:
        write_gzipped(f"{filename}.gz", data)