"""Loading, validating and comparing legacy vulnerability databases."""

from __future__ import annotations

import difflib
import json
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from govulndb import dbload
from govulndb.database import Database, DatabaseError, is_index_endpoint
from govulndb.legacy import (
    ALIASES_FILE,
    ID_DIRECTORY,
    INDEX_FILE,
    LegacyDatabase,
    escape_module_path,
    unescape_module_path,
)
from govulndb.osv import ZERO_TIME, Entry, format_time, marshal_json, parse_time


@contextmanager
def _context(label: str) -> Iterator[None]:
    """Prefix any failure inside the block with label, as a DatabaseError."""
    try:
        yield
    except (DatabaseError, OSError, ValueError) as exc:
        raise DatabaseError(f"{label}: {exc}") from exc


def _ext(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def _walk(root: Path) -> Iterator[Path]:
    """Yield root and everything below it, depth first in lexical order."""
    root.lstat()
    yield root
    if _is_plain_dir(root):
        for child in sorted(root.iterdir(), key=lambda p: p.name):
            yield from _walk(child)


def _is_plain_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


# --- reading files --------------------------------------------------------------

def _read_json(path: Path) -> Any:
    return json.loads(path.read_bytes())


def _read_index(path: Path) -> dict[str, datetime]:
    data = _read_json(path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("cannot unmarshal non-object into map of module times")
    index = {}
    for module, value in data.items():
        if not isinstance(value, str):
            raise ValueError(f"cannot unmarshal non-string into time for module {module!r}")
        index[module] = parse_time(value)
    return index


def _read_aliases(path: Path) -> dict[str, list[str]]:
    data = _read_json(path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("cannot unmarshal non-object into map of aliases")
    aliases = {}
    for alias, ids in data.items():
        aliases[alias] = _string_list(ids, f"aliases of {alias!r}")
    return aliases


def _string_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"cannot unmarshal {what} into list of strings")
    return list(value)


def _read_entries(path: Path) -> list[Entry]:
    data = _read_json(path)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError("cannot unmarshal non-array into list of entries")
    return [Entry.from_dict(item) for item in data]


def _load_entries_by_module(root: Path, index: dict[str, datetime]) -> dict[str, list[Entry]]:
    entries_by_module = {}
    for module in index:
        escaped = escape_module_path(module)
        try:
            entries_by_module[module] = _read_entries(root / f"{escaped}.json")
        except (OSError, ValueError) as exc:
            raise DatabaseError(f"invalid or missing module directory: {exc}") from exc
    return entries_by_module


def _load_entries_by_id(root: Path) -> dict[str, Entry]:
    try:
        ids = _string_list(_read_json(root / ID_DIRECTORY / INDEX_FILE), "ID index")
    except (OSError, ValueError) as exc:
        raise DatabaseError(f"invalid or missing ID/index.json: {exc}") from exc
    entries_by_id = {}
    for goid in ids:
        try:
            entries_by_id[goid] = Entry.from_json((root / ID_DIRECTORY / f"{goid}.json").read_bytes())
        except (OSError, ValueError) as exc:
            raise DatabaseError(f"invalid or missing OSV file: {exc}") from exc
    return entries_by_id


def _raw_load(root: Path) -> LegacyDatabase:
    with _context(f"Load({str(root)!r})"):
        db = LegacyDatabase()
        try:
            db.index = _read_index(root / INDEX_FILE)
        except (OSError, ValueError) as exc:
            raise DatabaseError(f"invalid or missing index.json: {exc}") from exc
        db.entries_by_module = _load_entries_by_module(root, db.index)
        db.entries_by_id = _load_entries_by_id(root)
        try:
            db.ids_by_alias = _read_aliases(root / ALIASES_FILE)
        except (OSError, ValueError) as exc:
            raise DatabaseError(f"invalid or missing aliases.json: {exc}") from exc
    return db


def load(db_path: str | os.PathLike) -> LegacyDatabase:
    """Load a legacy database from db_path.

    Raises DatabaseError if a file is malformed or missing, if a file is
    present that the indexes do not list, or if the database is
    internally inconsistent.
    """
    root = Path(db_path)
    db = _raw_load(root)
    _check_no_unexpected_files(db, root)
    check_internal_consistency(db)
    return db


def _is_index_or_web_file(filename: str, ext: str) -> bool:
    # HTML files may have no extension.
    return ext in (".ico", ".html", "") or filename in (INDEX_FILE, ALIASES_FILE)


def _check_no_unexpected_files(db: LegacyDatabase, root: Path) -> None:
    id_dir = root / ID_DIRECTORY
    for item in _walk(root):
        if _is_plain_dir(item):
            continue
        fname = item.name
        ext = _ext(fname)
        parent = item.parent
        # Files of the v1 layout may live alongside the legacy ones.
        if ext == ".gz" or is_index_endpoint(fname):
            continue
        if parent == root and _is_index_or_web_file(fname, ext):
            continue
        if ext != ".json":
            raise DatabaseError(f"found unexpected non-JSON file {item}")
        if parent == id_dir:
            if fname == INDEX_FILE:
                continue
            goid = fname[: -len(".json")]
            if goid not in db.entries_by_id:
                raise DatabaseError(
                    f'found unexpected file "{fname}" which is not present in '
                    f"{ID_DIRECTORY}/{INDEX_FILE}"
                )
            continue
        module = item.relative_to(root).as_posix()[: -len(".json")]
        try:
            unescaped = unescape_module_path(module)
        except ValueError as exc:
            raise DatabaseError(f"could not unescape module file {item}: {exc}") from exc
        if unescaped not in db.entries_by_module:
            raise DatabaseError(
                f'found unexpected module "{unescaped}" which is not present in {INDEX_FILE}'
            )


def check_internal_consistency(db: LegacyDatabase) -> None:
    """Raise DatabaseError if the indexes and entries of db disagree."""
    if len(db.index) != len(db.entries_by_module):
        raise DatabaseError(
            f"length mismatch: there are {len(db.index)} module entries in the index, "
            f"and {len(db.entries_by_module)} module directory entries"
        )

    for module, modified in db.index.items():
        entries = db.entries_by_module.get(module)
        if not entries:
            raise DatabaseError(f"no module directory found for indexed module {module}")
        want_modified = ZERO_TIME
        for entry in entries:
            if entry.modified > want_modified:
                want_modified = entry.modified
            by_id = db.entries_by_id.get(entry.id)
            if by_id is None:
                raise DatabaseError(f"no advisory found for ID {entry.id} listed in {module}")
            if entry != by_id:
                raise DatabaseError(
                    f"inconsistent OSV contents in module and ID advisory for {entry.id}"
                )
            if not any(affected.module.path == module for affected in entry.affected):
                raise DatabaseError(f"{entry.id} does not reference {module}")
        if modified != want_modified:
            raise DatabaseError(
                f"incorrect modified timestamp for module {module}: "
                f"want {format_time(want_modified)}, got {format_time(modified)}"
            )

    for goid, entry in db.entries_by_id.items():
        for affected in entry.affected:
            module = affected.module.path
            entries = db.entries_by_module.get(module)
            if not entries:
                raise DatabaseError(f"module {module} not found (referenced by {goid})")
            if not any(e.id == goid for e in entries):
                raise DatabaseError(f"{goid} does not have an entry in {module}")
        for alias in entry.aliases:
            ids = db.ids_by_alias.get(alias)
            if not ids:
                raise DatabaseError(f"alias {alias} not found in aliases.json (alias of {goid})")
            if goid not in ids:
                raise DatabaseError(
                    f"{entry.id} is not listed as an alias of {alias} in aliases.json"
                )
        if entry.published > entry.modified:
            raise DatabaseError(
                f"{entry.id}: published time ({format_time(entry.published)}) "
                f"cannot be after modified time ({format_time(entry.modified)})"
            )

    for alias, ids in db.ids_by_alias.items():
        for goid in ids:
            entry = db.entries_by_id.get(goid)
            if entry is None:
                raise DatabaseError(f"no advisory found for {goid} listed under {alias}")
            if alias not in entry.aliases:
                raise DatabaseError(f"advisory {goid} does not reference alias {alias}")


# --- validation ---------------------------------------------------------------

def validate(new_path: str | os.PathLike, old_path: str | os.PathLike) -> None:
    """Check that the database in new_path can be deployed over old_path.

    Both must load as consistent databases. Raises DatabaseError otherwise.
    """
    new_db = load(new_path)
    old_db = load(old_path)
    validate_databases(new_db, old_db)


def validate_databases(new: LegacyDatabase, old: LegacyDatabase) -> None:
    """Raise DatabaseError for deleted entries or inconsistent timestamps."""
    for goid, old_entry in old.entries_by_id.items():
        new_entry = new.entries_by_id.get(goid)
        if new_entry is None:
            raise DatabaseError(
                f'{goid} is not present in new database. '
                f'Use the "withdrawn" field to delete an entry'
            )
        if new_entry.published != old_entry.published:
            raise DatabaseError(
                f"{goid}: published time cannot change "
                f"(new {format_time(new_entry.published)}, old {format_time(old_entry.published)})"
            )
        if new_entry.modified < old_entry.modified:
            raise DatabaseError(
                f"{goid}: modified time cannot decrease "
                f"(new {format_time(new_entry.modified)}, old {format_time(old_entry.modified)})"
            )


# --- comparison ---------------------------------------------------------------

def _render(value: Any) -> list[str]:
    return marshal_json(value, indent=True).splitlines()


def _database_data(db: LegacyDatabase) -> dict:
    return {
        "Index": {k: db.index[k] for k in sorted(db.index)},
        "EntriesByID": {k: db.entries_by_id[k].to_dict() for k in sorted(db.entries_by_id)},
        "EntriesByModule": {
            k: [e.to_dict() for e in db.entries_by_module[k]] for k in sorted(db.entries_by_module)
        },
        "IDsByAlias": {k: list(db.ids_by_alias[k]) for k in sorted(db.ids_by_alias)},
    }


def _diff_lines(a: list[str], b: list[str], from_name: str, to_name: str) -> str:
    lines = list(difflib.unified_diff(a, b, fromfile=from_name, tofile=to_name, lineterm=""))
    return "\n".join(lines) + "\n" if lines else ""


def diff(dbname1: str | os.PathLike, dbname2: str | os.PathLike) -> str:
    """Load two legacy databases, print their differences and return them.

    The text is "(no change)" when the databases are the same.
    """
    with _context(f"Diff({str(dbname1)!r}, {str(dbname2)!r})"):
        db1 = load(dbname1)
        db2 = load(dbname2)
    text = _diff_lines(_render(_database_data(db1)), _render(_database_data(db2)), "db1", "db2")
    if not text:
        text = "(no change)"
    print(f"diff (-db1, +db2):\n{text}", end="")
    return text


def equivalent(path: str | os.PathLike, legacy_path: str | os.PathLike) -> None:
    """Raise DatabaseError unless the v1 database in path and the legacy
    database in legacy_path hold the same data and are each valid."""
    legacy = load(legacy_path)
    v1 = dbload.load(path)
    check_same_modules_and_vulns(legacy, v1)


def check_same_modules_and_vulns(legacy: LegacyDatabase, v1: Database) -> None:
    """Raise DatabaseError unless both databases hold the same entries and modules."""
    if len(legacy.entries_by_id) != len(v1.vulns):
        raise DatabaseError(
            f"legacy database (num={len(legacy.entries_by_id)}) and v1 database "
            f"(num={len(v1.vulns)}) have a different number of vulns"
        )
    for entry in v1.entries:
        legacy_entry = legacy.entries_by_id.get(entry.id)
        if legacy_entry is None:
            raise DatabaseError(
                f'v1 database contains vuln "{entry.id}" not present in legacy database'
            )
        if legacy_entry != entry:
            text = _diff_lines(
                _render(legacy_entry.to_dict()), _render(entry.to_dict()), "legacy", "v1"
            )
            raise DatabaseError(
                f"databases contain a different entry for id {entry.id}:\n{text}"
            )

    if len(legacy.index) != len(v1.modules):
        raise DatabaseError(
            f"legacy database (num={len(legacy.index)}) and v1 database "
            f"(num={len(v1.modules)}) have a different number of modules"
        )
    for module_path in v1.modules:
        if module_path not in legacy.entries_by_module:
            raise DatabaseError(
                f'v1 database contains module "{module_path}" not present in legacy database'
            )