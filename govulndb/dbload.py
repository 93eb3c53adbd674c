"""Loading and validating v1 vulnerability databases on disk."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from govulndb.database import (
    DB_ENDPOINT,
    ID_DIR,
    INDEX_DIR,
    MODULES_ENDPOINT,
    VULNS_ENDPOINT,
    Database,
    DatabaseError,
    new,
    read_gzipped,
)
from govulndb.osv import ZERO_TIME, Entry, format_time

# index.json in the ID folder belongs to the legacy layout and is tolerated.
_LEGACY_INDEX = "index.json"


@contextmanager
def _context(label: str) -> Iterator[None]:
    """Prefix any failure inside the block with label, as a DatabaseError."""
    try:
        yield
    except (DatabaseError, OSError, ValueError) as exc:
        raise DatabaseError(f"{label}: {exc}") from exc


def _walk(root: Path) -> Iterator[Path]:
    """Yield root and everything below it, depth first in lexical order."""
    root.lstat()
    yield root
    if root.is_dir() and not root.is_symlink():
        for child in sorted(root.iterdir(), key=lambda p: p.name):
            yield from _walk(child)


def _is_plain_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


def load(path: str | os.PathLike) -> Database:
    """Load a complete v1 database from path.

    Raises DatabaseError if a required file is missing or does not match
    the entries, if a gzipped copy is missing or differs, or if an
    unexpected file is found in the index/ or ID/ folders. Files in the
    top-level folder are ignored.
    """
    root = Path(path)
    with _context(f"Load({str(path)!r})"):
        db = raw_load(root / ID_DIR)
        _validate_index(db, root / INDEX_DIR, require_gzip=True)
        _validate_entries(db, root / ID_DIR, require_gzip=True)
    return db


def raw_load(vulns_path: str | os.PathLike) -> Database:
    """Build a database from the ".json" OSV files under vulns_path.

    No indexes or gzipped files are needed. Directories, non-JSON files
    and a legacy "index.json" are ignored. Raises DatabaseError if a
    file cannot be decoded or two entries share an ID.
    """
    with _context(f"RawLoad({str(vulns_path)!r})"):
        db = new()
        for path in _walk(Path(vulns_path)):
            if _is_plain_dir(path) or path.name == _LEGACY_INDEX or path.suffix != ".json":
                continue
            try:
                entry = Entry.from_json(path.read_bytes())
            except (OSError, ValueError) as exc:
                raise DatabaseError(f"could not unmarshal {str(path)!r}: {exc}") from exc
            db.add(entry)
    return db


def _validate_index(db: Database, index_path: Path, require_gzip: bool) -> None:
    with _context(f"validateIndex({str(index_path)!r})"):
        _check_files(index_path / DB_ENDPOINT, db.db, require_gzip)
        _check_files(index_path / MODULES_ENDPOINT, db.modules, require_gzip)
        _check_files(index_path / VULNS_ENDPOINT, db.vulns, require_gzip)
        expected = {INDEX_DIR}
        for endpoint in (DB_ENDPOINT, MODULES_ENDPOINT, VULNS_ENDPOINT):
            expected.update((endpoint, endpoint + ".gz"))
        _check_no_unexpected_files(index_path, expected)


def _validate_entries(db: Database, id_path: Path, require_gzip: bool) -> None:
    with _context(f"validateEntries({str(id_path)!r})"):
        expected = {ID_DIR, _LEGACY_INDEX}
        for entry in db.entries:
            _validate_entry(entry)
            _check_files(id_path / f"{entry.id}.json", entry, require_gzip)
            expected.update((f"{entry.id}.json", f"{entry.id}.json.gz"))
        _check_no_unexpected_files(id_path, expected)


def _check_no_unexpected_files(path: Path, expected: set[str]) -> None:
    for item in _walk(path):
        if item.name not in expected:
            raise DatabaseError(f"unexpected file {item.name}")


def _validate_entry(entry: Entry) -> None:
    if entry.modified == ZERO_TIME:
        raise DatabaseError(
            f"{entry.id}: modified time must be non-zero (found {format_time(entry.modified)})"
        )
    if entry.published > entry.modified:
        raise DatabaseError(
            f"{entry.id}: published time ({format_time(entry.published)}) "
            f"cannot be after modified time ({format_time(entry.modified)})"
        )


def _check_files(path: Path, value: Any, require_gzip: bool) -> None:
    """Check that path, and path + ".gz" if required, hold value's JSON."""
    with _context(f"checkFiles({str(path)!r})"):
        contents = path.read_bytes()
        marshaled = value.to_json().encode("utf-8")
        if contents != marshaled:
            raise DatabaseError(f"{path}: contents do not match marshaled bytes")
        if require_gzip:
            gz_path = f"{path}.gz"
            if read_gzipped(gz_path) != contents:
                raise DatabaseError(f"{gz_path}: contents do not match uncompressed file")


def validate(new_path: str | os.PathLike, old_path: str | os.PathLike) -> None:
    """Check that the database in new_path can be deployed over old_path.

    The new database must load as a complete, valid database; the old
    one is read from its entries alone. Raises DatabaseError otherwise.
    """
    with _context(f"Validate(new={new_path}, old={old_path})"):
        new_db = load(new_path)
        old_db = raw_load(Path(old_path) / ID_DIR)
        validate_databases(new_db, old_db)


def validate_databases(new: Database, old: Database) -> None:
    """Raise DatabaseError for deleted entries or inconsistent timestamps."""
    new_by_id = {entry.id: entry for entry in new.entries}
    for old_entry in old.entries:
        new_entry = new_by_id.get(old_entry.id)
        if new_entry is None:
            raise DatabaseError(
                f'{old_entry.id} is not present in new database. '
                f'Use the "withdrawn" field to delete an entry'
            )
        if new_entry.published != old_entry.published:
            raise DatabaseError(
                f"{old_entry.id}: published time cannot change "
                f"(new {format_time(new_entry.published)}, old {format_time(old_entry.published)})"
            )
        if new_entry.modified < old_entry.modified:
            raise DatabaseError(
                f"{old_entry.id}: modified time cannot decrease "
                f"(new {format_time(new_entry.modified)}, old {format_time(old_entry.modified)})"
            )