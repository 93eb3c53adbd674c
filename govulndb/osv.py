"""The Go OSV vulnerability format.

This is the subset of the shared OSV schema that the Go vulnerability
database publishes, with its database- and ecosystem-specific fields.
Only the SEMVER range type is supported.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class RangeType(str, Enum):
    """How the versions in a range's events are interpreted."""

    SEMVER = "SEMVER"


class Ecosystem(str, Enum):
    """The library ecosystem of an affected module."""

    GO = "Go"


# Pseudo-module paths for the standard library and the toolchain.
GO_STD_MODULE_PATH = "stdlib"
GO_CMD_MODULE_PATH = "toolchain"


class ReferenceType(str, Enum):
    """The kind of link a reference points to."""

    ADVISORY = "ADVISORY"
    ARTICLE = "ARTICLE"
    REPORT = "REPORT"
    FIX = "FIX"
    PACKAGE = "PACKAGE"
    EVIDENCE = "EVIDENCE"
    WEB = "WEB"


REFERENCE_TYPES = list(ReferenceType)

# The zero instant; used for timestamps that have not been set.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


# --- time -----------------------------------------------------------------

_RFC3339 = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})\Z"
)


def format_time(value: datetime) -> str:
    """Format a time as an RFC 3339 string in UTC, ending in "Z"."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}Z"
    )


def parse_time(text: str) -> datetime:
    """Parse an RFC 3339 string into an aware UTC datetime.

    Raises ValueError if the text is not a valid RFC 3339 timestamp.
    """
    match = _RFC3339.match(text)
    if match is None:
        raise ValueError(f"parsing time {text!r}: not an RFC 3339 timestamp")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction = match.group(7)
    micro = int((fraction + "000000")[:6]) if fraction else 0
    try:
        value = datetime(year, month, day, hour, minute, second, micro, tzinfo=timezone.utc)
    except ValueError as exc:
        raise ValueError(f"parsing time {text!r}: {exc}") from None
    zone = match.group(8)
    if zone != "Z":
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours >= 24 or minutes >= 60:
            raise ValueError(f"parsing time {text!r}: time zone offset out of range")
        offset = timedelta(hours=hours, minutes=minutes)
        try:
            value = value - offset if zone[0] == "+" else value + offset
        except OverflowError:
            raise ValueError(f"parsing time {text!r}: out of range") from None
    return value


# --- JSON encoding ----------------------------------------------------------

_SHORT_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}
_UNICODE_ESCAPED = "<>&\u2028\u2029"


def _quote(text: str) -> str:
    out = ['"']
    for ch in text:
        code = ord(ch)
        if ch in _SHORT_ESCAPES:
            out.append(_SHORT_ESCAPES[ch])
        elif code < 0x20 or ch in _UNICODE_ESCAPED:
            out.append(f"\\u{code:04x}")
        elif 0xD800 <= code <= 0xDFFF:
            out.append("\ufffd")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def _encode(value: Any, indent: bool, level: int) -> str:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        value = to_dict()
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, float):
        return json.dumps(value, allow_nan=False)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, datetime):
        return _quote(format_time(value))

    if indent:
        inner = "\n" + "  " * (level + 1)
        close = "\n" + "  " * level
        colon = ": "
    else:
        inner = close = ""
        colon = ":"
    separator = "," + inner

    if isinstance(value, dict):
        if not value:
            return "{}"
        body = separator.join(
            f"{_quote(str(key))}{colon}{_encode(item, indent, level + 1)}"
            for key, item in value.items()
        )
        return "{" + inner + body + close + "}"
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        body = separator.join(_encode(item, indent, level + 1) for item in value)
        return "[" + inner + body + close + "]"
    raise TypeError(f"cannot encode value of type {type(value).__name__} as JSON")


def marshal_json(value: Any, indent: bool = False) -> str:
    """Encode a value as JSON in the database's canonical byte form.

    Output is compact unless indent is set (two spaces per level);
    "<", ">" and "&" are written as unicode escapes. Objects with a
    to_dict method are encoded through it, datetimes as RFC 3339 UTC.
    """
    return _encode(value, indent, 0)


# --- JSON decoding helpers -------------------------------------------------

def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _mismatch(value: Any, where: str, target: str) -> ValueError:
    return ValueError(f"cannot unmarshal {_kind(value)} into field {where} of type {target}")


def _object(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise _mismatch(value, where, "object")
    return value


def _str(data: dict, key: str, where: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _mismatch(value, f"{where}.{key}", "string")
    return value


def _list(data: dict, key: str, where: str, convert: Callable[[Any, str], T]) -> list[T]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise _mismatch(value, f"{where}.{key}", "array")
    return [convert(item, f"{where}.{key}") for item in value]


def _as_str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise _mismatch(value, where, "string")
    return value


def _time(data: dict, key: str, where: str) -> datetime:
    if key not in data:
        return ZERO_TIME
    value = data[key]
    if not isinstance(value, str):
        raise _mismatch(value, f"{where}.{key}", "time")
    return parse_time(value)


# --- schema -----------------------------------------------------------------

@dataclass
class Module:
    """The affected module (called "package" in the OSV schema)."""

    path: str = ""
    ecosystem: str = ""

    def _to_dict(self) -> dict:
        return {"name": self.path, "ecosystem": self.ecosystem}

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> Module:
        data = _object(value, where)
        return cls(path=_str(data, "name", where), ecosystem=_str(data, "ecosystem", where))


@dataclass
class RangeEvent:
    """A version that introduces or fixes a vulnerability."""

    introduced: str = ""
    fixed: str = ""

    def _to_dict(self) -> dict:
        out = {}
        if self.introduced:
            out["introduced"] = self.introduced
        if self.fixed:
            out["fixed"] = self.fixed
        return out

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> RangeEvent:
        data = _object(value, where)
        return cls(introduced=_str(data, "introduced", where), fixed=_str(data, "fixed", where))


@dataclass
class Range:
    """A list of events describing affected versions of a module."""

    type: str = ""
    events: list[RangeEvent] = field(default_factory=list)

    def _to_dict(self) -> dict:
        # An unset list of events is written as null.
        events = [e._to_dict() for e in self.events] if self.events else None
        return {"type": self.type, "events": events}

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> Range:
        data = _object(value, where)
        return cls(
            type=_str(data, "type", where),
            events=_list(data, "events", where, RangeEvent._from_dict),
        )


@dataclass
class Reference:
    """A link to more information about a vulnerability."""

    type: str = ""
    url: str = ""

    def _to_dict(self) -> dict:
        return {"type": self.type, "url": self.url}

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> Reference:
        data = _object(value, where)
        return cls(type=_str(data, "type", where), url=_str(data, "url", where))


@dataclass
class Package:
    """An affected package within a module, with its platforms and symbols."""

    path: str = ""
    goos: list[str] = field(default_factory=list)
    goarch: list[str] = field(default_factory=list)
    symbols: list[str] = field(default_factory=list)

    def _to_dict(self) -> dict:
        out: dict[str, Any] = {"path": self.path}
        if self.goos:
            out["goos"] = list(self.goos)
        if self.goarch:
            out["goarch"] = list(self.goarch)
        if self.symbols:
            out["symbols"] = list(self.symbols)
        return out

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> Package:
        data = _object(value, where)
        return cls(
            path=_str(data, "path", where),
            goos=_list(data, "goos", where, _as_str),
            goarch=_list(data, "goarch", where, _as_str),
            symbols=_list(data, "symbols", where, _as_str),
        )


@dataclass
class EcosystemSpecific:
    """Go-specific details about an affected module."""

    packages: list[Package] = field(default_factory=list)

    def _to_dict(self) -> dict:
        if not self.packages:
            return {}
        return {"imports": [p._to_dict() for p in self.packages]}

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> EcosystemSpecific:
        data = _object(value, where)
        return cls(packages=_list(data, "imports", where, Package._from_dict))


@dataclass
class Affected:
    """A module affected by a vulnerability and its affected versions."""

    module: Module = field(default_factory=Module)
    ranges: list[Range] = field(default_factory=list)
    ecosystem_specific: EcosystemSpecific | None = None

    def _to_dict(self) -> dict:
        out: dict[str, Any] = {"package": self.module._to_dict()}
        if self.ranges:
            out["ranges"] = [r._to_dict() for r in self.ranges]
        if self.ecosystem_specific is not None:
            out["ecosystem_specific"] = self.ecosystem_specific._to_dict()
        return out

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> Affected:
        data = _object(value, where)
        module = Module._from_dict(data["package"], f"{where}.package") if data.get("package") is not None else Module()
        specific = data.get("ecosystem_specific")
        return cls(
            module=module,
            ranges=_list(data, "ranges", where, Range._from_dict),
            ecosystem_specific=(
                EcosystemSpecific._from_dict(specific, f"{where}.ecosystem_specific")
                if specific is not None
                else None
            ),
        )


@dataclass
class Credit:
    """An entity credited for work on a vulnerability."""

    name: str = ""

    def _to_dict(self) -> dict:
        return {"name": self.name}

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> Credit:
        return cls(name=_str(_object(value, where), "name", where))


@dataclass
class DatabaseSpecific:
    """Details specific to the Go vulnerability database."""

    url: str = ""

    def _to_dict(self) -> dict:
        return {"url": self.url} if self.url else {}

    @classmethod
    def _from_dict(cls, value: Any, where: str) -> DatabaseSpecific:
        return cls(url=_str(_object(value, where), "url", where))


@dataclass
class Entry:
    """A vulnerability in the Go OSV format."""

    id: str = ""
    modified: datetime = ZERO_TIME
    published: datetime = ZERO_TIME
    withdrawn: datetime | None = None
    aliases: list[str] = field(default_factory=list)
    details: str = ""
    affected: list[Affected] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    credits: list[Credit] = field(default_factory=list)
    database_specific: DatabaseSpecific | None = None
    schema_version: str = ""

    def to_dict(self) -> dict:
        """Return the entry as JSON-ready data, in schema field order."""
        out: dict[str, Any] = {}
        if self.schema_version:
            out["schema_version"] = self.schema_version
        out["id"] = self.id
        out["modified"] = format_time(self.modified)
        out["published"] = format_time(self.published)
        if self.withdrawn is not None:
            out["withdrawn"] = format_time(self.withdrawn)
        if self.aliases:
            out["aliases"] = list(self.aliases)
        out["details"] = self.details
        # An unset list of affected modules is written as null.
        out["affected"] = [a._to_dict() for a in self.affected] if self.affected else None
        if self.references:
            out["references"] = [r._to_dict() for r in self.references]
        if self.credits:
            out["credits"] = [c._to_dict() for c in self.credits]
        if self.database_specific is not None:
            out["database_specific"] = self.database_specific._to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Entry:
        """Build an entry from decoded JSON data.

        Raises ValueError if a field has the wrong type or a time is invalid.
        """
        where = "Entry"
        data = _object(data, where)
        withdrawn = data.get("withdrawn")
        if withdrawn is not None and not isinstance(withdrawn, str):
            raise _mismatch(withdrawn, f"{where}.withdrawn", "time")
        specific = data.get("database_specific")
        return cls(
            schema_version=_str(data, "schema_version", where),
            id=_str(data, "id", where),
            modified=_time(data, "modified", where),
            published=_time(data, "published", where),
            withdrawn=parse_time(withdrawn) if withdrawn is not None else None,
            aliases=_list(data, "aliases", where, _as_str),
            details=_str(data, "details", where),
            affected=_list(data, "affected", where, Affected._from_dict),
            references=_list(data, "references", where, Reference._from_dict),
            credits=_list(data, "credits", where, Credit._from_dict),
            database_specific=(
                DatabaseSpecific._from_dict(specific, f"{where}.database_specific")
                if specific is not None
                else None
            ),
        )

    def to_json(self) -> str:
        """Encode the entry as compact canonical JSON."""
        return marshal_json(self.to_dict())

    @classmethod
    def from_json(cls, text: str | bytes) -> Entry:
        """Decode an entry from JSON text."""
        return cls.from_dict(json.loads(text, parse_constant=_reject_constant))


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON value {name}")