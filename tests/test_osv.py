from datetime import datetime, timedelta, timezone

import pytest

from govulndb.osv import (
    ZERO_TIME,
    Affected,
    DatabaseSpecific,
    EcosystemSpecific,
    Entry,
    Module,
    Package,
    Range,
    RangeEvent,
    RangeType,
    Reference,
    ReferenceType,
    format_time,
    marshal_json,
    parse_time,
)

UTC = timezone.utc
JAN1999 = datetime(1999, 1, 1, tzinfo=UTC)
JAN2000 = datetime(2000, 1, 1, tzinfo=UTC)


def make_entry() -> Entry:
    return Entry(
        id="GO-1999-0001",
        published=JAN1999,
        modified=JAN2000,
        aliases=["CVE-1999-1111"],
        details="Some details",
        affected=[
            Affected(
                module=Module(path="stdlib", ecosystem="Go"),
                ranges=[
                    Range(
                        type="SEMVER",
                        events=[
                            RangeEvent(introduced="0"),
                            RangeEvent(fixed="1.1.0"),
                            RangeEvent(introduced="1.2.0"),
                            RangeEvent(fixed="1.2.2"),
                        ],
                    )
                ],
                ecosystem_specific=EcosystemSpecific(
                    packages=[Package(path="package", symbols=["Symbol"])]
                ),
            )
        ],
        references=[Reference(type="FIX", url="https://example.com/cl/123")],
        database_specific=DatabaseSpecific(url="https://example.com/vuln/GO-1999-0001"),
    )


@pytest.mark.parametrize(
    "text, want",
    [
        ("1999-01-01T00:00:00Z", "1999-01-01T00:00:00Z"),
        ("1999-01-01T01:00:00.000+01:00", "1999-01-01T00:00:00Z"),
    ],
)
def test_marshal_unmarshal_time(text, want):
    assert format_time(parse_time(text)) == want


@pytest.mark.parametrize(
    "text, want",
    [
        ("1999-01-01T00:00:00Z", "1999-01-01T00:00:00Z"),
        ("1999-01-01T01:00:00.000+01:00", "1999-01-01T00:00:00Z"),
    ],
)
def test_entry_time_round_trip(text, want):
    entry = Entry.from_dict({"id": "GO-1999-0001", "modified": text})
    assert entry.to_dict()["modified"] == want


def test_parse_time_is_utc():
    parsed = parse_time("1999-01-01T01:00:00.000+01:00")
    assert parsed == JAN1999
    assert parsed.utcoffset() == timedelta(0)


def test_format_zero_time():
    assert format_time(ZERO_TIME) == "0001-01-01T00:00:00Z"


@pytest.mark.parametrize(
    "text",
    ["", "1999-01-01", "1999-13-01T00:00:00Z", "1999-01-01T00:00:00", "1999-01-01 00:00:00Z"],
)
def test_parse_time_invalid(text):
    with pytest.raises(ValueError):
        parse_time(text)


def test_entry_to_json_bytes():
    want = (
        '{"id":"GO-1999-0001","modified":"2000-01-01T00:00:00Z",'
        '"published":"1999-01-01T00:00:00Z","aliases":["CVE-1999-1111"],'
        '"details":"Some details","affected":[{"package":{"name":"stdlib","ecosystem":"Go"},'
        '"ranges":[{"type":"SEMVER","events":[{"introduced":"0"},{"fixed":"1.1.0"},'
        '{"introduced":"1.2.0"},{"fixed":"1.2.2"}]}],'
        '"ecosystem_specific":{"imports":[{"path":"package","symbols":["Symbol"]}]}}],'
        '"references":[{"type":"FIX","url":"https://example.com/cl/123"}],'
        '"database_specific":{"url":"https://example.com/vuln/GO-1999-0001"}}'
    )
    assert make_entry().to_json() == want


def test_entry_json_round_trip():
    entry = make_entry()
    assert Entry.from_json(entry.to_json()) == entry


def test_minimal_entry_json():
    entry = Entry(id="GO-1999-0001", details="Some details")
    assert entry.to_json() == (
        '{"id":"GO-1999-0001","modified":"0001-01-01T00:00:00Z",'
        '"published":"0001-01-01T00:00:00Z","details":"Some details","affected":null}'
    )
    assert Entry.from_json(entry.to_json()) == entry


def test_withdrawn_round_trip():
    entry = Entry(id="GO-1999-0001", withdrawn=JAN2000)
    data = entry.to_dict()
    assert data["withdrawn"] == "2000-01-01T00:00:00Z"
    assert Entry.from_dict(data).withdrawn == JAN2000


def test_missing_times_are_zero():
    entry = Entry.from_json('{"id":"GO-1999-0001"}')
    assert entry.modified == ZERO_TIME
    assert entry.published == ZERO_TIME
    assert entry.withdrawn is None


def test_unmarshal_wrong_type():
    with pytest.raises(ValueError, match="cannot unmarshal"):
        Entry.from_json('{"id": 5}')


def test_unmarshal_not_object():
    with pytest.raises(ValueError, match="cannot unmarshal"):
        Entry.from_json("[]")


def test_unmarshal_bad_time():
    with pytest.raises(ValueError):
        Entry.from_json('{"id":"GO-1999-0001","modified":"yesterday"}')


def test_html_characters_escaped():
    entry = Entry(id="GO-1999-0001", details="<a&b>")
    assert '"details":"\\u003ca\\u0026b\\u003e"' in entry.to_json()
    assert Entry.from_json(entry.to_json()).details == "<a&b>"


def test_marshal_json_indent():
    assert marshal_json({"a": [1, "x"], "b": {}}, indent=True) == (
        '{\n  "a": [\n    1,\n    "x"\n  ],\n  "b": {}\n}'
    )


def test_marshal_json_compact():
    assert marshal_json({"a": [True, None], "b": "c"}) == '{"a":[true,null],"b":"c"}'


def test_enum_values():
    assert RangeType.SEMVER == "SEMVER"
    assert ReferenceType.FIX == "FIX"
    assert marshal_json([ReferenceType.WEB]) == '["WEB"]'