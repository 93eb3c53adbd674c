# govulndb

A library for building, reading, checking and comparing vulnerability
databases made of OSV entries in the Go format, with small clients for
GitHub issues and GitHub security advisories.

## Modules

- `govulndb.osv` is the entry model: `Entry`, `Affected`, `Module`,
  `Range`, `RangeEvent`, `Reference`, `Package`, `EcosystemSpecific`,
  `Credit` and `DatabaseSpecific`, with the enums `RangeType`,
  `Ecosystem` and `ReferenceType`. `format_time` writes a time as an
  RFC 3339 UTC string ending in `Z`; `parse_time` reads one and converts
  any offset to UTC. Entries convert with `Entry.to_dict`,
  `Entry.from_dict`, `Entry.to_json` and `Entry.from_json`.
- `govulndb.database` is the v1 layout: `index/db.json`,
  `index/modules.json`, `index/vulns.json` and `ID/<id>.json`, each
  written as compact JSON with a gzipped copy next to it. Build a
  `Database` with `new(*entries)`, add more with `Database.add(...)` and
  write it with `Database.write(directory)`. The indexes are `DBMeta`,
  `ModulesIndex` and `VulnsIndex`, each with `to_json` and `from_json`.
  Also here: `latest_fixed_version`, `add_timestamps`, `write_json`,
  `write_gzipped`, `read_gzipped` and `is_index_endpoint`.
- `govulndb.dbload` reads a v1 database back. `load(path)` requires every
  index and entry file and its gzipped copy to match the entries, and
  rejects unexpected files in `index/` and `ID/`. `raw_load(vulns_path)`
  reads only the `.json` entry files. `validate(new_path, old_path)`
  checks that a new database can replace an old one: no entry removed,
  no published time changed, no modified time moved back.
  `validate_databases` runs the same checks on databases in memory.
- `govulndb.legacy` is the legacy layout: `index.json`, `aliases.json`,
  one `<escaped module path>.json` per module and `ID/<id>.json` with an
  `ID/index.json`. Start from `new_empty()`, call
  `LegacyDatabase.add_entry` for each entry and write with
  `LegacyDatabase.write(path, indent)`. `escape_module_path` and
  `unescape_module_path` handle upper-case letters in module paths and
  leave `stdlib` and `toolchain` as they are.
- `govulndb.legacy_load` reads and checks legacy databases: `load`,
  `check_internal_consistency`, `validate` and `validate_databases`.
  `diff(dbname1, dbname2)` prints the differences between two legacy
  databases and returns them, or returns `(no change)` if there are none.
  `equivalent(path, legacy_path)` and `check_same_modules_and_vulns`
  check that a v1 database and a legacy database hold the same entries
  and modules.
- `govulndb.gitrepo` has `Dates`, the oldest and newest commit times of a
  file. `Dates.with_commit` folds in one commit time. It also has
  `parse_github_repo`, which splits `owner/repo` or
  `github.com/owner/repo`.
- `govulndb.lines.read_file_lines` reads a list file. It trims each line
  and skips blank lines and lines that start with `#`.
- `govulndb.issues` is a client for the issues of one GitHub repository.
  `Client(Config(owner, repo, token))` offers `destination`, `reference`,
  `issue_exists`, `get_issue`, `get_issues` (which follows every page)
  and `create_issue`. `Issue.new_go_id` builds an ID of the form
  `GO-YYYY-NNNN`.
- `govulndb.ghsa` is a client for the GitHub security advisory GraphQL
  API. `Client(access_token)` offers `list(since)`, `list_for_cve(cve)`
  and `fetch_ghsa(ghsa_id)`. Each returns `SecurityAdvisory` objects
  limited to Go vulnerabilities.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from govulndb import osv, database, dbload, legacy, legacy_load

entry = osv.Entry(
    id="GO-2000-0002",
    published=osv.parse_time("2000-01-01T00:00:00Z"),
    modified=osv.parse_time("2002-01-01T00:00:00Z"),
    details="Some details",
    affected=[
        osv.Affected(
            module=osv.Module(path="example.com/module", ecosystem=osv.Ecosystem.GO),
            ranges=[
                osv.Range(
                    type=osv.RangeType.SEMVER,
                    events=[osv.RangeEvent(introduced="0"), osv.RangeEvent(fixed="1.2.0")],
                )
            ],
        )
    ],
)

db = database.new(entry)
db.write("out")
loaded = dbload.load("out")
dbload.validate("out", "out")

old = legacy.new_empty()
old.add_entry(entry)
old.write("legacy-out", indent=True)
legacy_load.equivalent("out", "legacy-out")
```

Each module in the modules index records the latest fixed version of
every vulnerability that affects it. `database.latest_fixed_version`
computes that version from a list of ranges. It returns an empty string
when there is no fix, or when the vulnerability was introduced again
after the last fix.

## Errors

The database functions raise `database.DatabaseError` in these cases:

- a file is missing or malformed;
- a file is present that should not be;
- the indexes do not agree with the entries;
- timestamps are inconsistent;
- two entries share an ID.

The message names the file or entry at fault. Failed HTTP requests in
`issues` raise `requests` exceptions. In `ghsa`, GraphQL errors raise
`RuntimeError`. An advisory updated before it was published, or one with
too many vulnerabilities, raises `ValueError`.

## What it does not do

- There is no command-line program.
- The package does not open or read git repositories. It cannot build a
  database from a repository's history by itself. Supply commit times
  through `gitrepo.Dates` and apply them with `database.add_timestamps`,
  then build the database from the entries.