"""Read, write, validate and compare vulnerability databases in the Go OSV format."""

__version__ = "0.1.0"
__all__ = [
    "osv",
    "lines",
    "gitrepo",
    "database",
    "dbload",
    "legacy",
    "legacy_load",
    "issues",
    "ghsa",
]