"""Helpers for git repositories: commit-date tracking and repo names."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from govulndb.osv import ZERO_TIME


@dataclass(frozen=True)
class Dates:
    """The oldest and newest commit timestamps for a file."""

    oldest: datetime = ZERO_TIME
    newest: datetime = ZERO_TIME

    def with_commit(self, when: datetime) -> Dates:
        """Return the dates updated with a commit made at the given time.

        Commits may be supplied in any order; the time is taken in UTC.
        """
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        else:
            when = when.astimezone(timezone.utc)
        oldest, newest = self.oldest, self.newest
        if oldest == ZERO_TIME or when < oldest:
            if oldest > newest:
                newest = oldest
            oldest = when
        if when > newest:
            newest = when
        return Dates(oldest=oldest, newest=newest)


def parse_github_repo(s: str) -> tuple[str, str]:
    """Split "owner/repo" or "github.com/owner/repo" into (owner, repo).

    Raises ValueError for any other form.
    """
    parts = s.split("/")
    if len(parts) == 2:
        return parts[0], parts[1]
    if len(parts) == 3 and parts[0] == "github.com":
        return parts[1], parts[2]
    raise ValueError(f'"{s}" is not in the form {{github.com/}}owner/repo')