from datetime import datetime, timedelta, timezone

import pytest

from govulndb.gitrepo import Dates, parse_github_repo
from govulndb.osv import ZERO_TIME

UTC = timezone.utc
T1 = datetime(2020, 1, 1, 1, 0, 0, tzinfo=UTC)
T2 = datetime(2020, 1, 1, 1, 2, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "text, owner, repo",
    [
        ("example-owner/example-repo", "example-owner", "example-repo"),
        ("github.com/example-owner/example-repo", "example-owner", "example-repo"),
    ],
)
def test_parse_github_repo(text, owner, repo):
    assert parse_github_repo(text) == (owner, repo)


@pytest.mark.parametrize(
    "text",
    ["", "example-repo", "gitlab.com/example-owner/example-repo", "a/b/c/d"],
)
def test_parse_github_repo_invalid(text):
    with pytest.raises(ValueError, match="is not in the form"):
        parse_github_repo(text)


def test_dates_default_is_zero():
    dates = Dates()
    assert (dates.oldest, dates.newest) == (ZERO_TIME, ZERO_TIME)


def test_single_commit():
    dates = Dates().with_commit(T1)
    assert (dates.oldest, dates.newest) == (T1, T1)


def test_newest_first_order():
    dates = Dates().with_commit(T2).with_commit(T1)
    assert (dates.oldest, dates.newest) == (T1, T2)


def test_order_independent():
    forward = Dates().with_commit(T1).with_commit(T2)
    backward = Dates().with_commit(T2).with_commit(T1)
    assert forward == backward


def test_commit_time_normalized_to_utc():
    offset = timezone(timedelta(hours=2))
    local = T1.astimezone(offset)
    dates = Dates().with_commit(local)
    assert dates.oldest == T1
    assert dates.oldest.utcoffset() == timedelta(0)


def test_middle_commit_leaves_bounds():
    middle = T1 + (T2 - T1) / 2
    dates = Dates().with_commit(T2).with_commit(T1).with_commit(middle)
    assert (dates.oldest, dates.newest) == (T1, T2)