import json
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from govulndb.issues import Client, Config, GetIssuesOptions, Issue

OWNER = "test-owner"
REPO = "test-repo"
BASE = "https://api.example.com/api-test/"
ISSUES_URL = f"https://api.example.com/api-test/repos/{OWNER}/{REPO}/issues"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def client():
    return Client(Config(owner=OWNER, repo=REPO, token="token"), base_url=BASE)


def test_destination_and_reference(client):
    assert client.destination() == f"https://github.com/{OWNER}/{REPO}"
    assert client.reference(2) == f"https://github.com/{OWNER}/{REPO}/issues/2"


def test_create_issue(mocked, client):
    mocked.add(responses.POST, ISSUES_URL, json={"number": 15})
    got = client.create_issue(Issue(title="title", body="body"))
    assert got == 15
    request = mocked.calls[0].request
    assert request.method == "POST"
    assert json.loads(request.body) == {"title": "title", "body": "body"}
    assert request.headers["Authorization"] == "Bearer token"


def test_create_issue_sends_labels(mocked, client):
    mocked.add(responses.POST, ISSUES_URL, json={"number": 3})
    got = client.create_issue(Issue(title="t", body="b", labels=["a", "b"]))
    assert got == 3
    assert json.loads(mocked.calls[0].request.body)["labels"] == ["a", "b"]


def test_get_issue_and_issue_exists(mocked, client):
    want = Issue(number=7, title="title", body="body")
    mocked.add(
        responses.GET,
        f"{ISSUES_URL}/7",
        json={"number": 7, "title": "title", "body": "body"},
    )
    assert client.get_issue(7) == want
    assert client.issue_exists(7) is True
    assert all(call.request.method == "GET" for call in mocked.calls)


def test_get_issue_error(mocked, client):
    mocked.add(responses.GET, f"{ISSUES_URL}/9", status=404, json={"message": "Not Found"})
    with pytest.raises(requests.HTTPError, match=r"GetIssue\(9\)"):
        client.get_issue(9)


def test_get_issues(mocked, client):
    iss = Issue(
        number=1,
        title="vuln worker test",
        body="test of go.googlesource.com/vulndb/internal/issues",
        state="open",
    )
    iss2 = Issue(
        number=2,
        title="vuln worker test2",
        body="test of go.googlesource.com/vulndb/internal/issues",
        state="open",
    )
    mocked.add(
        responses.GET,
        ISSUES_URL,
        json=[
            {"number": i.number, "title": i.title, "body": i.body, "state": i.state}
            for i in (iss, iss2)
        ],
    )
    got = client.get_issues(GetIssuesOptions(state="open"))
    assert sorted(got, key=lambda i: i.title) == [iss, iss2]
    params = parse_qs(urlparse(mocked.calls[0].request.url).query)
    assert params["state"] == ["open"]
    assert params["per_page"] == ["100"]


def test_get_issues_follows_pages(mocked, client):
    mocked.add(
        responses.GET,
        ISSUES_URL,
        json=[{"number": 1, "title": "a", "labels": [{"name": "x"}]}],
        headers={"Link": f'<{ISSUES_URL}?page=2>; rel="next"'},
    )
    mocked.add(responses.GET, ISSUES_URL, json=[{"number": 2, "title": "b"}])
    got = client.get_issues(GetIssuesOptions(labels=["x", "y"]))
    assert [i.number for i in got] == [1, 2]
    assert got[0].labels == ["x"]
    assert len(mocked.calls) == 2
    second = parse_qs(urlparse(mocked.calls[1].request.url).query)
    assert second["page"] == ["2"]
    assert second["labels"] == ["x,y"]


def test_created_at_is_parsed(mocked, client):
    mocked.add(
        responses.GET,
        f"{ISSUES_URL}/4",
        json={"number": 4, "created_at": "2022-03-04T05:06:07Z"},
    )
    got = client.get_issue(4)
    assert got.created_at == datetime(2022, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


def test_new_go_id():
    created = datetime(2022, 5, 1, tzinfo=timezone.utc)
    assert Issue(number=7, created_at=created).new_go_id() == "GO-2022-0007"
    assert Issue(number=12345).new_go_id() == "GO-0000-12345"