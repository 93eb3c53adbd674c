import json
from datetime import datetime, timezone

import pytest
import responses

from govulndb.ghsa import Client, Identifier, Reference, advisory_from_graphql
from govulndb.osv import parse_time

ENDPOINT = "https://api.example.com/graphql"


def make_node(
    ghsa_id="GHSA-aaaa-bbbb-cccc",
    cve="CVE-1999-0001",
    published="2022-01-01T00:00:00Z",
    updated="2022-02-01T00:00:00Z",
    vulns=1,
    more=False,
):
    return {
        "ghsaId": ghsa_id,
        "identifiers": [{"type": "GHSA", "value": ghsa_id}, {"type": "CVE", "value": cve}],
        "summary": "a summary",
        "description": "a description",
        "origin": "UNSPECIFIED",
        "permalink": f"https://example.com/advisories/{ghsa_id}",
        "references": [{"url": "https://example.com/ref"}],
        "publishedAt": published,
        "updatedAt": updated,
        "vulnerabilities": {
            "nodes": [
                {
                    "package": {"name": f"example.com/mod{i}", "ecosystem": "GO"},
                    "firstPatchedVersion": {"identifier": "1.2.3"},
                    "severity": "HIGH",
                    "updatedAt": updated,
                    "vulnerableVersionRange": "< 1.2.3",
                }
                for i in range(vulns)
            ],
            "pageInfo": {"hasNextPage": more},
        },
    }


def page(nodes, more=False, cursor=""):
    return {
        "data": {
            "securityAdvisories": {
                "nodes": nodes,
                "pageInfo": {"endCursor": cursor, "hasNextPage": more},
            }
        }
    }


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def client():
    return Client("token", endpoint=ENDPOINT)


def sent(call):
    return json.loads(call.request.body)


def test_advisory_from_graphql_converts_fields():
    node = make_node()
    sa = advisory_from_graphql(node)
    assert sa.id == node["ghsaId"]
    assert sa.identifiers == [Identifier("GHSA", node["ghsaId"]), Identifier("CVE", "CVE-1999-0001")]
    assert sa.permalink == node["permalink"]
    assert sa.references == [Reference(url="https://example.com/ref")]
    assert sa.published_at == parse_time(node["publishedAt"])
    assert sa.updated_at == parse_time(node["updatedAt"])
    [vuln] = sa.vulns
    assert vuln.package == "example.com/mod0"
    assert vuln.earliest_fixed_version == "1.2.3"
    assert vuln.vulnerable_version_range == "< 1.2.3"
    assert vuln.severity == "HIGH"


def test_advisory_published_after_updated():
    node = make_node(published="2022-03-01T00:00:00Z", updated="2022-02-01T00:00:00Z")
    with pytest.raises(ValueError, match="after updated at"):
        advisory_from_graphql(node)


def test_advisory_too_many_vulns():
    with pytest.raises(ValueError, match="has more than 100 vulns"):
        advisory_from_graphql(make_node(more=True))


def test_list_pages_and_skips_empty(mocked, client):
    first = make_node(ghsa_id="GHSA-1111-1111-1111")
    empty = make_node(ghsa_id="GHSA-2222-2222-2222", vulns=0)
    second = make_node(ghsa_id="GHSA-3333-3333-3333")
    mocked.add(responses.POST, ENDPOINT, json=page([first, empty], more=True, cursor="c1"))
    mocked.add(responses.POST, ENDPOINT, json=page([second]))

    since = datetime(2022, 1, 1, tzinfo=timezone.utc)
    got = client.list(since)

    assert [sa.id for sa in got] == [first["ghsaId"], second["ghsaId"]]
    assert len(mocked.calls) == 2
    assert sent(mocked.calls[0])["variables"]["cursor"] is None
    assert sent(mocked.calls[1])["variables"]["cursor"] == "c1"
    assert parse_time(sent(mocked.calls[0])["variables"]["since"]) == since
    assert mocked.calls[0].request.headers["Authorization"] == "Bearer token"


def test_list_propagates_conversion_error(mocked, client):
    bad = make_node(published="2023-01-01T00:00:00Z", updated="2022-01-01T00:00:00Z")
    mocked.add(responses.POST, ENDPOINT, json=page([bad]))
    with pytest.raises(ValueError, match="after updated at"):
        client.list(datetime(2022, 1, 1, tzinfo=timezone.utc))


def test_list_for_cve_requires_exact_match(mocked, client):
    cve = "CVE-1999-0001"
    match = make_node(ghsa_id="GHSA-1111-1111-1111", cve=cve)
    other = make_node(ghsa_id="GHSA-2222-2222-2222", cve="CVE-1999-0002")
    mocked.add(responses.POST, ENDPOINT, json=page([match, other]))
    got = client.list_for_cve(cve)
    assert [sa.id for sa in got] == [match["ghsaId"]]
    assert sent(mocked.calls[0])["variables"]["id"] == {"type": "CVE", "value": cve}


def test_list_for_cve_too_many(mocked, client):
    mocked.add(responses.POST, ENDPOINT, json=page([], more=True))
    with pytest.raises(ValueError, match="has more than 100 GHSAs"):
        client.list_for_cve("CVE-1999-0001")


def test_fetch_ghsa(mocked, client):
    node = make_node(ghsa_id="GHSA-4444-4444-4444")
    mocked.add(responses.POST, ENDPOINT, json={"data": {"securityAdvisory": node}})
    got = client.fetch_ghsa(node["ghsaId"])
    assert got.id == node["ghsaId"]
    assert sent(mocked.calls[0])["variables"]["id"] == node["ghsaId"]


def test_graphql_errors_raise(mocked, client):
    mocked.add(responses.POST, ENDPOINT, json={"errors": [{"message": "boom"}]})
    with pytest.raises(RuntimeError, match="boom"):
        client.fetch_ghsa("GHSA-4444-4444-4444")