"""Fetching GitHub security advisories that affect Go."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import requests

from govulndb.osv import ZERO_TIME, format_time, parse_time

GRAPHQL_URL = "https://api.github.com/graphql"
_TIMEOUT = 60

_ADVISORY_FIELDS = """
    ghsaId
    identifiers { type value }
    summary
    description
    origin
    permalink
    references { url }
    publishedAt
    updatedAt
    vulnerabilities(first: 100, ecosystem: $go) {
      nodes {
        package { name ecosystem }
        firstPatchedVersion { identifier }
        severity
        updatedAt
        vulnerableVersionRange
      }
      pageInfo { hasNextPage }
    }
"""

_LIST_QUERY = (
    "query($go: SecurityAdvisoryEcosystem!, $since: DateTime!, $cursor: String) {\n"
    "  securityAdvisories(updatedSince: $since, first: 100, after: $cursor) {\n"
    "    nodes {" + _ADVISORY_FIELDS + "}\n"
    "    pageInfo { endCursor hasNextPage }\n"
    "  }\n"
    "}"
)

_LIST_FOR_CVE_QUERY = (
    "query($go: SecurityAdvisoryEcosystem!, $id: SecurityAdvisoryIdentifierFilter) {\n"
    "  securityAdvisories(identifier: $id, first: 100) {\n"
    "    nodes {" + _ADVISORY_FIELDS + "}\n"
    "    pageInfo { endCursor hasNextPage }\n"
    "  }\n"
    "}"
)

_FETCH_QUERY = (
    "query($go: SecurityAdvisoryEcosystem!, $id: String!) {\n"
    "  securityAdvisory(ghsaId: $id) {" + _ADVISORY_FIELDS + "}\n"
    "}"
)

_GO_ECOSYSTEM = "GO"


@dataclass
class Identifier:
    """An advisory identifier under some scheme, such as GHSA or CVE."""

    type: str = ""
    value: str = ""


@dataclass
class Reference:
    """A URL linked to by an advisory."""

    url: str = ""


@dataclass
class Vuln:
    """A vulnerable Go package or module named by an advisory."""

    package: str = ""
    severity: str = ""
    earliest_fixed_version: str = ""
    vulnerable_version_range: str = ""
    updated_at: datetime = ZERO_TIME


@dataclass
class SecurityAdvisory:
    """A GitHub security advisory."""

    id: str = ""
    identifiers: list[Identifier] = field(default_factory=list)
    summary: str = ""
    description: str = ""
    origin: str = ""
    permalink: str = ""
    published_at: datetime = ZERO_TIME
    references: list[Reference] = field(default_factory=list)
    updated_at: datetime = ZERO_TIME
    vulns: list[Vuln] = field(default_factory=list)


def _obj(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _time(value: Any) -> datetime:
    return parse_time(value) if value else ZERO_TIME


def _vuln_nodes(node: dict) -> list[dict]:
    return [_obj(n) for n in _obj(node.get("vulnerabilities")).get("nodes") or []]


def advisory_from_graphql(node: dict | None) -> SecurityAdvisory:
    """Convert an advisory node of the GraphQL response.

    Raises ValueError if the advisory was updated before it was
    published, or if it lists more than 100 vulnerabilities.
    """
    node = _obj(node)
    ghsa_id = node.get("ghsaId") or ""
    published = _time(node.get("publishedAt"))
    updated = _time(node.get("updatedAt"))
    if published > updated:
        raise ValueError(
            f"{ghsa_id}: published at {format_time(published)}, "
            f"after updated at {format_time(updated)}"
        )
    page_info = _obj(_obj(node.get("vulnerabilities")).get("pageInfo"))
    if page_info.get("hasNextPage"):
        raise ValueError(f"{ghsa_id} has more than 100 vulns")
    return SecurityAdvisory(
        id=ghsa_id,
        identifiers=[
            Identifier(type=_obj(i).get("type") or "", value=_obj(i).get("value") or "")
            for i in node.get("identifiers") or []
        ],
        summary=node.get("summary") or "",
        description=node.get("description") or "",
        origin=node.get("origin") or "",
        permalink=node.get("permalink") or "",
        published_at=published,
        references=[Reference(url=_obj(r).get("url") or "") for r in node.get("references") or []],
        updated_at=updated,
        vulns=[
            Vuln(
                package=_obj(v.get("package")).get("name") or "",
                severity=v.get("severity") or "",
                earliest_fixed_version=_obj(v.get("firstPatchedVersion")).get("identifier") or "",
                vulnerable_version_range=v.get("vulnerableVersionRange") or "",
                updated_at=_time(v.get("updatedAt")),
            )
            for v in _vuln_nodes(node)
        ],
    )


class Client:
    """A client for the GitHub security advisory GraphQL API."""

    def __init__(
        self,
        access_token: str,
        endpoint: str = GRAPHQL_URL,
        session: requests.Session | None = None,
    ) -> None:
        self._token = access_token
        self._endpoint = endpoint
        self._session = session if session is not None else requests.Session()

    def _query(self, query: str, variables: dict[str, Any]) -> dict:
        response = self._session.post(
            self._endpoint,
            json={"query": query, "variables": variables},
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=_TIMEOUT,
        )
        response.raise_for_status()
        payload = _obj(response.json())
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(_obj(e).get("message", e)) for e in errors)
            raise RuntimeError(f"GraphQL query failed: {messages}")
        return _obj(payload.get("data"))

    def list(self, since: datetime) -> list[SecurityAdvisory]:
        """Return all advisories affecting Go that were published or updated since the given time."""
        variables: dict[str, Any] = {
            "cursor": None,
            "go": _GO_ECOSYSTEM,
            "since": format_time(since),
        }
        advisories: list[SecurityAdvisory] = []
        while True:
            sas = _obj(self._query(_LIST_QUERY, variables).get("securityAdvisories"))
            for node in sas.get("nodes") or []:
                if not _vuln_nodes(_obj(node)):
                    continue
                advisories.append(advisory_from_graphql(node))
            page_info = _obj(sas.get("pageInfo"))
            if not page_info.get("hasNextPage"):
                break
            variables["cursor"] = page_info.get("endCursor")
        return advisories

    def list_for_cve(self, cve: str) -> list[SecurityAdvisory]:
        """Return the advisories affecting Go that name the given CVE exactly."""
        variables = {"id": {"type": "CVE", "value": cve}, "go": _GO_ECOSYSTEM}
        sas = _obj(self._query(_LIST_FOR_CVE_QUERY, variables).get("securityAdvisories"))
        if _obj(sas.get("pageInfo")).get("hasNextPage"):
            raise ValueError(f"CVE {cve} has more than 100 GHSAs")
        advisories: list[SecurityAdvisory] = []
        for node in sas.get("nodes") or []:
            node = _obj(node)
            if not _vuln_nodes(node):
                continue
            exact = any(
                _obj(i).get("type") == "CVE" and _obj(i).get("value") == cve
                for i in node.get("identifiers") or []
            )
            if not exact:
                continue
            advisories.append(advisory_from_graphql(node))
        return advisories

    def fetch_ghsa(self, ghsa_id: str) -> SecurityAdvisory:
        """Return the advisory with the given GitHub Security Advisory ID."""
        variables = {"id": ghsa_id, "go": _GO_ECOSYSTEM}
        return advisory_from_graphql(self._query(_FETCH_QUERY, variables).get("securityAdvisory"))