"""A small client for the GitHub issues API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import parse_qs, urlparse

import requests

from govulndb.osv import parse_time

DEFAULT_BASE_URL = "https://api.github.com/"
_PER_PAGE = 100
_TIMEOUT = 60


@dataclass
class Issue:
    """A GitHub issue."""

    number: int = 0
    title: str = ""
    body: str = ""
    state: str = ""
    labels: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    def new_go_id(self) -> str:
        """Return a Go advisory ID built from the creation year and issue number."""
        year = self.created_at.year if self.created_at is not None else 0
        return f"GO-{year:04d}-{self.number:04d}"


@dataclass
class GetIssuesOptions:
    """Filters for Client.get_issues.

    state is one of "open", "closed" or "all"; GitHub treats an empty
    state as "open".
    """

    state: str = ""
    labels: list[str] = field(default_factory=list)


@dataclass
class Config:
    """The repository to work on and the token that authorizes requests."""

    owner: str = ""
    repo: str = ""
    token: str = ""


def _issue_from_data(data: dict[str, Any]) -> Issue:
    created = data.get("created_at")
    labels = data.get("labels")
    return Issue(
        number=data.get("number") or 0,
        title=data.get("title") or "",
        body=data.get("body") or "",
        state=data.get("state") or "",
        labels=[label.get("name") or "" for label in labels] if labels else [],
        created_at=parse_time(created) if created else None,
    )


def _next_page(response: requests.Response) -> int:
    url = response.links.get("next", {}).get("url")
    if not url:
        return 0
    pages = parse_qs(urlparse(url).query).get("page")
    if not pages:
        return 0
    try:
        return int(pages[0])
    except ValueError:
        return 0


class Client:
    """A client for the issues of one GitHub repository."""

    def __init__(
        self,
        config: Config,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
    ) -> None:
        self.owner = config.owner
        self.repo = config.repo
        self._token = config.token
        self._base_url = base_url.rstrip("/")
        self._session = session if session is not None else requests.Session()

    def destination(self) -> str:
        """Return the URL of the GitHub repository."""
        return f"https://github.com/{self.owner}/{self.repo}"

    def reference(self, num: int) -> str:
        """Return the URL of the given issue."""
        return f"{self.destination()}/issues/{num}"

    def _request(self, label: str, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github.v3+json",
        }
        url = f"{self._base_url}/repos/{self.owner}/{self.repo}{path}"
        try:
            response = self._session.request(
                method, url, headers=headers, timeout=_TIMEOUT, **kwargs
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise exc.__class__(
                f"{label}: {exc}", response=exc.response, request=exc.request
            ) from exc
        return response

    def issue_exists(self, number: int) -> bool:
        """Report whether the issue with the given number exists."""
        data = self._request(f"IssueExists({number})", "GET", f"/issues/{number}").json()
        if data is None:
            return False
        print(f"ID = {data.get('id') or 0}, Number = {data.get('number') or 0}")
        return True

    def get_issue(self, number: int) -> Issue:
        """Return the issue with the given number."""
        data = self._request(f"GetIssue({number})", "GET", f"/issues/{number}").json()
        return _issue_from_data(data or {})

    def get_issues(self, opts: GetIssuesOptions) -> list[Issue]:
        """Return all issues matching opts, following every page."""
        params: dict[str, Any] = {"per_page": _PER_PAGE}
        if opts.state:
            params["state"] = opts.state
        if opts.labels:
            params["labels"] = ",".join(opts.labels)

        found: list[Issue] = []
        page = 1
        while True:
            params["page"] = page
            response = self._request("GetIssues()", "GET", "/issues", params=params)
            found.extend(_issue_from_data(item) for item in response.json() or [])
            page = _next_page(response)
            if page == 0:
                break
        return found

    def create_issue(self, iss: Issue) -> int:
        """Create an issue and return its number."""
        payload: dict[str, Any] = {"title": iss.title, "body": iss.body}
        if iss.labels:
            payload["labels"] = list(iss.labels)
        data = self._request(f"CreateIssue({iss.title})", "POST", "/issues", json=payload).json()
        return (data or {}).get("number") or 0