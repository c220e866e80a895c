"""GitHub issue tracker client.

All calls go through the GitHub REST API with an httpx async client.
Environment variables are read when the client is built (``from_env``),
not at import time, so tests can monkeypatch them freely.

Public API::

    from sitewatch.tracker import GitHubTracker, TrackerError

    tracker = GitHubTracker.from_env()
    if await tracker.test_connection():
        issues = await tracker.search_open_issues("carrinho 404")
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from .config import ConfigError
from .records import Issue

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Milestone:
    number: int
    title: str
    state: str = "open"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TrackerError(Exception):
    """Raised when a tracker API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GitHubTracker:
    """Issue tracker backed by one GitHub repository."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
    ) -> None:
        self.token = token
        self.owner = owner
        self.repo = repo
        self.api_url = api_url
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "GitHubTracker":
        """Build a client from GITHUB_TOKEN, GITHUB_OWNER, GITHUB_REPO and GITHUB_API_URL."""
        token = os.getenv("GITHUB_TOKEN")
        if not token:
            raise ConfigError("GITHUB_TOKEN not found in environment variables")
        owner = os.getenv("GITHUB_OWNER")
        repo = os.getenv("GITHUB_REPO")
        if not owner or not repo:
            raise ConfigError("GITHUB_OWNER and GITHUB_REPO must be set")
        return cls(
            token,
            owner,
            repo,
            api_url=os.getenv("GITHUB_API_URL") or DEFAULT_API_URL,
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=self.timeout,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, path, params=params, json=json)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 401:
                raise TrackerError(
                    "Authentication failed. Check GITHUB_TOKEN.", status_code=status
                ) from exc
            raise TrackerError(
                f"GitHub API error: {status} - {exc.response.text}",
                status_code=status,
            ) from exc
        except httpx.RequestError as exc:
            raise TrackerError(f"Request failed: {exc}") from exc

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Return True when the token works and the repository resolves."""
        try:
            data = await self._request("GET", self._repo_path)
        except TrackerError as exc:
            LOGGER.error("GitHub connection test failed: %s", exc)
            return False
        LOGGER.info("Connected to repository: %s", data.get("full_name", self.full_name))
        return True

    async def search_open_issues(
        self,
        query: str,
        *,
        per_page: int = 10,
        created_since: Optional[date] = None,
    ) -> List[Issue]:
        """Search open issues of the repository matching a free-text query."""
        q = f"repo:{self.full_name} is:issue state:open {query}".strip()
        if created_since is not None:
            q += f" created:>={created_since.isoformat()}"
        data = await self._request(
            "GET",
            "/search/issues",
            params={"q": q, "sort": "created", "order": "desc", "per_page": per_page},
        )
        return [Issue.from_api(item) for item in data.get("items", [])]

    async def create_issue(
        self,
        title: str,
        body: str,
        *,
        labels: Optional[List[str]] = None,
        assignee: Optional[str] = None,
        milestone_id: Optional[int] = None,
    ) -> Issue:
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        if assignee:
            payload["assignees"] = [assignee]
        if milestone_id is not None:
            payload["milestone"] = milestone_id
        data = await self._request("POST", f"{self._repo_path}/issues", json=payload)
        return Issue.from_api(data)

    async def list_milestones(self, state: str = "open") -> List[Milestone]:
        data = await self._request(
            "GET", f"{self._repo_path}/milestones", params={"state": state}
        )
        return [
            Milestone(
                number=int(item.get("number") or 0),
                title=item.get("title") or "",
                state=item.get("state") or state,
            )
            for item in data or []
        ]

    async def create_comment(self, issue_number: int, body: str) -> None:
        await self._request(
            "POST",
            f"{self._repo_path}/issues/{issue_number}/comments",
            json={"body": body},
        )

    async def update_issue_state(self, issue_number: int, state: str) -> Issue:
        data = await self._request(
            "PATCH",
            f"{self._repo_path}/issues/{issue_number}",
            json={"state": state},
        )
        return Issue.from_api(data)

    async def close_issue(self, issue_number: int, reason: str) -> bool:
        """Close an issue and leave a comment explaining why."""
        try:
            await self.update_issue_state(issue_number, "closed")
            await self.create_comment(
                issue_number,
                f"**Closed automatically**\n\n{reason}\n\n---\n*sitewatch error detection*",
            )
        except TrackerError as exc:
            LOGGER.error("Failed to close issue #%d: %s", issue_number, exc)
            return False
        LOGGER.info("Issue #%d closed automatically", issue_number)
        return True

    async def list_open_issues(self, labels: Optional[List[str]] = None) -> List[Issue]:
        params: Dict[str, Any] = {
            "state": "open",
            "per_page": 100,
            "sort": "created",
            "direction": "desc",
        }
        if labels:
            params["labels"] = ",".join(labels)
        data = await self._request("GET", f"{self._repo_path}/issues", params=params)
        # The issues endpoint also returns pull requests.
        return [Issue.from_api(item) for item in data or [] if "pull_request" not in item]
