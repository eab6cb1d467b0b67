"""GitHub REST API client"""
import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from syncbridge.constants import DEFAULT_LABEL_COLOR, LABEL_DESCRIPTION

logger = logging.getLogger(__name__)

_IDEMPOTENT_METHODS = {"GET", "PUT", "PATCH", "DELETE"}
_RETRY_STATUSES = {429, 502, 503, 504}


class GitHubAPIError(Exception):
    """Non-success response from the GitHub API"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def error_codes(self) -> List[str]:
        errors = (self.payload or {}).get("errors") if isinstance(self.payload, dict) else None
        return [e.get("code") for e in errors or [] if isinstance(e, dict)]

    @property
    def already_exists(self) -> bool:
        return self.status_code == 422 and "already_exists" in self.error_codes


class GitHubClient:
    """Thin async wrapper around the repository-scoped parts of the GitHub API"""

    def __init__(
        self,
        token: str,
        repo_name: str,
        *,
        base_url: str = "https://api.github.com",
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.repo_name = repo_name
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": f"{repo_name}, syncbridge",
            },
        )

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.repo_name}"

    @staticmethod
    def _should_retry(method: str, exc: Exception) -> bool:
        """Retry transient failures, but only where repeating the call is harmless."""
        if method.upper() not in _IDEMPOTENT_METHODS:
            return False
        if isinstance(exc, GitHubAPIError):
            return exc.status_code in _RETRY_STATUSES
        return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        max_attempts: int = 3,
        base_delay_s: float = 0.5,
    ) -> Any:
        """Send a request with small exponential backoff on transient errors."""
        attempt = 1
        while True:
            try:
                response = await self._http.request(method, path, json=json, params=params)
                if response.status_code >= 300:
                    try:
                        payload = response.json()
                    except ValueError:
                        payload = response.text
                    message = payload.get("message") if isinstance(payload, dict) else payload
                    raise GitHubAPIError(
                        f"{method} {path} failed with {response.status_code}: {message}",
                        status_code=response.status_code,
                        payload=payload,
                    )
                if response.status_code == 204 or not response.content:
                    return None
                return response.json()
            except Exception as e:
                if attempt >= max_attempts or not self._should_retry(method, e):
                    raise
                await asyncio.sleep(base_delay_s * (2 ** (attempt - 1)))
                attempt += 1

    # Issues

    async def get_issue(self, number: int) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo_path}/issues/{number}")

    async def create_issue(
        self,
        title: str,
        body: str,
        *,
        assignees: Optional[List[str]] = None,
        labels: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": title, "body": body}
        if assignees:
            payload["assignees"] = assignees
        if labels:
            payload["labels"] = labels
        issue = await self._request("POST", f"{self._repo_path}/issues", json=payload)
        logger.info(f"Created issue #{issue['number']} in {self.repo_name}")
        return issue

    async def update_issue(self, number: int, **fields) -> Dict[str, Any]:
        """PATCH an issue. Accepts title, body, state, state_reason, milestone, ..."""
        return await self._request("PATCH", f"{self._repo_path}/issues/{number}", json=fields)

    # Comments

    async def list_issue_comments(self, number: int) -> List[Dict[str, Any]]:
        comments: List[Dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._request(
                "GET",
                f"{self._repo_path}/issues/{number}/comments",
                params={"per_page": 100, "page": page},
            )
            comments.extend(batch or [])
            if not batch or len(batch) < 100:
                return comments
            page += 1

    async def create_comment(self, number: int, body: str) -> Dict[str, Any]:
        return await self._request("POST", f"{self._repo_path}/issues/{number}/comments", json={"body": body})

    async def update_comment(self, comment_id: int, body: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"{self._repo_path}/issues/comments/{comment_id}", json={"body": body})

    # Labels

    async def get_label(self, name: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive lookup by name; None when the label does not exist."""
        try:
            return await self._request("GET", f"{self._repo_path}/labels/{quote(name, safe='')}")
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise

    async def create_label(self, name: str, color: Optional[str] = None, description: str = LABEL_DESCRIPTION) -> Dict[str, Any]:
        """Create a repository label; an existing label with the same name counts as success."""
        payload = {
            "name": name,
            "color": (color or DEFAULT_LABEL_COLOR).lstrip("#"),
            "description": description,
        }
        try:
            label = await self._request("POST", f"{self._repo_path}/labels", json=payload)
            logger.info(f'Created label "{name}" in {self.repo_name}')
            return label
        except GitHubAPIError as e:
            if not e.already_exists:
                raise
        existing = await self.get_label(name)
        return existing or {"name": name}

    async def list_issue_labels(self, number: int) -> List[str]:
        labels = await self._request("GET", f"{self._repo_path}/issues/{number}/labels", params={"per_page": 100})
        return [label["name"] for label in labels or []]

    async def add_labels(self, number: int, names: List[str]) -> List[str]:
        """Add labels to an issue without touching the ones already there."""
        labels = await self._request(
            "POST", f"{self._repo_path}/issues/{number}/labels", json={"labels": list(names)}
        )
        return [label["name"] for label in labels or []]

    async def remove_label(self, number: int, name: str) -> bool:
        """Remove one label from an issue. Returns False when it was not applied."""
        try:
            await self._request("DELETE", f"{self._repo_path}/issues/{number}/labels/{quote(name, safe='')}")
            return True
        except GitHubAPIError as e:
            if e.status_code == 404:
                return False
            raise

    # Assignees

    async def add_assignees(self, number: int, logins: List[str]) -> Dict[str, Any]:
        return await self._request(
            "POST", f"{self._repo_path}/issues/{number}/assignees", json={"assignees": list(logins)}
        )

    async def remove_assignees(self, number: int, logins: List[str]) -> Dict[str, Any]:
        return await self._request(
            "DELETE", f"{self._repo_path}/issues/{number}/assignees", json={"assignees": list(logins)}
        )

    # Milestones

    async def list_milestones(self) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", f"{self._repo_path}/milestones", params={"state": "all", "per_page": 100}
        ) or []

    async def create_milestone(
        self,
        title: str,
        *,
        description: Optional[str] = None,
        state: str = "open",
        due_on: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a milestone; an existing one with the same title is returned instead."""
        payload: Dict[str, Any] = {"title": title, "state": state}
        if description is not None:
            payload["description"] = description
        if due_on:
            payload["due_on"] = due_on
        try:
            milestone = await self._request("POST", f"{self._repo_path}/milestones", json=payload)
            logger.info(f'Created milestone "{title}" in {self.repo_name}')
            return milestone
        except GitHubAPIError as e:
            if not e.already_exists:
                raise
        for milestone in await self.list_milestones():
            if milestone.get("title") == title:
                logger.info(f'Milestone "{title}" already exists in {self.repo_name}')
                return milestone
        raise GitHubAPIError(f'Milestone "{title}" reported as existing but not found', status_code=422)

    async def set_issue_milestone(self, number: int, milestone_number: Optional[int]) -> Dict[str, Any]:
        return await self.update_issue(number, milestone=milestone_number)

    # Users

    async def get_authenticated_user(self) -> Dict[str, Any]:
        return await self._request("GET", "/user")

    async def get_user(self, user_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/user/{user_id}")

    # Webhooks

    async def list_hooks(self) -> List[Dict[str, Any]]:
        return await self._request("GET", f"{self._repo_path}/hooks") or []

    async def delete_hook(self, hook_id: int):
        await self._request("DELETE", f"{self._repo_path}/hooks/{hook_id}")
        logger.info(f"Deleted webhook {hook_id} from {self.repo_name}")
