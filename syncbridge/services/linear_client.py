"""Linear GraphQL API client"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

_RETRY_STATUSES = {429, 502, 503, 504}

# Asks Linear to return signed, publicly readable upload URLs in markdown fields
PUBLIC_FILE_URLS_HEADER = "public-file-urls-expire-in"

_ISSUE_FIELDS = """
    id
    identifier
    number
    title
    description
    url
    priority
    estimate
    state { id name }
    assignee { id }
    labels { nodes { id name color } }
    cycle { id }
    project { id }
    team { id key }
"""


class LinearAPIError(Exception):
    """Transport failure, GraphQL error or unsuccessful mutation"""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors


class LinearClient:
    """Thin async wrapper around the Linear GraphQL API"""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.linear.app/graphql",
        timeout: float = 10.0,
        public_file_expiry_seconds: int = 604800,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.url = base_url
        self.public_file_expiry_seconds = public_file_expiry_seconds
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            headers={"Authorization": api_key, "Content-Type": "application/json"},
        )

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def query(
        self,
        document: str,
        variables: Optional[Dict[str, Any]] = None,
        *,
        public_urls: bool = False,
        max_attempts: int = 3,
        base_delay_s: float = 0.5,
    ) -> Dict[str, Any]:
        """Run a GraphQL document and return its ``data``.

        Queries are retried on transient failures; mutations are sent once.
        """
        retryable = not document.lstrip().startswith("mutation")
        headers = {PUBLIC_FILE_URLS_HEADER: str(self.public_file_expiry_seconds)} if public_urls else None
        attempt = 1
        while True:
            try:
                response = await self._http.post(
                    self.url,
                    json={"query": document, "variables": variables or {}},
                    headers=headers,
                )
                if response.status_code >= 300:
                    raise LinearAPIError(
                        f"Linear API returned {response.status_code}: {response.text[:200]}",
                        status_code=response.status_code,
                    )
                body = response.json()
                if body.get("errors"):
                    messages = "; ".join(str(e.get("message")) for e in body["errors"])
                    raise LinearAPIError(f"Linear API error: {messages}", errors=body["errors"])
                return body.get("data") or {}
            except (LinearAPIError, httpx.TimeoutException, httpx.TransportError) as e:
                transient = not isinstance(e, LinearAPIError) or e.status_code in _RETRY_STATUSES
                if attempt >= max_attempts or not (retryable and transient):
                    raise
                await asyncio.sleep(base_delay_s * (2 ** (attempt - 1)))
                attempt += 1

    async def _mutate(self, document: str, variables: Dict[str, Any], field: str) -> Dict[str, Any]:
        data = await self.query(document, variables)
        result = data.get(field) or {}
        if not result.get("success"):
            raise LinearAPIError(f"Linear mutation {field} was not successful")
        return result

    # Issues

    async def get_issue(self, issue_id: str, *, public_urls: bool = False) -> Optional[Dict[str, Any]]:
        data = await self.query(
            f"query Issue($id: String!) {{ issue(id: $id) {{ {_ISSUE_FIELDS} }} }}",
            {"id": issue_id},
            public_urls=public_urls,
        )
        return data.get("issue")

    async def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._mutate(
            f"mutation IssueCreate($input: IssueCreateInput!) {{"
            f" issueCreate(input: $input) {{ success issue {{ {_ISSUE_FIELDS} }} }} }}",
            {"input": fields},
            "issueCreate",
        )
        issue = result.get("issue") or {}
        logger.info(f"Created Linear ticket {issue.get('identifier')}")
        return issue

    async def update_issue(self, issue_id: str, fields: Dict[str, Any]) -> None:
        await self._mutate(
            "mutation IssueUpdate($id: String!, $input: IssueUpdateInput!) {"
            " issueUpdate(id: $id, input: $input) { success } }",
            {"id": issue_id, "input": fields},
            "issueUpdate",
        )

    async def add_issue_label(self, issue_id: str, label_id: str) -> None:
        await self._mutate(
            "mutation IssueAddLabel($id: String!, $labelId: String!) {"
            " issueAddLabel(id: $id, labelId: $labelId) { success } }",
            {"id": issue_id, "labelId": label_id},
            "issueAddLabel",
        )

    async def remove_issue_label(self, issue_id: str, label_id: str) -> None:
        await self._mutate(
            "mutation IssueRemoveLabel($id: String!, $labelId: String!) {"
            " issueRemoveLabel(id: $id, labelId: $labelId) { success } }",
            {"id": issue_id, "labelId": label_id},
            "issueRemoveLabel",
        )

    async def archive_issue(self, issue_id: str) -> None:
        await self._mutate(
            "mutation IssueArchive($id: String!) { issueArchive(id: $id) { success } }",
            {"id": issue_id},
            "issueArchive",
        )
        logger.info(f"Archived Linear ticket {issue_id}")

    # Labels

    async def get_label(self, label_id: str) -> Optional[Dict[str, Any]]:
        data = await self.query(
            "query IssueLabel($id: String!) { issueLabel(id: $id) { id name color } }",
            {"id": label_id},
        )
        return data.get("issueLabel")

    async def find_label(self, team_id: str, name: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive lookup among the team's labels and workspace labels."""
        data = await self.query(
            "query FindLabel($name: String!, $teamId: ID!) {"
            " issueLabels(filter: { name: { eqIgnoreCase: $name },"
            " or: [{ team: { id: { eq: $teamId } } }, { team: { null: true } }] }) {"
            " nodes { id name color } } }",
            {"name": name, "teamId": team_id},
        )
        nodes = (data.get("issueLabels") or {}).get("nodes") or []
        return nodes[0] if nodes else None

    async def create_label(self, team_id: str, name: str, color: Optional[str] = None) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"teamId": team_id, "name": name}
        if color:
            fields["color"] = color if color.startswith("#") else f"#{color}"
        result = await self._mutate(
            "mutation LabelCreate($input: IssueLabelCreateInput!) {"
            " issueLabelCreate(input: $input) { success issueLabel { id name color } } }",
            {"input": fields},
            "issueLabelCreate",
        )
        logger.info(f'Created Linear label "{name}" in team {team_id}')
        return result.get("issueLabel") or {}

    # Comments

    async def get_comment(self, comment_id: str, *, public_urls: bool = False) -> Optional[Dict[str, Any]]:
        data = await self.query(
            "query Comment($id: String!) { comment(id: $id) { id body user { id name displayName } } }",
            {"id": comment_id},
            public_urls=public_urls,
        )
        return data.get("comment")

    async def list_comments(self, issue_id: str, *, public_urls: bool = False) -> List[Dict[str, Any]]:
        data = await self.query(
            "query IssueComments($id: String!) { issue(id: $id) {"
            " comments(first: 250) { nodes { id body createdAt user { id name displayName } } } } }",
            {"id": issue_id},
            public_urls=public_urls,
        )
        issue = data.get("issue") or {}
        nodes = (issue.get("comments") or {}).get("nodes") or []
        return sorted(nodes, key=lambda c: c.get("createdAt") or "")

    async def create_comment(self, issue_id: str, body: str, *, comment_id: Optional[str] = None) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"issueId": issue_id, "body": body}
        if comment_id:
            fields["id"] = comment_id
        result = await self._mutate(
            "mutation CommentCreate($input: CommentCreateInput!) {"
            " commentCreate(input: $input) { success comment { id } } }",
            {"input": fields},
            "commentCreate",
        )
        return result.get("comment") or {}

    async def update_comment(self, comment_id: str, body: str) -> None:
        await self._mutate(
            "mutation CommentUpdate($id: String!, $input: CommentUpdateInput!) {"
            " commentUpdate(id: $id, input: $input) { success } }",
            {"id": comment_id, "input": {"body": body}},
            "commentUpdate",
        )

    # Cycles and projects

    async def get_cycle(self, cycle_id: str) -> Optional[Dict[str, Any]]:
        data = await self.query(
            "query Cycle($id: String!) { cycle(id: $id) { id name number description endsAt } }",
            {"id": cycle_id},
        )
        return data.get("cycle")

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        data = await self.query(
            "query Project($id: String!) { project(id: $id) { id name description targetDate } }",
            {"id": project_id},
        )
        return data.get("project")

    async def create_cycle(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._mutate(
            "mutation CycleCreate($input: CycleCreateInput!) {"
            " cycleCreate(input: $input) { success cycle { id } } }",
            {"input": fields},
            "cycleCreate",
        )
        return result.get("cycle") or {}

    async def update_cycle(self, cycle_id: str, fields: Dict[str, Any]) -> None:
        await self._mutate(
            "mutation CycleUpdate($id: String!, $input: CycleUpdateInput!) {"
            " cycleUpdate(id: $id, input: $input) { success } }",
            {"id": cycle_id, "input": fields},
            "cycleUpdate",
        )

    async def create_project(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._mutate(
            "mutation ProjectCreate($input: ProjectCreateInput!) {"
            " projectCreate(input: $input) { success project { id } } }",
            {"input": fields},
            "projectCreate",
        )
        return result.get("project") or {}

    async def update_project(self, project_id: str, fields: Dict[str, Any]) -> None:
        await self._mutate(
            "mutation ProjectUpdate($id: String!, $input: ProjectUpdateInput!) {"
            " projectUpdate(id: $id, input: $input) { success } }",
            {"id": project_id, "input": fields},
            "projectUpdate",
        )

    # Users

    async def get_viewer(self) -> Dict[str, Any]:
        data = await self.query("query { viewer { id name displayName email } }")
        return data.get("viewer") or {}

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        data = await self.query(
            "query User($id: String!) { user(id: $id) { id name displayName email } }",
            {"id": user_id},
        )
        return data.get("user")

    # Attachments

    async def create_attachment(self, issue_id: str, url: str, title: str, subtitle: Optional[str] = None) -> None:
        fields: Dict[str, Any] = {"issueId": issue_id, "url": url, "title": title}
        if subtitle:
            fields["subtitle"] = subtitle
        await self._mutate(
            "mutation AttachmentCreate($input: AttachmentCreateInput!) {"
            " attachmentCreate(input: $input) { success } }",
            {"input": fields},
            "attachmentCreate",
        )

    # Webhooks

    async def list_webhooks(self) -> List[Dict[str, Any]]:
        data = await self.query("query { webhooks { nodes { id url team { id } } } }")
        return (data.get("webhooks") or {}).get("nodes") or []

    async def delete_webhook(self, webhook_id: str) -> None:
        await self._mutate(
            "mutation WebhookDelete($id: String!) { webhookDelete(id: $id) { success } }",
            {"id": webhook_id},
            "webhookDelete",
        )
        logger.info(f"Deleted Linear webhook {webhook_id}")
