"""Linear side: webhook normalization and change intents"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from syncbridge.constants import DEFAULT_CYCLE_DAYS, LINEAR_UUID_SUFFIX
from syncbridge.models import LinearTeam, MilestoneKind
from syncbridge.services.content import extract_github_comment_id
from syncbridge.services.events import (
    AssigneeChanged,
    Author,
    CommentCreated,
    CommentEdited,
    EstimateChanged,
    EventIgnored,
    IssueCreated,
    IssueEdited,
    ItemRef,
    LabelAdded,
    LabelRef,
    LabelRemoved,
    MilestoneLinked,
    MilestoneRef,
    PriorityChanged,
    Side,
    StateChanged,
    SyncEvent,
    Unlinked,
)
from syncbridge.services.identity import resolve_state
from syncbridge.services.linear_client import LinearClient

logger = logging.getLogger(__name__)


def generate_linear_uuid() -> str:
    """A UUID whose tail marks the entity as created by this service."""
    return str(uuid.uuid4())[: 36 - len(LINEAR_UUID_SUFFIX)] + LINEAR_UUID_SUFFIX


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class LinearAdapter:
    """Translates Linear webhooks into events and change intents into GraphQL calls"""

    side = Side.LINEAR

    def __init__(self, client: LinearClient, team: LinearTeam):
        self.client = client
        self.team = team

    # Normalization

    @staticmethod
    def owner_id(payload: Dict[str, Any]) -> Optional[str]:
        """The user whose sync should handle this payload."""
        data = payload.get("data") or {}
        return data.get("userId") or data.get("creatorId")

    def item_ref(self, data: Dict[str, Any], url: Optional[str] = None) -> ItemRef:
        number = data.get("number")
        team_key = (data.get("team") or {}).get("key") or self.team.team_key
        key = data.get("identifier") or (f"{team_key}-{number}" if number is not None else None)
        return ItemRef(id=data.get("id"), number=number, key=key, url=url or data.get("url"))

    def normalize(self, payload: Dict[str, Any]) -> List[SyncEvent]:
        action = payload.get("action")
        kind = payload.get("type")
        data = payload.get("data") or {}

        if kind == "Issue" and action == "create":
            return self._normalize_issue_create(payload, data)
        if kind == "Issue" and action == "update":
            return self._normalize_issue_update(payload, data)
        if kind == "Comment" and action in ("create", "update"):
            return self._normalize_comment(payload, data)
        raise EventIgnored(f"Ignoring Linear {kind} {action}.")

    def _label_refs(self, data: Dict[str, Any], ids: List[str]) -> tuple:
        names = {label.get("id"): label for label in data.get("labels") or []}
        return tuple(
            LabelRef(id=label_id, name=(names.get(label_id) or {}).get("name"), color=(names.get(label_id) or {}).get("color"))
            for label_id in ids
            if label_id != self.team.public_label_id
        )

    def _issue_created(self, payload: Dict[str, Any], data: Dict[str, Any], *, from_label: bool, actor_id) -> IssueCreated:
        return IssueCreated(
            source=Side.LINEAR,
            item=self.item_ref(data, payload.get("url")),
            actor_id=actor_id,
            title=data.get("title") or "",
            body=data.get("description"),
            assignee_id=data.get("assigneeId"),
            labels=self._label_refs(data, data.get("labelIds") or []),
            priority=data.get("priority"),
            estimate=data.get("estimate"),
            from_label=from_label,
        )

    def _normalize_issue_create(self, payload, data) -> List[SyncEvent]:
        if self.team.public_label_id not in (data.get("labelIds") or []):
            raise EventIgnored("Issue is not labeled as public.")
        return [self._issue_created(payload, data, from_label=False, actor_id=data.get("creatorId"))]

    def _normalize_issue_update(self, payload, data) -> List[SyncEvent]:
        updated_from = payload.get("updatedFrom") or {}
        # Only an explicit actor says who made this change; creatorId is the ticket's author.
        actor_id = (payload.get("actor") or {}).get("id")
        item = self.item_ref(data, payload.get("url"))
        base = {"source": Side.LINEAR, "item": item, "actor_id": actor_id}
        public = self.team.public_label_id
        events: List[SyncEvent] = []

        if "labelIds" in updated_from:
            old = updated_from.get("labelIds") or []
            new = data.get("labelIds") or []
            if public in old and public not in new:
                return [Unlinked(**base)]
            if public not in old and public in new:
                return [self._issue_created(payload, data, from_label=True, actor_id=actor_id)]
            added = [label_id for label_id in new if label_id not in old]
            removed = [label_id for label_id in old if label_id not in new]
            events.extend(LabelAdded(**base, label=label) for label in self._label_refs(data, added))
            events.extend(LabelRemoved(**base, label=label) for label in self._label_refs(data, removed))

        if "title" in updated_from or "description" in updated_from:
            events.append(
                IssueEdited(
                    **base,
                    title=data.get("title") if "title" in updated_from else None,
                    body=(data.get("description") or "") if "description" in updated_from else None,
                )
            )
        if "stateId" in updated_from:
            events.append(StateChanged(**base, state_id=data.get("stateId")))
        if "assigneeId" in updated_from:
            events.append(
                AssigneeChanged(**base, assignee_id=data.get("assigneeId"), previous_id=updated_from.get("assigneeId"))
            )
        if "priority" in updated_from:
            events.append(
                PriorityChanged(**base, priority=data.get("priority") or 0, previous=updated_from.get("priority"))
            )
        if "estimate" in updated_from:
            events.append(EstimateChanged(**base, estimate=data.get("estimate"), previous=updated_from.get("estimate")))
        for field, kind in (("cycleId", MilestoneKind.CYCLE.value), ("projectId", MilestoneKind.PROJECT.value)):
            if field in updated_from:
                current = data.get(field)
                previous = updated_from.get(field)
                events.append(
                    MilestoneLinked(
                        **base,
                        kind=kind,
                        milestone=MilestoneRef(id=current, kind=kind) if current else None,
                        previous=MilestoneRef(id=previous, kind=kind) if previous else None,
                    )
                )

        if not events:
            raise EventIgnored(f"No synced fields changed on {item.key or item.id}.")
        return events

    def _normalize_comment(self, payload, data) -> List[SyncEvent]:
        issue = data.get("issue") or {}
        item = ItemRef(id=data.get("issueId") or issue.get("id"))
        user = data.get("user") or {}
        author = Author(id=data.get("userId") or user.get("id"), name=user.get("displayName") or user.get("name"))
        common = {
            "source": Side.LINEAR,
            "item": item,
            "actor_id": data.get("userId"),
            "comment_id": data.get("id"),
            "body": data.get("body"),
            "author": author,
        }
        if payload.get("action") == "create":
            return [CommentCreated(**common)]
        if "body" not in (payload.get("updatedFrom") or {}):
            raise EventIgnored(f"Comment {data.get('id')} changed without a body edit.")
        return [CommentEdited(**common)]

    # Reads

    async def get_ticket(self, ticket_id: str, *, public_urls: bool = False) -> Dict[str, Any]:
        ticket = await self.client.get_issue(ticket_id, public_urls=public_urls)
        if not ticket:
            raise LookupError(f"Linear ticket {ticket_id} not found")
        return ticket

    async def public_description(self, ticket_id: str) -> Optional[str]:
        ticket = await self.client.get_issue(ticket_id, public_urls=True)
        return (ticket or {}).get("description")

    async def public_comment_body(self, comment_id: str) -> Optional[str]:
        comment = await self.client.get_comment(comment_id, public_urls=True)
        return (comment or {}).get("body")

    async def list_comments(self, ticket_id: str) -> List[Dict[str, Any]]:
        return await self.client.list_comments(ticket_id, public_urls=True)

    # Change intents

    async def create_ticket(
        self,
        *,
        title: str,
        description: str,
        assignee_id: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
        priority: Optional[int] = None,
        estimate: Optional[int] = None,
    ) -> ItemRef:
        fields: Dict[str, Any] = {
            "id": generate_linear_uuid(),
            "teamId": self.team.team_id,
            "title": title,
            "description": description,
            "labelIds": [self.team.public_label_id, *(label_ids or [])],
        }
        if assignee_id:
            fields["assigneeId"] = assignee_id
        if priority:
            fields["priority"] = priority
        if estimate:
            fields["estimate"] = estimate
        ticket = await self.client.create_issue(fields)
        return ItemRef(
            id=ticket.get("id") or fields["id"],
            number=ticket.get("number"),
            key=ticket.get("identifier"),
            url=ticket.get("url"),
        )

    async def update_title_description(self, ref: ItemRef, *, title: Optional[str], description: Optional[str]) -> str:
        ticket = await self.get_ticket(ref.id)
        fields: Dict[str, Any] = {}
        if title is not None and title != (ticket.get("title") or ""):
            fields["title"] = title
        if description is not None and description.strip() != (ticket.get("description") or "").strip():
            fields["description"] = description
        if not fields:
            return f"Skipping edit for {ticket.get('identifier')}: already up to date."
        await self.client.update_issue(ref.id, fields)
        return f"Updated {', '.join(sorted(fields))} of {ticket.get('identifier')}."

    async def set_state(self, ref: ItemRef, state_id: str) -> str:
        ticket = await self.get_ticket(ref.id)
        current = (ticket.get("state") or {}).get("id")
        if resolve_state(self.team, current) == resolve_state(self.team, state_id):
            return f"Skipping state change for {ticket.get('identifier')}: already in that state."
        await self.client.update_issue(ref.id, {"stateId": state_id})
        return f"Changed state of {ticket.get('identifier')}."

    async def add_label(self, ref: ItemRef, label: LabelRef) -> str:
        ticket = await self.get_ticket(ref.id)
        current = {node["id"] for node in (ticket.get("labels") or {}).get("nodes") or []}
        if label.id in current:
            return f'Skipping label "{label.name}" on {ticket.get("identifier")}: already applied.'
        await self.client.add_issue_label(ref.id, label.id)
        return f'Applied label "{label.name}" to {ticket.get("identifier")}.'

    async def remove_label(self, ref: ItemRef, label: LabelRef) -> str:
        ticket = await self.get_ticket(ref.id)
        current = {node["id"] for node in (ticket.get("labels") or {}).get("nodes") or []}
        if label.id not in current:
            return f'Skipping label "{label.name}" on {ticket.get("identifier")}: not applied.'
        await self.client.remove_issue_label(ref.id, label.id)
        return f'Removed label "{label.name}" from {ticket.get("identifier")}.'

    async def set_priority(self, ref: ItemRef, priority: int, previous: Optional[int] = None) -> str:
        ticket = await self.get_ticket(ref.id)
        current = ticket.get("priority") or 0
        if current == priority:
            return f"Skipping priority for {ticket.get('identifier')}: already {priority}."
        if priority == 0 and previous is not None and current != previous:
            return f"Skipping priority removal for {ticket.get('identifier')}: priority is no longer {previous}."
        await self.client.update_issue(ref.id, {"priority": priority})
        return f"Set priority of {ticket.get('identifier')} to {priority}."

    async def set_estimate(self, ref: ItemRef, estimate: Optional[int], previous: Optional[int] = None) -> str:
        ticket = await self.get_ticket(ref.id)
        current = ticket.get("estimate")
        if current == estimate:
            return f"Skipping estimate for {ticket.get('identifier')}: already {estimate}."
        if estimate is None and previous is not None and current != previous:
            return f"Skipping estimate removal for {ticket.get('identifier')}: estimate is no longer {previous}."
        await self.client.update_issue(ref.id, {"estimate": estimate})
        return f"Set estimate of {ticket.get('identifier')} to {estimate}."

    async def set_assignee(self, ref: ItemRef, user_id: Optional[str], previous_id: Optional[str] = None) -> str:
        """Assign ``user_id``. Clearing only happens while ``previous_id`` (when given) is still assigned."""
        ticket = await self.get_ticket(ref.id)
        current = (ticket.get("assignee") or {}).get("id")
        if current == user_id:
            return f"Skipping assignee for {ticket.get('identifier')}: already assigned."
        if user_id is None and previous_id is not None and current != previous_id:
            return f"Skipping unassign for {ticket.get('identifier')}: assigned to someone else."
        await self.client.update_issue(ref.id, {"assigneeId": user_id})
        if user_id is None:
            return f"Removed assignee from {ticket.get('identifier')}."
        return f"Assigned {ticket.get('identifier')}."

    async def set_milestone(
        self, ref: ItemRef, kind: MilestoneKind, resource_id: Optional[str], previous_id: Optional[str] = None
    ) -> str:
        ticket = await self.get_ticket(ref.id)
        field = "cycleId" if kind is MilestoneKind.CYCLE else "projectId"
        current = (ticket.get(kind.value) or {}).get("id")
        if current == resource_id:
            return f"Skipping {kind.value} for {ticket.get('identifier')}: already set."
        if resource_id is None and previous_id is not None and current != previous_id:
            return f"Skipping {kind.value} removal for {ticket.get('identifier')}: moved elsewhere."
        await self.client.update_issue(ref.id, {field: resource_id})
        if resource_id is None:
            return f"Removed {ticket.get('identifier')} from its {kind.value}."
        return f"Added {ticket.get('identifier')} to {kind.value} {resource_id}."

    async def discard_duplicate(self, ref: ItemRef) -> None:
        """Archive a ticket that lost a creation race."""
        await self.client.archive_issue(ref.id)

    async def attach_github_issue(self, ref: ItemRef, issue: ItemRef, repo_name: str) -> str:
        await self.client.create_attachment(
            ref.id,
            url=issue.url or f"https://github.com/{repo_name}/issues/{issue.number}",
            title=f"GitHub Issue #{issue.number}",
            subtitle=repo_name,
        )
        return f"Created attachment on {ref.key or ref.id} for GitHub issue #{issue.number}."

    async def create_comment(self, ref: ItemRef, body: str) -> str:
        comment = await self.client.create_comment(ref.id, body, comment_id=generate_linear_uuid())
        return comment.get("id")

    async def update_comment_for_github(self, ref: ItemRef, github_comment_id: str, body: str) -> Optional[str]:
        """Patch the comment whose footer points at ``github_comment_id``. None when there is none."""
        for comment in await self.client.list_comments(ref.id):
            if extract_github_comment_id(comment.get("body")) == str(github_comment_id):
                if (comment.get("body") or "").strip() != body.strip():
                    await self.client.update_comment(comment["id"], body)
                return comment["id"]
        return None

    # Cycles and projects

    async def get_resource(self, kind: MilestoneKind, resource_id: str) -> Optional[Dict[str, Any]]:
        if kind is MilestoneKind.CYCLE:
            return await self.client.get_cycle(resource_id)
        return await self.client.get_project(resource_id)

    async def create_resource(
        self, kind: MilestoneKind, *, name: str, description: str, due_on: Optional[datetime]
    ) -> str:
        if kind is MilestoneKind.PROJECT:
            fields: Dict[str, Any] = {"name": name, "description": description, "teamIds": [self.team.team_id]}
            if due_on:
                fields["targetDate"] = due_on.date().isoformat()
            project = await self.client.create_project(fields)
            return project["id"]

        starts_at = datetime.now(timezone.utc)
        ends_at = due_on or starts_at + timedelta(days=DEFAULT_CYCLE_DAYS)
        if ends_at <= starts_at:
            ends_at = starts_at + timedelta(days=1)
        cycle = await self.client.create_cycle(
            {
                "teamId": self.team.team_id,
                "name": name,
                "description": description,
                "startsAt": starts_at.isoformat(),
                "endsAt": ends_at.isoformat(),
            }
        )
        return cycle["id"]

    async def update_resource(
        self, kind: MilestoneKind, resource_id: str, *, name: Optional[str], description: Optional[str], due_on: Optional[datetime]
    ) -> None:
        fields: Dict[str, Any] = {}
        if name:
            fields["name"] = name
        if description:
            fields["description"] = description
        if kind is MilestoneKind.CYCLE:
            if due_on:
                fields["endsAt"] = due_on.isoformat()
            await self.client.update_cycle(resource_id, fields)
        else:
            if due_on:
                fields["targetDate"] = due_on.date().isoformat()
            await self.client.update_project(resource_id, fields)

    @staticmethod
    def resource_end(resource: Dict[str, Any]) -> Optional[datetime]:
        return _parse_datetime(resource.get("endsAt") or resource.get("targetDate"))
