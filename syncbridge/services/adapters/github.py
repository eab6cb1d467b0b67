"""GitHub side: webhook normalization and change intents"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from syncbridge.constants import (
    ESTIMATE_LABEL_COLOR,
    PRIORITY_LABELS,
    SYNC_FOOTER,
    estimate_for_label,
    estimate_label,
    priority_for_label,
)
from syncbridge.models import GitHubRepo
from syncbridge.services.content import extract_linear_comment_id, strip_footer
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
    MilestoneEdited,
    MilestoneLinked,
    MilestoneRef,
    PriorityChanged,
    Side,
    StateChanged,
    StateReason,
    SyncEvent,
)
from syncbridge.services.github_client import GitHubClient
from syncbridge.services.identity import StateMapping, github_state_mapping

logger = logging.getLogger(__name__)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def milestone_ref(milestone: Dict[str, Any]) -> MilestoneRef:
    return MilestoneRef(
        id=str(milestone.get("number")),
        title=milestone.get("title"),
        description=milestone.get("description"),
        due_on=_parse_datetime(milestone.get("due_on")),
    )


def _author(user: Optional[Dict[str, Any]], url: Optional[str] = None) -> Optional[Author]:
    if not user:
        return None
    return Author(id=str(user.get("id")), name=user.get("login"), url=url or user.get("html_url"))


class GitHubAdapter:
    """Translates GitHub webhooks into events and change intents into REST calls"""

    side = Side.GITHUB

    def __init__(self, client: GitHubClient, repo: GitHubRepo, trigger_label: str = "linear"):
        self.client = client
        self.repo = repo
        self.trigger_label = trigger_label

    # Normalization

    def is_trigger_label(self, name: Optional[str]) -> bool:
        return bool(name) and name.lower() == self.trigger_label.lower()

    @staticmethod
    def item_ref(issue: Dict[str, Any]) -> ItemRef:
        return ItemRef(id=str(issue.get("id")), number=issue.get("number"), url=issue.get("html_url"))

    def normalize(self, event_name: str, payload: Dict[str, Any]) -> List[SyncEvent]:
        action = payload.get("action")
        sender = payload.get("sender") or {}

        if event_name == "ping":
            raise EventIgnored("Webhook received.")
        if event_name == "milestone":
            return self._normalize_milestone(action, payload, sender)
        if event_name == "issue_comment":
            return self._normalize_comment(action, payload, sender)
        if event_name != "issues":
            raise EventIgnored(f"Not an issue event: {event_name}.")
        return self._normalize_issue(action, payload, sender)

    def _base(self, payload: Dict[str, Any], sender: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "source": Side.GITHUB,
            "item": self.item_ref(payload.get("issue") or {}),
            "actor_id": str(sender["id"]) if sender.get("id") is not None else None,
            "actor_login": sender.get("login"),
        }

    def _issue_created(self, payload: Dict[str, Any], sender: Dict[str, Any], *, from_label: bool) -> IssueCreated:
        issue = payload.get("issue") or {}
        priority = None
        estimate = None
        labels = []
        for label in issue.get("labels") or []:
            name = label.get("name")
            if self.is_trigger_label(name):
                continue
            if priority_for_label(name) is not None:
                priority = priority or priority_for_label(name)
            elif estimate_for_label(name) is not None:
                estimate = estimate if estimate is not None else estimate_for_label(name)
            else:
                labels.append(LabelRef(name=name, color=label.get("color")))
        assignee = issue.get("assignee") or {}
        return IssueCreated(
            **self._base(payload, sender),
            title=issue.get("title") or "",
            body=issue.get("body"),
            assignee_id=str(assignee["id"]) if assignee.get("id") is not None else None,
            labels=tuple(labels),
            priority=priority,
            estimate=estimate,
            author=_author(issue.get("user"), issue.get("html_url")),
            from_label=from_label,
        )

    def _normalize_issue(self, action, payload, sender) -> List[SyncEvent]:
        issue = payload.get("issue") or {}
        base = self._base(payload, sender)

        if action == "opened":
            return [self._issue_created(payload, sender, from_label=False)]

        if action in ("labeled", "unlabeled"):
            label = payload.get("label") or {}
            name = label.get("name")
            if self.is_trigger_label(name):
                if action == "labeled":
                    return [self._issue_created(payload, sender, from_label=True)]
                raise EventIgnored(f'Removing the "{name}" label does not unlink #{issue.get("number")}.')
            priority = priority_for_label(name)
            if priority is not None:
                if action == "labeled":
                    return [PriorityChanged(**base, priority=priority)]
                return [PriorityChanged(**base, priority=0, previous=priority)]
            estimate = estimate_for_label(name)
            if estimate is not None:
                if action == "labeled":
                    return [EstimateChanged(**base, estimate=estimate)]
                return [EstimateChanged(**base, estimate=None, previous=estimate)]
            ref = LabelRef(name=name, color=label.get("color"))
            if action == "labeled":
                return [LabelAdded(**base, label=ref)]
            return [LabelRemoved(**base, label=ref)]

        if action == "edited":
            changes = payload.get("changes") or {}
            title_changed = "title" in changes or not changes
            body_changed = "body" in changes or not changes
            return [
                IssueEdited(
                    **base,
                    title=issue.get("title") if title_changed else None,
                    body=(issue.get("body") or "") if body_changed else None,
                )
            ]

        if action in ("closed", "reopened"):
            return [StateChanged(**base, closed=action == "closed", reason=issue.get("state_reason"))]

        if action in ("assigned", "unassigned"):
            changed = payload.get("assignee") or {}
            if action == "assigned":
                return [
                    AssigneeChanged(
                        **base,
                        assignee_id=str(changed.get("id")),
                        assignee_login=changed.get("login"),
                    )
                ]
            remaining = issue.get("assignee") or {}
            return [
                AssigneeChanged(
                    **base,
                    assignee_id=str(remaining["id"]) if remaining.get("id") is not None else None,
                    assignee_login=remaining.get("login"),
                    previous_id=str(changed.get("id")) if changed.get("id") is not None else None,
                )
            ]

        if action in ("milestoned", "demilestoned"):
            current = issue.get("milestone")
            previous = payload.get("milestone") if action == "demilestoned" else None
            if action == "milestoned" and not current:
                current = payload.get("milestone")
            return [
                MilestoneLinked(
                    **base,
                    milestone=milestone_ref(current) if current and action == "milestoned" else None,
                    previous=milestone_ref(previous) if previous else None,
                )
            ]

        raise EventIgnored(f"Ignoring GitHub issue action {action}.")

    def _normalize_comment(self, action, payload, sender) -> List[SyncEvent]:
        comment = payload.get("comment") or {}
        common = {
            **self._base(payload, sender),
            "comment_id": str(comment.get("id")),
            "body": comment.get("body"),
            "author": _author(comment.get("user"), comment.get("html_url")),
        }
        if action == "created":
            return [CommentCreated(**common)]
        if action == "edited":
            return [CommentEdited(**common)]
        raise EventIgnored(f"Ignoring GitHub comment action {action}.")

    def _normalize_milestone(self, action, payload, sender) -> List[SyncEvent]:
        milestone = payload.get("milestone") or {}
        if action != "edited":
            raise EventIgnored(f"Ignoring GitHub milestone action {action}.")
        return [
            MilestoneEdited(
                source=Side.GITHUB,
                item=ItemRef(id=str(milestone.get("id")), number=milestone.get("number"), url=milestone.get("html_url")),
                actor_id=str(sender["id"]) if sender.get("id") is not None else None,
                actor_login=sender.get("login"),
                milestone=milestone_ref(milestone),
            )
        ]

    # Change intents

    async def create_issue(self, *, title: str, body: str, assignee: Optional[str] = None) -> ItemRef:
        issue = await self.client.create_issue(title, body, assignees=[assignee] if assignee else None)
        return self.item_ref(issue)

    async def update_title_body(self, ref: ItemRef, *, title: Optional[str], body: Optional[str]) -> str:
        issue = await self.client.get_issue(ref.number)
        fields: Dict[str, Any] = {}
        if title is not None and title != (issue.get("title") or ""):
            fields["title"] = title
        if body is not None and strip_footer(body) != strip_footer(issue.get("body")):
            fields["body"] = body
        if not fields:
            return f"Skipping edit for #{ref.number}: already up to date."
        await self.client.update_issue(ref.number, **fields)
        return f"Updated {', '.join(sorted(fields))} of #{ref.number}."

    async def set_state(self, ref: ItemRef, mapping: StateMapping) -> str:
        issue = await self.client.get_issue(ref.number)
        current = github_state_mapping(issue.get("state") == "closed", issue.get("state_reason"))
        if current == mapping:
            return f"Skipping state change for #{ref.number}: already {mapping.state}."
        fields: Dict[str, Any] = {"state": mapping.state}
        if mapping.closed:
            fields["state_reason"] = mapping.reason.value
        await self.client.update_issue(ref.number, **fields)
        return f"Set #{ref.number} to {mapping.state} ({mapping.reason.value})."

    async def add_label(self, ref: ItemRef, label: LabelRef) -> str:
        current = {name.lower() for name in await self.client.list_issue_labels(ref.number)}
        if label.name.lower() in current:
            return f'Skipping label "{label.name}" on #{ref.number}: already applied.'
        await self.client.add_labels(ref.number, [label.name])
        return f'Applied label "{label.name}" to #{ref.number}.'

    async def remove_label(self, ref: ItemRef, label: LabelRef) -> str:
        current = {name.lower() for name in await self.client.list_issue_labels(ref.number)}
        if label.name.lower() not in current:
            return f'Skipping label "{label.name}" on #{ref.number}: not applied.'
        await self.client.remove_label(ref.number, label.name)
        return f'Removed label "{label.name}" from #{ref.number}.'

    async def _swap_labels(self, ref: ItemRef, keep: Optional[str], family) -> List[str]:
        """Leave at most ``keep`` among the labels ``family`` recognises."""
        current = await self.client.list_issue_labels(ref.number)
        changes = []
        for name in current:
            if family(name) is not None and name != keep:
                await self.client.remove_label(ref.number, name)
                changes.append(f'removed "{name}"')
        if keep and keep not in current:
            await self.client.add_labels(ref.number, [keep])
            changes.append(f'applied "{keep}"')
        return changes

    async def set_priority(self, ref: ItemRef, priority: Optional[int]) -> str:
        label = PRIORITY_LABELS.get(priority or 0)
        if label is not None:
            await self.client.create_label(label["name"], label["color"])
        changes = await self._swap_labels(ref, label["name"] if label else None, priority_for_label)
        if not changes:
            return f"Skipping priority for #{ref.number}: already up to date."
        return f"Priority labels on #{ref.number}: {', '.join(changes)}."

    async def set_estimate(self, ref: ItemRef, estimate: Optional[int]) -> str:
        name = estimate_label(estimate) if estimate else None
        if name is not None:
            await self.client.create_label(name, ESTIMATE_LABEL_COLOR)
        changes = await self._swap_labels(ref, name, estimate_for_label)
        if not changes:
            return f"Skipping estimate for #{ref.number}: already up to date."
        return f"Estimate labels on #{ref.number}: {', '.join(changes)}."

    async def set_assignee(self, ref: ItemRef, login: Optional[str], previous_login: Optional[str] = None) -> str:
        issue = await self.client.get_issue(ref.number)
        current = {a.get("login", "").lower() for a in issue.get("assignees") or []}
        if login:
            if login.lower() in current:
                return f"Skipping assignee for #{ref.number}: {login} already assigned."
            await self.client.add_assignees(ref.number, [login])
        if previous_login and previous_login.lower() in current and previous_login != login:
            await self.client.remove_assignees(ref.number, [previous_login])
        if login:
            return f"Assigned {login} to #{ref.number}."
        if previous_login and previous_login.lower() in current:
            return f"Unassigned {previous_login} from #{ref.number}."
        return f"Skipping assignee for #{ref.number}: nothing to change."

    async def set_milestone(self, ref: ItemRef, milestone_number: Optional[int], previous_number: Optional[int] = None) -> str:
        issue = await self.client.get_issue(ref.number)
        current = (issue.get("milestone") or {}).get("number")
        if current == milestone_number:
            return f"Skipping milestone for #{ref.number}: already set."
        if milestone_number is None and previous_number is not None and current != previous_number:
            return f"Skipping milestone removal for #{ref.number}: moved to another milestone."
        await self.client.set_issue_milestone(ref.number, milestone_number)
        if milestone_number is None:
            return f"Removed milestone from #{ref.number}."
        return f"Added #{ref.number} to milestone {milestone_number}."

    async def embed_ticket_key(self, ref: ItemRef, ticket_key: str, title: str, body: str) -> None:
        """Prefix the title with the Linear key and link the ticket from the body."""
        await self.client.update_issue(ref.number, title=title, body=body)
        logger.info(f"Linked #{ref.number} in {self.repo.repo_name} to {ticket_key}")

    async def close_duplicate(self, ref: ItemRef, winner: Optional[int]) -> None:
        """Close an issue that lost a creation race, pointing at the one that won."""
        note = f"Duplicate of #{winner}." if winner is not None else "Duplicate of another synced issue."
        await self.client.update_issue(
            ref.number,
            state="closed",
            state_reason=StateReason.NOT_PLANNED.value,
            body=f"{note}\n\n<sub>{SYNC_FOOTER}</sub>",
        )
        logger.info(f"Closed duplicate #{ref.number} in {self.repo.repo_name}")

    async def create_comment(self, ref: ItemRef, body: str) -> Dict[str, Any]:
        return await self.client.create_comment(ref.number, body)

    async def list_comments(self, ref: ItemRef) -> List[Dict[str, Any]]:
        return await self.client.list_issue_comments(ref.number)

    async def update_comment_for_linear(self, ref: ItemRef, linear_comment_id: str, body: str) -> Optional[int]:
        """Patch the comment carrying ``linear_comment_id``. None when there is none."""
        for comment in await self.client.list_issue_comments(ref.number):
            if extract_linear_comment_id(comment.get("body")) == linear_comment_id:
                if strip_footer(comment.get("body")) != strip_footer(body):
                    await self.client.update_comment(comment["id"], body)
                return comment["id"]
        return None

    # Milestones

    async def ensure_milestone(
        self, *, title: str, description: str, state: str, due_on: Optional[datetime]
    ) -> int:
        milestone = await self.client.create_milestone(
            title,
            description=description,
            state=state,
            due_on=due_on.strftime("%Y-%m-%dT%H:%M:%SZ") if due_on else None,
        )
        return milestone["number"]
