"""Reconciliation engine.

Takes canonical events from either side and replays them on the other. Each
event is dispatched to its own handler; handlers read the destination's
current state before writing, so duplicate and out-of-order deliveries
converge instead of fighting.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Type

from syncbridge.constants import PROJECT_MARKER, SYNC_FOOTER
from syncbridge.errors import PropagationError
from syncbridge.models import GitHubRepo, LinearTeam, MilestoneKind, Sync, SyncedIssue
from syncbridge.services import loop_guard
from syncbridge.services.adapters import GitHubAdapter, LinearAdapter
from syncbridge.services.content import (
    ContentContext,
    ContentTransformer,
    append_footer,
    cross_link_footer,
    github_comment_footer,
    issue_footer,
    linear_comment_footer,
    strip_issue_key,
    with_issue_key,
)
from syncbridge.services.events import (
    AssigneeChanged,
    Author,
    CommentCreated,
    CommentEdited,
    DeliveryResult,
    EstimateChanged,
    IssueCreated,
    IssueEdited,
    ItemRef,
    LabelAdded,
    LabelRef,
    LabelRemoved,
    MilestoneEdited,
    MilestoneLinked,
    Outcome,
    PriorityChanged,
    Side,
    StateChanged,
    SyncEvent,
    Unlinked,
)
from syncbridge.services.identity import IdentityMapper, github_state_mapping
from syncbridge.services.loop_guard import BotIdentity, has_sync_footer
from syncbridge.services.store import CorrespondenceStore

logger = logging.getLogger(__name__)


@dataclass
class SyncContext:
    """Everything one delivery needs, built fresh per request."""

    sync: Optional[Sync]
    team: LinearTeam
    repo: GitHubRepo
    linear: LinearAdapter
    github: GitHubAdapter
    identity: IdentityMapper
    content: ContentTransformer
    bot: BotIdentity
    anonymous: bool = False


def milestone_title(kind: MilestoneKind, resource: dict) -> str:
    """GitHub milestone title for a Linear cycle or project."""
    name = (resource.get("name") or "").strip()
    if kind is MilestoneKind.PROJECT:
        return name or "?"
    if not name:
        return f"v.{resource.get('number')}"
    return f"v.{name}" if name.isdigit() else name


def milestone_description(description: Optional[str], kind: MilestoneKind) -> str:
    marker = f" {PROJECT_MARKER}" if kind is MilestoneKind.PROJECT else ""
    return f"{(description or '').strip()}{marker}\n\n> {SYNC_FOOTER}"


def resource_description(description: Optional[str]) -> str:
    """Linear description for a cycle/project created from a GitHub milestone."""
    text = (description or "").replace(PROJECT_MARKER, "").strip()
    return f"{text}\n\n> {SYNC_FOOTER}"


def milestone_kind(description: Optional[str]) -> MilestoneKind:
    return MilestoneKind.PROJECT if PROJECT_MARKER in (description or "") else MilestoneKind.CYCLE


def milestone_state(ends_at: Optional[datetime]) -> str:
    """Open until the due date has passed; no due date means open."""
    if ends_at is None:
        return "open"
    if ends_at.tzinfo is None:
        ends_at = ends_at.replace(tzinfo=timezone.utc)
    return "open" if ends_at > datetime.now(timezone.utc) else "closed"


class ReconciliationEngine:
    """Dispatch canonical events to per-variant handlers"""

    def __init__(self, store: CorrespondenceStore):
        self.store = store
        self._handlers: Dict[Type[SyncEvent], Callable[[SyncEvent, SyncContext], Awaitable[Outcome]]] = {
            IssueCreated: self.on_issue_created,
            IssueEdited: self.on_issue_edited,
            StateChanged: self.on_state_changed,
            LabelAdded: self.on_label_added,
            LabelRemoved: self.on_label_removed,
            PriorityChanged: self.on_priority_changed,
            EstimateChanged: self.on_estimate_changed,
            AssigneeChanged: self.on_assignee_changed,
            MilestoneLinked: self.on_milestone_linked,
            MilestoneEdited: self.on_milestone_edited,
            CommentCreated: self.on_comment_created,
            CommentEdited: self.on_comment_edited,
            Unlinked: self.on_unlinked,
        }

    async def handle(self, events: List[SyncEvent], ctx: SyncContext) -> DeliveryResult:
        """Handle every event of one delivery concurrently; one failure does not stop the others."""
        results = await asyncio.gather(*(self.dispatch(event, ctx) for event in events), return_exceptions=True)
        outcomes = []
        for event, result in zip(events, results):
            if isinstance(result, BaseException):
                logger.error(f"{event.source.value} {event.name} failed: {result}")
                outcomes.append(Outcome(event, f"Failed to propagate {event.name}: {result}", error=result))
            else:
                outcomes.append(result)
        return DeliveryResult(outcomes)

    async def dispatch(self, event: SyncEvent, ctx: SyncContext) -> Outcome:
        verdict = loop_guard.check(event, ctx.bot)
        if verdict:
            logger.info(verdict.reason)
            return Outcome(event, verdict.reason, skipped=True)
        handler = self._handlers.get(type(event))
        if handler is None:
            return Outcome(event, f"No handler for {event.name}.", skipped=True)
        return await handler(event, ctx)

    # Helpers

    @staticmethod
    def _skip(event: SyncEvent, message: str) -> Outcome:
        logger.info(message)
        return Outcome(event, message, skipped=True)

    async def _done(self, event: SyncEvent, message: str, row: Optional[SyncedIssue] = None) -> Outcome:
        logger.info(message)
        if row is not None:
            await self.store.touch_synced_issue(row.id)
        return Outcome(event, message)

    async def _lookup(self, event: SyncEvent, ctx: SyncContext) -> Optional[SyncedIssue]:
        if event.source is Side.LINEAR:
            return await self.store.find_synced_issue_by_linear(event.item.id, ctx.team.team_id)
        return await self.store.find_synced_issue_by_github(event.item.number, ctx.repo.repo_id)

    @staticmethod
    def _not_synced(event: SyncEvent) -> str:
        item = event.item
        label = item.key or (f"#{item.number}" if item.number is not None else item.id)
        return f"Skipping {event.name} for {label}: not synced."

    @staticmethod
    def _linear_ref(row: SyncedIssue, ctx: SyncContext) -> ItemRef:
        return ItemRef(
            id=row.linear_issue_id,
            number=row.linear_issue_number,
            key=f"{ctx.team.team_key}-{row.linear_issue_number}",
        )

    @staticmethod
    def _github_ref(row: SyncedIssue) -> ItemRef:
        return ItemRef(id=str(row.github_issue_id), number=row.github_issue_number)

    @staticmethod
    def _anonymous_author(event: SyncEvent, ctx: SyncContext, author: Optional[Author] = None) -> Optional[Author]:
        if not ctx.anonymous:
            return None
        return author or Author(id=event.actor_id, name=event.actor_login, url=event.item.url)

    @staticmethod
    async def _isolated(steps: Dict[str, Awaitable]) -> List[str]:
        """Run auxiliary steps concurrently; return a note per failed step."""
        names = list(steps)
        results = await asyncio.gather(*steps.values(), return_exceptions=True)
        failures = []
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.warning(f"Auxiliary step '{name}' failed: {result}")
                failures.append(f"{name} failed")
        return failures

    # Creation

    async def on_issue_created(self, event: IssueCreated, ctx: SyncContext) -> Outcome:
        existing = await self._lookup(event, ctx)
        if existing is not None:
            return self._skip(event, f"Skipping creation for {event.item.key or event.item.number}: already synced.")
        if event.source is Side.LINEAR:
            return await self._create_on_github(event, ctx)
        return await self._create_on_linear(event, ctx)

    async def _create_on_github(self, event: IssueCreated, ctx: SyncContext) -> Outcome:
        ticket = event.item
        body = await ctx.content.to_counterpart(
            event.body,
            Side.LINEAR,
            ContentContext(
                footer=issue_footer(ticket.key, ticket.url),
                refetch=lambda: ctx.linear.public_description(ticket.id),
            ),
        )
        assignee = None
        if event.assignee_id:
            assignee = await ctx.identity.counterpart_user_id(Side.LINEAR, event.assignee_id)
            if assignee is None:
                logger.info(f"No GitHub user known for Linear user {event.assignee_id}, creating unassigned")

        issue = await ctx.github.create_issue(title=with_issue_key(ticket.key, event.title), body=body, assignee=assignee)

        try:
            row = await self.store.create_synced_issue(
                linear_issue_id=ticket.id,
                linear_issue_number=ticket.number,
                linear_team_id=ctx.team.team_id,
                github_issue_id=int(issue.id),
                github_issue_number=issue.number,
                github_repo_id=ctx.repo.repo_id,
            )
        except Exception as e:
            raise PropagationError(f"Created #{issue.number} for {ticket.key} but could not record it: {e}")
        if row is None:
            winner = await self._lookup(event, ctx)
            winner_number = winner.github_issue_number if winner else None
            try:
                await ctx.github.close_duplicate(issue, winner_number)
            except Exception as e:
                logger.warning(f"Could not close duplicate #{issue.number} for {ticket.key}: {e}")
            return self._skip(
                event, f"{ticket.key} was linked by a concurrent delivery; closed duplicate #{issue.number}."
            )

        notes = []
        try:
            await ctx.linear.attach_github_issue(ticket, issue, ctx.repo.repo_name)
        except Exception as e:
            logger.warning(f"Could not attach #{issue.number} to {ticket.key}: {e}")
            notes.append("attachment failed")

        steps: Dict[str, Awaitable] = {}
        for label in event.labels:
            steps[f'label "{label.name or label.id}"'] = self._apply_label_to_github(issue, label, ctx)
        if event.priority:
            steps["priority"] = ctx.github.set_priority(issue, event.priority)
        if event.estimate:
            steps["estimate"] = ctx.github.set_estimate(issue, event.estimate)
        notes.extend(await self._isolated(steps))

        if event.from_label:
            try:
                count = await self._backfill_to_github(ticket, issue, ctx)
                if count:
                    logger.info(f"Copied {count} comments from {ticket.key} to #{issue.number}")
            except Exception as e:
                logger.warning(f"Comment backfill from {ticket.key} to #{issue.number} failed: {e}")
                notes.append("comment backfill failed")

        message = f"Created GitHub issue #{issue.number} for {ticket.key}."
        if notes:
            message = f"{message} ({'; '.join(notes)})"
        return await self._done(event, message)

    async def _apply_label_to_github(self, issue: ItemRef, label: LabelRef, ctx: SyncContext) -> str:
        resolved = await ctx.identity.resolve_label(Side.LINEAR, label)
        if resolved is None:
            return f"Skipping unknown label {label.id}."
        return await ctx.github.add_label(issue, resolved)

    async def _backfill_to_github(self, ticket: ItemRef, issue: ItemRef, ctx: SyncContext) -> int:
        count = 0
        for comment in await ctx.linear.list_comments(ticket.id):
            if has_sync_footer(comment.get("body")):
                continue
            user = comment.get("user") or {}
            body = await ctx.content.to_counterpart(
                comment.get("body"),
                Side.LINEAR,
                ContentContext(footer=github_comment_footer(user.get("displayName") or user.get("name"), comment["id"])),
            )
            await ctx.github.create_comment(issue, body)
            count += 1
        return count

    async def _create_on_linear(self, event: IssueCreated, ctx: SyncContext) -> Outcome:
        issue = event.item
        description = await ctx.content.to_counterpart(
            event.body,
            Side.GITHUB,
            ContentContext(anonymous_author=self._anonymous_author(event, ctx, event.author)),
        )
        assignee_id = None
        if event.assignee_id:
            assignee_id = await ctx.identity.counterpart_user_id(Side.GITHUB, event.assignee_id)

        label_ids = []
        for label in event.labels:
            try:
                resolved = await ctx.identity.resolve_label(Side.GITHUB, label)
            except Exception as e:
                logger.warning(f'Could not resolve label "{label.name}" on Linear: {e}')
                continue
            if resolved is not None and resolved.id != ctx.team.public_label_id:
                label_ids.append(resolved.id)

        ticket = await ctx.linear.create_ticket(
            title=strip_issue_key(event.title),
            description=description,
            assignee_id=assignee_id,
            label_ids=label_ids,
            priority=event.priority,
            estimate=event.estimate,
        )
        key = ticket.key or f"{ctx.team.team_key}-{ticket.number}"

        try:
            row = await self.store.create_synced_issue(
                linear_issue_id=ticket.id,
                linear_issue_number=ticket.number,
                linear_team_id=ctx.team.team_id,
                github_issue_id=int(issue.id),
                github_issue_number=issue.number,
                github_repo_id=ctx.repo.repo_id,
            )
        except Exception as e:
            raise PropagationError(f"Created {key} for #{issue.number} but could not record it: {e}")
        if row is None:
            try:
                await ctx.linear.discard_duplicate(ticket)
            except Exception as e:
                logger.warning(f"Could not archive duplicate {key} for #{issue.number}: {e}")
            return self._skip(event, f"#{issue.number} was linked by a concurrent delivery; archived duplicate {key}.")

        auxiliary = await asyncio.gather(
            ctx.linear.attach_github_issue(ticket, issue, ctx.repo.repo_name),
            ctx.github.embed_ticket_key(
                issue,
                key,
                with_issue_key(key, event.title),
                append_footer(event.body, cross_link_footer(key, ticket.url)),
            ),
            return_exceptions=True,
        )
        notes = []
        for name, result in zip(("attachment", "title link"), auxiliary):
            if isinstance(result, Exception):
                logger.warning(f"{name} for {key} / #{issue.number} failed: {result}")
                notes.append(f"{name} failed")

        if event.from_label:
            try:
                await self._backfill_to_linear(issue, ticket, ctx)
            except Exception as e:
                logger.warning(f"Comment backfill from #{issue.number} to {key} failed: {e}")
                notes.append("comment backfill failed")

        message = f"Created Linear ticket {key} for #{issue.number}."
        if notes:
            message = f"{message} ({'; '.join(notes)})"
        return await self._done(event, message)

    async def _backfill_to_linear(self, issue: ItemRef, ticket: ItemRef, ctx: SyncContext) -> int:
        count = 0
        for comment in await ctx.github.list_comments(issue):
            if has_sync_footer(comment.get("body")):
                continue
            user = comment.get("user") or {}
            author = Author(id=str(user.get("id")), name=user.get("login"), url=comment.get("html_url"))
            body = await ctx.content.to_counterpart(
                comment.get("body"),
                Side.GITHUB,
                ContentContext(footer=linear_comment_footer(author)),
            )
            await ctx.linear.create_comment(ticket, body)
            count += 1
        return count

    # Field changes

    async def on_issue_edited(self, event: IssueEdited, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))

        if event.source is Side.LINEAR:
            ticket = event.item
            title = with_issue_key(ticket.key, event.title) if event.title is not None else None
            body = None
            if event.body is not None:
                body = await ctx.content.to_counterpart(
                    event.body,
                    Side.LINEAR,
                    ContentContext(
                        footer=issue_footer(ticket.key, ticket.url),
                        refetch=lambda: ctx.linear.public_description(ticket.id),
                    ),
                )
            message = await ctx.github.update_title_body(self._github_ref(row), title=title, body=body)
        else:
            title = strip_issue_key(event.title) if event.title is not None else None
            body = None
            if event.body is not None:
                body = await ctx.content.to_counterpart(
                    event.body,
                    Side.GITHUB,
                    ContentContext(anonymous_author=self._anonymous_author(event, ctx)),
                )
            message = await ctx.linear.update_title_description(self._linear_ref(row, ctx), title=title, description=body)
        return await self._done(event, message, row)

    async def on_state_changed(self, event: StateChanged, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))

        if event.source is Side.LINEAR:
            mapping = ctx.identity.resolve_state(event.state_id)
            message = await ctx.github.set_state(self._github_ref(row), mapping)
        else:
            mapping = github_state_mapping(bool(event.closed), event.reason)
            state_id = ctx.identity.state_id_for(mapping.reason.value if mapping.closed else None)
            message = await ctx.linear.set_state(self._linear_ref(row, ctx), state_id)
        return await self._done(event, message, row)

    async def on_label_added(self, event: LabelAdded, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))

        if event.source is Side.LINEAR:
            message = await self._apply_label_to_github(self._github_ref(row), event.label, ctx)
        else:
            resolved = await ctx.identity.resolve_label(Side.GITHUB, event.label)
            if resolved is None or resolved.id == ctx.team.public_label_id:
                return self._skip(event, f'Skipping label "{event.label.name}": not a content label.')
            message = await ctx.linear.add_label(self._linear_ref(row, ctx), resolved)
        return await self._done(event, message, row)

    async def on_label_removed(self, event: LabelRemoved, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))

        counterpart = await ctx.identity.find_label(event.source, event.label)
        if counterpart is None:
            return self._skip(event, f'Skipping removal of "{event.label.name or event.label.id}": no counterpart label.')
        if event.source is Side.LINEAR:
            message = await ctx.github.remove_label(self._github_ref(row), counterpart)
        else:
            if counterpart.id == ctx.team.public_label_id:
                return self._skip(event, f'Skipping label "{event.label.name}": not a content label.')
            message = await ctx.linear.remove_label(self._linear_ref(row, ctx), counterpart)
        return await self._done(event, message, row)

    async def on_priority_changed(self, event: PriorityChanged, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))
        if event.source is Side.LINEAR:
            message = await ctx.github.set_priority(self._github_ref(row), event.priority)
        else:
            message = await ctx.linear.set_priority(self._linear_ref(row, ctx), event.priority, event.previous)
        return await self._done(event, message, row)

    async def on_estimate_changed(self, event: EstimateChanged, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))
        if event.source is Side.LINEAR:
            message = await ctx.github.set_estimate(self._github_ref(row), event.estimate)
        else:
            message = await ctx.linear.set_estimate(self._linear_ref(row, ctx), event.estimate, event.previous)
        return await self._done(event, message, row)

    async def on_assignee_changed(self, event: AssigneeChanged, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))

        if event.source is Side.LINEAR:
            login = await ctx.identity.counterpart_user_id(Side.LINEAR, event.assignee_id)
            if event.assignee_id and login is None:
                return self._skip(event, f"Skipping assignee: no GitHub user known for Linear user {event.assignee_id}.")
            previous = await ctx.identity.counterpart_user_id(Side.LINEAR, event.previous_id)
            if login is None and previous is None:
                return self._skip(event, "Skipping unassign: previous assignee has no GitHub counterpart.")
            message = await ctx.github.set_assignee(self._github_ref(row), login, previous)
        else:
            linear_id = await ctx.identity.counterpart_user_id(Side.GITHUB, event.assignee_id)
            if event.assignee_id and linear_id is None:
                who = event.assignee_login or event.assignee_id
                return self._skip(event, f"Skipping assignee: no Linear user known for GitHub user {who}.")
            previous = await ctx.identity.counterpart_user_id(Side.GITHUB, event.previous_id)
            message = await ctx.linear.set_assignee(self._linear_ref(row, ctx), linear_id, previous)
        return await self._done(event, message, row)

    # Milestones

    async def on_milestone_linked(self, event: MilestoneLinked, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))
        if event.source is Side.LINEAR:
            return await self._milestone_to_github(event, row, ctx)
        return await self._milestone_to_linear(event, row, ctx)

    async def _milestone_to_github(self, event: MilestoneLinked, row: SyncedIssue, ctx: SyncContext) -> Outcome:
        kind = MilestoneKind(event.kind or MilestoneKind.CYCLE.value)
        issue = self._github_ref(row)

        if event.milestone is None:
            if event.previous is None:
                return self._skip(event, f"Skipping {kind.value} removal: nothing to remove.")
            synced = await self.store.find_synced_milestone_by_linear(event.previous.id, ctx.team.team_id)
            if synced is None:
                return self._skip(event, f"Skipping {kind.value} removal: {kind.value} is not synced.")
            message = await ctx.github.set_milestone(issue, None, synced.github_milestone_number)
            return await self._done(event, message, row)

        synced = await self.store.find_synced_milestone_by_linear(event.milestone.id, ctx.team.team_id)
        if synced is None:
            resource = await ctx.linear.get_resource(kind, event.milestone.id)
            if resource is None:
                raise PropagationError(f"Linear {kind.value} {event.milestone.id} not found")
            verdict = loop_guard.check_milestone_creation(resource.get("description"), resource.get("name"))
            if verdict:
                return self._skip(event, verdict.reason)
            ends_at = LinearAdapter.resource_end(resource)
            number = await ctx.github.ensure_milestone(
                title=milestone_title(kind, resource),
                description=milestone_description(resource.get("description"), kind),
                state=milestone_state(ends_at),
                due_on=ends_at,
            )
            synced = await self.store.create_synced_milestone(
                github_milestone_number=number,
                github_repo_id=ctx.repo.repo_id,
                linear_resource_id=event.milestone.id,
                linear_resource_kind=kind,
                linear_team_id=ctx.team.team_id,
            )
        message = await ctx.github.set_milestone(issue, synced.github_milestone_number)
        return await self._done(event, message, row)

    async def _milestone_to_linear(self, event: MilestoneLinked, row: SyncedIssue, ctx: SyncContext) -> Outcome:
        ticket = self._linear_ref(row, ctx)

        if event.milestone is None:
            if event.previous is None:
                return self._skip(event, "Skipping milestone removal: nothing to remove.")
            synced = await self.store.find_synced_milestone_by_github(int(event.previous.id), ctx.repo.repo_id)
            if synced is None:
                return self._skip(event, f'Skipping milestone removal: "{event.previous.title}" is not synced.')
            kind = MilestoneKind(synced.linear_resource_kind)
            message = await ctx.linear.set_milestone(ticket, kind, None, synced.linear_resource_id)
            return await self._done(event, message, row)

        milestone = event.milestone
        synced = await self.store.find_synced_milestone_by_github(int(milestone.id), ctx.repo.repo_id)
        if synced is None:
            verdict = loop_guard.check_milestone_creation(milestone.description, milestone.title)
            if verdict:
                return self._skip(event, verdict.reason)
            kind = milestone_kind(milestone.description)
            resource_id = await ctx.linear.create_resource(
                kind,
                name=milestone.title,
                description=resource_description(milestone.description),
                due_on=milestone.due_on,
            )
            synced = await self.store.create_synced_milestone(
                github_milestone_number=int(milestone.id),
                github_repo_id=ctx.repo.repo_id,
                linear_resource_id=resource_id,
                linear_resource_kind=kind,
                linear_team_id=ctx.team.team_id,
            )
        kind = MilestoneKind(synced.linear_resource_kind)
        message = await ctx.linear.set_milestone(ticket, kind, synced.linear_resource_id)
        return await self._done(event, message, row)

    async def on_milestone_edited(self, event: MilestoneEdited, ctx: SyncContext) -> Outcome:
        milestone = event.milestone
        synced = await self.store.find_synced_milestone_by_github(int(milestone.id), ctx.repo.repo_id)
        if synced is None:
            return self._skip(event, f'Skipping update for milestone "{milestone.title}": not synced.')
        kind = MilestoneKind(synced.linear_resource_kind)
        await ctx.linear.update_resource(
            kind,
            synced.linear_resource_id,
            name=milestone.title,
            description=resource_description(milestone.description),
            due_on=milestone.due_on,
        )
        return await self._done(event, f'Updated {kind.value} for milestone "{milestone.title}".')

    # Comments

    async def on_comment_created(self, event: CommentCreated, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))

        if event.source is Side.LINEAR:
            issue = self._github_ref(row)
            body = await ctx.content.to_counterpart(
                event.body,
                Side.LINEAR,
                ContentContext(
                    footer=github_comment_footer(event.author.name if event.author else None, event.comment_id),
                    refetch=lambda: ctx.linear.public_comment_body(event.comment_id),
                ),
            )
            await ctx.github.create_comment(issue, body)
            return await self._done(event, f"Created comment on GitHub issue #{issue.number}.", row)

        ticket = self._linear_ref(row, ctx)
        body = await ctx.content.to_counterpart(
            event.body,
            Side.GITHUB,
            ContentContext(
                footer=linear_comment_footer(event.author),
                anonymous_author=self._anonymous_author(event, ctx, event.author),
            ),
        )
        await ctx.linear.create_comment(ticket, body)
        return await self._done(event, f"Created comment on Linear ticket {ticket.key}.", row)

    async def on_comment_edited(self, event: CommentEdited, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))

        if event.source is Side.LINEAR:
            issue = self._github_ref(row)
            body = await ctx.content.to_counterpart(
                event.body,
                Side.LINEAR,
                ContentContext(
                    footer=github_comment_footer(event.author.name if event.author else None, event.comment_id),
                    refetch=lambda: ctx.linear.public_comment_body(event.comment_id),
                ),
            )
            matched = await ctx.github.update_comment_for_linear(issue, event.comment_id, body)
            if matched is None:
                return self._skip(event, f"Skipping comment edit on #{issue.number}: no synced copy of comment {event.comment_id}.")
            return await self._done(event, f"Updated comment {matched} on GitHub issue #{issue.number}.", row)

        ticket = self._linear_ref(row, ctx)
        body = await ctx.content.to_counterpart(
            event.body,
            Side.GITHUB,
            ContentContext(
                footer=linear_comment_footer(event.author),
                anonymous_author=self._anonymous_author(event, ctx, event.author),
            ),
        )
        matched = await ctx.linear.update_comment_for_github(ticket, event.comment_id, body)
        if matched is None:
            return self._skip(event, f"Skipping comment edit on {ticket.key}: no synced copy of comment {event.comment_id}.")
        return await self._done(event, f"Updated comment on Linear ticket {ticket.key}.", row)

    # Lifecycle

    async def on_unlinked(self, event: Unlinked, ctx: SyncContext) -> Outcome:
        row = await self._lookup(event, ctx)
        if row is None:
            return self._skip(event, self._not_synced(event))
        await self.store.delete_synced_issue(row.id)
        label = event.item.key or event.item.id
        return await self._done(event, f"Unlinked {label} from GitHub issue #{row.github_issue_number}.")
