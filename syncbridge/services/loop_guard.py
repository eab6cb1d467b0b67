"""Echo detection.

Every write this service makes on one tracker comes back as a webhook from
that tracker. These checks recognise such echoes so they are not propagated
again. They are pure: no I/O, no exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass

from syncbridge.constants import LINEAR_UUID_SUFFIX, SYNC_FOOTER
from syncbridge.services.events import (
    CONTENT_EVENTS,
    CommentCreated,
    IssueCreated,
    MilestoneEdited,
    Side,
    SyncEvent,
)


@dataclass(frozen=True)
class BotIdentity:
    """The accounts this service writes as. Either may be unknown."""

    linear_user_id: str | None = None
    github_login: str | None = None

    def matches(self, side: Side, actor_id: str | None, actor_login: str | None) -> bool:
        if side is Side.LINEAR:
            return bool(self.linear_user_id) and actor_id == self.linear_user_id
        if not self.github_login or not actor_login:
            return False
        return actor_login.lower() == self.github_login.lower()


@dataclass(frozen=True)
class EchoVerdict:
    echo: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.echo


NOT_ECHO = EchoVerdict(False)


def has_sync_footer(text: str | None) -> bool:
    return bool(text) and SYNC_FOOTER in text


def is_generated_linear_id(value: str | None) -> bool:
    return bool(value) and value.endswith(LINEAR_UUID_SUFFIX)


def _content_of(event: SyncEvent) -> str | None:
    return getattr(event, "body", None)


def check(event: SyncEvent, bot: BotIdentity | None) -> EchoVerdict:
    """Decide whether ``event`` was caused by one of our own writes."""
    if bot is not None and bot.matches(event.source, event.actor_id, event.actor_login):
        who = event.actor_login or event.actor_id
        return EchoVerdict(True, f"Skipping {event.name} for {_label(event)}: authored by sync bot {who}.")

    if isinstance(event, CONTENT_EVENTS) and has_sync_footer(_content_of(event)):
        return EchoVerdict(True, f"Skipping {event.name} for {_label(event)}: caused by sync.")

    if isinstance(event, MilestoneEdited) and has_sync_footer(event.milestone.description):
        return EchoVerdict(
            True,
            f'Skipping update for milestone "{event.milestone.title}": caused by sync.',
        )

    if event.source is Side.LINEAR:
        if isinstance(event, IssueCreated) and is_generated_linear_id(event.item.id):
            return EchoVerdict(True, f"Skipping {event.name} for {_label(event)}: created by sync.")
        if isinstance(event, CommentCreated) and is_generated_linear_id(event.comment_id):
            return EchoVerdict(True, f"Skipping {event.name} for {_label(event)}: created by sync.")

    return NOT_ECHO


def check_milestone_creation(description: str | None, title: str | None = None) -> EchoVerdict:
    """A cycle/project/milestone we created ourselves but have not linked yet."""
    if has_sync_footer(description):
        return EchoVerdict(True, f'Skipping milestone "{title or "?"}": caused by sync.')
    return NOT_ECHO


def _label(event: SyncEvent) -> str:
    item = event.item
    if item.key:
        return item.key
    if item.number is not None:
        return f"#{item.number}" if event.source is Side.GITHUB else str(item.number)
    return item.id
