"""Canonical sync events.

Both webhook payload formats are normalized into the closed set of variants
below before the reconciliation engine sees them. Every variant records which
side it came from, who acted, and which item it is about.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class Side(str, enum.Enum):
    """One of the two trackers"""

    LINEAR = "linear"
    GITHUB = "github"

    @property
    def other(self) -> "Side":
        return Side.GITHUB if self is Side.LINEAR else Side.LINEAR


class StateReason(str, enum.Enum):
    """Why an item is in its current open/closed bucket"""

    COMPLETED = "completed"
    NOT_PLANNED = "not_planned"
    REOPENED = "reopened"


@dataclass(frozen=True)
class ItemRef:
    """An issue or ticket on one side.

    ``id`` is the tracker's opaque id (Linear UUID, GitHub numeric id as text),
    ``number`` the human-facing number, ``key`` the Linear identifier ("ENG-12").
    """

    id: str
    number: int | None = None
    key: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class LabelRef:
    name: str | None = None
    id: str | None = None
    color: str | None = None


@dataclass(frozen=True)
class Author:
    """Who wrote a piece of content, for attribution footers."""

    id: str | None = None
    name: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class MilestoneRef:
    """A cycle/project (Linear) or milestone (GitHub) as seen in a payload.

    ``id`` is the Linear resource id or the GitHub milestone number as text.
    ``kind`` is only meaningful on the Linear side ("cycle" or "project").
    """

    id: str
    kind: str | None = None
    title: str | None = None
    description: str | None = None
    due_on: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class SyncEvent:
    source: Side
    item: ItemRef
    actor_id: str | None = None
    actor_login: str | None = None

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True, kw_only=True)
class IssueCreated(SyncEvent):
    """An item crossed the sync boundary: public label added, issue opened or trigger-labeled."""

    title: str
    body: str | None = None
    assignee_id: str | None = None
    labels: tuple[LabelRef, ...] = ()
    priority: int | None = None
    estimate: int | None = None
    author: Author | None = None
    # Label-triggered creations backfill the existing comment history
    from_label: bool = False


@dataclass(frozen=True, kw_only=True)
class IssueEdited(SyncEvent):
    """Title and/or body changed. ``None`` means the field did not change."""

    title: str | None = None
    body: str | None = None


@dataclass(frozen=True, kw_only=True)
class StateChanged(SyncEvent):
    """Linear events carry ``state_id``; GitHub events carry ``closed`` and ``reason``."""

    state_id: str | None = None
    closed: bool | None = None
    reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class LabelAdded(SyncEvent):
    label: LabelRef


@dataclass(frozen=True, kw_only=True)
class LabelRemoved(SyncEvent):
    label: LabelRef


@dataclass(frozen=True, kw_only=True)
class PriorityChanged(SyncEvent):
    """``priority`` follows Linear's scale: 0 none, 1 urgent ... 4 low."""

    priority: int
    previous: int | None = None


@dataclass(frozen=True, kw_only=True)
class EstimateChanged(SyncEvent):
    estimate: int | None
    previous: int | None = None


@dataclass(frozen=True, kw_only=True)
class AssigneeChanged(SyncEvent):
    """``assignee_id`` is who should be assigned after the change (``None``: nobody)."""

    assignee_id: str | None = None
    previous_id: str | None = None
    assignee_login: str | None = None


@dataclass(frozen=True, kw_only=True)
class MilestoneLinked(SyncEvent):
    """The item was moved into ``milestone``, or out of ``previous`` when ``milestone`` is None."""

    milestone: MilestoneRef | None = None
    previous: MilestoneRef | None = None
    kind: str | None = None


@dataclass(frozen=True, kw_only=True)
class MilestoneEdited(SyncEvent):
    """A GitHub milestone itself changed; ``item`` refers to the milestone."""

    milestone: MilestoneRef


@dataclass(frozen=True, kw_only=True)
class CommentCreated(SyncEvent):
    comment_id: str
    body: str | None = None
    author: Author | None = None


@dataclass(frozen=True, kw_only=True)
class CommentEdited(SyncEvent):
    comment_id: str
    body: str | None = None
    author: Author | None = None


@dataclass(frozen=True, kw_only=True)
class Unlinked(SyncEvent):
    """The public label was removed from a Linear ticket."""


CONTENT_EVENTS = (IssueCreated, CommentCreated, CommentEdited)


class EventIgnored(Exception):
    """Raised by normalizers for payloads that carry nothing to sync."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class Outcome:
    """Result of handling one event."""

    event: SyncEvent
    message: str
    error: Exception | None = None
    skipped: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class DeliveryResult:
    outcomes: list[Outcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        return " ".join(o.message for o in self.outcomes)
