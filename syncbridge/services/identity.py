"""Cross-tracker identity resolution: users, labels and workflow states"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from syncbridge.models import LinearTeam, Sync, UserIdentity
from syncbridge.services.events import LabelRef, Side, StateReason
from syncbridge.services.github_client import GitHubClient
from syncbridge.services.linear_client import LinearClient
from syncbridge.services.store import CorrespondenceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateMapping:
    """Where a workflow state lands in GitHub's open/closed model."""

    state: str  # "open" | "closed"
    reason: StateReason

    @property
    def closed(self) -> bool:
        return self.state == "closed"


def resolve_state(team: LinearTeam, state_id: Optional[str]) -> StateMapping:
    """Map a Linear state id to GitHub's state. Anything unrecognised is open."""
    if state_id and state_id == team.done_state_id:
        return StateMapping("closed", StateReason.COMPLETED)
    if state_id and state_id == team.canceled_state_id:
        return StateMapping("closed", StateReason.NOT_PLANNED)
    return StateMapping("open", StateReason.REOPENED)


def state_id_for(team: LinearTeam, reason: Optional[str]) -> str:
    """Map a GitHub state_reason back to a Linear state id."""
    if reason == StateReason.COMPLETED.value:
        return team.done_state_id
    if reason == StateReason.NOT_PLANNED.value:
        return team.canceled_state_id
    return team.todo_state_id


def github_state_mapping(closed: bool, reason: Optional[str]) -> StateMapping:
    """Normalize a GitHub (state, state_reason) pair onto the same buckets."""
    if not closed:
        return StateMapping("open", StateReason.REOPENED)
    if reason == StateReason.NOT_PLANNED.value:
        return StateMapping("closed", StateReason.NOT_PLANNED)
    if reason == StateReason.COMPLETED.value:
        return StateMapping("closed", StateReason.COMPLETED)
    # Closed without a recognised reason lands in the todo bucket on Linear
    return StateMapping("open", StateReason.REOPENED)


class IdentityMapper:
    """Resolves users and labels between Linear and GitHub for one sync.

    Lookups go through the correspondence store; missing counterparts are
    created lazily where that is possible (labels always, users only when
    both sides are known).
    """

    def __init__(self, store: CorrespondenceStore, linear: LinearClient, github: GitHubClient, team: LinearTeam):
        self.store = store
        self.linear = linear
        self.github = github
        self.team = team

    # Users

    async def resolve_user(self, side: Side, raw_user_id, counterpart_id=None) -> Optional[UserIdentity]:
        """Find the identity row for a user seen on ``side``.

        With ``counterpart_id`` (the same person's id on the other side) an
        unknown pair is fetched from both trackers and stored.
        """
        if raw_user_id is None:
            return None
        identity = await self.store.find_user(side, raw_user_id)
        if identity is not None or counterpart_id is None:
            return identity

        if side is Side.LINEAR:
            linear_id, github_id = str(raw_user_id), int(counterpart_id)
        else:
            linear_id, github_id = str(counterpart_id), int(raw_user_id)
        linear_user = await self.linear.get_user(linear_id)
        github_user = await self.github.get_user(github_id)
        if not linear_user or not github_user:
            logger.info(f"Could not fetch profiles for Linear user {linear_id} / GitHub user {github_id}")
            return None
        return await self._store_pair(github_id, linear_id, github_user, linear_user)

    async def ensure_sync_owner(self, sync: Sync) -> UserIdentity:
        """Record the user who authorized ``sync`` if we have not seen them yet."""
        existing = await self.store.find_user_pair(sync.github_user_id, sync.linear_user_id)
        if existing is not None:
            return existing
        logger.info(f"Adding sync owner {sync.linear_user_id} / {sync.github_user_id} to user identities")
        linear_user = await self.linear.get_viewer()
        github_user = await self.github.get_authenticated_user()
        return await self._store_pair(sync.github_user_id, sync.linear_user_id, github_user, linear_user)

    async def _store_pair(self, github_id: int, linear_id: str, github_user: dict, linear_user: dict) -> UserIdentity:
        return await self.store.upsert_user(
            github_user_id=github_id,
            linear_user_id=linear_id,
            github_username=github_user.get("login") or str(github_id),
            github_email=github_user.get("email") or "",
            linear_username=linear_user.get("displayName") or linear_user.get("name") or linear_id,
            linear_email=linear_user.get("email") or "",
        )

    async def counterpart_user_id(self, side: Side, raw_user_id) -> Optional[str]:
        """The other side's id for a user (GitHub login for Linear users, Linear id for GitHub users)."""
        identity = await self.resolve_user(side, raw_user_id)
        if identity is None:
            return None
        return identity.github_username if side is Side.LINEAR else identity.linear_user_id

    async def map_mentions(self, side: Side, usernames: Iterable[str]) -> Dict[str, str]:
        """Username on ``side`` -> username on the other side, for the ones we know."""
        names = sorted(set(usernames))
        if not names:
            return {}
        mapping: Dict[str, str] = {}
        for identity in await self.store.find_users_by_username(side, names):
            if side is Side.LINEAR:
                mapping[identity.linear_username] = identity.github_username
            else:
                mapping[identity.github_username] = identity.linear_username
        return mapping

    # Labels

    async def label_name(self, side: Side, label: LabelRef) -> Optional[str]:
        """Fill in a label's name when the payload only carried its id."""
        if label.name:
            return label.name
        if side is Side.LINEAR and label.id:
            fetched = await self.linear.get_label(label.id)
            return fetched.get("name") if fetched else None
        return None

    async def resolve_label(self, side: Side, label: LabelRef) -> Optional[LabelRef]:
        """Counterpart of a label seen on ``side``, created on the other side if missing.

        Names match case-insensitively; "already exists" counts as success.
        """
        name = await self.label_name(side, label)
        if not name:
            logger.info(f"Could not find label {label.id} on {side.value}")
            return None
        color = label.color
        if side is Side.LINEAR:
            created = await self.github.create_label(name, color)
            return LabelRef(name=created.get("name") or name, color=created.get("color"))

        existing = await self.linear.find_label(self.team.team_id, name)
        if existing is None:
            existing = await self.linear.create_label(self.team.team_id, name, color)
        return LabelRef(name=existing.get("name") or name, id=existing.get("id"), color=existing.get("color"))

    async def find_label(self, side: Side, label: LabelRef) -> Optional[LabelRef]:
        """Counterpart of a label without creating it (used for removals)."""
        name = await self.label_name(side, label)
        if not name:
            return None
        if side is Side.LINEAR:
            existing = await self.github.get_label(name)
            return LabelRef(name=existing["name"]) if existing else None
        existing = await self.linear.find_label(self.team.team_id, name)
        return LabelRef(name=existing["name"], id=existing["id"]) if existing else None

    # States

    def resolve_state(self, state_id: Optional[str]) -> StateMapping:
        return resolve_state(self.team, state_id)

    def state_id_for(self, reason: Optional[str]) -> str:
        return state_id_for(self.team, reason)
