"""Correspondence store.

Single source of truth for which Linear items correspond to which GitHub
items. Every method opens its own short-lived session, so concurrent
propagation branches never share one. Uniqueness is enforced by the table
constraints; a losing duplicate insert comes back as ``None`` instead of
raising.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from syncbridge.models import (
    GitHubRepo,
    LinearTeam,
    MilestoneKind,
    Sync,
    SyncedIssue,
    SyncedMilestone,
    SyncLog,
    UserIdentity,
)
from syncbridge.models.sync_log import SyncSource, SyncStatus
from syncbridge.models.base import AsyncSessionLocal
from syncbridge.models.synced_issue import utcnow
from syncbridge.services.events import Side

logger = logging.getLogger(__name__)


class CorrespondenceStore:
    """Async persistence for syncs and their correspondence rows"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _add(self, row):
        """Insert a row, returning None when a uniqueness constraint rejects it."""
        async with self.session_factory() as db:
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return None
            await db.refresh(row)
            return row

    async def _first(self, stmt):
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return result.scalars().first()

    async def _all(self, stmt) -> list:
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    # Teams and repositories

    async def upsert_linear_team(self, team_id: str, **fields) -> LinearTeam:
        async with self.session_factory() as db:
            team = (await db.execute(select(LinearTeam).where(LinearTeam.team_id == team_id))).scalars().first()
            if team is None:
                team = LinearTeam(team_id=team_id)
                db.add(team)
            for key, value in fields.items():
                setattr(team, key, value)
            await db.commit()
            await db.refresh(team)
            return team

    async def upsert_github_repo(self, repo_id: int, **fields) -> GitHubRepo:
        async with self.session_factory() as db:
            repo = (await db.execute(select(GitHubRepo).where(GitHubRepo.repo_id == repo_id))).scalars().first()
            if repo is None:
                repo = GitHubRepo(repo_id=repo_id)
                db.add(repo)
            for key, value in fields.items():
                setattr(repo, key, value)
            await db.commit()
            await db.refresh(repo)
            return repo

    async def get_github_repo(self, repo_id: int) -> Optional[GitHubRepo]:
        return await self._first(select(GitHubRepo).where(GitHubRepo.repo_id == repo_id))

    # Syncs

    async def create_sync(self, **fields) -> Optional[Sync]:
        sync = await self._add(Sync(**fields))
        if sync is None:
            return None
        return await self.get_sync(sync.id)

    async def get_sync(self, sync_id: int) -> Optional[Sync]:
        return await self._first(select(Sync).where(Sync.id == sync_id))

    async def list_syncs(self) -> List[Sync]:
        return await self._all(select(Sync).order_by(Sync.id))

    async def find_syncs_for_linear_user(self, linear_user_id: str) -> List[Sync]:
        return await self._all(select(Sync).where(Sync.linear_user_id == linear_user_id).order_by(Sync.id))

    async def find_sync_for_github_user(self, repo_id: int, github_user_id: int) -> Optional[Sync]:
        return await self._first(
            select(Sync)
            .where(Sync.github_repo_id == repo_id, Sync.github_user_id == github_user_id)
            .order_by(Sync.id)
        )

    async def find_any_sync_for_repo(self, repo_id: int) -> Optional[Sync]:
        return await self._first(select(Sync).where(Sync.github_repo_id == repo_id).order_by(Sync.id))

    async def delete_sync(self, sync: Sync) -> dict:
        """Delete a sync.

        Correspondence rows are scoped to the (team, repository) pair, not to the
        user, so they are only removed with the last sync linking that pair.
        """
        async with self.session_factory() as db:
            await db.execute(delete(Sync).where(Sync.id == sync.id))
            remaining = (
                await db.execute(
                    select(func.count(Sync.id)).where(
                        Sync.linear_team_id == sync.linear_team_id,
                        Sync.github_repo_id == sync.github_repo_id,
                    )
                )
            ).scalar_one()
            issues = milestones = 0
            if remaining == 0:
                issues = (
                    await db.execute(
                        delete(SyncedIssue).where(
                            SyncedIssue.linear_team_id == sync.linear_team_id,
                            SyncedIssue.github_repo_id == sync.github_repo_id,
                        )
                    )
                ).rowcount
                milestones = (
                    await db.execute(
                        delete(SyncedMilestone).where(
                            SyncedMilestone.linear_team_id == sync.linear_team_id,
                            SyncedMilestone.github_repo_id == sync.github_repo_id,
                        )
                    )
                ).rowcount
            await db.commit()
        logger.info(f"Deleted sync {sync.id} ({issues} synced issues, {milestones} synced milestones removed)")
        return {"synced_issues_deleted": issues, "synced_milestones_deleted": milestones, "last_for_pair": remaining == 0}

    async def count_syncs_for_team(self, linear_team_id: str) -> int:
        async with self.session_factory() as db:
            return (
                await db.execute(select(func.count(Sync.id)).where(Sync.linear_team_id == linear_team_id))
            ).scalar_one()

    async def count_syncs_for_repo(self, github_repo_id: int) -> int:
        async with self.session_factory() as db:
            return (
                await db.execute(select(func.count(Sync.id)).where(Sync.github_repo_id == github_repo_id))
            ).scalar_one()

    # Synced issues

    async def find_synced_issue_by_linear(self, linear_issue_id: str, linear_team_id: Optional[str] = None) -> Optional[SyncedIssue]:
        stmt = select(SyncedIssue).where(SyncedIssue.linear_issue_id == linear_issue_id)
        if linear_team_id:
            stmt = stmt.where(SyncedIssue.linear_team_id == linear_team_id)
        return await self._first(stmt)

    async def find_synced_issue_by_github(self, github_issue_number: int, github_repo_id: int) -> Optional[SyncedIssue]:
        return await self._first(
            select(SyncedIssue).where(
                SyncedIssue.github_issue_number == github_issue_number,
                SyncedIssue.github_repo_id == github_repo_id,
            )
        )

    async def create_synced_issue(self, **fields) -> Optional[SyncedIssue]:
        row = await self._add(SyncedIssue(**fields))
        if row is None:
            logger.info(
                f"Synced issue for Linear {fields.get('linear_issue_id')} / GitHub "
                f"#{fields.get('github_issue_number')} already exists, keeping the existing row"
            )
        return row

    async def touch_synced_issue(self, row_id: int):
        async with self.session_factory() as db:
            row = await db.get(SyncedIssue, row_id)
            if row is not None:
                row.last_synced_at = utcnow()
                await db.commit()

    async def delete_synced_issue(self, row_id: int) -> bool:
        async with self.session_factory() as db:
            result = await db.execute(delete(SyncedIssue).where(SyncedIssue.id == row_id))
            await db.commit()
            return bool(result.rowcount)

    async def list_synced_issues(
        self, *, github_repo_id: Optional[int] = None, linear_team_id: Optional[str] = None, limit: int = 500
    ) -> List[SyncedIssue]:
        stmt = select(SyncedIssue)
        if github_repo_id is not None:
            stmt = stmt.where(SyncedIssue.github_repo_id == github_repo_id)
        if linear_team_id is not None:
            stmt = stmt.where(SyncedIssue.linear_team_id == linear_team_id)
        return await self._all(stmt.order_by(SyncedIssue.id.desc()).limit(limit))

    # Synced milestones

    async def find_synced_milestone_by_github(self, milestone_number: int, github_repo_id: int) -> Optional[SyncedMilestone]:
        return await self._first(
            select(SyncedMilestone).where(
                SyncedMilestone.github_milestone_number == milestone_number,
                SyncedMilestone.github_repo_id == github_repo_id,
            )
        )

    async def find_synced_milestone_by_linear(self, resource_id: str, linear_team_id: str) -> Optional[SyncedMilestone]:
        return await self._first(
            select(SyncedMilestone).where(
                SyncedMilestone.linear_resource_id == resource_id,
                SyncedMilestone.linear_team_id == linear_team_id,
            )
        )

    async def create_synced_milestone(
        self,
        *,
        github_milestone_number: int,
        github_repo_id: int,
        linear_resource_id: str,
        linear_resource_kind: MilestoneKind,
        linear_team_id: str,
    ) -> SyncedMilestone:
        """Insert a milestone correspondence; on a race, return the row that won."""
        row = await self._add(
            SyncedMilestone(
                github_milestone_number=github_milestone_number,
                github_repo_id=github_repo_id,
                linear_resource_id=linear_resource_id,
                linear_resource_kind=linear_resource_kind,
                linear_team_id=linear_team_id,
            )
        )
        if row is not None:
            return row
        existing = await self.find_synced_milestone_by_github(github_milestone_number, github_repo_id)
        return existing or await self.find_synced_milestone_by_linear(linear_resource_id, linear_team_id)

    async def list_synced_milestones(self, limit: int = 500) -> List[SyncedMilestone]:
        return await self._all(select(SyncedMilestone).order_by(SyncedMilestone.id.desc()).limit(limit))

    # User identities

    async def find_user(self, side: Side, user_id) -> Optional[UserIdentity]:
        if user_id is None:
            return None
        if side is Side.LINEAR:
            column = UserIdentity.linear_user_id
            value = str(user_id)
        else:
            column = UserIdentity.github_user_id
            value = int(user_id)
        return await self._first(select(UserIdentity).where(column == value).order_by(UserIdentity.updated_at.desc()))

    async def find_user_pair(self, github_user_id: int, linear_user_id: str) -> Optional[UserIdentity]:
        return await self._first(
            select(UserIdentity).where(
                UserIdentity.github_user_id == github_user_id,
                UserIdentity.linear_user_id == linear_user_id,
            )
        )

    async def upsert_user(self, *, github_user_id: int, linear_user_id: str, **fields) -> UserIdentity:
        async with self.session_factory() as db:
            row = (
                await db.execute(
                    select(UserIdentity).where(
                        UserIdentity.github_user_id == github_user_id,
                        UserIdentity.linear_user_id == linear_user_id,
                    )
                )
            ).scalars().first()
            if row is None:
                row = UserIdentity(github_user_id=github_user_id, linear_user_id=linear_user_id)
                db.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            try:
                await db.commit()
            except IntegrityError:
                # Lost a race against a concurrent upsert of the same pair
                await db.rollback()
                return await self.find_user_pair(github_user_id, linear_user_id)
            await db.refresh(row)
            return row

    async def find_users_by_username(self, side: Side, usernames: Iterable[str]) -> List[UserIdentity]:
        names = [n for n in usernames if n]
        if not names:
            return []
        column = UserIdentity.linear_username if side is Side.LINEAR else UserIdentity.github_username
        return await self._all(select(UserIdentity).where(or_(*[column == n for n in names])))

    async def list_users(self) -> List[UserIdentity]:
        return await self._all(select(UserIdentity).order_by(UserIdentity.id))

    async def get_user(self, row_id: int) -> Optional[UserIdentity]:
        return await self._first(select(UserIdentity).where(UserIdentity.id == row_id))

    async def delete_user(self, row_id: int) -> bool:
        async with self.session_factory() as db:
            result = await db.execute(delete(UserIdentity).where(UserIdentity.id == row_id))
            await db.commit()
            return bool(result.rowcount)

    # Logs

    async def log(
        self,
        *,
        source: SyncSource,
        status: SyncStatus,
        message: str,
        event: Optional[str] = None,
        sync_id: Optional[int] = None,
        linear_issue_id: Optional[str] = None,
        github_issue_number: Optional[int] = None,
    ):
        """Record a handled delivery"""
        await self._add(
            SyncLog(
                sync_id=sync_id,
                source=source,
                event=event,
                status=status,
                message=message,
                linear_issue_id=linear_issue_id,
                github_issue_number=github_issue_number,
            )
        )

    async def list_logs(self, *, limit: int = 100, status: Optional[SyncStatus] = None) -> List[SyncLog]:
        stmt = select(SyncLog)
        if status is not None:
            stmt = stmt.where(SyncLog.status == status)
        return await self._all(stmt.order_by(SyncLog.id.desc()).limit(limit))


def get_store() -> CorrespondenceStore:
    """FastAPI dependency: a store bound to the application database"""
    return CorrespondenceStore(AsyncSessionLocal)
