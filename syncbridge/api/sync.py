"""Read-only views of correspondence rows and delivery logs"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from syncbridge.models.sync_log import SyncStatus
from syncbridge.services.store import CorrespondenceStore, get_store

router = APIRouter(prefix="/api", tags=["sync"])


class SyncedIssueResponse(BaseModel):
    id: int
    linear_issue_id: str
    linear_issue_number: int
    linear_team_id: str
    github_issue_id: int
    github_issue_number: int
    github_repo_id: int
    created_at: datetime
    last_synced_at: datetime

    class Config:
        from_attributes = True


class SyncedMilestoneResponse(BaseModel):
    id: int
    github_milestone_number: int
    github_repo_id: int
    linear_resource_id: str
    linear_resource_kind: str
    linear_team_id: str
    created_at: datetime

    class Config:
        from_attributes = True


class SyncLogResponse(BaseModel):
    id: int
    sync_id: Optional[int] = None
    source: str
    event: Optional[str] = None
    status: str
    message: Optional[str] = None
    linear_issue_id: Optional[str] = None
    github_issue_number: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/synced-issues", response_model=List[SyncedIssueResponse])
async def list_synced_issues(
    github_repo_id: int = None,
    linear_team_id: str = None,
    limit: int = 500,
    store: CorrespondenceStore = Depends(get_store),
):
    """List synced issues"""
    return await store.list_synced_issues(github_repo_id=github_repo_id, linear_team_id=linear_team_id, limit=limit)


@router.get("/synced-milestones", response_model=List[SyncedMilestoneResponse])
async def list_synced_milestones(limit: int = 500, store: CorrespondenceStore = Depends(get_store)):
    """List synced milestones"""
    return await store.list_synced_milestones(limit=limit)


@router.get("/logs", response_model=List[SyncLogResponse])
async def list_sync_logs(
    limit: int = 100,
    status: Optional[SyncStatus] = None,
    store: CorrespondenceStore = Depends(get_store),
):
    """List handled webhook deliveries, newest first"""
    return await store.list_logs(limit=limit, status=status)
