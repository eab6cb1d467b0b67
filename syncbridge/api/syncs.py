"""Sync management endpoints"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from syncbridge.services.store import CorrespondenceStore, get_store
from syncbridge.services.unsync import unsync
from syncbridge.services.vault import vault

router = APIRouter(prefix="/api/syncs", tags=["syncs"])


class SyncCreate(BaseModel):
    # Linear side
    linear_user_id: str
    linear_team_id: str
    linear_team_name: str
    linear_team_key: str
    public_label_id: str
    todo_state_id: str
    done_state_id: str
    canceled_state_id: str
    linear_api_key: str

    # GitHub side
    github_user_id: int
    github_repo_id: int
    github_repo_name: str
    github_webhook_secret: str
    github_api_key: str

    # Optional bot identities for loop prevention
    linear_bot_user_id: Optional[str] = None
    github_bot_login: Optional[str] = None


class SyncResponse(BaseModel):
    id: int
    linear_user_id: str
    linear_team_id: str
    github_user_id: int
    github_repo_id: int
    linear_bot_user_id: Optional[str] = None
    github_bot_login: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/", response_model=List[SyncResponse])
async def list_syncs(store: CorrespondenceStore = Depends(get_store)):
    """List all syncs"""
    return await store.list_syncs()


@router.post("/", response_model=SyncResponse)
async def create_sync(payload: SyncCreate, store: CorrespondenceStore = Depends(get_store)):
    """Link a Linear team to a GitHub repository for one user"""
    await store.upsert_linear_team(
        payload.linear_team_id,
        team_name=payload.linear_team_name,
        team_key=payload.linear_team_key,
        public_label_id=payload.public_label_id,
        todo_state_id=payload.todo_state_id,
        done_state_id=payload.done_state_id,
        canceled_state_id=payload.canceled_state_id,
    )
    await store.upsert_github_repo(
        payload.github_repo_id,
        repo_name=payload.github_repo_name,
        webhook_secret=payload.github_webhook_secret,
    )

    sync = await store.create_sync(
        linear_user_id=payload.linear_user_id,
        linear_team_id=payload.linear_team_id,
        linear_api_key=vault.seal(payload.linear_api_key),
        github_user_id=payload.github_user_id,
        github_repo_id=payload.github_repo_id,
        github_api_key=vault.seal(payload.github_api_key),
        linear_bot_user_id=payload.linear_bot_user_id,
        github_bot_login=payload.github_bot_login,
    )
    if sync is None:
        raise HTTPException(status_code=400, detail="Sync already exists for this user, team and repository")
    return sync


@router.get("/{sync_id}", response_model=SyncResponse)
async def get_sync(sync_id: int, store: CorrespondenceStore = Depends(get_store)):
    """Get a specific sync"""
    sync = await store.get_sync(sync_id)
    if not sync:
        raise HTTPException(status_code=404, detail="Sync not found")
    return sync


@router.delete("/{sync_id}")
async def delete_sync(sync_id: int, store: CorrespondenceStore = Depends(get_store)):
    """Unsync: delete the sync, its correspondence rows (if last for the pair) and our webhooks"""
    sync = await store.get_sync(sync_id)
    if not sync:
        raise HTTPException(status_code=404, detail="Sync not found")

    result = await unsync(sync, store)
    return {"message": "Sync deleted successfully", **result}
