"""User identity management endpoints"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from syncbridge.services.store import CorrespondenceStore, get_store

router = APIRouter(prefix="/api/users", tags=["users"])


class UserIdentityCreate(BaseModel):
    github_user_id: int
    github_username: str
    github_email: Optional[str] = None
    linear_user_id: str
    linear_username: str
    linear_email: Optional[str] = None


class UserIdentityResponse(BaseModel):
    id: int
    github_user_id: int
    github_username: str
    linear_user_id: str
    linear_username: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("/", response_model=List[UserIdentityResponse])
async def list_users(store: CorrespondenceStore = Depends(get_store)):
    """List all known user identities"""
    return await store.list_users()


@router.post("/", response_model=UserIdentityResponse)
async def create_user(user: UserIdentityCreate, store: CorrespondenceStore = Depends(get_store)):
    """Create or update the identity pair for one person"""
    fields = user.model_dump()
    return await store.upsert_user(
        github_user_id=fields.pop("github_user_id"),
        linear_user_id=fields.pop("linear_user_id"),
        **fields,
    )


@router.get("/{user_id}", response_model=UserIdentityResponse)
async def get_user(user_id: int, store: CorrespondenceStore = Depends(get_store)):
    """Get a specific user identity"""
    user = await store.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User identity not found")
    return user


@router.delete("/{user_id}")
async def delete_user(user_id: int, store: CorrespondenceStore = Depends(get_store)):
    """Delete a user identity"""
    if not await store.delete_user(user_id):
        raise HTTPException(status_code=404, detail="User identity not found")
    return {"message": "User identity deleted successfully"}
