"""
Story membership endpoints.

GET    /api/v1/stories/{storyId}/members              — List members (members only)
POST   /api/v1/stories/{storyId}/members              — Add a member (owner only)
GET    /api/v1/stories/{storyId}/members/{userId}     — Get one membership
PUT    /api/v1/stories/{storyId}/members/{userId}     — Change role (owner only)
DELETE /api/v1/stories/{storyId}/members/{userId}     — Remove member (owner only)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storyshare.core.auth import get_caller_id
from storyshare.core.database import get_session
from storyshare.services import members as member_service
from storyshare_shared.schemas.stories import (
    MemberAdd,
    MemberListResponse,
    MemberRead,
    MemberRoleChange,
)

router = APIRouter()


@router.get("", response_model=MemberListResponse)
async def list_members(
    storyId: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    items = await member_service.list_members(caller_id, storyId, session)
    return MemberListResponse(data=[MemberRead.model_validate(m) for m in items])


@router.post("", response_model=MemberRead, status_code=201)
async def add_member(
    storyId: uuid.UUID,
    body: MemberAdd,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """Add a member or co-owner. 409 if the user is already a member."""
    membership = await member_service.add_member(
        caller_id, storyId, body.user_id, body.role.value, session
    )
    return MemberRead.model_validate(membership)


@router.get("/{userId}", response_model=MemberRead)
async def get_member(
    storyId: uuid.UUID,
    userId: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    membership = await member_service.get_member(caller_id, storyId, userId, session)
    return MemberRead.model_validate(membership)


@router.put("/{userId}", response_model=MemberRead)
async def change_member_role(
    storyId: uuid.UUID,
    userId: uuid.UUID,
    body: MemberRoleChange,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role. Demoting the last owner is rejected with 409."""
    membership = await member_service.change_role(
        caller_id, storyId, userId, body.role.value, session
    )
    return MemberRead.model_validate(membership)


@router.delete("/{userId}", status_code=204)
async def remove_member(
    storyId: uuid.UUID,
    userId: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member. Idempotent; removing the last owner is rejected with 409."""
    await member_service.remove_member(caller_id, storyId, userId, session)
