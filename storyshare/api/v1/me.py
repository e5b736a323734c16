"""
Caller-scoped endpoints.

GET /api/v1/me/memberships   — The caller's own membership rows
GET /api/v1/me/stories       — Dashboard: stories the caller belongs to
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storyshare.core.auth import get_caller_id
from storyshare.core.database import get_session
from storyshare.services import members as member_service
from storyshare.services import stories as story_service
from storyshare_shared.schemas.stories import (
    DashboardResponse,
    DashboardStory,
    MemberListResponse,
    MemberRead,
)

router = APIRouter()


@router.get("/memberships", response_model=MemberListResponse)
async def list_my_memberships(
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    items = await member_service.list_my_memberships(caller_id, session)
    return MemberListResponse(data=[MemberRead.model_validate(m) for m in items])


@router.get("/stories", response_model=DashboardResponse)
async def list_my_stories(
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    items = await story_service.list_my_stories(caller_id, session)
    return DashboardResponse(data=[DashboardStory(**item) for item in items])
