"""
Story endpoints.

GET    /api/v1/stories                      — Public stories plus the caller's own
POST   /api/v1/stories                      — Create a story (creator becomes owner)
GET    /api/v1/stories/{storyId}            — Get a visible story
PATCH  /api/v1/stories/{storyId}            — Update fields / visibility (owner only)
DELETE /api/v1/stories/{storyId}            — Delete (owner only)
GET    /api/v1/stories/{storyId}/access     — Decision summary for the caller
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storyshare.core import authz
from storyshare.core.auth import get_caller_id
from storyshare.core.database import get_session
from storyshare.services import stories as story_service
from storyshare_shared.schemas.stories import (
    StoryAccess,
    StoryCreate,
    StoryListResponse,
    StoryRead,
    StoryUpdate,
)

router = APIRouter()


@router.get("", response_model=StoryListResponse)
async def list_stories(
    public_only: bool = Query(False),
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """List stories visible to the caller."""
    items = await story_service.list_visible_stories(
        caller_id, session, public_only=public_only
    )
    return StoryListResponse(data=[StoryRead.model_validate(s) for s in items])


@router.post("", response_model=StoryRead, status_code=201)
async def create_story(
    body: StoryCreate,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """Create a story. The creator becomes its first owner in the same transaction."""
    story = await story_service.create_story(body, caller_id, session)
    return StoryRead.model_validate(story)


@router.get("/{storyId}", response_model=StoryRead)
async def get_story(
    storyId: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    story = await story_service.get_story(caller_id, storyId, session)
    return StoryRead.model_validate(story)


@router.patch("/{storyId}", response_model=StoryRead)
async def update_story(
    storyId: uuid.UUID,
    body: StoryUpdate,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """Update story fields, including `is_public` (owner only)."""
    story = await story_service.update_story(caller_id, storyId, body, session)
    return StoryRead.model_validate(story)


@router.delete("/{storyId}", status_code=204)
async def delete_story(
    storyId: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """Delete a story and all of its memberships (owner only)."""
    await story_service.delete_story(caller_id, storyId, session)


@router.get("/{storyId}/access", response_model=StoryAccess)
async def get_access(
    storyId: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_session),
):
    """What the caller may do with this story. Missing stories read as all-false."""
    return StoryAccess(
        story_id=storyId,
        can_view=await authz.can_view(caller_id, storyId, session),
        can_manage_members=await authz.can_manage_members(caller_id, storyId, session),
        can_mutate=await authz.can_mutate(caller_id, storyId, session),
    )
