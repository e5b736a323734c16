"""Story and membership schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import StoryRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class StoryCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    cover_image_url: Optional[str] = None
    is_public: bool = False


class StoryUpdate(BaseModel):
    """Partial update. Only an owner may apply it, including `is_public`."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    cover_image_url: Optional[str] = None
    is_public: Optional[bool] = None


class MemberAdd(BaseModel):
    user_id: UUID
    role: StoryRole = StoryRole.MEMBER


class MemberRoleChange(BaseModel):
    role: StoryRole


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class StoryRead(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    is_public: bool
    created_by: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StoryListResponse(BaseModel):
    data: List[StoryRead]


class DashboardStory(StoryRead):
    """A story the caller belongs to, with their role and the member count."""
    role: StoryRole
    member_count: int = 0


class DashboardResponse(BaseModel):
    data: List[DashboardStory]


class MemberRead(BaseModel):
    story_id: UUID
    user_id: UUID
    role: StoryRole
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberListResponse(BaseModel):
    data: List[MemberRead]


class StoryAccess(BaseModel):
    """Decision summary for the caller on one story."""
    story_id: UUID
    can_view: bool
    can_manage_members: bool
    can_mutate: bool
