"""
Story service — the resource store.

Creation inserts the story and runs the ownership hook in the caller's
transaction; the session dependency rolls both back together on any error.
Every other operation goes through the authorization engine first.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from storyshare.core import authz
from storyshare.core.authz import Action
from storyshare.models.story import Story
from storyshare.models.story_member import StoryMember
from storyshare.services import memberships
from storyshare.services.ownership import establish_ownership
from storyshare_shared.schemas.stories import StoryCreate, StoryUpdate

log = structlog.get_logger()

# Columns that are non-nullable and so ignore an explicit null in a patch.
_REQUIRED_FIELDS = {"title", "is_public"}


async def create_story(
    req: StoryCreate, creator_id: uuid.UUID, session: AsyncSession
) -> Story:
    """Create a story and make its creator the first owner, atomically."""
    story = Story(
        title=req.title,
        description=req.description,
        cover_image_url=req.cover_image_url,
        is_public=req.is_public,
        created_by=creator_id,
    )
    session.add(story)
    await session.flush()

    outcome = await establish_ownership(story.id, creator_id, session)
    await memberships.ensure_has_owner(story.id, session)

    log.info(
        "story.created",
        story_id=str(story.id),
        creator=str(creator_id),
        is_public=story.is_public,
        ownership=outcome.value,
    )
    return story


async def get_story(
    caller_id: uuid.UUID, story_id: uuid.UUID, session: AsyncSession
) -> Story:
    """Get a story the caller may view; Forbidden otherwise, missing or not."""
    ctx = await authz.load_context(caller_id, story_id, session)
    await authz.enforce(Action.VIEW_STORY, ctx)
    return ctx.story


async def list_visible_stories(
    caller_id: uuid.UUID, session: AsyncSession, *, public_only: bool = False
) -> list[Story]:
    """Public stories plus those the caller belongs to, newest first.

    This is the set form of the VIEW_STORY policy. It reads only the caller's
    own membership rows.
    """
    own_story_ids = select(StoryMember.story_id).where(StoryMember.user_id == caller_id)
    query = select(Story)
    if public_only:
        query = query.where(Story.is_public == True)  # noqa: E712
    else:
        query = query.where(
            or_(Story.is_public == True, Story.id.in_(own_story_ids))  # noqa: E712
        )
    result = await session.execute(query.order_by(Story.created_at.desc()))
    return list(result.scalars().all())


async def list_my_stories(
    caller_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """Stories the caller belongs to, with their role and the member count."""
    member_counts = (
        select(StoryMember.story_id, func.count().label("member_count"))
        .group_by(StoryMember.story_id)
        .subquery()
    )
    result = await session.execute(
        select(Story, StoryMember.role, member_counts.c.member_count)
        .join(StoryMember, StoryMember.story_id == Story.id)
        .join(member_counts, member_counts.c.story_id == Story.id)
        .where(StoryMember.user_id == caller_id)
        .order_by(Story.created_at.desc())
    )
    return [
        {
            **story.model_dump(),
            "role": role,
            "member_count": member_count,
        }
        for story, role, member_count in result.all()
    ]


async def update_story(
    caller_id: uuid.UUID,
    story_id: uuid.UUID,
    req: StoryUpdate,
    session: AsyncSession,
) -> Story:
    """Apply a partial update (owner only), including the visibility flag."""
    ctx = await authz.load_context(caller_id, story_id, session)
    await authz.enforce(Action.UPDATE_STORY, ctx)
    story = ctx.story

    changes = req.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in _REQUIRED_FIELDS:
            continue
        setattr(story, field, value)

    story.updated_at = datetime.now(timezone.utc)
    session.add(story)
    await session.flush()

    log.info("story.updated", story_id=str(story.id), fields=sorted(changes))
    return story


async def delete_story(
    caller_id: uuid.UUID, story_id: uuid.UUID, session: AsyncSession
) -> None:
    """Delete a story and its memberships (owner only)."""
    ctx = await authz.load_context(caller_id, story_id, session)
    await authz.enforce(Action.DELETE_STORY, ctx)

    removed = await memberships.remove_all_for_story(story_id, session)
    await session.delete(ctx.story)
    await session.flush()

    log.info("story.deleted", story_id=str(story_id), memberships_removed=removed)
