"""
Membership store — the privileged tier.

Everything here reads and writes `story_members` (and the creator column of
`stories`) without any authorization check. These functions are the primitives
the policies in `storyshare.core.authz` are built from, so they must never call
back into the engine. Request handlers go through `services.stories` and
`services.members` instead.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from storyshare.core.errors import Conflict, InvariantViolation
from storyshare.models.story import Story
from storyshare.models.story_member import ROLE_OWNER, StoryMember

log = structlog.get_logger()

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    try:
        return _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise RuntimeError(f"Unsupported database dialect: {dialect}")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def add_or_ignore(
    story_id: uuid.UUID, user_id: uuid.UUID, role: str, session: AsyncSession
) -> bool:
    """Insert a membership unless the (story, user) pair exists.

    Returns True when a row was inserted. The unique constraint decides the
    winner of concurrent inserts; the loser gets False and its transaction
    stays usable.
    """
    insert = _insert_for(session)
    stmt = (
        insert(StoryMember)
        .values(
            id=uuid.uuid4(),
            story_id=story_id,
            user_id=user_id,
            role=role,
            created_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(index_elements=["story_id", "user_id"])
        .returning(StoryMember.id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def add(
    story_id: uuid.UUID, user_id: uuid.UUID, role: str, session: AsyncSession
) -> None:
    """Insert a membership; raises Conflict if the user already has one."""
    if not await add_or_ignore(story_id, user_id, role, session):
        raise Conflict()
    log.info("membership.added", story_id=str(story_id), user_id=str(user_id), role=role)


async def remove(
    story_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> bool:
    """Delete a membership. Missing rows are not an error; returns whether one was deleted."""
    result = await session.execute(
        delete(StoryMember).where(
            StoryMember.story_id == story_id,
            StoryMember.user_id == user_id,
        )
    )
    removed = result.rowcount > 0
    if removed:
        log.info("membership.removed", story_id=str(story_id), user_id=str(user_id))
    return removed


async def remove_all_for_story(story_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        delete(StoryMember).where(StoryMember.story_id == story_id)
    )
    return result.rowcount


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def list_for_resource(
    story_id: uuid.UUID, session: AsyncSession
) -> list[StoryMember]:
    result = await session.execute(
        select(StoryMember)
        .where(StoryMember.story_id == story_id)
        .order_by(StoryMember.created_at, StoryMember.user_id)
    )
    return list(result.scalars().all())


async def list_for_user(user_id: uuid.UUID, session: AsyncSession) -> set[uuid.UUID]:
    result = await session.execute(
        select(StoryMember.story_id).where(StoryMember.user_id == user_id)
    )
    return set(result.scalars().all())


async def get_membership(
    story_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Optional[StoryMember]:
    result = await session.execute(
        select(StoryMember).where(
            StoryMember.story_id == story_id,
            StoryMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_role(
    story_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Optional[str]:
    result = await session.execute(
        select(StoryMember.role).where(
            StoryMember.story_id == story_id,
            StoryMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def is_member(
    story_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> bool:
    """Any role. A single-row lookup on the caller's own membership."""
    return await get_role(story_id, user_id, session) is not None


async def is_owner(
    story_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> bool:
    return await get_role(story_id, user_id, session) == ROLE_OWNER


async def count_owners(story_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(StoryMember)
        .where(StoryMember.story_id == story_id, StoryMember.role == ROLE_OWNER)
    )
    return result.scalar_one()


async def is_creator(
    story_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> bool:
    """Answered from the story record alone, never from memberships."""
    result = await session.execute(
        select(Story.created_by).where(Story.id == story_id)
    )
    created_by = result.scalar_one_or_none()
    return created_by is not None and created_by == user_id


# ---------------------------------------------------------------------------
# Ownership invariant
# ---------------------------------------------------------------------------

async def lock_story(story_id: uuid.UUID, session: AsyncSession) -> bool:
    """Serialize owner-count changes for one story (row lock where supported)."""
    result = await session.execute(
        select(Story.id).where(Story.id == story_id).with_for_update()
    )
    return result.scalar_one_or_none() is not None


async def ensure_has_owner(story_id: uuid.UUID, session: AsyncSession) -> None:
    """Raise InvariantViolation if the story has no owner row."""
    if await count_owners(story_id, session) < 1:
        log.critical("invariant.violated", story_id=str(story_id), invariant="has_owner")
        raise InvariantViolation(story_id)
