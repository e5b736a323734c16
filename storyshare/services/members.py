"""
Membership management — the checked tier over `services.memberships`.

Every operation is gated by the authorization engine. Changes that can reduce
the number of owners lock the story row before the authorization decision,
so the decision and the write see the same memberships, and re-check the
invariant afterwards; removing or demoting the last owner is rejected.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from storyshare.core import authz
from storyshare.core.authz import Action
from storyshare.core.errors import Forbidden, LastOwnerConflict, NotFound
from storyshare.models.story_member import ROLE_OWNER, StoryMember
from storyshare.services import memberships

log = structlog.get_logger()


async def list_members(
    caller_id: uuid.UUID, story_id: uuid.UUID, session: AsyncSession
) -> list[StoryMember]:
    """List a story's members. Only members of the story may see the roster."""
    ctx = await authz.load_context(caller_id, story_id, session)
    await authz.enforce(Action.LIST_MEMBERS, ctx)
    return await memberships.list_for_resource(story_id, session)


async def list_my_memberships(
    caller_id: uuid.UUID, session: AsyncSession
) -> list[StoryMember]:
    """The caller's own membership rows (the set form of VIEW_MEMBERSHIP)."""
    result = await session.execute(
        select(StoryMember)
        .where(StoryMember.user_id == caller_id)
        .order_by(StoryMember.created_at)
    )
    return list(result.scalars().all())


async def get_member(
    caller_id: uuid.UUID,
    story_id: uuid.UUID,
    user_id: uuid.UUID,
    session: AsyncSession,
) -> StoryMember:
    """Read one membership: the caller's own, or any if they can see the roster."""
    ctx = await authz.load_context(
        caller_id, story_id, session, target_user_id=user_id
    )
    if not (
        await authz.evaluate(Action.VIEW_MEMBERSHIP, ctx)
        or await authz.evaluate(Action.LIST_MEMBERS, ctx)
    ):
        raise Forbidden()

    membership = await memberships.get_membership(story_id, user_id, session)
    if membership is None:
        raise NotFound("Membership not found")
    return membership


async def add_member(
    caller_id: uuid.UUID,
    story_id: uuid.UUID,
    user_id: uuid.UUID,
    role: str,
    session: AsyncSession,
) -> StoryMember:
    """Add a member. Conflict if the user already has a membership."""
    ctx = await authz.load_context(
        caller_id, story_id, session, target_user_id=user_id, target_role=role
    )
    await authz.enforce(Action.ADD_MEMBER, ctx)

    await memberships.add(story_id, user_id, role, session)
    return await memberships.get_membership(story_id, user_id, session)


async def remove_member(
    caller_id: uuid.UUID,
    story_id: uuid.UUID,
    user_id: uuid.UUID,
    session: AsyncSession,
) -> bool:
    """Remove a member (owner only). Removing a non-member is a no-op."""
    await memberships.lock_story(story_id, session)
    ctx = await authz.load_context(
        caller_id, story_id, session, target_user_id=user_id
    )
    await authz.enforce(Action.REMOVE_MEMBER, ctx)

    role = await memberships.get_role(story_id, user_id, session)
    if role is None:
        return False
    if role == ROLE_OWNER and await memberships.count_owners(story_id, session) <= 1:
        raise LastOwnerConflict()

    removed = await memberships.remove(story_id, user_id, session)
    await memberships.ensure_has_owner(story_id, session)
    return removed


async def change_role(
    caller_id: uuid.UUID,
    story_id: uuid.UUID,
    user_id: uuid.UUID,
    role: str,
    session: AsyncSession,
) -> StoryMember:
    """Change a member's role as delete + insert in the current transaction."""
    await memberships.lock_story(story_id, session)
    ctx = await authz.load_context(
        caller_id, story_id, session, target_user_id=user_id, target_role=role
    )
    await authz.enforce(Action.REMOVE_MEMBER, ctx)
    await authz.enforce(Action.ADD_MEMBER, ctx)

    current = await memberships.get_membership(story_id, user_id, session)
    if current is None:
        raise NotFound("Membership not found")
    old_role = current.role
    if old_role == role:
        return current
    if old_role == ROLE_OWNER and await memberships.count_owners(story_id, session) <= 1:
        raise LastOwnerConflict()

    await memberships.remove(story_id, user_id, session)
    await memberships.add(story_id, user_id, role, session)
    await memberships.ensure_has_owner(story_id, session)

    log.info(
        "membership.role_changed",
        story_id=str(story_id),
        user_id=str(user_id),
        old_role=old_role,
        new_role=role,
    )
    return await memberships.get_membership(story_id, user_id, session)
