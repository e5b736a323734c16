"""
Ownership establishment — the post-create hook that makes a story's creator
its first owner.

This runs inside the creation transaction and deliberately bypasses the
"add member" policy, which requires an existing owner. Its only guard is that
the creator id matches the story record.
"""

from __future__ import annotations

import uuid
from enum import Enum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storyshare.core.errors import Forbidden
from storyshare.models.story_member import ROLE_OWNER
from storyshare.services import memberships

log = structlog.get_logger()


class OwnershipOutcome(str, Enum):
    ESTABLISHED = "established"
    # Replayed hook: the owner row was already there.
    ALREADY_ESTABLISHED = "already_established"


async def establish_ownership(
    story_id: uuid.UUID, creator_id: uuid.UUID, session: AsyncSession
) -> OwnershipOutcome:
    if not await memberships.is_creator(story_id, creator_id, session):
        log.warning(
            "ownership.rejected", story_id=str(story_id), creator_id=str(creator_id)
        )
        raise Forbidden()

    if await memberships.add_or_ignore(story_id, creator_id, ROLE_OWNER, session):
        log.info(
            "ownership.established", story_id=str(story_id), creator_id=str(creator_id)
        )
        return OwnershipOutcome.ESTABLISHED

    # A replay after the creator was demoted is fine as long as someone owns it.
    role = await memberships.get_role(story_id, creator_id, session)
    if role != ROLE_OWNER:
        await memberships.ensure_has_owner(story_id, session)

    log.info(
        "ownership.already_established",
        story_id=str(story_id),
        creator_id=str(creator_id),
    )
    return OwnershipOutcome.ALREADY_ESTABLISHED
