"""
Authorization engine for stories and their memberships.

Rules are declared as policies, in the manner of row-level security:

- PERMISSIVE policies for an action are OR-ed together; with none, the action
  is denied.
- RESTRICTIVE policies are AND-ed on top of the permissive result, so loosening
  a base rule can never grant more than the restrictive rules allow.

A predicate only ever reads from sources that are already resolved when the
decision starts: the caller id, the story record loaded through the privileged
tier, the proposed membership row, and lookups in `services.memberships`.
No predicate calls `evaluate`, which keeps the evaluation graph acyclic.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storyshare.core.errors import Forbidden
from storyshare.models.story import Story
from storyshare.models.story_member import ROLE_OWNER
from storyshare.services import memberships

log = structlog.get_logger()


class Action(str, Enum):
    VIEW_STORY = "view_story"
    VIEW_MEMBERSHIP = "view_membership"
    LIST_MEMBERS = "list_members"
    ADD_MEMBER = "add_member"
    REMOVE_MEMBER = "remove_member"
    UPDATE_STORY = "update_story"
    DELETE_STORY = "delete_story"


class PolicyKind(str, Enum):
    PERMISSIVE = "permissive"
    RESTRICTIVE = "restrictive"


@dataclass(frozen=True)
class PolicyContext:
    """Everything a predicate may look at for one decision."""

    caller_id: uuid.UUID
    story_id: uuid.UUID
    story: Optional[Story]
    session: AsyncSession
    # The membership row being added, removed or read, when there is one.
    target_user_id: Optional[uuid.UUID] = None
    target_role: Optional[str] = None


Predicate = Callable[[PolicyContext], Awaitable[bool]]


@dataclass(frozen=True)
class Policy:
    name: str
    action: Action
    kind: PolicyKind
    check: Predicate


_POLICIES: list[Policy] = []


def policy(action: Action, name: str, kind: PolicyKind = PolicyKind.PERMISSIVE):
    """Register the decorated predicate as a policy for `action`."""

    def deco(fn: Predicate) -> Predicate:
        _POLICIES.append(Policy(name=name, action=action, kind=kind, check=fn))
        return fn

    return deco


def policies_for(action: Action) -> list[Policy]:
    return [p for p in _POLICIES if p.action is action]


def policy_table() -> list[Policy]:
    return list(_POLICIES)


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

@policy(Action.VIEW_STORY, "public stories or the caller's stories")
@policy(Action.UPDATE_STORY, "members can target their stories (base)")
@policy(Action.DELETE_STORY, "members can target their stories for delete (base)")
async def _public_or_member(ctx: PolicyContext) -> bool:
    if ctx.story is None:
        return False
    if ctx.story.is_public:
        return True
    return await memberships.is_member(ctx.story_id, ctx.caller_id, ctx.session)


@policy(Action.VIEW_MEMBERSHIP, "users can view their own memberships")
async def _own_membership(ctx: PolicyContext) -> bool:
    return ctx.target_user_id is not None and ctx.target_user_id == ctx.caller_id


@policy(Action.LIST_MEMBERS, "members can view the roster")
async def _member_of_story(ctx: PolicyContext) -> bool:
    if ctx.story is None:
        return False
    return await memberships.is_member(ctx.story_id, ctx.caller_id, ctx.session)


@policy(Action.ADD_MEMBER, "creators can insert their owner membership")
async def _creator_bootstrap(ctx: PolicyContext) -> bool:
    return (
        ctx.story is not None
        and ctx.target_user_id == ctx.caller_id
        and ctx.target_role == ROLE_OWNER
        and ctx.story.created_by == ctx.caller_id
    )


@policy(Action.ADD_MEMBER, "owners can add members")
@policy(Action.REMOVE_MEMBER, "owners can remove members")
@policy(Action.UPDATE_STORY, "only owners can update stories", PolicyKind.RESTRICTIVE)
@policy(Action.DELETE_STORY, "only owners can delete stories", PolicyKind.RESTRICTIVE)
async def _owner(ctx: PolicyContext) -> bool:
    if ctx.story is None:
        return False
    return await memberships.is_owner(ctx.story_id, ctx.caller_id, ctx.session)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

async def load_context(
    caller_id: uuid.UUID,
    story_id: uuid.UUID,
    session: AsyncSession,
    *,
    target_user_id: Optional[uuid.UUID] = None,
    target_role: Optional[str] = None,
) -> PolicyContext:
    """Read the story with privileged access and build a decision context."""
    story = await session.get(Story, story_id)
    return PolicyContext(
        caller_id=caller_id,
        story_id=story_id,
        story=story,
        session=session,
        target_user_id=target_user_id,
        target_role=target_role,
    )


async def evaluate(action: Action, ctx: PolicyContext) -> bool:
    """Decide `action` for the context. Pure: no writes, no logging."""
    rules = policies_for(action)
    permissive = [p for p in rules if p.kind is PolicyKind.PERMISSIVE]
    restrictive = [p for p in rules if p.kind is PolicyKind.RESTRICTIVE]

    for p in permissive:
        if await p.check(ctx):
            break
    else:
        return False

    for p in restrictive:
        if not await p.check(ctx):
            return False
    return True


async def enforce(action: Action, ctx: PolicyContext) -> None:
    """Raise Forbidden unless `action` is allowed. Never says why."""
    if not await evaluate(action, ctx):
        log.info(
            "authz.denied",
            action=action.value,
            caller_id=str(ctx.caller_id),
            story_id=str(ctx.story_id),
        )
        raise Forbidden()


# ---------------------------------------------------------------------------
# Decision entry points
# ---------------------------------------------------------------------------

async def can_view(
    caller_id: uuid.UUID, story_id: uuid.UUID, session: AsyncSession
) -> bool:
    ctx = await load_context(caller_id, story_id, session)
    return await evaluate(Action.VIEW_STORY, ctx)


async def can_manage_members(
    caller_id: uuid.UUID, story_id: uuid.UUID, session: AsyncSession
) -> bool:
    # No target row, so only the steady-state owner rule can allow ADD_MEMBER.
    ctx = await load_context(caller_id, story_id, session)
    return await evaluate(Action.ADD_MEMBER, ctx) and await evaluate(
        Action.REMOVE_MEMBER, ctx
    )


async def can_mutate(
    caller_id: uuid.UUID, story_id: uuid.UUID, session: AsyncSession
) -> bool:
    ctx = await load_context(caller_id, story_id, session)
    return await evaluate(Action.UPDATE_STORY, ctx) and await evaluate(
        Action.DELETE_STORY, ctx
    )
