"""
Tests for the membership store and membership management.

Tests cover:
- Uniqueness of (story, user) and Conflict on duplicates
- Idempotent removal
- Concurrent adds: one winner, one Conflict
- Story row locked before the decision on owner-count changes
- Last-owner protection on removal and demotion
- Role change as delete + insert
- Roster and own-membership visibility
- Invariant check for ownerless stories
"""

from __future__ import annotations

import asyncio
import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import func
from sqlmodel import select

from storyshare.core import authz
from storyshare.core.errors import (
    Conflict,
    Forbidden,
    InvariantViolation,
    LastOwnerConflict,
    NotFound,
)
from storyshare.models.story import Story
from storyshare.models.story_member import ROLE_MEMBER, ROLE_OWNER, StoryMember
from storyshare.services import members as member_service
from storyshare.services import memberships

from .conftest import make_story


async def _count(session, story_id, user_id):
    result = await session.execute(
        select(func.count())
        .select_from(StoryMember)
        .where(StoryMember.story_id == story_id, StoryMember.user_id == user_id)
    )
    return result.scalar_one()


def _record_lock_and_decision(calls):
    """Patch the story lock and the policy check to log the order they run in."""
    real_lock, real_enforce = memberships.lock_story, authz.enforce

    async def lock_story(*args):
        calls.append("lock")
        return await real_lock(*args)

    async def enforce(*args):
        calls.append("enforce")
        return await real_enforce(*args)

    return (
        patch.object(memberships, "lock_story", lock_story),
        patch.object(authz, "enforce", enforce),
    )


class TestMembershipStore:

    @pytest.mark.asyncio
    async def test_duplicate_add_conflicts(self, session, alice, bob):
        story = await make_story(session, alice)
        await memberships.add(story.id, bob, ROLE_MEMBER, session)
        with pytest.raises(Conflict):
            await memberships.add(story.id, bob, ROLE_OWNER, session)
        assert await _count(session, story.id, bob) == 1
        assert await memberships.get_role(story.id, bob, session) == ROLE_MEMBER

    @pytest.mark.asyncio
    async def test_add_or_ignore(self, session, alice, bob):
        story = await make_story(session, alice)
        assert await memberships.add_or_ignore(story.id, bob, ROLE_MEMBER, session)
        assert not await memberships.add_or_ignore(story.id, bob, ROLE_MEMBER, session)
        assert await _count(session, story.id, bob) == 1

    @pytest.mark.asyncio
    async def test_remove_missing_is_noop(self, session, alice, bob):
        story = await make_story(session, alice)
        assert not await memberships.remove(story.id, bob, session)

    @pytest.mark.asyncio
    async def test_listings(self, session, alice, bob):
        first = await make_story(session, alice, title="One")
        second = await make_story(session, bob, title="Two")
        await memberships.add(second.id, alice, ROLE_MEMBER, session)

        assert await memberships.list_for_user(alice, session) == {first.id, second.id}
        roster = await memberships.list_for_resource(second.id, session)
        assert {(m.user_id, m.role) for m in roster} == {
            (bob, ROLE_OWNER),
            (alice, ROLE_MEMBER),
        }

    @pytest.mark.asyncio
    async def test_is_creator_reads_story_record(self, session, alice, bob):
        story = await make_story(session, alice)
        assert await memberships.is_creator(story.id, alice, session)
        assert not await memberships.is_creator(story.id, bob, session)
        assert not await memberships.is_creator(uuid.uuid4(), alice, session)

    @pytest.mark.asyncio
    async def test_ensure_has_owner_flags_ownerless_story(self, session, alice):
        story = Story(title="Orphan", created_by=alice)
        session.add(story)
        await session.flush()
        with pytest.raises(InvariantViolation):
            await memberships.ensure_has_owner(story.id, session)


class TestAddMember:

    @pytest.mark.asyncio
    async def test_owner_adds_member(self, session, alice, bob):
        story = await make_story(session, alice)
        row = await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        assert row.user_id == bob
        assert row.role == ROLE_MEMBER

    @pytest.mark.asyncio
    async def test_duplicate_surfaces_conflict(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        with pytest.raises(Conflict):
            await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)

    @pytest.mark.asyncio
    async def test_member_cannot_add(self, session, alice, bob, carol):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        with pytest.raises(Forbidden):
            await member_service.add_member(bob, story.id, carol, ROLE_MEMBER, session)

    @pytest.mark.asyncio
    async def test_stranger_cannot_join_public_story(self, session, alice, bob):
        story = await make_story(session, alice, is_public=True)
        with pytest.raises(Forbidden):
            await member_service.add_member(bob, story.id, bob, ROLE_MEMBER, session)
        with pytest.raises(Forbidden):
            await member_service.add_member(bob, story.id, bob, ROLE_OWNER, session)

    @pytest.mark.asyncio
    async def test_missing_story_is_forbidden(self, session, alice, bob):
        with pytest.raises(Forbidden):
            await member_service.add_member(alice, uuid.uuid4(), bob, ROLE_MEMBER, session)

    @pytest.mark.asyncio
    async def test_concurrent_adds_have_one_winner(self, file_session_factory, alice, bob):
        async with file_session_factory() as session:
            story = await make_story(session, alice)

        async def add():
            async with file_session_factory() as session:
                row = await member_service.add_member(
                    alice, story.id, bob, ROLE_MEMBER, session
                )
                await session.commit()
                return row

        results = await asyncio.gather(add(), add(), return_exceptions=True)
        winners = [r for r in results if isinstance(r, StoryMember)]
        losers = [r for r in results if isinstance(r, Conflict)]
        assert len(winners) == 1
        assert len(losers) == 1

        async with file_session_factory() as session:
            assert await _count(session, story.id, bob) == 1


class TestRemoveMember:

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        assert await member_service.remove_member(alice, story.id, bob, session)
        assert not await member_service.remove_member(alice, story.id, bob, session)

    @pytest.mark.asyncio
    async def test_last_owner_cannot_be_removed(self, session, alice):
        story = await make_story(session, alice)
        with pytest.raises(LastOwnerConflict):
            await member_service.remove_member(alice, story.id, alice, session)
        assert await memberships.count_owners(story.id, session) == 1

    @pytest.mark.asyncio
    async def test_handover_to_second_owner(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_OWNER, session)
        assert await member_service.remove_member(bob, story.id, alice, session)
        assert await memberships.count_owners(story.id, session) == 1
        assert await memberships.is_owner(story.id, bob, session)

    @pytest.mark.asyncio
    async def test_member_cannot_remove(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        with pytest.raises(Forbidden):
            await member_service.remove_member(bob, story.id, alice, session)
        # Not even themselves.
        with pytest.raises(Forbidden):
            await member_service.remove_member(bob, story.id, bob, session)

    @pytest.mark.asyncio
    async def test_story_locked_before_decision(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)

        calls = []
        lock_patch, enforce_patch = _record_lock_and_decision(calls)
        with lock_patch, enforce_patch:
            await member_service.remove_member(alice, story.id, bob, session)
        assert calls == ["lock", "enforce"]


class TestChangeRole:

    @pytest.mark.asyncio
    async def test_promote_member(self, session, alice, bob):
        story = await make_story(session, alice)
        before = await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        after = await member_service.change_role(alice, story.id, bob, ROLE_OWNER, session)
        assert after.role == ROLE_OWNER
        # Delete + insert: a new row, still exactly one per pair.
        assert after.id != before.id
        assert await _count(session, story.id, bob) == 1

    @pytest.mark.asyncio
    async def test_demote_last_owner_rejected(self, session, alice):
        story = await make_story(session, alice)
        with pytest.raises(LastOwnerConflict):
            await member_service.change_role(alice, story.id, alice, ROLE_MEMBER, session)

    @pytest.mark.asyncio
    async def test_demote_with_other_owner(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_OWNER, session)
        row = await member_service.change_role(alice, story.id, alice, ROLE_MEMBER, session)
        assert row.role == ROLE_MEMBER
        assert await memberships.count_owners(story.id, session) == 1

    @pytest.mark.asyncio
    async def test_same_role_is_unchanged(self, session, alice, bob):
        story = await make_story(session, alice)
        before = await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        after = await member_service.change_role(alice, story.id, bob, ROLE_MEMBER, session)
        assert after.id == before.id

    @pytest.mark.asyncio
    async def test_missing_membership(self, session, alice, bob):
        story = await make_story(session, alice)
        with pytest.raises(NotFound):
            await member_service.change_role(alice, story.id, bob, ROLE_OWNER, session)

    @pytest.mark.asyncio
    async def test_member_cannot_promote_self(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        with pytest.raises(Forbidden):
            await member_service.change_role(bob, story.id, bob, ROLE_OWNER, session)

    @pytest.mark.asyncio
    async def test_story_locked_before_decision(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)

        calls = []
        lock_patch, enforce_patch = _record_lock_and_decision(calls)
        with lock_patch, enforce_patch:
            await member_service.change_role(alice, story.id, bob, ROLE_OWNER, session)
        assert calls == ["lock", "enforce", "enforce"]


class TestMembershipVisibility:

    @pytest.mark.asyncio
    async def test_members_see_roster(self, session, alice, bob):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)
        roster = await member_service.list_members(bob, story.id, session)
        assert {m.user_id for m in roster} == {alice, bob}

    @pytest.mark.asyncio
    async def test_public_story_roster_hidden_from_strangers(self, session, alice, bob):
        story = await make_story(session, alice, is_public=True)
        with pytest.raises(Forbidden):
            await member_service.list_members(bob, story.id, session)

    @pytest.mark.asyncio
    async def test_own_memberships(self, session, alice, bob):
        mine = await make_story(session, alice, title="Mine")
        theirs = await make_story(session, bob, title="Theirs")
        await member_service.add_member(bob, theirs.id, alice, ROLE_MEMBER, session)

        rows = await member_service.list_my_memberships(alice, session)
        assert {(r.story_id, r.role) for r in rows} == {
            (mine.id, ROLE_OWNER),
            (theirs.id, ROLE_MEMBER),
        }
        assert all(r.user_id == alice for r in rows)

    @pytest.mark.asyncio
    async def test_get_member(self, session, alice, bob, carol):
        story = await make_story(session, alice)
        await member_service.add_member(alice, story.id, bob, ROLE_MEMBER, session)

        own = await member_service.get_member(bob, story.id, bob, session)
        assert own.role == ROLE_MEMBER
        other = await member_service.get_member(bob, story.id, alice, session)
        assert other.role == ROLE_OWNER

        # Strangers may ask about themselves only, and learn nothing about the story.
        with pytest.raises(NotFound):
            await member_service.get_member(carol, story.id, carol, session)
        with pytest.raises(NotFound):
            await member_service.get_member(carol, uuid.uuid4(), carol, session)
        with pytest.raises(Forbidden):
            await member_service.get_member(carol, story.id, alice, session)
