"""Story membership: the (story, user, role) relation that grants access."""

import uuid

from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin

ROLE_OWNER = "owner"
ROLE_MEMBER = "member"
ROLE_CHOICES = (ROLE_OWNER, ROLE_MEMBER)


class StoryMember(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "story_members"
    __table_args__ = (
        UniqueConstraint("story_id", "user_id", name="uq_story_members_story_user"),
        CheckConstraint(
            "role IN ('owner','member')",
            name="ck_story_members_role_valid",
        ),
    )

    story_id: uuid.UUID = Field(
        foreign_key="stories.id", ondelete="CASCADE", nullable=False, index=True
    )
    user_id: uuid.UUID = Field(nullable=False, index=True)
    # Rows are never updated; a role change is delete + insert.
    role: str = Field(default=ROLE_MEMBER, nullable=False)
