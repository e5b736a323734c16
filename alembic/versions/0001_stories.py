"""Stories and story memberships.

Revision ID: 0001_stories
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_stories"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # stories
    op.create_table(
        "stories",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("cover_image_url", sa.String(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_stories_id", "stories", ["id"])
    op.create_index("ix_stories_created_by", "stories", ["created_by"])

    # story_members: one row per (story, user); the only physical invariant
    op.create_table(
        "story_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "story_id",
            sa.Uuid(),
            sa.ForeignKey("stories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("story_id", "user_id", name="uq_story_members_story_user"),
        sa.CheckConstraint("role IN ('owner','member')", name="ck_story_members_role_valid"),
    )
    op.create_index("ix_story_members_id", "story_members", ["id"])
    op.create_index("ix_story_members_story_id", "story_members", ["story_id"])
    op.create_index("ix_story_members_user_id", "story_members", ["user_id"])


def downgrade() -> None:
    op.drop_table("story_members")
    op.drop_table("stories")
