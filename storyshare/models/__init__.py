# SQLModel definitions — imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .story import Story  # noqa: F401
from .story_member import StoryMember  # noqa: F401
