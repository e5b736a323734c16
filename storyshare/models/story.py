"""Story model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Story(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "stories"

    title: str = Field(nullable=False)
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    is_public: bool = Field(default=False, nullable=False)
    # Identity that created the story. Set once at insert, never updated.
    created_by: uuid.UUID = Field(nullable=False, index=True)
