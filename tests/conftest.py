"""
Shared fixtures: an in-memory SQLite database per test, a file-backed one for
races between sessions, and an ASGI client whose session dependency points at
the in-memory database.
"""

import os

# Must be set before storyshare.core.database builds the global engine.
os.environ.setdefault("STORY_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORY_LOG_FORMAT", "console")

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import storyshare.models  # noqa: F401
from storyshare.core.auth import create_jwt
from storyshare.core.database import get_session
from storyshare.main import app
from storyshare.services import stories as story_service
from storyshare_shared.schemas.stories import StoryCreate


def auth_headers(user_id: uuid.UUID) -> dict:
    return {"Authorization": f"Bearer {create_jwt(user_id)}"}


async def make_story(session, creator_id, *, title="Trip", is_public=False):
    story = await story_service.create_story(
        StoryCreate(title=title, is_public=is_public), creator_id, session
    )
    await session.commit()
    return story


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s
        await s.rollback()


@pytest.fixture
async def file_session_factory(tmp_path):
    """A file-backed database, so two sessions really use two connections."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stories.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


@pytest.fixture
async def client(session_factory):
    async def _get_test_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _get_test_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def alice():
    return uuid.uuid4()


@pytest.fixture
def bob():
    return uuid.uuid4()


@pytest.fixture
def carol():
    return uuid.uuid4()
