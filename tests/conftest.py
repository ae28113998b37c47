"""Shared fixtures: a throwaway SQLite database, one user per role, an HTTP client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from helpers import api_key
from ites.auth.middleware import hash_api_key
from ites.auth.roles import Role
from ites.database import Base, enable_sqlite_savepoints, get_db
from ites.main import app
from ites.storage.repositories import create_user

USER_ROLES = {
    "admin": Role.ADMIN,
    "creator": Role.CREATOR,
    "other_creator": Role.CREATOR,
    "reviewer": Role.REVIEWER,
    "other_reviewer": Role.REVIEWER,
    "approver": Role.APPROVER,
    "viewer": Role.VIEWER,
}


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def users(session_maker):
    made = {}
    async with session_maker() as session:
        for name, role in USER_ROLES.items():
            made[name] = await create_user(
                session,
                email=f"{name}@example.com",
                name=name.replace("_", " ").title(),
                role=role,
                api_key_hash=hash_api_key(api_key(name)),
            )
        await session.commit()
    return SimpleNamespace(**made)


@pytest_asyncio.fixture
async def client(session_maker, users):
    async def _get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
