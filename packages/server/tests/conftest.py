"""
Shared fixtures: a throwaway SQLite database per test and an API client bound to it.
"""

from __future__ import annotations

from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import create_access_token
from app.core.database import build_engine, get_session
from app.main import app
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import UserOrg


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db(engine):
    """Session factory for seeding and for inspecting state after requests."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def client(db):
    async def override_get_session():
        async with db() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class Seeder:
    """Creates users, organizations and memberships directly in the database."""

    def __init__(self, db):
        self._db = db
        self._count = 0

    async def user(self, name: Optional[str] = None, *, superuser: bool = False, **fields) -> User:
        self._count += 1
        name = name or f"User {self._count}"
        user = User(
            name=name,
            email=fields.pop("email", f"user{self._count}@example.com"),
            is_superuser=superuser,
            **fields,
        )
        async with self._db() as session:
            session.add(user)
            await session.commit()
        return user

    async def org(self, owner: User, name: str = "Acme") -> Organization:
        org = Organization(name=name, owner_id=owner.id, member_ids=[str(owner.id)])
        async with self._db() as session:
            session.add(org)
            await session.flush()
            session.add(UserOrg(user_id=owner.id, org_id=org.id, role="admin"))
            await session.commit()
        return org

    async def member(self, user: User, org: Organization, role: str = "member") -> UserOrg:
        membership = UserOrg(user_id=user.id, org_id=org.id, role=role)
        async with self._db() as session:
            session.add(membership)
            stored = await session.get(Organization, org.id)
            stored.member_ids = [*stored.member_ids, str(user.id)]
            session.add(stored)
            await session.commit()
        return membership


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


def headers_for(user: User, org: Optional[Organization] = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {create_access_token(user.id)}"}
    if org is not None:
        headers["x-org-id"] = str(org.id)
    return headers


@pytest.fixture
def auth_headers():
    return headers_for
