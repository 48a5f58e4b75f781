"""
Shared fixtures for the group service tests.

Every service-level test runs twice: once against the in-memory repository
and once against the SQLAlchemy repository on an in-process SQLite database.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "group-service-test-secret-0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import uuid
from contextlib import asynccontextmanager

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from groupchat.models import audit_entry, chat_group, group_invite, group_member, message  # noqa: F401
from groupchat.models.base import Base
from groupchat.repositories.memory import InMemoryGroupRepository
from groupchat.repositories.sql import SqlGroupRepository
from groupchat.services.group_service import GroupService


# =============================================================================
# Repositories
# =============================================================================


@asynccontextmanager
async def sqlite_repository():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield SqlGroupRepository(session)
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def repository(request):
    """A fresh, empty repository of each kind."""
    if request.param == "memory":
        yield InMemoryGroupRepository()
        return
    async with sqlite_repository() as sql:
        yield sql


@pytest.fixture
async def sql_repository():
    async with sqlite_repository() as sql:
        yield sql


@pytest.fixture
def memory_repository():
    return InMemoryGroupRepository()


@pytest.fixture
def service(repository):
    return GroupService(repository)


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def owner():
    return uuid.uuid4()


@pytest.fixture
def alice():
    return uuid.uuid4()


@pytest.fixture
def bob():
    return uuid.uuid4()


@pytest.fixture
def outsider():
    return uuid.uuid4()


# =============================================================================
# Groups
# =============================================================================


@pytest.fixture
async def group(service, owner, alice):
    """A group owned by ``owner`` with ``alice`` as a plain member."""
    return await service.create_group(name="Book club", creator_id=owner, participant_ids=[alice])

