"""Pytest fixtures for testing."""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from orgroster.core.config import Settings
from orgroster.core.database import enable_sqlite_savepoints
from orgroster.models.base import Base
from orgroster.schemas.invitation import InvitationEmail
from orgroster.schemas.membership import Actor
from orgroster.schemas.organization import OrganizationResponse
from orgroster.services.membership_manager import MembershipManager
from orgroster.services.notification_service import NotificationDispatcher

TEST_DATABASE_URL = "sqlite+aiosqlite://"


class RecordingNotifier:
    """Notifier double that records every email it is asked to send."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.sent: list[InvitationEmail] = []

    async def send(self, email: InvitationEmail) -> bool:
        if self.raise_error:
            raise ConnectionError("mail server unreachable")
        self.sent.append(email)
        return not self.fail


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database with the full schema for each test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(test_engine.sync_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        site_url="https://app.acme.com/",
        notification_backend="log",
    )


@pytest.fixture()
def make_notifier() -> Callable[..., RecordingNotifier]:
    return RecordingNotifier


@pytest.fixture()
def notifier(make_notifier) -> RecordingNotifier:
    return make_notifier()


@pytest_asyncio.fixture()
async def dispatcher(notifier: RecordingNotifier) -> AsyncGenerator[NotificationDispatcher, None]:
    dispatcher = NotificationDispatcher(notifier)
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture()
def manager(db: AsyncSession, dispatcher: NotificationDispatcher, settings: Settings) -> MembershipManager:
    return MembershipManager(db, dispatcher=dispatcher, settings=settings)


@pytest.fixture()
def make_actor() -> Callable[[str], Actor]:
    """Build a verified identity for an email address."""

    def _make(email: str) -> Actor:
        return Actor(id=uuid4(), email=email)

    return _make


@pytest.fixture()
def owner(make_actor) -> Actor:
    return make_actor("owner@acme.com")


@pytest_asyncio.fixture()
async def org(manager: MembershipManager, owner: Actor) -> OrganizationResponse:
    result = await manager.create_organization(owner, "Acme", "Rockets and anvils")
    assert result.success, result.error
    return result.data


@pytest.fixture()
def join(manager: MembershipManager) -> Callable[..., Awaitable[UUID]]:
    """Invite `actor` with `role` and accept by token; returns the membership id."""

    async def _join(org_id: UUID, inviter: Actor, actor: Actor, role: str) -> UUID:
        invited = await manager.invite(org_id, inviter, str(actor.email), role)
        assert invited.success, invited.error
        accepted = await manager.accept_invitation(actor, token=invited.data.token)
        assert accepted.success, accepted.error
        return accepted.data.membership_id

    return _join
