"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database with the ORM schema,
and an app client whose session, session factory and Redis dependencies
point at it.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from commonly.auth.jwt import create_access_token
from commonly.chat.service import participant_key
from commonly.database import get_session, get_session_factory
from commonly.db import models  # noqa: F401
from commonly.db.base import Base
from commonly.db.models import Chat, Message, User, Wallet
from commonly.dependencies import get_redis_dep
from commonly.main import create_app

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_mock() -> AsyncMock:
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    redis_mock: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database."""
    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _redis() -> AsyncGenerator[AsyncMock, None]:
        yield redis_mock

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_redis_dep] = _redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(uid: str, **claims: str) -> dict[str, str]:
    """Bearer header for ``uid`` with optional name/picture/email claims."""
    return {"Authorization": f"Bearer {create_access_token(uid, **claims)}"}


# --- Seeding helpers ---


async def make_user(db: AsyncSession, uid: str, display_name: str | None = None, **fields: object) -> User:
    user = User(uid=uid, display_name=display_name or uid.title(), followers=[], following=[], **fields)
    db.add(user)
    await db.commit()
    return user


async def make_chat(db: AsyncSession, uid_a: str, uid_b: str, at: datetime = BASE_TIME) -> Chat:
    chat = Chat(
        participants=[uid_a, uid_b],
        participant_key=participant_key(uid_a, uid_b),
        created_at=at,
        updated_at=at,
    )
    db.add(chat)
    await db.commit()
    return chat


async def add_message(
    db: AsyncSession,
    chat: Chat,
    sender_id: str,
    text: str | None = "hi",
    *,
    read: bool = False,
    minutes: int = 0,
    image_url: str | None = None,
    voice_url: str | None = None,
) -> Message:
    """Insert a message ``minutes`` after BASE_TIME from ``sender_id`` to the other participant."""
    recipient = next(uid for uid in chat.participants if uid != sender_id)
    message = Message(
        chat_id=chat.id,
        sender_id=sender_id,
        recipient_id=recipient,
        text=text,
        image_url=image_url,
        voice_url=voice_url,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        read=read,
    )
    db.add(message)
    await db.commit()
    return message


async def make_wallet(db: AsyncSession, user_id: str, available: str = "0.00", pending: str = "0.00") -> Wallet:
    wallet = Wallet(
        user_id=user_id,
        total_earnings=Decimal(available) + Decimal(pending),
        available_balance=Decimal(available),
        pending_balance=Decimal(pending),
        platform_credits=Decimal("0.00"),
        has_payout_method=True,
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
    )
    db.add(wallet)
    await db.commit()
    return wallet
