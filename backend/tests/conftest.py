"""
PURPOSE: Pytest fixtures for tradehook tests.

Provides shared test data and helpers including:
- Environment pinned to a deterministic test configuration
- File-backed async SQLite database per test (foreign keys enforced)
- User / strategy factories
- Mock event bus for event capture
"""

import os

# Pin configuration before any tradehook module reads settings
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["API_KEY"] = "test-api-key"
os.environ["MARKETMAYA_TOKEN"] = ""
os.environ["CHARTINK_WEBHOOK_TOKEN"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_POLLING"] = "false"
os.environ["SMTP_HOST"] = ""
os.environ["TRADE_TIMEZONE"] = "Asia/Kolkata"

from datetime import timedelta
from typing import Any, Dict, Optional
from uuid import uuid4
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from tradehook.db.base import Base
from tradehook.db.engine import build_engine, build_session_factory
from tradehook.models import Strategy, User
from tradehook.services.strategy_service import generate_webhook_key
from tradehook.utils.time_utils import get_utc_now, to_naive_utc


@pytest_asyncio.fixture
async def engine(tmp_path):
    """
    PURPOSE: Fresh SQLite database file for each test with all tables created.

    A file (not :memory:) keeps every pooled connection on the same database,
    which the background sessions opened by the pipeline rely on.
    """
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tradehook-test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the per-test database."""
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A session for arranging and asserting database state."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    """
    PURPOSE: Factory creating persisted users.

    Users get an active plan and a unique email by default; pass
    plan_days=None for no plan and email=None for no address.
    """

    async def _make_user(
        name: str = "Trader",
        email: Optional[str] = "",
        role: str = "user",
        plan_days: Optional[int] = 30,
    ) -> User:
        if email == "":
            email = f"trader-{uuid4().hex[:8]}@example.com"
        expires = None
        if plan_days is not None:
            expires = to_naive_utc(get_utc_now() + timedelta(days=plan_days))
        user = User(name=name, email=email, role=role, plan_name="pro", plan_expires_at=expires)
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_strategy(session_factory):
    """Factory creating persisted strategies owned by a given user."""

    async def _make_strategy(
        user: User,
        name: str = "Breakout",
        enabled: bool = False,
        marketmaya: Optional[Dict[str, Any]] = None,
        telegram_enabled: bool = False,
        telegram_chat_id: Optional[str] = None,
        marketmaya_url: str = "",
    ) -> Strategy:
        strategy = Strategy(
            user_id=user.id,
            name=name,
            webhook_url="https://chartink.com/screener/breakout",
            webhook_key=generate_webhook_key(),
            enabled=enabled,
            telegram_enabled=telegram_enabled,
            telegram_chat_id=telegram_chat_id,
            marketmaya_url=marketmaya_url,
            marketmaya=marketmaya or {},
        )
        async with session_factory() as session:
            session.add(strategy)
            await session.commit()
        return strategy

    return _make_strategy


@pytest.fixture
def mock_event_bus():
    """
    PURPOSE: Mock EventBus that captures published events.

    Returns:
        MagicMock: Mock EventBus with a published_events list.
    """
    mock_bus = MagicMock()
    mock_bus.published_events = []
    mock_bus.connected = False

    async def mock_publish(event_type, data=None, source="unknown", severity="INFO"):
        """Mock publish method that captures events."""
        mock_bus.published_events.append({
            "event_type": event_type,
            "data": data,
            "source": source,
        })

    mock_bus.publish = AsyncMock(side_effect=mock_publish)
    return mock_bus
