"""
Pytest configuration and fixtures for WhatsApp Follow-up Relay tests.
"""

from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.settings import NudgeTemplate
from app.domain.follow_up import FollowUpConfig, SendResult
from app.domain.sent_number import Base
from app.infrastructure.chat_gateway import GatewayError
from app.usecases.sent_registry import SentRegistry


# Use a separate in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def registry(test_session_factory) -> SentRegistry:
    """Sent registry backed by the in-memory database."""
    return SentRegistry(test_session_factory)


class FakeGateway:
    """In-memory stand-in for the WallMessage / Inboxino gateway."""

    def __init__(
        self,
        chat_ids: Optional[List[str]] = None,
        messages: Optional[Dict[str, List[str]]] = None,
        unreadable: Optional[Set[str]] = None,
        failing_recipients: Optional[Set[str]] = None,
        list_fails: bool = False
    ):
        self.chat_ids = chat_ids or []
        self.messages = messages or {}
        self.unreadable = unreadable or set()
        self.failing_recipients = failing_recipients or set()
        self.list_fails = list_fails
        self.calls: List[tuple] = []
        self.sent: List[tuple] = []

    async def list_chats(self) -> List[str]:
        self.calls.append(("list_chats",))
        if self.list_fails:
            raise GatewayError("status 500")
        return list(self.chat_ids)

    async def read_messages(self, chat_id: str, mobile: str, limit: int = 5) -> List[str]:
        self.calls.append(("read_messages", chat_id))
        if chat_id in self.unreadable:
            raise GatewayError("isSuccess false")
        return self.messages.get(chat_id, [])[:limit]

    async def send_message(self, recipient: str, text: str) -> SendResult:
        self.calls.append(("send_message", recipient))
        if recipient in self.failing_recipients:
            return SendResult(success=False, message="Failed to send the message.", error="boom")
        self.sent.append((recipient, text))
        return SendResult(success=True, message="Message sent successfully.")


class FakeRateLimiter:
    """Counts waits instead of sleeping."""

    def __init__(self):
        self.waits = 0

    async def wait(self) -> None:
        self.waits += 1


@pytest.fixture
def fake_rate_limiter() -> FakeRateLimiter:
    return FakeRateLimiter()


@pytest.fixture
def nudge_scheduler() -> AsyncMock:
    """Mock nudge scheduler recording schedule() calls."""
    mock = AsyncMock()
    mock.schedule.return_value = True
    return mock


@pytest.fixture
def follow_up_config() -> FollowUpConfig:
    """Orchestrator configuration used across tests."""
    return FollowUpConfig(
        trigger_message="1",
        read_message_limit=5,
        follow_up_message="Autumn discount: 20% off everything",
        nudges=[
            NudgeTemplate(message="Where are you ?", delay_minutes=4),
            NudgeTemplate(message="You forgot your Discount ?", delay_minutes=120),
        ],
    )


@pytest.fixture
def make_gateway():
    """Factory for FakeGateway instances."""
    return FakeGateway
