"""
Pytest Configuration and Fixtures

Every test gets a fresh in-memory SQLite database (aiosqlite) with the
full sandbox schema, plus the service context built on top of it.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import pytest
import pytest_asyncio

from behavioral_sandbox.context import SandboxContext
from behavioral_sandbox.database import create_all, create_engine, create_session_factory
from behavioral_sandbox.logging_config import setup_logging
from behavioral_sandbox.models import BehavioralEvent

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Monday 2026-03-02 00:00 UTC; all fixtures build times relative to it
BASE_TIME = datetime(2026, 3, 2, tzinfo=timezone.utc)


def at(days: float = 0, hours: float = 0, minutes: float = 0) -> datetime:
    return BASE_TIME + timedelta(days=days, hours=hours, minutes=minutes)


def make_event(
    user_id: str,
    occurred_at: datetime,
    event_type: str = "note_added",
    duration_seconds: Optional[float] = None,
    event_id: Optional[str] = None,
) -> BehavioralEvent:
    """Transient event (not added to any session)"""
    return BehavioralEvent(
        id=event_id or str(uuid.uuid4()),
        user_id=user_id,
        event_type=event_type,
        occurred_at=occurred_at,
        duration_seconds=duration_seconds,
        context={},
        event_data={},
        user_tags=[],
    )


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_logging(level="WARNING")


@pytest_asyncio.fixture
async def engine():
    engine = create_engine(TEST_DATABASE_URL)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def ctx(session_factory) -> SandboxContext:
    return SandboxContext.from_session_factory(session_factory)


@pytest.fixture
def sandbox(ctx):
    return ctx.sandbox


@pytest.fixture
def display(ctx):
    return ctx.display


@pytest.fixture
def reflections(ctx):
    return ctx.reflections


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def other_user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def add_events(session_factory):
    """
    Persist events and return them.

    Usage:
        events = await add_events([make_event(user_id, at(hours=9)), ...])
    """

    async def _add(events: Iterable[BehavioralEvent]) -> List[BehavioralEvent]:
        events = list(events)
        async with session_factory() as session:
            session.add_all(events)
            await session.commit()
        return events

    return _add


@pytest.fixture
def window():
    """(start, end) covering the first ten days after BASE_TIME"""
    return at(), at(days=10)
