"""
Unit of Work Pattern - Infrastructure Layer
===========================================
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from behavioral_sandbox.infrastructure.repositories import (
    AuditRepository,
    ConsentRepository,
    DisplayConsentRepository,
    DisplayLogRepository,
    EventRepository,
    FeedbackRepository,
    ReflectionRepository,
    SafeModeRepository,
    SignalRepository,
)


class UnitOfWork:
    """
    Thin Unit of Work: one session, commit on clean exit, rollback on error.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            signal = await uow.signals.get(uow.session, user_id, signal_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

        self.events = EventRepository()
        self.consents = ConsentRepository()
        self.signals = SignalRepository()
        self.audit = AuditRepository()
        self.display_consents = DisplayConsentRepository()
        self.safe_mode = SafeModeRepository()
        self.feedback = FeedbackRepository()
        self.display_log = DisplayLogRepository()
        self.reflections = ReflectionRepository()

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        session, self._session = self._session, None
        if session is None:
            return
        try:
            if exc_type is None:
                await session.commit()
            else:
                await session.rollback()
        finally:
            await session.close()

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork used outside 'async with'")
        return self._session


class UoWProvider:
    """Callable factory handing out a fresh UnitOfWork per operation"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._factory = session_factory

    def __call__(self) -> UnitOfWork:
        return UnitOfWork(self._factory)
