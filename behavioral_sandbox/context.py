"""
Process context: engine, session factory and the three services.

Built once at startup and handed to the HTTP app (or used directly
in-process). There are no module-level service singletons.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from behavioral_sandbox.database import close_db_connections, create_engine, create_session_factory
from behavioral_sandbox.display_service import InsightDisplayService
from behavioral_sandbox.infrastructure.uow import UoWProvider
from behavioral_sandbox.logging_config import setup_logging
from behavioral_sandbox.reflection_service import ReflectionService
from behavioral_sandbox.sandbox_config import DEFAULT_WINDOW_DAYS, SandboxSettings
from behavioral_sandbox.sandbox_service import BehavioralSandboxService


@dataclass
class SandboxContext:
    session_factory: async_sessionmaker[AsyncSession]
    sandbox: BehavioralSandboxService
    display: InsightDisplayService
    reflections: ReflectionService
    settings: Optional[SandboxSettings] = None
    engine: Optional[AsyncEngine] = None

    @classmethod
    def from_session_factory(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        settings: Optional[SandboxSettings] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> "SandboxContext":
        uow_provider = UoWProvider(session_factory)
        return cls(
            session_factory=session_factory,
            sandbox=BehavioralSandboxService(uow_provider, default_window_days=default_window_days),
            display=InsightDisplayService(uow_provider),
            reflections=ReflectionService(uow_provider),
            settings=settings,
            engine=engine,
        )

    async def close(self) -> None:
        if self.engine is not None:
            await close_db_connections(self.engine)


def build_context(settings: Optional[SandboxSettings] = None) -> SandboxContext:
    """Configure logging and the database from settings (environment by default)"""
    settings = settings or SandboxSettings.from_env()
    setup_logging(level=settings.log_level, log_file=settings.log_file, json_logs=settings.json_logs)

    engine = create_engine(settings.database_url)
    return SandboxContext.from_session_factory(
        create_session_factory(engine),
        default_window_days=settings.default_window_days,
        settings=settings,
        engine=engine,
    )
