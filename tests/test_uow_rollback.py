"""
UNIT OF WORK ROLLBACK TESTS

Commit on clean exit, rollback on any exception, no session outside
the context manager.
"""
import pytest

from behavioral_sandbox.infrastructure.uow import UnitOfWork, UoWProvider
from behavioral_sandbox.models import UserConsentFlag

# Configure pytest-asyncio to use function scope
pytestmark = pytest.mark.asyncio(loop_scope="function")


class TestUnitOfWork:
    async def test_commit_on_clean_exit(self, session_factory, user_id):
        async with UnitOfWork(session_factory) as uow:
            await uow.consents.save(
                uow.session, UserConsentFlag(user_id=user_id, consent_key="time_patterns", is_enabled=True)
            )

        async with UnitOfWork(session_factory) as uow:
            flag = await uow.consents.get(uow.session, user_id, "time_patterns")
            assert flag is not None
            assert flag.is_enabled is True

    async def test_rollback_on_error(self, session_factory, user_id):
        """
        SCENARIO: row is flushed, then the block raises

        EXPECTED: nothing is persisted
        """
        with pytest.raises(ValueError):
            async with UnitOfWork(session_factory) as uow:
                await uow.consents.save(
                    uow.session, UserConsentFlag(user_id=user_id, consent_key="time_patterns", is_enabled=True)
                )
                raise ValueError("boom")

        async with UnitOfWork(session_factory) as uow:
            assert await uow.consents.get(uow.session, user_id, "time_patterns") is None

    async def test_session_outside_context(self, session_factory):
        uow = UoWProvider(session_factory)()
        with pytest.raises(RuntimeError):
            uow.session

        async with uow:
            pass
        with pytest.raises(RuntimeError):
            uow.session
