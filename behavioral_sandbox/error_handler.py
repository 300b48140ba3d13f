"""
Centralized Error Handling for the Behavioral Sandbox

Storage failures are logged with context and re-raised as
PersistenceError carrying the calling module's prefix. Nothing here
swallows an exception.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from behavioral_sandbox.exceptions import PersistenceError
from behavioral_sandbox.logging_config import log_error


@contextmanager
def storage_errors(prefix: str, operation: str, context: dict | None = None) -> Iterator[None]:
    """
    Wrap SQLAlchemy errors raised inside the block.

    Usage:
        with storage_errors(STAGE_1_ERROR_PREFIX, "store signal", {"user_id": user_id}):
            async with self._uow() as uow:
                ...
    """
    try:
        yield
    except SQLAlchemyError as e:
        ctx = {"operation": operation}
        ctx.update(context or {})
        log_error(e, ctx)
        raise PersistenceError(prefix, operation, e) from e
