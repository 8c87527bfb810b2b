"""
Session decorators for operator actions.

Wrap async functions and service methods that work on one SQLAlchemy
session so a failure never leaves the session mid-transaction.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


def _find_session(args: tuple, kwargs: dict) -> AsyncSession | None:
    """
    Locate the session of a call.

    Looks at the 'session' keyword, then the first positional argument,
    then a 'session' attribute of the first positional argument (service
    methods).
    """
    session = kwargs.get("session")
    if session is None and args:
        first = args[0]
        if isinstance(first, AsyncSession):
            session = first
        elif isinstance(getattr(first, "session", None), AsyncSession):
            session = first.session
    return session


async def _rollback(session: AsyncSession, func_name: str, error: Exception) -> None:
    try:
        await session.rollback()
        logger.info(f"Rollback performed in {func_name} due to error: {type(error).__name__}")
    except Exception as rollback_error:
        logger.error(f"Failed to rollback in {func_name}: {rollback_error}")


def with_rollback_on_error(func: Callable[..., T]) -> Callable[..., T]:
    """
    Roll the session back when the wrapped coroutine raises.

    The exception is re-raised after the rollback.

    Example:
        @with_rollback_on_error
        async def retry_dlq_batch(self, batch_id: int):
            ...
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        session = _find_session(args, kwargs)
        if session is None:
            logger.warning(
                f"{func.__name__} decorated with @with_rollback_on_error "
                f"has no session, rollback will not be performed"
            )
            return await func(*args, **kwargs)

        try:
            return await func(*args, **kwargs)
        except Exception as e:
            await _rollback(session, func.__name__, e)
            raise

    return wrapper


def with_auto_commit(func: Callable[..., T]) -> Callable[..., T]:
    """
    Commit the session after the wrapped coroutine returns.

    Rolls back and re-raises when it raises.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        session = _find_session(args, kwargs)
        if session is None:
            logger.warning(
                f"{func.__name__} decorated with @with_auto_commit "
                f"has no session, commit will not be performed"
            )
            return await func(*args, **kwargs)

        try:
            result = await func(*args, **kwargs)
            await session.commit()
            logger.debug(f"Auto-commit performed in {func.__name__}")
            return result
        except Exception as e:
            await _rollback(session, func.__name__, e)
            raise

    return wrapper
