"""Automatic retry for operations that lost an optimistic update race.

Only ConcurrentModificationError is retried. Each retry first rolls the
session back so the operation re-reads current state; a retry that finds the
race already decided surfaces that terminal error instead (for example
InvalidTransitionError or AlreadyResolvedError).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from creator_escrow.config import get_settings
from creator_escrow.domain.exceptions import ConcurrentModificationError
from creator_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    attempts: int | None = None,
) -> T:
    """Run ``operation``, retrying on ConcurrentModificationError.

    Args:
        session: The session ``operation`` works in; rolled back before each retry.
        operation: Zero-argument coroutine factory, re-invoked on every attempt.
        attempts: Total attempts (defaults to Settings.conflict_retry_attempts).
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(ConcurrentModificationError),
        stop=stop_after_attempt(attempts or get_settings().conflict_retry_attempts),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.info("retry.conflict", attempt=attempt.retry_state.attempt_number)
                await session.rollback()
            result = await operation()
    return result
